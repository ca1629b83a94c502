"""Importance scoring for new memories."""

import math
from typing import Any, Dict, Optional

DEFAULT_IMPORTANCE = 0.5


class ImportanceEvaluator:
    """Rule-based importance: an explicit ``importance_score`` in [0, 1] wins, else 0.5."""

    def evaluate(self, content: Optional[str], metadata: Optional[Dict[str, Any]] = None) -> float:
        value = (metadata or {}).get("importance_score")
        if value is None or isinstance(value, bool):
            return DEFAULT_IMPORTANCE
        try:
            score = float(value)
        except (TypeError, ValueError):
            return DEFAULT_IMPORTANCE
        if math.isnan(score) or score < 0.0 or score > 1.0:
            return DEFAULT_IMPORTANCE
        return score
