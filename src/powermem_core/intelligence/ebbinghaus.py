"""Ebbinghaus forgetting-curve model.

Retention decays as ``exp(-hours / (24 * decay_rate))`` from the time a memory
was created. The lifecycle decisions built on top of it are evaluated lazily,
whenever a memory is touched by a get or a search.
"""

import math
from datetime import datetime
from typing import Any, Dict, Optional

from ..utils.config import IntelligentMemoryConfig
from ..utils.text import to_iso, utc_now

MEMORY_WORKING = "working"
MEMORY_SHORT_TERM = "short_term"
MEMORY_LONG_TERM = "long_term"

PROMOTION_ACCESS_COUNT = 3
PROMOTION_AGE_HOURS = 24
FORGET_UNUSED_DAYS = 7
ARCHIVE_AGE_DAYS = 30
DEFAULT_DECAY_RATE = 0.1


def _elapsed_seconds(created_at: Optional[datetime], now: datetime) -> Optional[float]:
    if created_at is None:
        return None
    return (now - created_at).total_seconds()


class EbbinghausAlgorithm:
    """Decay and lifecycle decisions for one configuration."""

    def __init__(self, config: Optional[IntelligentMemoryConfig] = None):
        self.config = config or IntelligentMemoryConfig()

    @property
    def enabled(self) -> bool:
        return bool(self.config.enabled)

    def calculate_decay(self, created_at: Optional[datetime], now: Optional[datetime] = None) -> float:
        """Retention factor in [0, 1]; 1.0 when disabled, undated or not yet elapsed."""
        if not self.enabled:
            return 1.0
        seconds = _elapsed_seconds(created_at, now or utc_now())
        if seconds is None or seconds <= 0:
            return 1.0
        hours = seconds / 3600.0
        decay_rate = self.config.decay_rate if self.config.decay_rate > 0 else DEFAULT_DECAY_RATE
        return max(math.exp(-hours / (24.0 * decay_rate)), 0.0)

    def apply_to_score(self, score: float, created_at: Optional[datetime], now: Optional[datetime] = None) -> float:
        if not self.enabled or not self.config.decay_enabled:
            return score
        return score * self.calculate_decay(created_at, now)

    def classify(self, importance: float) -> str:
        if importance >= self.config.long_term_threshold:
            return MEMORY_LONG_TERM
        if importance >= self.config.short_term_threshold:
            return MEMORY_SHORT_TERM
        return MEMORY_WORKING

    def should_forget(self, created_at: Optional[datetime], access_count: int,
                      now: Optional[datetime] = None) -> bool:
        if not self.enabled or created_at is None:
            return False
        now = now or utc_now()
        if self.calculate_decay(created_at, now) < self.config.working_threshold:
            return True
        return access_count <= 0 and (now - created_at).days > FORGET_UNUSED_DAYS

    def should_promote(self, created_at: Optional[datetime], access_count: int, importance: float,
                       now: Optional[datetime] = None) -> bool:
        if not self.enabled:
            return False
        if access_count >= PROMOTION_ACCESS_COUNT:
            return True
        seconds = _elapsed_seconds(created_at, now or utc_now())
        if seconds is not None and int(seconds // 3600) > PROMOTION_AGE_HOURS:
            return True
        return importance >= self.config.short_term_threshold

    def should_archive(self, created_at: Optional[datetime], importance: float,
                       now: Optional[datetime] = None) -> bool:
        if not self.enabled:
            return False
        if created_at is not None and ((now or utc_now()) - created_at).days > ARCHIVE_AGE_DAYS:
            return True
        return importance < self.config.working_threshold

    def process_memory_metadata(self, importance: float, memory_type: str,
                                now: Optional[datetime] = None) -> Dict[str, Any]:
        """Full intelligence block stored alongside a memory."""
        now = now or utc_now()
        initial_retention = self.config.initial_retention * importance
        return {
            "intelligence": {
                "importance_score": importance,
                "memory_type": memory_type,
                "initial_retention": initial_retention,
                "decay_rate": self.config.decay_rate,
                "current_retention": initial_retention,
                "last_reviewed": to_iso(now),
                "review_count": 0,
                "access_count": 0,
                "reinforcement_factor": self.config.reinforcement_factor,
            },
            "memory_management": {
                "should_promote": False,
                "should_forget": False,
                "should_archive": False,
                "is_active": True,
            },
        }
