"""Memory lifecycle intelligence: forgetting curve, importance and hooks."""

from .ebbinghaus import MEMORY_LONG_TERM, MEMORY_SHORT_TERM, MEMORY_WORKING, EbbinghausAlgorithm
from .importance import ImportanceEvaluator
from .manager import IntelligenceManager, attach_attributes, record_metadata_view, record_to_result
from .plugin import EbbinghausIntelligencePlugin, HookResult, IntelligentMemoryPlugin

__all__ = [
    "EbbinghausAlgorithm",
    "ImportanceEvaluator",
    "IntelligenceManager",
    "IntelligentMemoryPlugin",
    "EbbinghausIntelligencePlugin",
    "HookResult",
    "MEMORY_WORKING",
    "MEMORY_SHORT_TERM",
    "MEMORY_LONG_TERM",
    "attach_attributes",
    "record_metadata_view",
    "record_to_result",
]
