"""Tests for the forgetting-curve model."""

import math
from datetime import datetime, timedelta, timezone

import pytest

from powermem_core.intelligence.ebbinghaus import (
    MEMORY_LONG_TERM,
    MEMORY_SHORT_TERM,
    MEMORY_WORKING,
    EbbinghausAlgorithm,
)
from powermem_core.utils.config import IntelligentMemoryConfig

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


def ago(**kwargs):
    return NOW - timedelta(**kwargs)


@pytest.fixture
def algorithm():
    return EbbinghausAlgorithm(IntelligentMemoryConfig())


class TestDecay:
    """Retention decays with age."""

    def test_decay_is_monotonic(self, algorithm):
        recent = algorithm.calculate_decay(ago(hours=1), NOW)
        old = algorithm.calculate_decay(ago(hours=100), NOW)
        assert 1.0 > recent > old >= 0.0

    def test_decay_formula(self):
        algorithm = EbbinghausAlgorithm(IntelligentMemoryConfig(decay_rate=1.0))
        assert algorithm.calculate_decay(ago(hours=24), NOW) == pytest.approx(math.exp(-1.0))

    def test_undated_or_future_is_full_retention(self, algorithm):
        assert algorithm.calculate_decay(None, NOW) == 1.0
        assert algorithm.calculate_decay(NOW + timedelta(hours=1), NOW) == 1.0

    def test_disabled_is_full_retention(self):
        algorithm = EbbinghausAlgorithm(IntelligentMemoryConfig(enabled=False))
        assert algorithm.calculate_decay(ago(days=365), NOW) == 1.0

    def test_non_positive_rate_uses_default(self):
        broken = EbbinghausAlgorithm(IntelligentMemoryConfig(decay_rate=0))
        default = EbbinghausAlgorithm(IntelligentMemoryConfig(decay_rate=0.1))
        assert broken.calculate_decay(ago(hours=2), NOW) == default.calculate_decay(ago(hours=2), NOW)

    def test_apply_to_score(self, algorithm):
        decayed = algorithm.apply_to_score(0.8, ago(hours=1), NOW)
        assert decayed == pytest.approx(0.8 * algorithm.calculate_decay(ago(hours=1), NOW))

    def test_apply_to_score_without_decay(self):
        algorithm = EbbinghausAlgorithm(IntelligentMemoryConfig(decay_enabled=False))
        assert algorithm.apply_to_score(0.8, ago(days=10), NOW) == 0.8


class TestClassification:
    @pytest.mark.parametrize("importance,expected", [
        (0.0, MEMORY_WORKING),
        (0.59, MEMORY_WORKING),
        (0.6, MEMORY_SHORT_TERM),
        (0.79, MEMORY_SHORT_TERM),
        (0.8, MEMORY_LONG_TERM),
        (1.0, MEMORY_LONG_TERM),
    ])
    def test_thresholds(self, algorithm, importance, expected):
        assert algorithm.classify(importance) == expected


class TestLifecycleDecisions:
    """Forget, promote and archive rules."""

    def test_fresh_memory_is_kept(self, algorithm):
        assert not algorithm.should_forget(NOW, 0, NOW)

    def test_decayed_memory_is_forgotten(self, algorithm):
        assert algorithm.should_forget(ago(hours=10), 5, NOW)

    def test_unused_week_old_memory_is_forgotten(self):
        algorithm = EbbinghausAlgorithm(IntelligentMemoryConfig(decay_rate=100.0))
        assert algorithm.should_forget(ago(days=8), 0, NOW)
        assert not algorithm.should_forget(ago(days=8), 1, NOW)

    def test_undated_memory_is_never_forgotten(self, algorithm):
        assert not algorithm.should_forget(None, 0, NOW)

    def test_promotion_by_access(self, algorithm):
        assert algorithm.should_promote(NOW, 3, 0.1, NOW)
        assert not algorithm.should_promote(NOW, 2, 0.1, NOW)

    def test_promotion_by_age(self, algorithm):
        assert algorithm.should_promote(ago(hours=25), 0, 0.1, NOW)
        assert not algorithm.should_promote(ago(hours=24, minutes=30), 0, 0.1, NOW)

    def test_promotion_by_importance(self, algorithm):
        assert algorithm.should_promote(NOW, 0, 0.6, NOW)

    def test_archive(self, algorithm):
        assert algorithm.should_archive(ago(days=31), 0.9, NOW)
        assert algorithm.should_archive(NOW, 0.2, NOW)
        assert not algorithm.should_archive(NOW, 0.5, NOW)

    def test_disabled_makes_no_decisions(self):
        algorithm = EbbinghausAlgorithm(IntelligentMemoryConfig(enabled=False))
        assert not algorithm.should_forget(ago(days=100), 0, NOW)
        assert not algorithm.should_promote(NOW, 10, 1.0, NOW)
        assert not algorithm.should_archive(ago(days=100), 0.0, NOW)


class TestProcessMemoryMetadata:
    def test_block_shape(self, algorithm):
        block = algorithm.process_memory_metadata(0.8, MEMORY_LONG_TERM, NOW)

        intelligence = block["intelligence"]
        assert intelligence["importance_score"] == 0.8
        assert intelligence["memory_type"] == MEMORY_LONG_TERM
        assert intelligence["initial_retention"] == pytest.approx(0.8)
        assert intelligence["current_retention"] == pytest.approx(0.8)
        assert intelligence["decay_rate"] == 0.1
        assert intelligence["access_count"] == 0
        assert intelligence["last_reviewed"].startswith("2026-01-01T12:00:00")
        assert block["memory_management"] == {
            "should_promote": False,
            "should_forget": False,
            "should_archive": False,
            "is_active": True,
        }
