"""Tests for hybrid search fusion strategies."""

import pytest

from powermem_core.models.memory import MemoryRecord, OutputData
from powermem_core.store.fusion import (
    FUSION_INFO_KEY,
    ReciprocalRankFusion,
    WeightedFusion,
    create_fusion_strategy,
)


def hits(*pairs):
    return [OutputData(record=MemoryRecord(id=memory_id, content=memory_id), score=score) for memory_id, score in pairs]


class TestReciprocalRankFusion:
    def test_consistent_top_rank_beats_consistent_bottom_rank(self):
        # Vector ranks A, B, C; lexical ranks C, A, B
        vector = hits(("A", 0.9), ("B", 0.8), ("C", 0.7))
        lexical = hits(("C", 5.0), ("A", 4.0), ("B", 3.0))
        fused = ReciprocalRankFusion().fuse(vector, lexical, 10)
        ids = [item.id for item in fused]
        assert ids.index("A") < ids.index("B")

    def test_score_formula(self):
        fused = ReciprocalRankFusion(k=60).fuse(hits(("A", 0.9)), hits(("A", 2.0)), 10)
        assert fused[0].score == pytest.approx(0.5 / 61 + 0.5 / 61)

    def test_unseen_source_contributes_nothing(self):
        fused = ReciprocalRankFusion().fuse(hits(("A", 0.9)), hits(("B", 1.0)), 10)
        assert fused[0].score == pytest.approx(0.5 / 61)
        assert fused[1].score == pytest.approx(0.5 / 61)
        # Equal scores keep first-seen order
        assert [item.id for item in fused] == ["A", "B"]

    def test_fusion_info_is_attached(self):
        fused = ReciprocalRankFusion().fuse(hits(("A", 0.9)), hits(("A", 3.0)), 10)
        info = fused[0].record.attributes[FUSION_INFO_KEY]
        assert info["fusion_method"] == "rrf"
        assert info["rrf_k"] == 60
        assert info["vector_rank"] == 1
        assert info["fts_rank"] == 1
        assert info["vector_score"] == 0.9
        assert info["fts_score"] == 3.0
        assert info["fusion_score"] == pytest.approx(fused[0].score)

    def test_invalid_parameters_fall_back_to_defaults(self):
        strategy = ReciprocalRankFusion(k=0, vector_weight=-1, fts_weight=0)
        assert strategy.k == 60
        assert strategy.vector_weight == 0.5
        assert strategy.fts_weight == 0.5

    def test_limit_and_empty_inputs(self):
        fused = ReciprocalRankFusion().fuse(hits(("A", 1), ("B", 1), ("C", 1)), None, 2)
        assert len(fused) == 2
        assert ReciprocalRankFusion().fuse(None, [], 5) == []


class TestWeightedFusion:
    def test_min_max_normalization(self):
        vector = hits(("A", 0.9), ("B", 0.5))
        lexical = hits(("B", 4.0), ("A", 2.0))
        fused = WeightedFusion(vector_weight=0.7, fts_weight=0.3).fuse(vector, lexical, 10)
        scores = {item.id: item.score for item in fused}
        assert scores["A"] == pytest.approx(0.7 * 1.0 + 0.3 * 0.0)
        assert scores["B"] == pytest.approx(0.7 * 0.0 + 0.3 * 1.0)
        assert fused[0].id == "A"

    def test_constant_scores_normalize_to_one(self):
        fused = WeightedFusion().fuse(hits(("A", 0.4)), [], 10)
        info = fused[0].record.attributes[FUSION_INFO_KEY]
        assert info["vector_score_norm"] == 1.0
        assert info["fts_score_norm"] == 1.0
        assert fused[0].score == pytest.approx(1.0)


class TestCreateFusionStrategy:
    def test_by_name(self):
        assert isinstance(create_fusion_strategy("weighted"), WeightedFusion)
        assert isinstance(create_fusion_strategy("RRF"), ReciprocalRankFusion)
        assert isinstance(create_fusion_strategy(None), ReciprocalRankFusion)
