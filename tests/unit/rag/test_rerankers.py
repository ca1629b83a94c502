"""Tests for rerankers."""

from unittest.mock import MagicMock, patch

import pytest

from powermem_core.rag.rerank import create_reranker
from powermem_core.rag.rerank.cross_encoder import CrossEncoderReranker
from powermem_core.utils.config import RerankConfig
from powermem_core.utils.errors import ConfigurationError


@pytest.fixture
def model():
    model = MagicMock()
    model.predict.side_effect = lambda pairs: [len(doc) for _, doc in pairs]
    return model


class TestCrossEncoderReranker:
    @pytest.mark.asyncio
    async def test_sorted_by_score(self, model):
        reranker = CrossEncoderReranker(RerankConfig(enabled=True), existing_model=model)

        results = await reranker.rerank("q", ["bb", "a", "cccc"])

        assert [(r.index, r.score) for r in results] == [(2, 4.0), (0, 2.0), (1, 1.0)]
        model.predict.assert_called_once_with([("q", "bb"), ("q", "a"), ("q", "cccc")])

    @pytest.mark.asyncio
    async def test_top_n(self, model):
        reranker = CrossEncoderReranker(RerankConfig(enabled=True, top_n=2), existing_model=model)

        assert [r.index for r in await reranker.rerank("q", ["bb", "a", "cccc"])] == [2, 0]
        assert [r.index for r in await reranker.rerank("q", ["bb", "a", "cccc"], top_n=1)] == [2]

    @pytest.mark.asyncio
    async def test_empty_input(self, model):
        reranker = CrossEncoderReranker(existing_model=model)

        assert await reranker.rerank("", ["a"]) == []
        assert await reranker.rerank("q", []) == []
        model.predict.assert_not_called()


class TestCreateReranker:
    def test_disabled(self):
        assert create_reranker(None) is None
        assert create_reranker(RerankConfig(enabled=False)) is None

    def test_cross_encoder(self):
        with patch("powermem_core.rag.rerank.cross_encoder.CrossEncoder") as loader:
            reranker = create_reranker(RerankConfig(enabled=True, model="m"))

        assert isinstance(reranker, CrossEncoderReranker)
        loader.assert_called_once_with("m")

    def test_unknown(self):
        with pytest.raises(ConfigurationError):
            create_reranker(RerankConfig(enabled=True, provider="cohere"))
