"""Tests for cosine similarity, tokenization and BM25."""

import math

import pytest

from powermem_core.utils.vector_math import BM25Okapi, cosine_similarity, tokenize


class TestCosineSimilarity:
    def test_identical_vectors(self):
        assert cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)

    def test_orthogonal_vectors(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    def test_uses_common_prefix(self):
        assert cosine_similarity([1.0, 0.0, 5.0], [1.0, 0.0]) == pytest.approx(1.0)

    @pytest.mark.parametrize("a,b", [(None, [1.0]), ([], [1.0]), ([0.0, 0.0], [1.0, 1.0])])
    def test_degenerate_inputs_score_zero(self, a, b):
        assert cosine_similarity(a, b) == 0.0


class TestTokenize:
    def test_lowercases_and_splits_on_punctuation(self):
        assert tokenize("User prefers concise, English answers!") == [
            "user", "prefers", "concise", "english", "answers",
        ]

    def test_cjk_characters_are_single_tokens(self):
        assert tokenize("我喜欢tea") == ["我", "喜", "欢", "tea"]

    def test_blank(self):
        assert tokenize("   ") == []
        assert tokenize(None) == []


class TestBM25Okapi:
    def test_matching_document_scores_highest(self):
        corpus = [tokenize(t) for t in ["green tea is great", "coffee every morning", "tea and coffee"]]
        scores = BM25Okapi(corpus).get_scores(tokenize("green tea"))
        assert scores[0] > scores[2] > scores[1]
        assert scores[1] == 0.0

    def test_idf_formula(self):
        corpus = [["a"], ["b"]]
        scores = BM25Okapi(corpus).get_scores(["a"])
        idf = math.log(1.0 + (2 - 1 + 0.5) / (1 + 0.5))
        assert scores[0] == pytest.approx(idf)

    def test_empty_corpus_or_query(self):
        assert len(BM25Okapi([]).get_scores(["a"])) == 0
        assert list(BM25Okapi([["a"]]).get_scores([])) == [0.0]
