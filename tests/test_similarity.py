import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from gradewise.config import Settings
from gradewise.exceptions import TransportError
from gradewise.schemas.plagiarism import PriorText
from gradewise.services.fallbacks import SIMILARITY_UNAVAILABLE
from gradewise.services.similarity import (
    HeuristicStylometry,
    SimilarityEstimator,
    StylometryStrategy,
    average_sentence_length,
    cosine_similarity,
    unique_word_ratio,
)


def _corpus(n: int) -> list[PriorText]:
    return [PriorText(id=f"s{i}", text=f"prior answer number {i}") for i in range(n)]


def _reply(score: float, evidence: str | None = None) -> str:
    return json.dumps({"similarity_score": score, "evidence": evidence})


@pytest.fixture
def estimator(mock_client: MagicMock, mock_settings: Settings) -> SimilarityEstimator:
    return SimilarityEstimator(mock_client, mock_settings)


class TestCosineSimilarity:
    def test_identical(self):
        assert cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)

    def test_orthogonal(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)

    def test_opposite(self):
        assert cosine_similarity([1.0, 1.0], [-1.0, -1.0]) == pytest.approx(-1.0)

    def test_symmetric(self):
        a, b = [0.3, 0.1, 0.9], [0.5, 0.7, 0.2]
        assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a))

    def test_zero_vector(self):
        assert cosine_similarity([0.0, 0.0], [1.0, 2.0]) == 0.0

    def test_shape_mismatch(self):
        with pytest.raises(ValueError):
            cosine_similarity([1.0, 2.0], [1.0, 2.0, 3.0])


class TestStrategySelection:
    def test_boundary(self, estimator: SimilarityEstimator):
        assert estimator.uses_direct_comparison(10)
        assert not estimator.uses_direct_comparison(11)

    @pytest.mark.asyncio
    async def test_ten_texts_use_direct(self, estimator, mock_client):
        mock_client.execute_prompt = AsyncMock(return_value=_reply(0.2))

        result = await estimator.find_most_similar("candidate", _corpus(10))

        assert result.strategy == "direct"
        assert mock_client.execute_prompt.await_count == 10
        mock_client.compute_embedding.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_eleven_texts_use_embeddings(self, estimator, mock_client):
        mock_client.compute_embedding = AsyncMock(
            side_effect=lambda text: [1.0, 0.0] if isinstance(text, str) else [[0.0, 1.0]] * len(text)
        )

        result = await estimator.find_most_similar("candidate", _corpus(11))

        assert result.strategy == "embedding"
        mock_client.execute_prompt.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_corpus(self, estimator, mock_client):
        result = await estimator.find_most_similar("candidate", [])

        assert result.score == 0
        assert result.strategy == "none"
        mock_client.execute_prompt.assert_not_awaited()


class TestDirectComparison:
    @pytest.mark.asyncio
    async def test_keeps_maximum(self, estimator, mock_client):
        mock_client.execute_prompt = AsyncMock(
            side_effect=[_reply(0.3), _reply(0.9, "same thesis"), _reply(0.5)]
        )

        result = await estimator.compare_direct("candidate", _corpus(3))

        assert result.score == pytest.approx(0.9)
        assert result.matched_id == "s1"
        assert result.evidence == "same thesis"

    @pytest.mark.asyncio
    async def test_ties_resolve_to_first_seen(self, estimator, mock_client):
        mock_client.execute_prompt = AsyncMock(return_value=_reply(0.9))

        result = await estimator.compare_direct("candidate", _corpus(2))

        assert result.matched_id == "s0"

    @pytest.mark.asyncio
    async def test_failed_comparison_is_skipped(self, estimator, mock_client):
        mock_client.execute_prompt = AsyncMock(
            side_effect=[TransportError("timeout"), "not json", _reply(0.4)]
        )

        result = await estimator.compare_direct("candidate", _corpus(3))

        assert result.score == pytest.approx(0.4)
        assert result.matched_id == "s2"
        assert result.notice is None

    @pytest.mark.asyncio
    async def test_all_failures_report_notice(self, estimator, mock_client):
        mock_client.execute_prompt = AsyncMock(side_effect=TransportError("down"))

        result = await estimator.compare_direct("candidate", _corpus(2))

        assert result.score == 0
        assert result.matched_id is None
        assert result.notice == SIMILARITY_UNAVAILABLE

    @pytest.mark.asyncio
    async def test_uses_low_temperature(self, estimator, mock_client):
        mock_client.execute_prompt = AsyncMock(return_value=_reply(0.1))

        await estimator.compare_direct("candidate", _corpus(1))

        kwargs = mock_client.execute_prompt.await_args.kwargs
        assert kwargs["temperature"] == 0.1
        assert kwargs["max_tokens"] == 500


class TestEmbeddingComparison:
    @pytest.mark.asyncio
    async def test_batches_sequentially_and_fetches_evidence(self, estimator, mock_client):
        corpus = _corpus(25)
        batch_sizes: list[int] = []

        def embed(text):
            if isinstance(text, str):
                return [1.0, 0.0]
            batch_sizes.append(len(text))
            return [[1.0, 0.0] if t == corpus[22].text else [0.0, 1.0] for t in text]

        mock_client.compute_embedding = AsyncMock(side_effect=embed)
        mock_client.execute_prompt = AsyncMock(return_value=_reply(0.95, "copied paragraph"))

        result = await estimator.compare_embeddings("candidate", corpus)

        assert batch_sizes == [20, 5]
        assert result.score == pytest.approx(1.0)
        assert result.matched_id == "s22"
        assert result.evidence == "copied paragraph"
        assert mock_client.execute_prompt.await_count == 1

    @pytest.mark.asyncio
    async def test_below_threshold_skips_evidence(self, estimator, mock_client):
        mock_client.compute_embedding = AsyncMock(
            side_effect=lambda text: [1.0, 0.0] if isinstance(text, str) else [[1.0, 1.0]] * len(text)
        )

        result = await estimator.compare_embeddings("candidate", _corpus(12))

        assert result.score == pytest.approx(0.7071, abs=1e-3)
        assert result.matched_id == "s0"
        assert result.evidence is None
        mock_client.execute_prompt.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_embedding_failure_degrades(self, estimator, mock_client):
        mock_client.compute_embedding = AsyncMock(side_effect=TransportError("quota"))

        result = await estimator.compare_embeddings("candidate", _corpus(12))

        assert result.score == 0
        assert result.strategy == "none"
        assert result.notice == SIMILARITY_UNAVAILABLE


class TestHeuristicStylometry:
    def test_is_a_stylometry_strategy(self):
        assert isinstance(HeuristicStylometry(), StylometryStrategy)

    def test_wordless_text_falls_in_lowest_ratio_band(self):
        assert HeuristicStylometry().score("").score == 40
        assert HeuristicStylometry().score("42 17").score == 40

    def test_skip_wordless(self):
        assert HeuristicStylometry(skip_wordless=True).score("").score == 0
        assert HeuristicStylometry(skip_wordless=True).score("42 17").score == 0

    def test_long_repetitive_sentence(self):
        text = " ".join(["the"] * 30)
        result = HeuristicStylometry().score(text)

        assert result.features.average_sentence_length == 30
        # long sentence (+30) and low lexical variety (+40); readability stays low
        assert result.score == 70

    def test_short_varied_text(self):
        text = "Cats nap. Dogs bark loudly. Birds sing songs."
        assert HeuristicStylometry().score(text).score == 0

    def test_features(self):
        assert average_sentence_length("One two. Three four five six.") == 3
        assert unique_word_ratio("a b a b") == 0.5
        assert unique_word_ratio("42 17") == 0.0
