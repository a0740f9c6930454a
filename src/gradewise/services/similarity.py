"""Text-similarity estimation.

Three strategies:
- direct: one model judgement per prior text (small corpora)
- embedding: cosine similarity over embedding vectors, batched (large corpora)
- heuristic stylometry: surface features of a single text, no model call

Direct and embedding comparisons are selected by corpus size and never raise;
a failed comparison degrades to "no match".
"""

import asyncio
import logging
import re
from collections.abc import Sequence
from typing import Protocol, runtime_checkable

import numpy as np

from gradewise.config import Settings
from gradewise.exceptions import LLMResponseError, TransportError
from gradewise.schemas.plagiarism import (
    PriorText,
    SimilarityReply,
    SimilarityResult,
    StylometricScore,
    TextFeatures,
)
from gradewise.services.fallbacks import SIMILARITY_UNAVAILABLE
from gradewise.services.llm import LLMClient
from gradewise.utils.llm_parse import parse_payload

logger = logging.getLogger(__name__)

_SIMILARITY_SYSTEM_PROMPT = "You are a plagiarism detection expert. Be objective and analytical."

_SIMILARITY_USER_PROMPT = """\
Compare these two student answers for similarity and potential plagiarism:

ANSWER 1: "{first}"

ANSWER 2: "{second}"

Rate their similarity on a scale of 0.0 to 1.0, where:
- 0.0 means completely different
- 1.0 means identical or nearly identical content

If similarity is above {evidence_threshold}, provide the specific sections that appear to be copied or highly similar.

Return your response as a JSON object with this structure:
{{
  "similarity_score": <number between 0.0 and 1.0>,
  "evidence": <if similarity > {evidence_threshold}, the similar sections, otherwise null>
}}"""


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """dot(a, b) / (|a| * |b|); a zero-norm vector has similarity 0."""
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    if va.shape != vb.shape:
        raise ValueError(f"vector shapes differ: {va.shape} vs {vb.shape}")
    norm_a = np.linalg.norm(va)
    norm_b = np.linalg.norm(vb)
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return float(np.clip(np.dot(va, vb) / (norm_a * norm_b), -1.0, 1.0))


# ---------------------------------------------------------------------- #
#  Heuristic stylometry
# ---------------------------------------------------------------------- #

_SENTENCE_SPLIT_RE = re.compile(r"[.!?]+")
_VOWEL_GROUP_RE = re.compile(r"[aeiouy]+")
_LETTER_RE = re.compile(r"[a-z]")


def _sentences(text: str) -> list[str]:
    return [s for s in _SENTENCE_SPLIT_RE.split(text) if s.strip()]


def average_sentence_length(text: str) -> float:
    sentences = _sentences(text)
    if not sentences:
        return 0.0
    words = sum(len(s.split()) for s in sentences)
    return words / len(sentences)


def estimate_syllables(text: str) -> float:
    """Vowel-group count per word, minus one for a trailing silent 'e'."""
    words = text.lower().split()
    count = 0
    for word in words:
        groups = _VOWEL_GROUP_RE.findall(word)
        count += len(groups) if groups else 1
        if len(word) > 2 and word.endswith("e"):
            count -= 1
    return max(count, len(words) * 0.5)


def readability_score(text: str) -> float:
    """Flesch-Kincaid style grade; higher means more complex text."""
    words = len(text.split())
    sentences = len(_sentences(text))
    if sentences == 0 or words == 0:
        return 0.0
    syllables = estimate_syllables(text)
    return 0.39 * (words / sentences) + 11.8 * (syllables / words) - 15.59


def unique_word_ratio(text: str) -> float:
    words = [w for w in text.lower().split() if _LETTER_RE.search(w)]
    if not words:
        return 0.0
    return len(set(words)) / len(words)


def text_features(text: str) -> TextFeatures:
    return TextFeatures(
        average_sentence_length=average_sentence_length(text),
        readability_score=readability_score(text),
        unique_word_ratio=unique_word_ratio(text),
    )


@runtime_checkable
class StylometryStrategy(Protocol):
    """Scores a single text 0-100 without calling a model."""

    def score(self, text: str) -> StylometricScore: ...


class HeuristicStylometry:
    """Rough complexity proxy: long sentences, dense vocabulary, low lexical variety.

    Not a calibrated classifier. Bands are ``(threshold, points)`` pairs checked
    in order; the first match wins.
    With ``skip_wordless`` a text without any word tokens gets no unique-word
    points; by default its ratio of 0 falls in the lowest band.
    """

    sentence_length_bands: tuple[tuple[float, float], ...] = ((25, 30), (20, 20), (15, 10))
    readability_bands: tuple[tuple[float, float], ...] = ((50, 30), (30, 15))
    # lower is more suspicious
    unique_ratio_bands: tuple[tuple[float, float], ...] = ((0.4, 40), (0.5, 20))

    def __init__(self, *, skip_wordless: bool = False) -> None:
        self.skip_wordless = skip_wordless

    def score(self, text: str) -> StylometricScore:
        features = text_features(text)
        points = 0.0
        points += _first_band_above(features.average_sentence_length, self.sentence_length_bands)
        points += _first_band_above(features.readability_score, self.readability_bands)
        if features.unique_word_ratio > 0 or not self.skip_wordless:
            for threshold, band_points in self.unique_ratio_bands:
                if features.unique_word_ratio < threshold:
                    points += band_points
                    break
        return StylometricScore(score=points, features=features)


def _first_band_above(value: float, bands: tuple[tuple[float, float], ...]) -> float:
    for threshold, points in bands:
        if value > threshold:
            return points
    return 0.0


# ---------------------------------------------------------------------- #
#  Corpus comparison
# ---------------------------------------------------------------------- #


class SimilarityEstimator:
    def __init__(self, client: LLMClient, settings: Settings) -> None:
        self._client = client
        self._threshold = settings.similarity_threshold
        self._direct_max = settings.direct_comparison_max_corpus
        self._batch_size = settings.embedding_batch_size
        self._evidence_threshold = settings.evidence_threshold

    def uses_direct_comparison(self, corpus_size: int) -> bool:
        return corpus_size <= self._direct_max

    async def find_most_similar(
        self, candidate: str, prior_texts: Sequence[PriorText]
    ) -> SimilarityResult:
        """Best match of *candidate* in the corpus, strategy picked by corpus size."""
        if not prior_texts:
            return SimilarityResult()
        if self.uses_direct_comparison(len(prior_texts)):
            return await self.compare_direct(candidate, prior_texts)
        return await self.compare_embeddings(candidate, prior_texts)

    async def compare_direct(
        self, candidate: str, prior_texts: Sequence[PriorText]
    ) -> SimilarityResult:
        """One model judgement per prior text; keeps the maximum (first seen on ties)."""
        replies = await asyncio.gather(
            *(self._judge_pair(candidate, prior) for prior in prior_texts)
        )

        best = SimilarityResult(strategy="direct")
        for prior, reply in zip(prior_texts, replies):
            if reply is not None and reply.similarity_score > best.score:
                best = SimilarityResult(
                    score=reply.similarity_score,
                    matched_id=prior.id,
                    evidence=reply.evidence,
                    strategy="direct",
                )
        if replies and all(reply is None for reply in replies):
            best.notice = SIMILARITY_UNAVAILABLE
        return best

    async def compare_embeddings(
        self, candidate: str, prior_texts: Sequence[PriorText]
    ) -> SimilarityResult:
        """Cosine similarity over embeddings, corpus embedded in sequential batches."""
        try:
            candidate_vector = await self._client.compute_embedding(candidate)

            best_score = 0.0
            best_match: PriorText | None = None
            for start in range(0, len(prior_texts), self._batch_size):
                batch = list(prior_texts[start : start + self._batch_size])
                vectors = await self._client.compute_embedding([p.text for p in batch])
                for prior, vector in zip(batch, vectors):
                    similarity = cosine_similarity(candidate_vector, vector)
                    if similarity > best_score:
                        best_score = similarity
                        best_match = prior
        except (TransportError, ValueError) as e:
            logger.warning("Embedding similarity check failed: %s", e)
            return SimilarityResult(notice=SIMILARITY_UNAVAILABLE)

        logger.info(
            "Embedding similarity over %d texts: best=%.3f (%s)",
            len(prior_texts),
            best_score,
            best_match.id if best_match else None,
        )
        result = SimilarityResult(
            score=best_score,
            matched_id=best_match.id if best_match else None,
            strategy="embedding",
        )
        if best_match is not None and best_score >= self._threshold:
            detailed = await self.compare_direct(candidate, [best_match])
            result.evidence = detailed.evidence
        return result

    async def _judge_pair(self, candidate: str, prior: PriorText) -> SimilarityReply | None:
        prompt = _SIMILARITY_USER_PROMPT.format(
            first=candidate,
            second=prior.text,
            evidence_threshold=self._evidence_threshold,
        )
        try:
            raw = await self._client.execute_prompt(
                _SIMILARITY_SYSTEM_PROMPT, prompt, temperature=0.1, max_tokens=500
            )
            return parse_payload(raw, SimilarityReply)
        except (TransportError, LLMResponseError) as e:
            logger.warning("Similarity comparison against %s failed: %s", prior.id, e)
            return None
