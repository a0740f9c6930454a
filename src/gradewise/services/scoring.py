"""Bounded score arithmetic shared by every grading service.

Scores travel between components on different declared ranges (0-1 rubric
dimensions, 0-10 legacy replies, 0-100 expert and plagiarism scores); the
helpers here convert at those boundaries instead of assuming one scale.
"""

from collections.abc import Mapping
from dataclasses import dataclass

from gradewise.config import Settings


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return min(max(value, low), high)


def normalize(value: float, max_value: float) -> float:
    """Map a value on [0, max_value] onto [0, 1]."""
    if max_value <= 0:
        raise ValueError("max_value must be positive")
    return clamp(value / max_value)


def rescale(value: float, from_max: float, to_max: float) -> float:
    return normalize(value, from_max) * to_max


def compute_total_score(
    sub_scores: Mapping[str, float],
    rubric: Mapping[str, float],
    *,
    max_value: float = 1.0,
) -> float:
    """Weighted sum over the dimensions present in both maps.

    Missing sub-scores are not re-normalized away: a rubric entry without a
    matching sub-score simply contributes nothing, lowering the total.
    """
    total = sum(
        sub_scores[name] * weight for name, weight in rubric.items() if name in sub_scores
    )
    return clamp(total, 0.0, max_value)


def originality_from_similarity(similarity: float, max_value: float = 100.0) -> float:
    """Invert a similarity score into a 0-1 originality score."""
    return max(0.0, 1.0 - similarity / max_value)


@dataclass(frozen=True)
class ScoringDefaults:
    """Neutral values substituted when a dimension cannot be scored."""

    accuracy: float = 0.5
    conceptual: float = 0.5
    presentation: float = 0.7
    essay_ratio: float = 0.6
    short_answer_ratio: float = 0.5

    @classmethod
    def from_settings(cls, settings: Settings) -> "ScoringDefaults":
        return cls(
            accuracy=settings.accuracy_fallback,
            conceptual=settings.conceptual_fallback,
            presentation=settings.presentation_fallback,
            essay_ratio=settings.essay_fallback_ratio,
            short_answer_ratio=settings.short_answer_fallback_ratio,
        )


@dataclass(frozen=True)
class PlagiarismWeights:
    ai: float = 0.7
    heuristic: float = 0.3


@dataclass(frozen=True)
class SimilarityBands:
    """Upper bounds (exclusive, 0-100) of the 'original' and 'possibly similar' bands."""

    possible: float = 30.0
    significant: float = 60.0
    original_message: str = "The response appears to be original."
    possible_message: str = (
        "Some elements of the response may be similar to existing sources. "
        "Consider adding more original analysis."
    )
    significant_message: str = (
        "The response contains significant similarity to existing sources. "
        "Please ensure proper attribution or rework for more originality."
    )


DEFAULT_WEIGHTS = PlagiarismWeights()
DEFAULT_BANDS = SimilarityBands()


def combine_plagiarism_scores(
    ai_score: float,
    heuristic_score: float,
    weights: PlagiarismWeights = DEFAULT_WEIGHTS,
) -> float:
    """Blend the model's 0-100 judgement with the 0-100 heuristic score."""
    return ai_score * weights.ai + heuristic_score * weights.heuristic


def similarity_feedback(score: float, bands: SimilarityBands = DEFAULT_BANDS) -> str:
    if score < bands.possible:
        return bands.original_message
    if score < bands.significant:
        return bands.possible_message
    return bands.significant_message
