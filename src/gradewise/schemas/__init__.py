"""Gradewise schemas."""

from gradewise.schemas.plagiarism import PriorText, SimilarityResult
from gradewise.schemas.scoring import Rubric, RubricDimension, SubScore

__all__ = [
    "PriorText",
    "Rubric",
    "RubricDimension",
    "SimilarityResult",
    "SubScore",
]
