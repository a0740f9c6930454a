from typing import Literal

from pydantic import BaseModel, Field

ExpertRole = Literal[
    "fact-checker",
    "concept-analyzer",
    "clarity-evaluator",
    "critical-thinking-evaluator",
    "domain-expert",
]

ALL_EXPERT_ROLES: tuple[ExpertRole, ...] = (
    "fact-checker",
    "concept-analyzer",
    "clarity-evaluator",
    "critical-thinking-evaluator",
    "domain-expert",
)


class ExpertReply(BaseModel):
    """Shape of a single expert's reply from the model (score 0-100)."""

    feedback: str
    score: float | None = Field(default=None, ge=0, le=100)
    suggestions: list[str] = Field(default_factory=list)


class ExpertFeedback(ExpertReply):
    role: str
    is_fallback: bool = False


class ConsensusReply(BaseModel):
    overall_feedback: str
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)
    recommended_score: float | None = Field(default=None, ge=0, le=100)


class ConsensusEvaluation(ConsensusReply):
    is_fallback: bool = False
