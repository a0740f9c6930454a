from pydantic import BaseModel, Field, model_validator


class SubScore(BaseModel):
    """One bounded dimension of an evaluation, carrying its declared range."""

    name: str
    value: float = 0.0
    max_value: float = Field(default=1.0, gt=0)
    feedback: str = ""
    suggestions: list[str] = Field(default_factory=list)
    is_fallback: bool = False

    @model_validator(mode="after")
    def _clamp_value(self) -> "SubScore":
        self.value = min(max(self.value, 0.0), self.max_value)
        return self

    @property
    def normalized(self) -> float:
        return self.value / self.max_value


class RubricDimension(BaseModel):
    weight: float = Field(default=0.0, ge=0.0, le=1.0)
    criteria: list[str] = Field(default_factory=list)


class Rubric(BaseModel):
    """Per-question rubric; weights are expected (not enforced) to sum to 1."""

    accuracy: RubricDimension = Field(default_factory=lambda: RubricDimension(weight=0.4))
    conceptual_understanding: RubricDimension = Field(
        default_factory=lambda: RubricDimension(weight=0.3)
    )
    originality: RubricDimension = Field(default_factory=lambda: RubricDimension(weight=0.2))
    presentation: RubricDimension = Field(default_factory=lambda: RubricDimension(weight=0.1))

    def weights(self) -> dict[str, float]:
        return {
            "accuracy": self.accuracy.weight,
            "conceptual_understanding": self.conceptual_understanding.weight,
            "originality": self.originality.weight,
            "presentation": self.presentation.weight,
        }


class ScoreReply(BaseModel):
    """Shape of a single-dimension scoring reply from the model."""

    score: float
    feedback: str = ""
    suggestions: list[str] = Field(default_factory=list)
