from typing import Literal

from pydantic import BaseModel, Field

Evidence = str | list[str] | None


class PriorText(BaseModel):
    """One entry of a comparison corpus (e.g. an earlier submission's answer)."""

    id: str
    text: str


class SimilarityResult(BaseModel):
    score: float = 0.0
    max_value: float = 1.0
    matched_id: str | None = None
    evidence: Evidence = None
    strategy: Literal["direct", "embedding", "none"] = "none"
    notice: str | None = None


class SimilarityReply(BaseModel):
    """Shape of a pairwise similarity judgement from the model (0-1)."""

    similarity_score: float = Field(ge=0.0, le=1.0)
    evidence: Evidence = None


class AIDetectionResult(BaseModel):
    score: float = Field(default=0.0, ge=0.0, le=1.0)
    evidence: Evidence = None


class PotentialSource(BaseModel):
    source_type: str
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: str = ""
    distinctive_phrases: list[str] = Field(default_factory=list)


class CrossLanguageResult(BaseModel):
    detected: bool = False
    original_language: str = "unknown"
    similarity_score: float = Field(default=0.0, ge=0.0, le=1.0)
    evidence: Evidence = None


class TextFeatures(BaseModel):
    average_sentence_length: float = 0.0
    readability_score: float = 0.0
    unique_word_ratio: float = 0.0


class StylometricScore(BaseModel):
    """Heuristic 0-100 complexity/originality-risk score and its inputs."""

    score: float = 0.0
    features: TextFeatures = Field(default_factory=TextFeatures)


class PlagiarismVerdict(BaseModel):
    """Combined single-text verdict on the 0-100 scale."""

    similarity_score: float = 0.0
    feedback: str = ""
    ai_score: float | None = None
    ai_confidence: float | None = None
    heuristic_score: float | None = None
    text_features: TextFeatures | None = None
    is_fallback: bool = False


class FlaggedAnswer(BaseModel):
    question_id: str | None
    question_index: int
    similarity_score: float
    matched_submission_id: str | None = None
    evidence: Evidence = None


class AIGeneratedAnswer(BaseModel):
    question_id: str | None
    question_index: int
    ai_score: float
    evidence: Evidence = None


class SourceMatch(BaseModel):
    question_id: str | None
    question_index: int
    sources: list[PotentialSource]


class CrossLanguageMatch(BaseModel):
    question_id: str | None
    question_index: int
    original_language: str
    similarity_score: float
    evidence: Evidence = None


class PlagiarismReport(BaseModel):
    is_plagiarism_detected: bool = False
    overall_similarity_score: float = 0.0
    flagged_answers: list[FlaggedAnswer] = Field(default_factory=list)
    ai_generated_content_detected: bool = False
    ai_generated_content_score: float = 0.0
    ai_generated_answers: list[AIGeneratedAnswer] = Field(default_factory=list)
    potential_sources: list[SourceMatch] = Field(default_factory=list)
    cross_language_matches: list[CrossLanguageMatch] = Field(default_factory=list)


class LearningResource(BaseModel):
    title: str
    description: str = ""


class EducationalReport(BaseModel):
    summary: str
    educational_guidance: list[str] = Field(default_factory=list)
    resources: list[LearningResource] = Field(default_factory=list)
    is_fallback: bool = False
