from pydantic import BaseModel, Field

from gradewise.schemas.expert import ConsensusEvaluation, ExpertFeedback
from gradewise.schemas.plagiarism import PlagiarismVerdict
from gradewise.schemas.scoring import Rubric, SubScore


class Question(BaseModel):
    id: str = ""
    question: str
    type: str = "short-answer"
    points: float = 1.0
    topic: str | None = None
    correct_answer: str | None = None
    sample_answer: str | None = None
    rubric_text: str | None = None
    keywords: list[str] = Field(default_factory=list)
    ground_truth: str | None = None
    related_concepts: list[str] = Field(default_factory=list)
    rubric: Rubric = Field(default_factory=Rubric)


class Assessment(BaseModel):
    id: str = ""
    title: str = ""
    questions: list[Question] = Field(default_factory=list)


class Answer(BaseModel):
    question_index: int | None = None
    question_id: str | None = None
    answer: str = ""


class Submission(BaseModel):
    id: str = ""
    answers: list[Answer] = Field(default_factory=list)


class QuestionReply(BaseModel):
    """Shape of a per-question grading reply from the model (score in question points)."""

    score: float
    feedback: str = ""
    improvement: str | None = None


class QuestionResult(BaseModel):
    """Score for one question, in question points (0..points)."""

    score: float = 0.0
    is_correct: bool | None = None
    feedback: str = ""
    improvement: str | None = None
    is_fallback: bool = False


class QuestionFeedback(QuestionResult):
    question_index: int


class ImprovementArea(BaseModel):
    topic: str
    recommendation: str


class SubmissionEvaluation(BaseModel):
    score: int = 0  # percentage 0-100
    feedback: str = ""
    question_feedback: list[QuestionFeedback] = Field(default_factory=list)
    total_points: float = 0.0
    earned_points: float = 0.0
    improvement: list[ImprovementArea] = Field(default_factory=list)


class Suggestion(BaseModel):
    suggestion: str
    explanation: str = ""
    action_items: list[str] = Field(default_factory=list)
    resources: list[str] = Field(default_factory=list)


class AnswerEvaluation(BaseModel):
    """Rubric-weighted evaluation of one answer; sub-scores and total in 0-1."""

    question_id: str = ""
    answer: str
    accuracy: SubScore
    conceptual_understanding: SubScore
    originality: SubScore
    presentation: SubScore
    plagiarism: PlagiarismVerdict
    total_score: float
    suggestions: list[Suggestion] = Field(default_factory=list)
    expert_feedback: list[ExpertFeedback] = Field(default_factory=list)
    consensus: ConsensusEvaluation | None = None
    misconceptions: list[str] = Field(default_factory=list)
    learning_gaps: list[str] = Field(default_factory=list)
    topic: str | None = None
    related_concepts: list[str] = Field(default_factory=list)
