from pydantic import BaseModel, Field

from gradewise.schemas.assessment import AnswerEvaluation, Assessment, Question, Submission
from gradewise.schemas.expert import ALL_EXPERT_ROLES, ExpertFeedback
from gradewise.schemas.learning import Course, Progress, Student
from gradewise.schemas.plagiarism import EducationalReport, PlagiarismReport
from gradewise.schemas.syllabus import AssessmentPattern, SyllabusAnalysis


class EvaluateSubmissionRequest(BaseModel):
    submission: Submission
    assessment: Assessment


class GradeAnswerRequest(BaseModel):
    question: Question
    answer: str
    domain: str | None = None


class PlagiarismCheckRequest(BaseModel):
    submission: Submission
    assessment: Assessment
    previous_submissions: list[Submission] = Field(default_factory=list)
    include_report: bool = False


class PlagiarismCheckResponse(BaseModel):
    report: PlagiarismReport
    educational_report: EducationalReport | None = None


class TextRequest(BaseModel):
    text: str = Field(min_length=1)


class ExpertPanelRequest(BaseModel):
    question: str
    answer: str
    ground_truth: str | None = None
    related_concepts: list[str] = Field(default_factory=list)
    experts: list[str] = Field(default_factory=lambda: list(ALL_EXPERT_ROLES))
    domain: str | None = None


class ConsensusRequest(BaseModel):
    feedback: list[ExpertFeedback]


class RecommendationsRequest(BaseModel):
    student: Student
    courses: list[Course] = Field(default_factory=list)
    progress: Progress | None = None


class LearningPathRequest(BaseModel):
    evaluations: list[AnswerEvaluation]
    assessment_title: str = ""


class SyllabusRequest(BaseModel):
    content: str = Field(min_length=1)


class GenerateAssessmentRequest(BaseModel):
    analysis: SyllabusAnalysis
    pattern: AssessmentPattern


class HealthResponse(BaseModel):
    status: str
    llm_provider: str
    llm_reachable: bool
