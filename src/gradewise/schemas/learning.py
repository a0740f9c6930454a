from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field, field_validator

DifficultyLevel = Literal["beginner", "intermediate", "advanced", "expert"]
Priority = Literal["high", "medium", "low"]


class AssessmentRecord(BaseModel):
    """One past assessment result; score is a percentage (0-100)."""

    id: str
    topic: str | None = None
    score: float
    date: datetime

    @field_validator("date")
    @classmethod
    def _assume_utc(cls, value: datetime) -> datetime:
        # histories mix "...Z" and naive timestamps; naive ones are read as UTC
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class Resource(BaseModel):
    id: str = ""
    title: str
    type: str = ""
    url: str | None = None
    difficulty: str | None = None


class Activity(BaseModel):
    id: str
    title: str = ""


class Topic(BaseModel):
    id: str
    title: str = ""
    prerequisites: list[str] = Field(default_factory=list)
    related_topics: list[str] = Field(default_factory=list)
    key_concepts: list[str] = Field(default_factory=list)
    resources: list[Resource] = Field(default_factory=list)
    quizzes: list[Activity] = Field(default_factory=list)
    exercises: list[Activity] = Field(default_factory=list)
    advanced_exercises: list[Activity] = Field(default_factory=list)


class Course(BaseModel):
    id: str
    title: str = ""
    difficulty: str | None = None
    topics: list[Topic] = Field(default_factory=list)


class Progress(BaseModel):
    course_id: str | None = None
    current_topic: str | None = None
    completed_topics: list[str] = Field(default_factory=list)
    current_difficulty: DifficultyLevel = "beginner"


class Student(BaseModel):
    id: str
    assessment_history: list[AssessmentRecord] = Field(default_factory=list)


class KnowledgeGap(BaseModel):
    topic: str
    score: float
    assessment_ids: list[str] = Field(default_factory=list)


class TrendEntry(BaseModel):
    """Either a score change between two same-topic assessments or the latest result."""

    topic: str
    type: Literal["trend", "assessment"]
    # type == "assessment"
    id: str | None = None
    date: datetime | None = None
    score: float | None = None
    # type == "trend"
    score_diff: float | None = None
    days_between: int | None = None
    improvement: bool | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    start_score: float | None = None
    end_score: float | None = None

    @property
    def sort_date(self) -> datetime:
        return self.end_date if self.type == "trend" else self.date  # type: ignore[return-value]


class PerformanceAnalysis(BaseModel):
    strengths: list[str] = Field(default_factory=list)
    weaknesses: list[str] = Field(default_factory=list)
    knowledge_gaps: list[KnowledgeGap] = Field(default_factory=list)
    mastered_topics: list[str] = Field(default_factory=list)
    average_scores: dict[str, float] = Field(default_factory=dict)
    learning_trends: list[TrendEntry] = Field(default_factory=list)


class TopicRecommendation(BaseModel):
    topic_id: str
    reason: str
    priority: Priority
    type: Literal["sequential", "remedial", "exploration", "starting"]


class ResourceRecommendation(Resource):
    reason: str
    topic_id: str
    priority: Priority


class PracticeActivity(BaseModel):
    type: Literal["quiz", "exercise", "advanced_exercise"]
    activity_id: str
    topic: str
    title: str
    reason: str
    priority: Priority


class DifficultyAdjustment(BaseModel):
    level: DifficultyLevel
    change: Literal["increase", "decrease", "maintain"]
    reason: str


class StrugglePrediction(BaseModel):
    topic_id: str
    title: str = ""
    confidence: float = Field(ge=0.0, le=1.0)
    reason: str = ""
    recommended_preparation: list[str] = Field(default_factory=list)


class Recommendations(BaseModel):
    next_topics: list[TopicRecommendation] = Field(default_factory=list)
    resource_recommendations: list[ResourceRecommendation] = Field(default_factory=list)
    practice_suggestions: list[PracticeActivity] = Field(default_factory=list)
    adjusted_difficulty: DifficultyAdjustment
    predicted_struggle_areas: list[StrugglePrediction] = Field(default_factory=list)
    is_fallback: bool = False


class WeakTopic(BaseModel):
    """Graded answers below the weak-score line, pooled by topic; score is 0-1."""

    topic: str
    score: float
    count: int
    misconceptions: list[str] = Field(default_factory=list)
    learning_gaps: list[str] = Field(default_factory=list)
    related_concepts: list[str] = Field(default_factory=list)


class PathActivity(BaseModel):
    type: str = "reading"
    title: str
    description: str = ""
    estimated_time: str = ""
    resources: list[str] = Field(default_factory=list)


class PathModule(BaseModel):
    title: str
    description: str = ""
    focus: str = ""
    activities: list[PathActivity] = Field(default_factory=list)


class LearningPath(BaseModel):
    title: str
    description: str = ""
    modules: list[PathModule] = Field(default_factory=list)
    weak_topics: list[WeakTopic] = Field(default_factory=list)
    is_fallback: bool = False
    notices: list[str] = Field(default_factory=list)
