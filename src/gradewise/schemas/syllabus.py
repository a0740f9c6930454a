from typing import Literal

from pydantic import BaseModel, Field

from gradewise.schemas.assessment import Assessment, Question


class BasicInfo(BaseModel):
    course_title: str = ""
    course_code: str = ""
    department: str = ""
    academic_level: str = ""
    credits: str = ""
    instructor: str = ""
    term: str = ""
    description: str = ""


class WeekPlan(BaseModel):
    week: str
    topics: list[str] = Field(default_factory=list)
    description: str = ""


class LearningOutcomes(BaseModel):
    learning_outcomes: list[str] = Field(default_factory=list)
    key_topics: list[str] = Field(default_factory=list)
    weekly_breakdown: list[WeekPlan] = Field(default_factory=list)


class PatternItem(BaseModel):
    question_type: str
    count: int
    points_per_question: float


class AssessmentPattern(BaseModel):
    name: str
    description: str = ""
    difficulty: str = ""
    structure: list[PatternItem] = Field(default_factory=list)
    total_points: float = 0
    estimated_time: int = 0
    evaluation_criteria: list[str] = Field(default_factory=list)
    best_suited_for: str = ""


class AssessmentPatterns(BaseModel):
    patterns: list[AssessmentPattern] = Field(default_factory=list)


class ConceptNode(BaseModel):
    id: str
    label: str
    type: Literal["main", "sub", "concept"] = "concept"


class ConceptEdge(BaseModel):
    source: str
    target: str
    relationship: str = "related"


class ConceptMap(BaseModel):
    nodes: list[ConceptNode] = Field(default_factory=list)
    edges: list[ConceptEdge] = Field(default_factory=list)


class SyllabusAnalysis(BaseModel):
    basic_info: BasicInfo
    learning_outcomes: LearningOutcomes
    assessment_patterns: AssessmentPatterns
    concept_map: ConceptMap
    notices: list[str] = Field(default_factory=list)


class GeneratedQuestion(Question):
    options: list[str] = Field(default_factory=list)
    difficulty: str = ""
    bloom_level: str = ""


class GeneratedAssessment(Assessment):
    """An assessment drafted from a syllabus analysis and one assessment pattern."""

    description: str = ""
    pattern_name: str = ""
    total_points: float = 0
    time_limit: int = 0
    questions: list[GeneratedQuestion] = Field(default_factory=list)
    is_fallback: bool = False
    notices: list[str] = Field(default_factory=list)
