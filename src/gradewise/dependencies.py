from fastapi import Request

from gradewise.services.adaptive import AdaptiveLearningEngine
from gradewise.services.evaluator import AssessmentEvaluator
from gradewise.services.expert_panel import ExpertPanel
from gradewise.services.llm import LLMClient
from gradewise.services.plagiarism import PlagiarismDetector
from gradewise.services.rubric_grader import RubricGrader
from gradewise.services.syllabus import SyllabusAnalyzer


def get_llm_client(request: Request) -> LLMClient:
    """Retrieve the shared LLMClient from app state."""
    return request.app.state.llm_client


def get_evaluator(request: Request) -> AssessmentEvaluator:
    return request.app.state.evaluator


def get_rubric_grader(request: Request) -> RubricGrader:
    return request.app.state.rubric_grader


def get_plagiarism_detector(request: Request) -> PlagiarismDetector:
    return request.app.state.plagiarism


def get_expert_panel(request: Request) -> ExpertPanel:
    return request.app.state.expert_panel


def get_adaptive_engine(request: Request) -> AdaptiveLearningEngine:
    return request.app.state.adaptive


def get_syllabus_analyzer(request: Request) -> SyllabusAnalyzer:
    return request.app.state.syllabus
