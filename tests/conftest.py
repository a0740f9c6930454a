from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from gradewise.config import Settings
from gradewise.services.adaptive import AdaptiveLearningEngine
from gradewise.services.evaluator import AssessmentEvaluator
from gradewise.services.expert_panel import ExpertPanel
from gradewise.services.llm import LLMClient
from gradewise.services.plagiarism import PlagiarismDetector
from gradewise.services.rubric_grader import RubricGrader
from gradewise.services.syllabus import SyllabusAnalyzer


@pytest.fixture
def mock_settings() -> Settings:
    return Settings(
        llm_api_key="test-key",
        llm_base_url="http://llm.test/v1",
        llm_model_name="test-model",
        llm_max_retries=0,
        recommendation_seed=7,
    )


@pytest.fixture
def mock_client() -> MagicMock:
    """An LLMClient stand-in; tests set ``execute_prompt`` / ``compute_embedding``."""
    client = MagicMock(spec=LLMClient)
    client.execute_prompt = AsyncMock(return_value="")
    client.compute_embedding = AsyncMock(return_value=[])
    client.is_reachable = AsyncMock(return_value=True)
    client.provider = "openai"
    return client


@pytest.fixture
def test_app(mock_client: MagicMock):
    """Create a test FastAPI app with mocked services."""
    from fastapi import FastAPI
    from gradewise.routers import answers, assessments, expert_panel, learning, plagiarism, syllabus

    app = FastAPI()
    app.state.llm_client = mock_client
    app.state.evaluator = MagicMock(spec=AssessmentEvaluator)
    app.state.rubric_grader = MagicMock(spec=RubricGrader)
    app.state.plagiarism = MagicMock(spec=PlagiarismDetector)
    app.state.expert_panel = MagicMock(spec=ExpertPanel)
    app.state.adaptive = MagicMock(spec=AdaptiveLearningEngine)
    app.state.syllabus = MagicMock(spec=SyllabusAnalyzer)
    for module in (assessments, answers, plagiarism, expert_panel, learning, syllabus):
        app.include_router(module.router)
    return app


@pytest.fixture
def client(test_app) -> TestClient:
    return TestClient(test_app)
