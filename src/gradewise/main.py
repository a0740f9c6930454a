import logging
from contextlib import asynccontextmanager

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from gradewise.config import settings
from gradewise.exceptions import GradewiseError
from gradewise.routers import answers, assessments, expert_panel, learning, plagiarism, syllabus
from gradewise.services.adaptive import AdaptiveLearningEngine
from gradewise.services.evaluator import AssessmentEvaluator
from gradewise.services.expert_panel import ExpertPanel
from gradewise.services.llm import LLMClient
from gradewise.services.plagiarism import PlagiarismDetector
from gradewise.services.rubric_grader import RubricGrader
from gradewise.services.scoring import ScoringDefaults
from gradewise.services.syllabus import SyllabusAnalyzer

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the model client and grading services on startup, close the client on shutdown."""
    logger.info("Starting Gradewise service (provider=%s) ...", settings.llm_provider)

    llm_client = LLMClient(settings)
    expert_panel_service = ExpertPanel(llm_client)
    plagiarism_service = PlagiarismDetector(llm_client, settings)

    app.state.llm_client = llm_client
    app.state.expert_panel = expert_panel_service
    app.state.plagiarism = plagiarism_service
    app.state.evaluator = AssessmentEvaluator(llm_client, ScoringDefaults.from_settings(settings))
    app.state.rubric_grader = RubricGrader(
        llm_client, settings, plagiarism=plagiarism_service, panel=expert_panel_service
    )
    app.state.adaptive = AdaptiveLearningEngine(llm_client, settings)
    app.state.syllabus = SyllabusAnalyzer(llm_client, settings)

    logger.info("Gradewise service ready.")
    yield

    logger.info("Shutting down Gradewise service ...")
    await llm_client.close()


app = FastAPI(
    title="Gradewise",
    description="LLM-assisted grading, plagiarism and adaptive-learning service",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(assessments.router)
app.include_router(answers.router)
app.include_router(plagiarism.router)
app.include_router(expert_panel.router)
app.include_router(learning.router)
app.include_router(syllabus.router)


@app.exception_handler(GradewiseError)
async def gradewise_error_handler(request: Request, exc: GradewiseError):
    return JSONResponse(status_code=500, content={"detail": str(exc)})
