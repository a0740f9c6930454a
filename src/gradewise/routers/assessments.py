from fastapi import APIRouter, Depends

from gradewise.dependencies import get_evaluator, get_llm_client
from gradewise.schemas.api import EvaluateSubmissionRequest, HealthResponse
from gradewise.schemas.assessment import SubmissionEvaluation
from gradewise.services.evaluator import AssessmentEvaluator
from gradewise.services.llm import LLMClient

router = APIRouter(prefix="/api/v1", tags=["assessments"])


@router.get("/health", response_model=HealthResponse)
async def health(client: LLMClient = Depends(get_llm_client)) -> HealthResponse:
    """Service liveness plus a probe of the configured model endpoint."""
    reachable = await client.is_reachable()
    return HealthResponse(
        status="ok" if reachable else "degraded",
        llm_provider=client.provider,
        llm_reachable=reachable,
    )


@router.post("/assessments/evaluate", response_model=SubmissionEvaluation)
async def evaluate_submission(
    body: EvaluateSubmissionRequest,
    evaluator: AssessmentEvaluator = Depends(get_evaluator),
) -> SubmissionEvaluation:
    """Grade every question of a submission and summarize the result."""
    return await evaluator.evaluate_submission(body.submission, body.assessment)
