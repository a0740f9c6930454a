from fastapi import APIRouter, Depends

from gradewise.dependencies import get_rubric_grader
from gradewise.schemas.api import GradeAnswerRequest
from gradewise.schemas.assessment import AnswerEvaluation
from gradewise.services.rubric_grader import RubricGrader

router = APIRouter(prefix="/api/v1", tags=["answers"])


@router.post("/answers/grade", response_model=AnswerEvaluation)
async def grade_answer(
    body: GradeAnswerRequest,
    grader: RubricGrader = Depends(get_rubric_grader),
) -> AnswerEvaluation:
    """Rubric-weighted evaluation of a single answer."""
    return await grader.grade_answer(body.question, body.answer, domain=body.domain)
