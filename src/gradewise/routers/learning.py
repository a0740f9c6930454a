from fastapi import APIRouter, Depends

from gradewise.dependencies import get_adaptive_engine
from gradewise.schemas.api import LearningPathRequest, RecommendationsRequest
from gradewise.schemas.learning import LearningPath, Recommendations
from gradewise.services.adaptive import AdaptiveLearningEngine

router = APIRouter(prefix="/api/v1", tags=["learning"])


@router.post("/learning/recommendations", response_model=Recommendations)
async def recommendations(
    body: RecommendationsRequest,
    engine: AdaptiveLearningEngine = Depends(get_adaptive_engine),
) -> Recommendations:
    """Next topics, resources, practice, difficulty and struggle predictions for a student."""
    return await engine.generate_recommendations(body.student, body.courses, body.progress)


@router.post("/learning/path", response_model=LearningPath)
async def learning_path(
    body: LearningPathRequest,
    engine: AdaptiveLearningEngine = Depends(get_adaptive_engine),
) -> LearningPath:
    return await engine.generate_learning_path(body.evaluations, body.assessment_title)
