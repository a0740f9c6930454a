from fastapi import APIRouter, Depends

from gradewise.dependencies import get_expert_panel
from gradewise.schemas.api import ConsensusRequest, ExpertPanelRequest
from gradewise.schemas.expert import ConsensusEvaluation, ExpertFeedback
from gradewise.services.expert_panel import ExpertPanel

router = APIRouter(prefix="/api/v1", tags=["expert-panel"])


@router.post("/expert-panel/feedback", response_model=list[ExpertFeedback])
async def panel_feedback(
    body: ExpertPanelRequest,
    panel: ExpertPanel = Depends(get_expert_panel),
) -> list[ExpertFeedback]:
    return await panel.get_panel_feedback(
        body.question,
        body.answer,
        ground_truth=body.ground_truth,
        related_concepts=body.related_concepts,
        experts=body.experts,
        domain=body.domain,
    )


@router.post("/expert-panel/consensus", response_model=ConsensusEvaluation)
async def consensus(
    body: ConsensusRequest,
    panel: ExpertPanel = Depends(get_expert_panel),
) -> ConsensusEvaluation:
    return await panel.get_consensus(body.feedback)
