from fastapi import APIRouter, Depends

from gradewise.dependencies import get_plagiarism_detector
from gradewise.schemas.api import PlagiarismCheckRequest, PlagiarismCheckResponse, TextRequest
from gradewise.schemas.plagiarism import PlagiarismVerdict
from gradewise.services.plagiarism import PlagiarismDetector

router = APIRouter(prefix="/api/v1", tags=["plagiarism"])


@router.post("/plagiarism/check", response_model=PlagiarismCheckResponse)
async def check_submission(
    body: PlagiarismCheckRequest,
    detector: PlagiarismDetector = Depends(get_plagiarism_detector),
) -> PlagiarismCheckResponse:
    """Check a submission against earlier ones, optionally with an educational report."""
    report = await detector.check_submission(
        body.submission, body.previous_submissions, body.assessment
    )
    educational = None
    if body.include_report:
        educational = await detector.generate_educational_report(report)
    return PlagiarismCheckResponse(report=report, educational_report=educational)


@router.post("/plagiarism/assess", response_model=PlagiarismVerdict)
async def assess_text(
    body: TextRequest,
    detector: PlagiarismDetector = Depends(get_plagiarism_detector),
) -> PlagiarismVerdict:
    """Single-text verdict: model judgement blended with heuristic stylometry."""
    return await detector.assess_text(body.text)
