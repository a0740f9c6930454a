from fastapi import APIRouter, Depends

from gradewise.dependencies import get_syllabus_analyzer
from gradewise.schemas.api import GenerateAssessmentRequest, SyllabusRequest
from gradewise.schemas.syllabus import GeneratedAssessment, SyllabusAnalysis
from gradewise.services.syllabus import SyllabusAnalyzer

router = APIRouter(prefix="/api/v1", tags=["syllabus"])


@router.post("/syllabus/analyze", response_model=SyllabusAnalysis)
async def analyze_syllabus(
    body: SyllabusRequest,
    analyzer: SyllabusAnalyzer = Depends(get_syllabus_analyzer),
) -> SyllabusAnalysis:
    return await analyzer.analyze(body.content)


@router.post("/syllabus/assessment", response_model=GeneratedAssessment)
async def generate_assessment(
    body: GenerateAssessmentRequest,
    analyzer: SyllabusAnalyzer = Depends(get_syllabus_analyzer),
) -> GeneratedAssessment:
    """Draft an assessment from a syllabus analysis and one of its patterns."""
    return await analyzer.generate_assessment(body.analysis, body.pattern)
