"""
LectureAI Backend - Analysis Route
====================================

POST /analyze   {fileName, email} → {message, fileName, email, sample}

Runs the whole transcription pipeline inside the request. Mounted only when
ENABLE_ANALYSIS is on.
"""

from fastapi import APIRouter, Depends

from lectureai.dependencies import get_analysis_service
from lectureai.schemas.api import AnalyzeRequest, AnalyzeResponse, ErrorResponse
from lectureai.services.analysis_service import AnalysisService

router = APIRouter(tags=["Analysis"])


@router.post(
    "/analyze",
    response_model=AnalyzeResponse,
    responses={
        400: {"description": "fileName or email missing", "model": ErrorResponse},
        500: {"description": "A pipeline stage failed", "model": ErrorResponse},
        503: {"description": "Transcription provider is being shed", "model": ErrorResponse},
    },
    summary="Transcribe, summarize and email a stored lecture",
)
async def analyze(
    body: AnalyzeRequest,
    analysis: AnalysisService = Depends(get_analysis_service),
) -> AnalyzeResponse:
    result = await analysis.analyze(body.file_name, body.email)
    return AnalyzeResponse(file_name=result.file_name, email=result.email, sample=result.sample)
