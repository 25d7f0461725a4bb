import json
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, StreamingResponse

from api.dependencies import get_analysis_service
from schemas.analysis import AnalyzeRequest, AnalyzeResponse
from services.analysis_service import StanceAnalysisService
from services.exceptions import StanceServiceError

router = APIRouter()
logger = logging.getLogger(__name__)


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=AnalyzeResponse(success=False, error=message).model_dump(exclude_none=True),
    )


async def _sse(events):
    async for event in events:
        yield f"data: {json.dumps(event)}\n\n"


@router.post("/analyze", response_model=AnalyzeResponse, response_model_exclude_none=True)
async def analyze(
    req: AnalyzeRequest,
    service: StanceAnalysisService = Depends(get_analysis_service),
):
    """
    Analyze a candidate's stances on the fixed issue list, with verified sources.
    With "stream": true the progress is sent as server-sent events.
    """
    candidate_name = (req.candidateName or "").strip()
    if not candidate_name:
        return _error_response(400, "Candidate name is required")

    if req.stream:
        return StreamingResponse(
            _sse(service.stream(candidate_name)),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "Connection": "keep-alive",
                "X-Accel-Buffering": "no",
            },
        )

    try:
        data = await service.analyze(candidate_name)
    except StanceServiceError as e:
        logger.warning(f"Analysis of {candidate_name!r} failed: {e}")
        return _error_response(e.status_code, str(e))
    except Exception as e:
        logger.error(f"Analysis error: {e}", exc_info=True)
        return _error_response(500, "Failed to analyze political stances")

    return AnalyzeResponse(success=True, data=data)
