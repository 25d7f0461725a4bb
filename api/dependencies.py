from fastapi import Request

from services.analysis_service import StanceAnalysisService


def get_analysis_service(request: Request) -> StanceAnalysisService:
    """The service wired up in the app lifespan (overridden in tests)."""
    return request.app.state.analysis_service
