from typing import List, Optional

from pydantic import BaseModel

from schemas.stance import PoliticalStance


class AnalyzeRequest(BaseModel):
    # Optional so a missing name is answered with our own 400, not a 422
    candidateName: Optional[str] = None
    stream: bool = False


class AnalysisData(BaseModel):
    inputName: str
    candidateName: str
    stances: List[PoliticalStance]


class AnalyzeResponse(BaseModel):
    success: bool
    data: Optional[AnalysisData] = None
    error: Optional[str] = None
