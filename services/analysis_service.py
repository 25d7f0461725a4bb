# services/analysis_service.py
"""
Candidate analysis pipeline.

validate name -> cache lookup -> generate stances -> verify sources one stance
at a time -> cache write. The pipeline is written once as an async generator
of events; the JSON endpoint drains it and the streaming endpoint forwards it.
"""
import asyncio
import logging
from collections import Counter
from typing import Any, AsyncIterator, Dict, List

from config import settings
from schemas.analysis import AnalysisData
from schemas.stance import PoliticalStance
from services.cache_service import CandidateCacheStore
from services.claims_service import ClaimsService
from services.exceptions import AnalysisError, InvalidCandidateError
from services.verification_service import StanceVerifier

logger = logging.getLogger(__name__)

Event = Dict[str, Any]


def status_event(message: str) -> Event:
    return {"type": "status", "message": message}


def progress_event(stance: PoliticalStance, completed: int, total: int) -> Event:
    return {
        "type": "progress",
        "issue": stance.issue,
        "completed": completed,
        "total": total,
        "stance": stance.model_dump(mode="json"),
    }


def complete_event(data: AnalysisData) -> Event:
    return {"type": "complete", "data": data.model_dump(mode="json")}


def error_event(message: str) -> Event:
    return {"type": "error", "error": message}


class StanceAnalysisService:
    def __init__(
        self,
        claims: ClaimsService,
        verifier: StanceVerifier,
        cache: CandidateCacheStore,
        *,
        request_timeout: float = settings.REQUEST_TIMEOUT_SECONDS,
    ):
        self._claims = claims
        self._verifier = verifier
        self._cache = cache
        self.request_timeout = request_timeout

    async def analyze(self, candidate_name: str) -> AnalysisData:
        """Run the whole pipeline and return the final payload."""
        result = None
        async for event in self.events(candidate_name):
            if event["type"] == "complete":
                result = AnalysisData(**event["data"])
        if result is None:
            raise AnalysisError("Analysis finished without a result")
        return result

    async def stream(self, candidate_name: str) -> AsyncIterator[Event]:
        """
        Same pipeline as analyze(), as events. Failures become a final error
        event instead of an exception, so the stream always ends with exactly
        one "complete" or "error" event.
        """
        try:
            async for event in self.events(candidate_name):
                yield event
        except (InvalidCandidateError, AnalysisError) as e:
            yield error_event(str(e))
        except Exception:
            logger.exception(f"Unexpected error while streaming analysis for {candidate_name!r}")
            yield error_event("Failed to analyze political stances")

    async def events(self, candidate_name: str) -> AsyncIterator[Event]:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.request_timeout

        input_name = (candidate_name or "").strip()
        if not input_name:
            raise InvalidCandidateError("Candidate name is required")

        yield status_event(f"Validating candidate name: {input_name}")
        canonical = await self._claims.correct_candidate_name(input_name)
        if canonical is None:
            raise InvalidCandidateError(f"'{input_name}' is not a recognized political candidate")

        yield status_event(f"Checking for a recent analysis of {canonical}")
        record = await self._cache.find(canonical)
        if record is not None and not self._cache.is_stale(record.last_updated):
            logger.info(f"Cache hit for {canonical} (analyzed {record.search_count} times)")
            yield complete_event(
                AnalysisData(inputName=input_name, candidateName=canonical, stances=record.stances)
            )
            return
        logger.info(f"Cache {'stale' if record is not None else 'miss'} for {canonical}")

        yield status_event(f"Analyzing {canonical}'s positions")
        stances = await self._claims.generate_stances(canonical)

        yield status_event("Verifying sources")
        verified: List[PoliticalStance] = []
        seen_domains: Counter = Counter()
        for index, stance in enumerate(stances, start=1):
            remaining = deadline - loop.time()
            if remaining <= 0:
                logger.warning(f"Request budget spent, skipping source search for {stance.issue}")
                result = stance.model_copy(update={"sources": []})
            else:
                result = await self._verifier.verify(
                    stance, canonical, seen_domains=seen_domains, timeout=remaining
                )
            verified.append(result)
            yield progress_event(result, index, len(stances))

        await self._cache.upsert(canonical, verified)

        yield complete_event(
            AnalysisData(inputName=input_name, candidateName=canonical, stances=verified)
        )
