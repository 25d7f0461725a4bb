# services/verification_service.py
import asyncio
import logging
import re
from collections import Counter
from typing import Optional

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_fixed

from config import settings
from schemas.stance import PoliticalStance, is_unverifiable
from services.exceptions import SearchError, SearchRateLimitError
from services.scoring_service import ClaimContext, score_and_rank
from services.search_service import SearchClient
from services.source_selector import select_sources

logger = logging.getLogger(__name__)

MAX_QUERY_CLAIM_CHARS = 200
_SENTENCE_END = re.compile(r"(?<=[.!?])\s")


def build_verification_query(candidate_name: str, stance: PoliticalStance) -> str:
    """Search for the claim itself, not a generic "<name> <issue>" template."""
    claim = _SENTENCE_END.split(stance.stance.strip(), maxsplit=1)[0]
    if len(claim) > MAX_QUERY_CLAIM_CHARS:
        claim = claim[:MAX_QUERY_CLAIM_CHARS].rsplit(" ", 1)[0]
    return f"{candidate_name} {stance.issue} {claim}".strip()


class StanceVerifier:
    """
    Attach credible web sources to one stance at a time.

    Never raises for search problems: a failed search leaves the stance with
    sources=[], while a search that found nothing citable yields the
    "unable to verify" marker.
    """

    def __init__(
        self,
        search_client: SearchClient,
        *,
        max_results: int = settings.MAX_SOURCES_PER_STANCE,
        search_delay: float = settings.SEARCH_DELAY_SECONDS,
        rate_limit_backoff: float = settings.RATE_LIMIT_BACKOFF_SECONDS,
        search_timeout: float = settings.SEARCH_TIMEOUT_SECONDS,
    ):
        if max_results < 1:
            raise ValueError(f"max_results must be at least 1, got {max_results}")
        self._search = search_client
        self.max_results = max_results
        self.search_delay = search_delay
        self.rate_limit_backoff = rate_limit_backoff
        self.search_timeout = search_timeout

    async def verify(
        self,
        stance: PoliticalStance,
        candidate_name: str,
        *,
        seen_domains: Optional[Counter] = None,
        timeout: Optional[float] = None,
    ) -> PoliticalStance:
        if not stance.has_information:
            return stance.model_copy(update={"sources": []})

        query = build_verification_query(candidate_name, stance)
        call_timeout = self.search_timeout if timeout is None else min(timeout, self.search_timeout)

        try:
            hits = await self._search_with_retry(query, call_timeout)
        except SearchRateLimitError:
            logger.warning(f"Search still rate limited after retry, skipping sources for {stance.issue}")
            return stance.model_copy(update={"sources": []})
        except SearchError as e:
            logger.error(f"Error searching sources for {stance.issue}: {e}")
            return stance.model_copy(update={"sources": []})
        except asyncio.TimeoutError:
            logger.warning(f"Search for {stance.issue} timed out after {call_timeout:.1f}s")
            return stance.model_copy(update={"sources": []})

        context = ClaimContext(
            candidate=candidate_name,
            issue=stance.issue,
            stance=stance.stance,
            seen_domains=seen_domains,
        )
        sources = select_sources(score_and_rank(hits, context), self.max_results)

        if seen_domains is not None and not is_unverifiable(sources):
            seen_domains.update(source.origin for source in sources)

        if is_unverifiable(sources):
            logger.info(f"{stance.issue}: no credible source among {len(hits)} hits")
        else:
            logger.info(f"{stance.issue}: kept {len(sources)} of {len(hits)} hits")
        return stance.model_copy(update={"sources": sources})

    async def _search_with_retry(self, query: str, timeout: float) -> list:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(2),
            wait=wait_fixed(self.rate_limit_backoff),
            retry=retry_if_exception_type(SearchRateLimitError),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.info(f"Retrying rate limited search: {query[:60]}...")
                return await self._search_once(query, timeout)

    async def _search_once(self, query: str, timeout: float) -> list:
        # Shared per-process rate limit on the search API
        if self.search_delay > 0:
            await asyncio.sleep(self.search_delay)
        return await asyncio.wait_for(self._search.search(query), timeout=timeout)

