# services/search_service.py
"""
Search service for finding web sources that back a candidate's stance.
Uses Tavily API which is designed for AI/LLM search and provides reliable sources.
"""
import logging
from typing import Any, Dict, List, Optional

import httpx
from tavily import AsyncTavilyClient
from tavily.errors import UsageLimitExceededError

from config import settings
from services.exceptions import SearchError, SearchRateLimitError
from services.scoring_service import SearchHit, extract_domain

logger = logging.getLogger(__name__)

PLACEHOLDER_API_KEY = "your-tavily-api-key-here"


def build_tavily_client(api_key: str) -> Optional[AsyncTavilyClient]:
    """Get Tavily client if API key is configured."""
    if not api_key or api_key == PLACEHOLDER_API_KEY:
        logger.warning("Tavily API key not configured - search features disabled")
        return None
    return AsyncTavilyClient(api_key=api_key)


class SearchClient:
    """
    Thin wrapper around the Tavily client.

    Rate limiting is reported as SearchRateLimitError so callers can back off;
    every other failure (HTTP error, network error, bad payload) is a SearchError.
    """

    def __init__(
        self,
        client: Optional[AsyncTavilyClient],
        max_results: int = settings.SEARCH_MAX_RESULTS,
        search_depth: str = "basic",
    ):
        self._client = client
        self.max_results = max_results
        self.search_depth = search_depth

    @property
    def enabled(self) -> bool:
        return self._client is not None

    async def search(self, query: str) -> List[SearchHit]:
        if self._client is None:
            raise SearchError("search is not configured")

        try:
            response = await self._client.search(
                query=query,
                max_results=self.max_results,
                search_depth=self.search_depth,
                include_answer=False,
            )
        except UsageLimitExceededError as e:
            raise SearchRateLimitError(str(e)) from e
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 429:
                raise SearchRateLimitError(str(e)) from e
            raise SearchError(f"search returned HTTP {e.response.status_code}") from e
        except Exception as e:
            raise SearchError(f"search request failed: {e}") from e

        hits = parse_search_response(response)
        logger.info(f"Found {len(hits)} results for query: {query[:60]}...")
        return hits


def parse_search_response(response: Any) -> List[SearchHit]:
    if not isinstance(response, dict):
        raise SearchError(f"unexpected search payload type: {type(response).__name__}")
    results = response.get("results", [])
    if not isinstance(results, list):
        raise SearchError("search payload 'results' is not a list")

    hits = []
    for result in results:
        if not isinstance(result, dict):
            continue
        hits.append(_to_hit(result))
    return hits


def _to_hit(result: Dict[str, Any]) -> SearchHit:
    link = result.get("url") or result.get("link") or result.get("href") or ""
    return SearchHit(
        title=result.get("title") or "",
        link=link,
        snippet=(result.get("content") or result.get("snippet") or result.get("body") or "")[:500],
        source=extract_domain(link),
    )
