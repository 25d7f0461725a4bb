"""Shared pytest fixtures and in-memory stand-ins for the external APIs."""

import json
from typing import Any, Dict, List, Optional

import pytest
import pytest_asyncio

from schemas.stance import POLITICAL_ISSUES
from services.cache_service import CandidateCacheStore
from services.scoring_service import SearchHit
from services.verification_service import StanceVerifier


class FakeLLM:
    """Stand-in for OpenAIService; answers name checks and stance prompts."""

    def __init__(self, name_reply: str = "Joe Biden", stances_reply: Optional[str] = None):
        self.name_reply = name_reply
        self.stances_reply = stances_reply if stances_reply is not None else stances_json()
        self.calls: List[Dict[str, Any]] = []
        self.fail_stances: Optional[Exception] = None

    async def run_text_analysis(self, *, system_prompt, user_payload, model=None, temperature=None) -> str:
        self.calls.append(user_payload)
        if "name" in user_payload:
            return self.name_reply
        if self.fail_stances is not None:
            raise self.fail_stances
        if "issue" in user_payload:
            return json.dumps({"issue": user_payload["issue"], "stance": f"Position on {user_payload['issue']}."})
        return self.stances_reply


class FakeSearch:
    """
    Stand-in for SearchClient. Each call pops the next planned outcome: a list
    of hits or an exception. Once the plan runs out it keeps returning `default`.
    """

    def __init__(self, *outcomes, default=None):
        self.outcomes = list(outcomes)
        self.default = default if default is not None else []
        self.queries: List[str] = []

    async def search(self, query: str) -> List[SearchHit]:
        self.queries.append(query)
        outcome = self.outcomes.pop(0) if self.outcomes else self.default
        if isinstance(outcome, Exception):
            raise outcome
        return list(outcome)


class BrokenCache:
    """Cache whose storage is down; mirrors CandidateCacheStore's degraded behaviour."""

    def __init__(self):
        self.upserts = 0

    async def find(self, name):
        return None

    def is_stale(self, last_updated, *, now=None):
        return True

    async def upsert(self, candidate_name, stances):
        self.upserts += 1
        return False


def stances_json(overrides: Optional[Dict[str, str]] = None) -> str:
    overrides = overrides or {}
    return json.dumps([
        {"issue": issue.name, "stance": overrides.get(issue.name, f"Supports a clear plan on {issue.name}.")}
        for issue in POLITICAL_ISSUES
    ])


def credible_hits(prefix: str = "story") -> List[SearchHit]:
    return [
        SearchHit(
            title="Biden campaign policy position on the election",
            link=f"https://www.reuters.com/world/{prefix}-1",
            snippet="Updated in 2024 with new details.",
            source="reuters.com",
        ),
        SearchHit(
            title="Candidate stance explained",
            link=f"https://apnews.com/article/{prefix}-2",
            snippet="Reported 2023.",
            source="apnews.com",
        ),
        SearchHit(
            title="Random blog post",
            link=f"https://someblog.example/{prefix}",
            snippet="No dates here.",
            source="someblog.example",
        ),
    ]


@pytest.fixture
def fake_llm() -> FakeLLM:
    return FakeLLM()


def make_verifier(search, **kwargs) -> StanceVerifier:
    kwargs.setdefault("search_delay", 0)
    kwargs.setdefault("rate_limit_backoff", 0)
    kwargs.setdefault("search_timeout", 5)
    return StanceVerifier(search, **kwargs)


@pytest_asyncio.fixture
async def cache_store(tmp_path):
    store = CandidateCacheStore.from_url(f"sqlite+aiosqlite:///{tmp_path / 'cache.db'}")
    await store.create_schema()
    yield store
    await store.close()
