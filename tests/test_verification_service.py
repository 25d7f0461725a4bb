import asyncio
from collections import Counter

import pytest

from conftest import FakeSearch, credible_hits, make_verifier
from schemas.stance import NO_INFORMATION, UNVERIFIABLE_SOURCE, PoliticalStance
from services.exceptions import SearchError, SearchRateLimitError
from services.scoring_service import SearchHit
from services.verification_service import build_verification_query

STANCE = PoliticalStance(
    issue="Education",
    stance="Supports universal pre-K and student debt relief. Opposes school vouchers.",
)


async def test_no_information_stance_is_not_searched():
    search = FakeSearch(credible_hits())
    verifier = make_verifier(search)
    stance = PoliticalStance(issue="Education", stance=NO_INFORMATION)

    result = await verifier.verify(stance, "Joe Biden")

    assert search.queries == []
    assert result.sources == []


def test_query_is_built_from_the_stance_text():
    query = build_verification_query("Joe Biden", STANCE)
    assert query == "Joe Biden Education Supports universal pre-K and student debt relief."


def test_long_claims_are_trimmed_on_a_word_boundary():
    stance = PoliticalStance(issue="Economy & Taxes", stance="word " * 100)
    query = build_verification_query("Jane Doe", stance)
    assert len(query) < 250
    assert query.endswith("word")


async def test_credible_hits_are_attached_best_first():
    search = FakeSearch(credible_hits())
    verifier = make_verifier(search)

    result = await verifier.verify(STANCE, "Joe Biden")

    assert len(search.queries) == 1
    assert [s.origin for s in result.sources] == ["reuters.com", "apnews.com"]
    assert result.stance == STANCE.stance


async def test_nothing_credible_gives_sentinel():
    junk = [SearchHit(title="Random", link="https://blog.example/a", snippet="")]
    verifier = make_verifier(FakeSearch(junk))

    result = await verifier.verify(STANCE, "Joe Biden")

    assert result.sources == [UNVERIFIABLE_SOURCE]


async def test_rate_limit_retries_once_then_succeeds():
    search = FakeSearch(SearchRateLimitError("429"), credible_hits())
    verifier = make_verifier(search)

    result = await verifier.verify(STANCE, "Joe Biden")

    assert len(search.queries) == 2
    assert search.queries[0] == search.queries[1]
    assert len(result.sources) == 2


async def test_rate_limit_twice_gives_empty_sources():
    search = FakeSearch(SearchRateLimitError("429"), SearchRateLimitError("429"), credible_hits())
    verifier = make_verifier(search)

    result = await verifier.verify(STANCE, "Joe Biden")

    assert len(search.queries) == 2
    assert result.sources == []


async def test_search_failure_is_contained():
    search = FakeSearch(SearchError("HTTP 500"), credible_hits())
    verifier = make_verifier(search)

    result = await verifier.verify(STANCE, "Joe Biden")

    assert len(search.queries) == 1
    assert result.sources == []


async def test_slow_search_times_out_to_empty_sources():
    class SlowSearch:
        async def search(self, query):
            await asyncio.sleep(5)
            return credible_hits()

    verifier = make_verifier(SlowSearch(), search_timeout=0.05)

    result = await verifier.verify(STANCE, "Joe Biden")

    assert result.sources == []


async def test_accepted_domains_lower_later_scores():
    seen = Counter()
    verifier = make_verifier(FakeSearch(default=credible_hits()))

    await verifier.verify(STANCE, "Joe Biden", seen_domains=seen)

    assert seen == Counter({"reuters.com": 1, "apnews.com": 1})


def test_verifier_rejects_a_zero_source_cap():
    with pytest.raises(ValueError):
        make_verifier(FakeSearch(), max_results=0)
