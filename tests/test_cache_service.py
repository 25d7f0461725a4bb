import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from schemas.stance import NO_INFORMATION, UNVERIFIABLE_SOURCE, PoliticalStance, Source
from services.cache_service import CandidateCacheStore, is_stale, normalize_name

STANCES = [
    PoliticalStance(
        issue="Economy & Taxes",
        stance="Wants higher taxes on incomes over $400k.",
        sources=[Source(url="https://www.reuters.com/a", title="Tax plan", origin="reuters.com")],
    ),
    PoliticalStance(issue="Education", stance=NO_INFORMATION, sources=[]),
    PoliticalStance(issue="Technology & Privacy", stance="Backs AI safety rules.", sources=[UNVERIFIABLE_SOURCE]),
]


@pytest.mark.parametrize("name", ["Joe Biden", "joe biden", "JOE-BIDEN", "JOE BIDEN ", "joe.biden"])
def test_normalize_name_folds_variants(name):
    assert normalize_name(name) == "joebiden"


def test_staleness_boundary():
    now = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
    assert is_stale(now - timedelta(days=29), now=now) is False
    assert is_stale(now - timedelta(days=30), now=now) is False
    assert is_stale(now - timedelta(days=30, seconds=1), now=now) is True
    assert is_stale(now - timedelta(days=31), now=now) is True


def test_naive_timestamps_are_read_as_utc():
    now = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)
    assert is_stale(datetime(2024, 5, 1, 11, 0), now=now) is True
    assert is_stale(datetime(2024, 5, 20), now=now) is False


async def test_find_missing_returns_none(cache_store):
    assert await cache_store.find("Nobody Here") is None


async def test_upsert_then_find_any_spelling(cache_store):
    assert await cache_store.upsert("Joe Biden", STANCES) is True

    records = [await cache_store.find(n) for n in ("Joe Biden", "joe biden", "JOE-BIDEN")]

    assert all(r is not None for r in records)
    assert {r.normalized_name for r in records} == {"joebiden"}
    record = records[0]
    assert record.name == "Joe Biden"
    assert record.search_count == 1
    assert record.stances == STANCES
    assert record.last_updated.tzinfo is not None
    assert not cache_store.is_stale(record.last_updated)


async def test_upsert_twice_counts_twice_and_keeps_stances(cache_store):
    await cache_store.upsert("Joe Biden", STANCES)
    await cache_store.upsert("Joe Biden", STANCES)

    record = await cache_store.find("joe biden")

    assert record.search_count == 2
    assert record.stances == STANCES


async def test_upsert_replaces_stances_wholesale(cache_store):
    await cache_store.upsert("Joe Biden", STANCES)
    first = await cache_store.find("Joe Biden")
    replacement = [PoliticalStance(issue="Education", stance="Supports free community college.")]

    await cache_store.upsert("JOE BIDEN", replacement)
    record = await cache_store.find("Joe Biden")

    assert record.stances == replacement
    assert record.name == "JOE BIDEN"
    assert record.last_updated >= first.last_updated
    assert record.last_searched >= first.last_searched


async def test_concurrent_upserts_do_not_lose_updates(cache_store):
    await cache_store.upsert("Joe Biden", STANCES)
    before = (await cache_store.find("Joe Biden")).search_count

    await asyncio.gather(
        cache_store.upsert("Joe Biden", STANCES),
        cache_store.upsert("joe-biden", STANCES),
    )

    record = await cache_store.find("Joe Biden")
    assert record.search_count == before + 2


async def test_storage_errors_degrade(tmp_path):
    # No schema created: every query fails with "no such table"
    store = CandidateCacheStore.from_url(f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}")
    try:
        assert await store.find("Joe Biden") is None
        assert await store.upsert("Joe Biden", STANCES) is False
    finally:
        await store.close()


async def test_empty_key_is_not_cached(cache_store):
    assert await cache_store.upsert("1234", STANCES) is False
    assert await cache_store.find("1234") is None


async def test_unreachable_database_degrades():
    # Nothing listens on port 1; asyncpg fails at connect time with an OSError
    store = CandidateCacheStore.from_url("postgresql+asyncpg://u:p@127.0.0.1:1/db")
    try:
        assert await store.find("Joe Biden") is None
        assert await store.upsert("Joe Biden", STANCES) is False
    finally:
        await store.close()
