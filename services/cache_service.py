# services/cache_service.py
"""
Candidate cache backed by SQLAlchemy (async).

One row per normalized candidate name holds the latest stance set. Caching is
best-effort: storage errors are logged and reported as a miss (find) or a
failed write (upsert), never raised to the request.
"""
import logging
import re
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from config import settings
from db.models import Base, CandidateRow
from schemas.stance import CandidateRecord, PoliticalStance

logger = logging.getLogger(__name__)

_NON_LETTERS = re.compile(r"[^a-z]")


def normalize_name(name: str) -> str:
    """Lowercase and keep letters only, so "JOE-BIDEN " and "Joe Biden" share a key."""
    return _NON_LETTERS.sub("", (name or "").lower())


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_stale(
    last_updated: datetime,
    *,
    now: Optional[datetime] = None,
    max_age_days: int = settings.CACHE_STALE_DAYS,
) -> bool:
    """True when last_updated is more than max_age_days old; exactly max_age_days is still fresh."""
    now = _as_utc(now or datetime.now(timezone.utc))
    return now - _as_utc(last_updated) > timedelta(days=max_age_days)


class CandidateCacheStore:
    def __init__(self, engine: AsyncEngine, *, max_age_days: int = settings.CACHE_STALE_DAYS):
        self._engine = engine
        self._session_factory = async_sessionmaker(engine, expire_on_commit=False)
        self.max_age_days = max_age_days

    @classmethod
    def from_url(cls, database_url: str, **kwargs) -> "CandidateCacheStore":
        return cls(create_async_engine(database_url), **kwargs)

    async def create_schema(self) -> None:
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self) -> None:
        await self._engine.dispose()

    def is_stale(self, last_updated: datetime, *, now: Optional[datetime] = None) -> bool:
        return is_stale(last_updated, now=now, max_age_days=self.max_age_days)

    async def find(self, name: str) -> Optional[CandidateRecord]:
        normalized = normalize_name(name)
        if not normalized:
            return None

        try:
            async with self._session_factory() as session:
                result = await session.execute(
                    select(CandidateRow).where(CandidateRow.normalized_name == normalized)
                )
                row = result.scalar_one_or_none()
        except Exception as e:
            # Driver connect errors (e.g. asyncpg OSError) are not SQLAlchemyError
            logger.error(f"Error finding candidate {normalized!r}, treating as cache miss: {e}")
            return None

        if row is None:
            return None

        try:
            return CandidateRecord(
                name=row.name,
                normalized_name=row.normalized_name,
                last_updated=_as_utc(row.last_updated),
                search_count=row.search_count,
                last_searched=_as_utc(row.last_searched),
                stances=row.stances or [],
            )
        except ValidationError as e:
            logger.warning(f"Cached stances for {normalized!r} are unreadable, ignoring: {e}")
            return None

    async def upsert(self, candidate_name: str, stances: List[PoliticalStance]) -> bool:
        """
        Insert or replace the stance set for a candidate.

        Runs as a single INSERT ... ON CONFLICT statement so concurrent writers
        for the same name each add exactly one to search_count.
        """
        normalized = normalize_name(candidate_name)
        if not normalized:
            logger.warning(f"Refusing to cache candidate with empty key: {candidate_name!r}")
            return False

        now = datetime.now(timezone.utc)
        stances_json = [stance.model_dump(mode="json") for stance in stances]
        insert = pg_insert if self._engine.dialect.name == "postgresql" else sqlite_insert

        stmt = insert(CandidateRow).values(
            name=candidate_name,
            normalized_name=normalized,
            last_updated=now,
            search_count=1,
            last_searched=now,
            stances=stances_json,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[CandidateRow.normalized_name],
            set_={
                "name": stmt.excluded.name,
                "last_updated": stmt.excluded.last_updated,
                "search_count": CandidateRow.search_count + 1,
                "last_searched": stmt.excluded.last_searched,
                "stances": stmt.excluded.stances,
            },
        )

        try:
            async with self._session_factory() as session:
                async with session.begin():
                    await session.execute(stmt)
        except Exception as e:
            logger.error(f"Error caching candidate {normalized!r}: {e}")
            return False

        logger.info(f"Cached {len(stances)} stances for {candidate_name}")
        return True
