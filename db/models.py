"""SQLAlchemy models for the candidate cache."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, DateTime, Integer, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

_JSON = JSON().with_variant(JSONB, "postgresql")


class Base(DeclarativeBase):
    """Base class for ORM models."""


class CandidateRow(Base):
    __tablename__ = "candidates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    normalized_name: Mapped[str] = mapped_column(String, unique=True, nullable=False)
    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    search_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    last_searched: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    stances: Mapped[list] = mapped_column(_JSON, nullable=False, default=list)
