from datetime import UTC, date, datetime
from enum import Enum

from sqlalchemy import JSON, Column, DateTime, String
from sqlmodel import Field, SQLModel


def _utc_naive_now() -> datetime:
    """Naive UTC for TIMESTAMP WITHOUT TIME ZONE columns."""
    return datetime.now(UTC).replace(tzinfo=None)


class BlockType(str, Enum):
    WEEKDAYS = "weekdays"
    SPECIFIC_DATE = "specific_date"
    DATE_RANGE = "date_range"


class AgendaBlock(SQLModel, table=True):
    """A rule that closes calendar dates for an owner, or for one of its doctors.

    Only the fields of ``block_type`` are populated: ``weekdays`` (Sunday=0)
    for weekday blocks, ``specific_date`` for single dates and
    ``start_date``/``end_date`` (inclusive) for ranges.
    """

    __tablename__ = "agenda_blocks"
    id: int | None = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    doctor_id: int | None = Field(default=None, foreign_key="doctors.id", index=True)  # None: clinic-wide
    block_type: BlockType = Field(sa_type=String)
    weekdays: list[int] | None = Field(default=None, sa_column=Column(JSON, nullable=True))
    specific_date: date | None = None
    start_date: date | None = None
    end_date: date | None = None
    label: str | None = None
    active: bool = Field(default=True, index=True)
    created_at: datetime = Field(default_factory=_utc_naive_now, sa_type=DateTime(timezone=False))
