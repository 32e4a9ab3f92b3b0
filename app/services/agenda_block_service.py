"""Agenda blocks: weekday, specific-date and date-range closures.

Used by the availability resolver, the booking committer and the closed-dates
endpoint. Reads fail open by default (see ``Settings.on_store_error``): an
outage in the blocks table must not take every booking down with it.
"""
import logging
from datetime import date, timedelta

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import PersistenceError
from app.models.agenda_block import AgendaBlock, BlockType

logger = logging.getLogger(__name__)

# Indexed by Sunday=0 weekday numbers
DAY_NAMES = ["Domingo", "Segunda", "Terça", "Quarta", "Quinta", "Sexta", "Sábado"]
SUNDAY = 0

_SUMMARY_PREFIX = "A clínica não agenda nos seguintes dias:"
_SUNDAY_REASON = "Não atendemos aos domingos."


class BlockCheck(BaseModel):
    model_config = ConfigDict(frozen=True)

    blocked: bool
    reason: str | None = None


class ClosedDates(BaseModel):
    closed_dates: list[date] = Field(default_factory=list)
    summary: str = ""


def sunday_based_weekday(d: date) -> int:
    """Weekday with Sunday=0 .. Saturday=6."""
    return d.isoweekday() % 7


def _plural_day(weekday: int) -> str:
    # Domingo and Sábado are masculine in Portuguese
    article = "aos" if weekday in (0, 6) else "às"
    return f"{article} {DAY_NAMES[weekday]}s"


def _plural_days(weekdays: list[int]) -> str:
    # e.g. "aos Domingos e aos Sábados"; each day keeps its own article
    parts = [_plural_day(w) for w in weekdays]
    if len(parts) == 1:
        return parts[0]
    return ", ".join(parts[:-1]) + " e " + parts[-1]


def _applies_to(block: AgendaBlock, doctor_id: int | None) -> bool:
    """Clinic-wide blocks apply to everyone, doctor blocks only to that doctor."""
    if block.doctor_id is None:
        return True
    return doctor_id is not None and block.doctor_id == doctor_id


def blocks_for_doctor(blocks: list[AgendaBlock], doctor_id: int | None) -> list[AgendaBlock]:
    return [b for b in blocks if b.active and _applies_to(b, doctor_id)]


def _label(block: AgendaBlock) -> str | None:
    if block.label and block.label.strip():
        return block.label.strip()
    return None


def _default_reason(block: AgendaBlock, weekday: int) -> str:
    clinic_wide = block.doctor_id is None
    block_type = BlockType(block.block_type)
    if block_type is BlockType.WEEKDAYS:
        if clinic_wide:
            return f"Não atendemos {_plural_day(weekday)}."
        return f"Este profissional não atende {_plural_day(weekday)}."
    if block_type is BlockType.SPECIFIC_DATE:
        if clinic_wide:
            return "Este dia está bloqueado para agendamentos na clínica."
        return "Este profissional não atende neste dia."
    if clinic_wide:
        return "Período bloqueado na clínica (ex.: férias)."
    return "Este profissional está ausente neste período (ex.: férias)."


def _block_matches(block: AgendaBlock, d: date, weekday: int) -> bool:
    block_type = BlockType(block.block_type)
    if block_type is BlockType.WEEKDAYS:
        return bool(block.weekdays) and weekday in block.weekdays
    if block_type is BlockType.SPECIFIC_DATE:
        return block.specific_date is not None and block.specific_date == d
    if block.start_date is None or block.end_date is None:
        return False
    return block.start_date <= d <= block.end_date


async def _select_active_blocks(session: AsyncSession, owner_id: str) -> list[AgendaBlock]:
    result = await session.execute(
        select(AgendaBlock)
        .where(AgendaBlock.user_id == owner_id, AgendaBlock.active == True)  # noqa: E712
        .order_by(AgendaBlock.id)
    )
    return list(result.scalars().all())


async def get_active_blocks(session: AsyncSession, owner_id: str) -> list[AgendaBlock]:
    """Active blocks of the owner; [] on storage errors when failing open."""
    if not owner_id:
        return []
    try:
        async with session.begin_nested():
            return await _select_active_blocks(session, owner_id)
    except (SQLAlchemyError, OSError) as e:
        if not settings.fail_open:
            logger.exception("Agenda blocks read failed for owner %s", owner_id)
            raise PersistenceError("Erro ao buscar bloqueios de agenda") from e
        logger.warning("Agenda blocks read failed for owner %s, treating as no blocks: %s", owner_id, e)
        return []


def is_date_blocked(blocks: list[AgendaBlock], d: date, doctor_id: int | None = None) -> BlockCheck:
    """First matching block wins; the reason is its label or a default message."""
    weekday = sunday_based_weekday(d)
    for block in blocks_for_doctor(blocks, doctor_id):
        if _block_matches(block, d, weekday):
            return BlockCheck(blocked=True, reason=_label(block) or _default_reason(block, weekday))
    return BlockCheck(blocked=False)


def check_date_closed(blocks: list[AgendaBlock], d: date, doctor_id: int | None = None) -> BlockCheck:
    """Configured blocks first, then the legacy closed-on-Sunday rule."""
    check = is_date_blocked(blocks, d, doctor_id)
    if check.blocked:
        return check
    if settings.sunday_closed and sunday_based_weekday(d) == SUNDAY:
        return BlockCheck(blocked=True, reason=_SUNDAY_REASON)
    return BlockCheck(blocked=False)


def expand_to_closed_dates(blocks: list[AgendaBlock], from_date: date, to_date: date) -> ClosedDates:
    """Concrete closed dates in [from_date, to_date] plus a readable summary."""
    if from_date > to_date:
        return ClosedDates(closed_dates=[], summary="Período inválido.")

    closed: set[date] = set()
    parts: list[str] = []
    for block in blocks:
        if not block.active:
            continue
        block_type = BlockType(block.block_type)
        if block_type is BlockType.WEEKDAYS:
            days = sorted({w for w in block.weekdays or [] if 0 <= w <= 6})
            if not days:
                continue
            part = f"Não atendemos {_plural_days(days)}."
            if part not in parts:
                parts.append(part)
            current = from_date
            while current <= to_date:
                if sunday_based_weekday(current) in days:
                    closed.add(current)
                current += timedelta(days=1)
        elif block_type is BlockType.SPECIFIC_DATE:
            if block.specific_date is None or not from_date <= block.specific_date <= to_date:
                continue
            closed.add(block.specific_date)
            part = _label(block) or block.specific_date.strftime("%d/%m/%Y")
            if part not in parts:
                parts.append(part)
        else:
            if block.start_date is None or block.end_date is None:
                continue
            if block.end_date < from_date or block.start_date > to_date:
                continue
            part = _label(block) or f"{block.start_date:%d/%m/%Y} a {block.end_date:%d/%m/%Y}"
            if part not in parts:
                parts.append(part)
            current = max(block.start_date, from_date)
            last = min(block.end_date, to_date)
            while current <= last:
                closed.add(current)
                current += timedelta(days=1)

    if parts:
        summary = f"{_SUMMARY_PREFIX} {' '.join(parts)}"
    else:
        summary = "Não há bloqueios de agenda configurados para este período."
    return ClosedDates(closed_dates=sorted(closed), summary=summary)


async def get_closed_dates(
    session: AsyncSession,
    owner_id: str,
    from_date: date,
    to_date: date,
    doctor_id: int | None = None,
) -> ClosedDates:
    """Closed dates of the owner (or one doctor), including the Sunday rule."""
    blocks = blocks_for_doctor(await get_active_blocks(session, owner_id), doctor_id)
    result = expand_to_closed_dates(blocks, from_date, to_date)
    if not settings.sunday_closed or from_date > to_date:
        return result

    sundays = set()
    current = from_date
    while current <= to_date:
        if sunday_based_weekday(current) == SUNDAY:
            sundays.add(current)
        current += timedelta(days=1)
    if not sundays or sundays <= set(result.closed_dates):
        return result
    closed = sorted(set(result.closed_dates) | sundays)
    if result.summary.startswith(_SUMMARY_PREFIX):
        summary = f"{result.summary} {_SUNDAY_REASON}"
    else:
        summary = f"{_SUMMARY_PREFIX} {_SUNDAY_REASON}"
    return ClosedDates(closed_dates=closed, summary=summary)
