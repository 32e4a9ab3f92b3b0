import logging
from datetime import UTC, date, datetime, timedelta

from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import PersistenceError
from app.services.agenda_block_service import SUNDAY, check_date_closed, get_active_blocks, sunday_based_weekday
from app.services.conflict_service import conflicting, find_overlapping_appointments
from app.services.slot_service import Slot, WorkingHours, generate_slots, local_day_bounds_utc

logger = logging.getLogger(__name__)

FULL_DAY_NAMES = [
    "Domingo",
    "Segunda-feira",
    "Terça-feira",
    "Quarta-feira",
    "Quinta-feira",
    "Sexta-feira",
    "Sábado",
]
_MONTH_NAMES = [
    "janeiro", "fevereiro", "março", "abril", "maio", "junho",
    "julho", "agosto", "setembro", "outubro", "novembro", "dezembro",
]
MAX_SUGGESTED_TIMES = 3


class AvailabilityResult(BaseModel):
    date: date
    day_of_week: str
    available: bool
    slots: list[Slot] = Field(default_factory=list)
    total_slots: int = 0
    message: str = ""
    suggested_message: str = ""
    reason: str | None = None
    next_available_date: date | None = None

    @property
    def available_count(self) -> int:
        return len(self.slots)


def next_business_day(d: date) -> date:
    """The following day, skipping Sunday."""
    nxt = d + timedelta(days=1)
    if sunday_based_weekday(nxt) == SUNDAY:
        nxt += timedelta(days=1)
    return nxt


def format_long_date(d: date) -> str:
    """e.g. "segunda-feira, 12 de janeiro"."""
    return f"{FULL_DAY_NAMES[sunday_based_weekday(d)].lower()}, {d.day} de {_MONTH_NAMES[d.month - 1]}"


def format_suggested_message(slots: list[Slot], d: date) -> str:
    if not slots:
        return "Infelizmente não temos horários disponíveis nesta data. Gostaria de verificar outro dia?"
    date_str = format_long_date(d)
    time_list = ", ".join(s.time for s in slots[:MAX_SUGGESTED_TIMES])
    if len(slots) <= MAX_SUGGESTED_TIMES:
        return f"Para {date_str}, temos disponível: {time_list}. Qual horário prefere?"
    return f"Para {date_str}, temos {len(slots)} horários. Alguns disponíveis: {time_list}. Qual horário prefere?"


async def resolve_availability(
    session: AsyncSession,
    d: date,
    duration_minutes: int,
    owner_id: str,
    doctor_id: int | None = None,
    now: datetime | None = None,
    hours: WorkingHours | None = None,
) -> AvailabilityResult:
    """Offerable slots of the day: slot grid minus blocks and existing bookings."""
    hours = hours or WorkingHours.from_settings()
    now = now or datetime.now(UTC)
    day_of_week = FULL_DAY_NAMES[sunday_based_weekday(d)]

    blocks = await get_active_blocks(session, owner_id)
    check = check_date_closed(blocks, d, doctor_id)
    if check.blocked:
        logger.debug("Date %s closed for owner %s (doctor %s): %s", d, owner_id, doctor_id, check.reason)
        return AvailabilityResult(
            date=d,
            day_of_week=day_of_week,
            available=False,
            message=check.reason or "",
            suggested_message=f"{check.reason} Gostaria de verificar outro dia?",
            reason=check.reason,
            next_available_date=next_business_day(d),
        )

    all_slots = generate_slots(d, duration_minutes, hours, now)

    day_start, day_end = local_day_bounds_utc(d, hours)
    try:
        existing = await find_overlapping_appointments(session, owner_id, day_start, day_end, doctor_id=doctor_id)
    except (SQLAlchemyError, OSError) as e:
        logger.exception("Appointments read failed for owner %s on %s", owner_id, d)
        raise PersistenceError("Erro ao verificar disponibilidade") from e

    free = [slot for slot in all_slots if not conflicting(existing, slot.start_utc, slot.end_utc)]

    if free:
        message = f"Temos {len(free)} horários disponíveis."
    else:
        message = "Não há horários disponíveis nesta data."
    return AvailabilityResult(
        date=d,
        day_of_week=day_of_week,
        available=bool(free),
        slots=free,
        total_slots=len(all_slots),
        message=message,
        suggested_message=format_suggested_message(free, d),
    )
