from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.appointment import Appointment, AppointmentStatus


def to_naive_utc(dt: datetime) -> datetime:
    """Convert to naive UTC for TIMESTAMP WITHOUT TIME ZONE columns."""
    if dt.tzinfo is not None:
        return dt.astimezone(UTC).replace(tzinfo=None)
    return dt


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Half-open intervals [a_start, a_end) and [b_start, b_end) intersect.

    Touching intervals (a_end == b_start) do not overlap.
    """
    return a_start < b_end and b_start < a_end


async def find_overlapping_appointments(
    session: AsyncSession,
    owner_id: str,
    start: datetime,
    end: datetime,
    doctor_id: int | None = None,
    exclude_id: int | None = None,
) -> list[Appointment]:
    """Non-cancelled appointments of the owner intersecting [start, end).

    Narrowed to ``doctor_id`` when given; ``exclude_id`` leaves out the
    appointment being edited so it never conflicts with itself.
    """
    start_naive = to_naive_utc(start)
    end_naive = to_naive_utc(end)
    q = (
        select(Appointment)
        .where(
            Appointment.user_id == owner_id,
            Appointment.status != AppointmentStatus.CANCELLED.value,
            Appointment.start_time < end_naive,
            Appointment.end_time > start_naive,
        )
        .order_by(Appointment.start_time)
    )
    if doctor_id is not None:
        q = q.where(Appointment.doctor_id == doctor_id)
    if exclude_id is not None:
        q = q.where(Appointment.id != exclude_id)
    result = await session.execute(q)
    return list(result.scalars().all())


def conflicting(
    appointments: list[Appointment], start: datetime, end: datetime
) -> list[Appointment]:
    """Appointments whose interval overlaps [start, end); ignores cancelled ones."""
    start_naive = to_naive_utc(start)
    end_naive = to_naive_utc(end)
    return [
        a
        for a in appointments
        if a.status != AppointmentStatus.CANCELLED.value
        and overlaps(start_naive, end_naive, to_naive_utc(a.start_time), to_naive_utc(a.end_time))
    ]
