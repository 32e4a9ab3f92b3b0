import logging
from datetime import UTC, date, datetime

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import (
    AppointmentNotFoundError,
    InvalidStatusTransitionError,
    ValidationError,
)
from app.models.appointment import ALLOWED_STATUS_TRANSITIONS, Appointment, AppointmentStatus
from app.models.directory import Doctor
from app.services.booking_service import get_owned_appointment
from app.services.conflict_service import to_naive_utc
from app.services.slot_service import WorkingHours, local_day_bounds_utc

logger = logging.getLogger(__name__)

CONFIRMATION_ACTIONS = {
    "confirm": AppointmentStatus.CONFIRMED,
    "cancel": AppointmentStatus.CANCELLED,
}


def _utc_naive_now() -> datetime:
    """Naive UTC for comparison with TIMESTAMP WITHOUT TIME ZONE."""
    return datetime.now(UTC).replace(tzinfo=None)


class ConfirmationView(BaseModel):
    appointment: Appointment
    doctor_name: str


async def list_appointments_for_owner(
    session: AsyncSession,
    owner_id: str,
    from_date: date | None = None,
    doctor_id: int | None = None,
) -> list[Appointment]:
    q = select(Appointment).where(Appointment.user_id == owner_id).order_by(Appointment.start_time)
    if from_date:
        start, _ = local_day_bounds_utc(from_date, WorkingHours.from_settings())
        q = q.where(Appointment.start_time >= to_naive_utc(start))
    if doctor_id is not None:
        q = q.where(Appointment.doctor_id == doctor_id)
    result = await session.execute(q)
    return list(result.scalars().all())


def can_transition(current: AppointmentStatus, new: AppointmentStatus) -> bool:
    return new in ALLOWED_STATUS_TRANSITIONS[current]


def _apply_status(appointment: Appointment, new_status: AppointmentStatus) -> None:
    current = AppointmentStatus(appointment.status)
    if not can_transition(current, new_status):
        raise InvalidStatusTransitionError(
            f"Não é possível alterar o status de '{current.value}' para '{new_status.value}'."
        )
    appointment.status = new_status.value
    if new_status is AppointmentStatus.CONFIRMED:
        appointment.confirmed_at = _utc_naive_now()
    elif new_status is AppointmentStatus.CANCELLED:
        appointment.cancelled_at = _utc_naive_now()


async def update_appointment_status(
    session: AsyncSession,
    owner_id: str,
    appointment_id: int,
    new_status: AppointmentStatus,
) -> Appointment:
    appointment = await get_owned_appointment(session, owner_id, appointment_id)
    if appointment is None:
        raise AppointmentNotFoundError()
    _apply_status(appointment, new_status)
    session.add(appointment)
    await session.flush()
    logger.info("Appointment %s of owner %s is now %s", appointment_id, owner_id, new_status.value)
    return appointment


async def _doctor_name(session: AsyncSession, doctor_id: int | None) -> str:
    if doctor_id is None:
        return "A definir"
    doctor = await session.get(Doctor, doctor_id)
    return doctor.name if doctor and doctor.name else "A definir"


async def get_appointment_by_token(
    session: AsyncSession, token: str, now: datetime | None = None
) -> ConfirmationView:
    """Appointment behind a confirmation link, if it can still be answered."""
    if not token:
        raise ValidationError("Token é obrigatório")
    result = await session.execute(select(Appointment).where(Appointment.confirmation_token == token))
    appointment = result.scalar_one_or_none()
    if appointment is None:
        raise AppointmentNotFoundError("Token inválido ou agendamento não encontrado")
    now_naive = to_naive_utc(now) if now else _utc_naive_now()
    if to_naive_utc(appointment.start_time) < now_naive:
        raise ValidationError("Agendamento já passou")
    if appointment.status == AppointmentStatus.CANCELLED.value:
        raise ValidationError("Agendamento foi cancelado")
    return ConfirmationView(appointment=appointment, doctor_name=await _doctor_name(session, appointment.doctor_id))


async def respond_to_confirmation(
    session: AsyncSession, token: str, action: str, now: datetime | None = None
) -> ConfirmationView:
    """Patient answer to a confirmation link: "confirm" or "cancel"."""
    new_status = CONFIRMATION_ACTIONS.get(action)
    if new_status is None:
        raise ValidationError('Ação inválida. Use "confirm" ou "cancel"')
    view = await get_appointment_by_token(session, token, now=now)
    appointment = view.appointment
    if AppointmentStatus(appointment.status) is new_status:
        return view
    _apply_status(appointment, new_status)
    session.add(appointment)
    await session.flush()
    logger.info("Appointment %s %s via confirmation link", appointment.id, new_status.value)
    return view
