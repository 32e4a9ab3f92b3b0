"""Booking committer: the write path's invariant guard.

Availability may change between the query and the commit (no lock is held),
so blocks and conflicts are re-validated here, inside the request's
transaction, right before the row is written. This relies on the store being
read-after-write consistent with earlier commits.
"""
import logging
from datetime import timedelta
from uuid import uuid4

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.errors import (
    AppointmentNotFoundError,
    BlockedDateError,
    PersistenceError,
    SchedulingConflictError,
    ValidationError,
)
from app.models.appointment import Appointment, AppointmentCreate, AppointmentStatus
from app.services.agenda_block_service import check_date_closed, get_active_blocks
from app.services.conflict_service import conflicting, find_overlapping_appointments, to_naive_utc
from app.services.slot_service import WorkingHours, local_date_of, to_utc

logger = logging.getLogger(__name__)


async def get_owned_appointment(
    session: AsyncSession, owner_id: str, appointment_id: int
) -> Appointment | None:
    result = await session.execute(
        select(Appointment).where(
            Appointment.id == appointment_id,
            Appointment.user_id == owner_id,
        )
    )
    return result.scalar_one_or_none()


async def _conflict_candidates(
    session: AsyncSession,
    owner_id: str,
    data: AppointmentCreate,
    exclude_id: int | None,
) -> list[Appointment]:
    try:
        async with session.begin_nested():
            return await find_overlapping_appointments(
                session,
                owner_id,
                data.start_time,
                data.end_time,
                doctor_id=data.doctor_id,
                exclude_id=exclude_id,
            )
    except (SQLAlchemyError, OSError) as e:
        if not settings.fail_open:
            logger.exception("Conflict check read failed for owner %s", owner_id)
            raise PersistenceError("Erro ao verificar conflitos de agenda") from e
        # Fail-open: a store error must not stop bookings, at the risk of a double booking
        logger.warning("Conflict check read failed for owner %s, admitting booking: %s", owner_id, e)
        return []


async def commit_appointment(
    session: AsyncSession,
    owner_id: str,
    data: AppointmentCreate,
    appointment_id: int | None = None,
    hours: WorkingHours | None = None,
) -> Appointment:
    """Validate and persist a new appointment, or move an existing one.

    ``appointment_id`` switches to edit mode: the stored record is excluded
    from the conflict scan. Raises BlockedDateError, SchedulingConflictError,
    ValidationError, AppointmentNotFoundError or PersistenceError.
    """
    if not owner_id:
        raise ValidationError('Parâmetro "ownerId" é obrigatório')
    hours = hours or WorkingHours.from_settings()
    start = to_naive_utc(data.start_time)
    end = to_naive_utc(data.end_time)
    if end <= start:
        raise ValidationError("O horário de término deve ser posterior ao de início")
    data = data.model_copy(update={"start_time": start, "end_time": end})

    existing: Appointment | None = None
    if appointment_id is not None:
        try:
            existing = await get_owned_appointment(session, owner_id, appointment_id)
        except SQLAlchemyError as e:
            raise PersistenceError("Erro ao buscar agendamento") from e
        if existing is None:
            raise AppointmentNotFoundError()

    blocks = await get_active_blocks(session, owner_id)
    check = check_date_closed(blocks, local_date_of(start, hours), data.doctor_id)
    if check.blocked:
        logger.info("Booking rejected for owner %s at %s: %s", owner_id, start, check.reason)
        raise BlockedDateError(check.reason or "Data bloqueada para agendamentos.")

    candidates = await _conflict_candidates(session, owner_id, data, appointment_id)
    clashes = conflicting(candidates, start, end)
    if clashes:
        logger.info(
            "Booking conflict for owner %s at %s (doctor %s) with appointment(s) %s",
            owner_id,
            start,
            data.doctor_id,
            [a.id for a in clashes],
        )
        suggestion = to_utc(start) + timedelta(minutes=settings.conflict_suggestion_minutes)
        raise SchedulingConflictError(suggestion=suggestion)

    try:
        if appointment_id is None:
            appointment = Appointment(
                user_id=owner_id,
                patient_id=data.patient_id,
                patient_name=data.patient_name,
                doctor_id=data.doctor_id,
                title=data.title,
                start_time=start,
                end_time=end,
                status=AppointmentStatus.PENDING.value,
                source=data.source.value,
                notes=data.notes,
                tags=data.tags,
                confirmation_token=uuid4().hex,
            )
            session.add(appointment)
        else:
            appointment = existing
            appointment.patient_id = data.patient_id
            appointment.patient_name = data.patient_name
            appointment.doctor_id = data.doctor_id
            appointment.title = data.title
            appointment.start_time = start
            appointment.end_time = end
            appointment.notes = data.notes
            if data.tags is not None:
                appointment.tags = data.tags
            session.add(appointment)
        await session.flush()
        await session.refresh(appointment)
    except SQLAlchemyError as e:
        logger.exception("Persisting appointment failed for owner %s", owner_id)
        raise PersistenceError("Erro ao salvar agendamento") from e

    logger.info(
        "Appointment %s %s for owner %s: %s - %s (doctor %s)",
        appointment.id,
        "created" if appointment_id is None else "updated",
        owner_id,
        start,
        end,
        data.doctor_id,
    )
    return appointment
