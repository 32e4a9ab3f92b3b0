from datetime import UTC, date, datetime

import pytest
from sqlalchemy.exc import OperationalError

from app.core.config import settings
from app.core.errors import (
    AppointmentNotFoundError,
    BlockedDateError,
    PersistenceError,
    SchedulingConflictError,
    ValidationError,
)
from app.models import AppointmentCreate, AppointmentStatus, BlockType
from app.services import booking_service
from app.services.booking_service import commit_appointment
from tests.conftest import OWNER, add_appointment, add_block, add_doctor, local, naive_utc


def booking(start, end, doctor_id=None, **extra) -> AppointmentCreate:
    return AppointmentCreate(
        patient_name="Maria Silva", title="Consulta", start_time=start, end_time=end, doctor_id=doctor_id, **extra
    )


@pytest.mark.asyncio
async def test_creates_pending_appointment(session):
    appointment = await commit_appointment(session, OWNER, booking(local(2031, 3, 3, 10), local(2031, 3, 3, 10, 30)))

    assert appointment.id is not None
    assert appointment.status == AppointmentStatus.PENDING.value
    assert appointment.start_time == datetime(2031, 3, 3, 13, 0)
    assert appointment.end_time == datetime(2031, 3, 3, 13, 30)
    assert appointment.confirmation_token


@pytest.mark.asyncio
async def test_overlap_is_rejected_with_suggestion(session):
    await commit_appointment(session, OWNER, booking(local(2031, 3, 3, 10), local(2031, 3, 3, 10, 30)))

    with pytest.raises(SchedulingConflictError) as exc_info:
        await commit_appointment(session, OWNER, booking(local(2031, 3, 3, 10, 15), local(2031, 3, 3, 10, 45)))

    assert exc_info.value.suggestion == datetime(2031, 3, 3, 13, 45, tzinfo=UTC)


@pytest.mark.asyncio
async def test_adjacent_booking_is_accepted(session):
    await commit_appointment(session, OWNER, booking(local(2031, 3, 3, 10), local(2031, 3, 3, 10, 30)))

    appointment = await commit_appointment(session, OWNER, booking(local(2031, 3, 3, 10, 30), local(2031, 3, 3, 11)))

    assert appointment.start_time == datetime(2031, 3, 3, 13, 30)


@pytest.mark.asyncio
async def test_other_doctor_and_other_owner_do_not_conflict(session):
    joao = await add_doctor(session, "Dr. João")
    ana = await add_doctor(session, "Dra. Ana")
    await add_appointment(session, local(2031, 3, 3, 10), local(2031, 3, 3, 10, 30), doctor_id=joao.id)
    await add_appointment(session, local(2031, 3, 3, 11), local(2031, 3, 3, 11, 30), owner="other-clinic")

    await commit_appointment(session, OWNER, booking(local(2031, 3, 3, 10), local(2031, 3, 3, 10, 30), ana.id))
    await commit_appointment(session, OWNER, booking(local(2031, 3, 3, 11), local(2031, 3, 3, 11, 30)))

    with pytest.raises(SchedulingConflictError):
        await commit_appointment(session, OWNER, booking(local(2031, 3, 3, 10), local(2031, 3, 3, 10, 30), joao.id))


@pytest.mark.asyncio
async def test_cancelled_appointment_frees_the_slot(session):
    await add_appointment(
        session, local(2031, 3, 3, 10), local(2031, 3, 3, 10, 30), status=AppointmentStatus.CANCELLED
    )

    appointment = await commit_appointment(session, OWNER, booking(local(2031, 3, 3, 10), local(2031, 3, 3, 10, 30)))

    assert appointment.status == AppointmentStatus.PENDING.value


@pytest.mark.asyncio
async def test_edit_never_conflicts_with_itself(session):
    first = await commit_appointment(session, OWNER, booking(local(2031, 3, 3, 10), local(2031, 3, 3, 10, 30)))
    token = first.confirmation_token

    moved = await commit_appointment(
        session, OWNER, booking(local(2031, 3, 3, 10, 15), local(2031, 3, 3, 10, 45)), appointment_id=first.id
    )

    assert moved.id == first.id
    assert moved.start_time == naive_utc(local(2031, 3, 3, 10, 15))
    assert moved.confirmation_token == token


@pytest.mark.asyncio
async def test_edit_into_another_booking_conflicts(session):
    await commit_appointment(session, OWNER, booking(local(2031, 3, 3, 10), local(2031, 3, 3, 10, 30)))
    second = await commit_appointment(session, OWNER, booking(local(2031, 3, 3, 11), local(2031, 3, 3, 11, 30)))

    with pytest.raises(SchedulingConflictError):
        await commit_appointment(
            session, OWNER, booking(local(2031, 3, 3, 10), local(2031, 3, 3, 10, 30)), appointment_id=second.id
        )


@pytest.mark.asyncio
async def test_edit_unknown_appointment(session):
    with pytest.raises(AppointmentNotFoundError):
        await commit_appointment(
            session, OWNER, booking(local(2031, 3, 3, 10), local(2031, 3, 3, 10, 30)), appointment_id=999
        )


@pytest.mark.asyncio
async def test_blocked_date_is_rejected(session):
    await add_block(session, block_type=BlockType.DATE_RANGE.value, start_date=date(2031, 12, 24),
                    end_date=date(2031, 12, 26), label="Recesso de fim de ano")

    with pytest.raises(BlockedDateError) as exc_info:
        await commit_appointment(session, OWNER, booking(local(2031, 12, 25, 9), local(2031, 12, 25, 9, 30)))

    assert exc_info.value.reason == "Recesso de fim de ano"


@pytest.mark.asyncio
async def test_sunday_is_rejected(session):
    with pytest.raises(BlockedDateError) as exc_info:
        await commit_appointment(session, OWNER, booking(local(2031, 3, 9, 9), local(2031, 3, 9, 9, 30)))

    assert exc_info.value.reason == "Não atendemos aos domingos."


@pytest.mark.asyncio
async def test_blocked_date_uses_clinic_local_day(session):
    await add_block(session, block_type=BlockType.SPECIFIC_DATE.value, specific_date=date(2031, 3, 4))

    # 22:00 local on Monday is already Tuesday in UTC
    appointment = await commit_appointment(session, OWNER, booking(local(2031, 3, 3, 22), local(2031, 3, 3, 22, 30)))

    assert appointment.start_time == datetime(2031, 3, 4, 1, 0)


@pytest.mark.asyncio
async def test_end_must_follow_start(session):
    with pytest.raises(ValidationError):
        await commit_appointment(session, OWNER, booking(local(2031, 3, 3, 10), local(2031, 3, 3, 10)))
    with pytest.raises(ValidationError):
        await commit_appointment(session, "", booking(local(2031, 3, 3, 10), local(2031, 3, 3, 10, 30)))


def _broken_conflict_read():
    async def broken(*args, **kwargs):
        raise OperationalError("SELECT appointments", {}, Exception("connection lost"))

    return broken


@pytest.mark.asyncio
async def test_conflict_read_failure_admits_booking(session, monkeypatch):
    await add_appointment(session, local(2031, 3, 3, 10), local(2031, 3, 3, 10, 30))
    monkeypatch.setattr(booking_service, "find_overlapping_appointments", _broken_conflict_read())

    appointment = await commit_appointment(session, OWNER, booking(local(2031, 3, 3, 10), local(2031, 3, 3, 10, 30)))

    assert appointment.id is not None


@pytest.mark.asyncio
async def test_conflict_read_failure_rejects_when_configured(session, monkeypatch):
    monkeypatch.setattr(settings, "on_store_error", "reject_booking")
    monkeypatch.setattr(booking_service, "find_overlapping_appointments", _broken_conflict_read())

    with pytest.raises(PersistenceError):
        await commit_appointment(session, OWNER, booking(local(2031, 3, 3, 10), local(2031, 3, 3, 10, 30)))


@pytest.mark.asyncio
async def test_write_failure_is_a_persistence_error_not_a_conflict(session, monkeypatch):
    async def broken_flush(*args, **kwargs):
        raise OperationalError("INSERT INTO appointments", {}, Exception("disk I/O error"))

    monkeypatch.setattr(session, "flush", broken_flush)

    with pytest.raises(PersistenceError) as exc_info:
        await commit_appointment(session, OWNER, booking(local(2031, 3, 3, 10), local(2031, 3, 3, 10, 30)))

    assert not isinstance(exc_info.value, SchedulingConflictError)
    assert exc_info.value.status_code == 500
