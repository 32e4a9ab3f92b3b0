import logging
from datetime import date, timedelta

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_session, verify_api_token
from app.api.schemas.appointment import (
    AppointmentOut,
    AppointmentSummary,
    CreateAppointmentRequest,
    CreateAppointmentResponse,
    RescheduleAppointmentRequest,
    UpdateStatusRequest,
)
from app.core.errors import AppointmentNotFoundError
from app.models.appointment import Appointment, AppointmentCreate, AppointmentSource, AppointmentStatus
from app.services.appointment_service import list_appointments_for_owner, update_appointment_status
from app.services.booking_service import commit_appointment, get_owned_appointment
from app.services.directory_service import find_doctor, find_or_create_patient
from app.services.slot_service import WorkingHours, format_local, localize, to_utc

logger = logging.getLogger(__name__)
router = APIRouter(tags=["appointments"], dependencies=[Depends(verify_api_token)])

CHATBOT_TAGS = ["whatsapp", "sdr"]
UNASSIGNED_DOCTOR = "A definir"


def _to_out(a: Appointment) -> AppointmentOut:
    """Public shape; stored naive UTC datetimes go out as aware UTC."""
    return AppointmentOut(
        id=a.id,
        owner_id=a.user_id,
        patient_id=a.patient_id,
        patient_name=a.patient_name,
        doctor_id=a.doctor_id,
        title=a.title,
        start=to_utc(a.start_time),
        end=to_utc(a.end_time),
        status=a.status,
        source=a.source,
        notes=a.notes,
        tags=a.tags,
        confirmed_at=to_utc(a.confirmed_at) if a.confirmed_at else None,
        cancelled_at=to_utc(a.cancelled_at) if a.cancelled_at else None,
    )


def _confirmation_message(date_str: str, time_str: str, doctor_name: str, procedure: str) -> str:
    return (
        "✅ Agendamento confirmado!\n\n"
        f"📅 Data: {date_str}\n"
        f"⏰ Horário: {time_str}\n"
        f"👨‍⚕️ Médico: {doctor_name}\n"
        f"📋 Procedimento: {procedure}\n\n"
        "Aguardamos você!"
    )


@router.post("/create-appointment", response_model=CreateAppointmentResponse, status_code=status.HTTP_201_CREATED)
async def create_appointment(
    body: CreateAppointmentRequest,
    session: AsyncSession = Depends(get_session),
) -> CreateAppointmentResponse:
    """Book a slot chosen through the intake chatbot."""
    hours = WorkingHours.from_settings()
    start = localize(body.date_time, hours)
    end = start + timedelta(minutes=body.duration)

    doctor = await find_doctor(session, body.owner_id, doctor_id=body.doctor_id, doctor_name=body.doctor_name)
    patient = await find_or_create_patient(session, body.owner_id, body.patient_name, body.patient_phone)
    data = AppointmentCreate(
        patient_id=patient.id,
        patient_name=body.patient_name,
        doctor_id=doctor.id if doctor else None,
        title=body.procedure_type,
        start_time=start,
        end_time=end,
        notes=body.notes,
        source=AppointmentSource.CHATBOT,
        tags=CHATBOT_TAGS,
    )
    appointment = await commit_appointment(session, body.owner_id, data, hours=hours)

    doctor_name = doctor.name if doctor else UNASSIGNED_DOCTOR
    date_str, time_str = format_local(appointment.start_time, hours)
    return CreateAppointmentResponse(
        message="Agendamento criado com sucesso!",
        appointment=AppointmentSummary(
            id=appointment.id,
            patient_name=appointment.patient_name,
            doctor_name=doctor_name,
            date=date_str,
            time=time_str,
            procedure=appointment.title,
            status=appointment.status,
        ),
        confirmation_message=_confirmation_message(date_str, time_str, doctor_name, appointment.title),
    )


@router.get("/appointments", response_model=list[AppointmentOut])
async def list_appointments(
    owner_id: str = Query(..., alias="ownerId", min_length=1),
    from_date: date | None = Query(None, alias="fromDate"),
    doctor_id: int | None = Query(None, alias="doctorId"),
    session: AsyncSession = Depends(get_session),
) -> list[AppointmentOut]:
    appointments = await list_appointments_for_owner(session, owner_id, from_date=from_date, doctor_id=doctor_id)
    return [_to_out(a) for a in appointments]


@router.put("/appointments/{appointment_id}", response_model=AppointmentOut)
async def reschedule_appointment(
    appointment_id: int,
    body: RescheduleAppointmentRequest,
    session: AsyncSession = Depends(get_session),
) -> AppointmentOut:
    """Move an appointment; it never conflicts with its own previous time."""
    existing = await get_owned_appointment(session, body.owner_id, appointment_id)
    if existing is None:
        raise AppointmentNotFoundError()
    hours = WorkingHours.from_settings()
    if body.duration:
        duration = timedelta(minutes=body.duration)
    else:
        duration = existing.end_time - existing.start_time
    doctor_id = existing.doctor_id
    if body.doctor_id is not None:
        # same owner check as booking; unknown or foreign ids are a 400
        doctor = await find_doctor(session, body.owner_id, doctor_id=body.doctor_id)
        doctor_id = doctor.id
    start = localize(body.date_time, hours)
    data = AppointmentCreate(
        patient_id=existing.patient_id,
        patient_name=existing.patient_name,
        doctor_id=doctor_id,
        title=existing.title,
        start_time=start,
        end_time=start + duration,
        notes=existing.notes,
        source=existing.source,
        tags=existing.tags,
    )
    appointment = await commit_appointment(session, body.owner_id, data, appointment_id=appointment_id, hours=hours)
    return _to_out(appointment)


@router.patch("/appointments/{appointment_id}/status", response_model=AppointmentOut)
async def change_status(
    appointment_id: int,
    body: UpdateStatusRequest,
    session: AsyncSession = Depends(get_session),
) -> AppointmentOut:
    appointment = await update_appointment_status(session, body.owner_id, appointment_id, AppointmentStatus(body.status))
    return _to_out(appointment)
