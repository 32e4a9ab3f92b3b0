from datetime import datetime

from pydantic import Field

from app.api.schemas.base import CamelModel
from app.models.appointment import AppointmentSource, AppointmentStatus

MAX_DURATION_MINUTES = 24 * 60


class CreateAppointmentRequest(CamelModel):
    patient_name: str = Field(min_length=1)
    patient_phone: str = Field(min_length=1)
    # Naive values are clinic-local time
    date_time: datetime
    duration: int = Field(default=30, gt=0, le=MAX_DURATION_MINUTES)
    procedure_type: str = Field(min_length=1)
    doctor_name: str | None = None
    notes: str | None = "Agendado via WhatsApp"
    owner_id: str = Field(min_length=1)
    doctor_id: int | None = None


class AppointmentSummary(CamelModel):
    id: int
    patient_name: str
    doctor_name: str
    date: str  # DD/MM/YYYY, clinic-local
    time: str  # HH:MM, clinic-local
    procedure: str
    status: AppointmentStatus


class CreateAppointmentResponse(CamelModel):
    success: bool = True
    message: str
    appointment: AppointmentSummary
    confirmation_message: str


class RescheduleAppointmentRequest(CamelModel):
    owner_id: str = Field(min_length=1)
    date_time: datetime
    duration: int | None = Field(default=None, gt=0, le=MAX_DURATION_MINUTES)
    doctor_id: int | None = None


class UpdateStatusRequest(CamelModel):
    owner_id: str = Field(min_length=1)
    status: AppointmentStatus


class AppointmentOut(CamelModel):
    id: int
    owner_id: str
    patient_id: int | None = None
    patient_name: str
    doctor_id: int | None = None
    title: str
    start: datetime  # UTC
    end: datetime  # UTC
    status: AppointmentStatus
    source: AppointmentSource
    notes: str | None = None
    tags: list[str] | None = None
    confirmed_at: datetime | None = None
    cancelled_at: datetime | None = None


class ConfirmationAppointment(CamelModel):
    id: int
    patient_name: str
    start_time: datetime
    end_time: datetime
    doctor_name: str
    title: str
    status: AppointmentStatus


class ConfirmationResponse(CamelModel):
    success: bool = True
    message: str | None = None
    appointment: ConfirmationAppointment


class ConfirmationActionRequest(CamelModel):
    token: str = Field(min_length=1)
    action: str
