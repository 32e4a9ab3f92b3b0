from datetime import UTC, datetime
from enum import Enum

from sqlalchemy import JSON, Column, DateTime, String
from sqlmodel import Field, SQLModel


def _utc_naive_now() -> datetime:
    """Naive UTC for TIMESTAMP WITHOUT TIME ZONE columns."""
    return datetime.now(UTC).replace(tzinfo=None)


class AppointmentStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class AppointmentSource(str, Enum):
    CHATBOT = "chatbot"
    MANUAL = "manual"


# cancelled and completed are terminal
ALLOWED_STATUS_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset({AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED}),
    AppointmentStatus.CONFIRMED: frozenset({AppointmentStatus.IN_PROGRESS, AppointmentStatus.CANCELLED}),
    AppointmentStatus.IN_PROGRESS: frozenset({AppointmentStatus.COMPLETED}),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
}


class Appointment(SQLModel, table=True):
    __tablename__ = "appointments"
    id: int | None = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    patient_id: int | None = Field(default=None, foreign_key="patients.id", index=True)
    patient_name: str
    doctor_id: int | None = Field(default=None, foreign_key="doctors.id", index=True)
    title: str
    start_time: datetime = Field(sa_type=DateTime(timezone=False), index=True)
    end_time: datetime = Field(sa_type=DateTime(timezone=False))
    status: AppointmentStatus = Field(default=AppointmentStatus.PENDING, sa_type=String, index=True)
    source: AppointmentSource = Field(default=AppointmentSource.MANUAL, sa_type=String)
    notes: str | None = None
    tags: list[str] | None = Field(default=None, sa_column=Column(JSON, nullable=True))
    confirmation_token: str | None = Field(default=None, unique=True, index=True)
    confirmed_at: datetime | None = Field(default=None, sa_type=DateTime(timezone=False))
    cancelled_at: datetime | None = Field(default=None, sa_type=DateTime(timezone=False))
    created_at: datetime = Field(default_factory=_utc_naive_now, sa_type=DateTime(timezone=False))


class AppointmentCreate(SQLModel):
    """Already-resolved booking request handed to the booking committer."""

    patient_id: int | None = None
    patient_name: str
    doctor_id: int | None = None
    title: str
    start_time: datetime
    end_time: datetime
    notes: str | None = None
    source: AppointmentSource = AppointmentSource.MANUAL
    tags: list[str] | None = None
