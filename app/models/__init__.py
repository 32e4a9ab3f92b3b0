from app.models.directory import Doctor, Patient
from app.models.agenda_block import AgendaBlock, BlockType
from app.models.appointment import (
    Appointment,
    AppointmentCreate,
    AppointmentSource,
    AppointmentStatus,
)

__all__ = [
    "Doctor",
    "Patient",
    "AgendaBlock",
    "BlockType",
    "Appointment",
    "AppointmentCreate",
    "AppointmentSource",
    "AppointmentStatus",
]
