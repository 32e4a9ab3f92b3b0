from datetime import datetime

from app.api.schemas.base import CamelModel


class SlotInfo(CamelModel):
    time: str  # HH:MM, clinic-local
    date_time: datetime  # UTC instant
    period: str


class AvailabilityResponse(CamelModel):
    date: str  # YYYY-MM-DD
    day_of_week: str
    available: bool
    total_slots: int
    available_count: int
    available_slots: list[SlotInfo]
    message: str
    suggested_message: str
    next_available_date: str | None = None


class ClosedDatesResponse(CamelModel):
    closed_dates: list[str]
    human_summary: str
