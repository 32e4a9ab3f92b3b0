from datetime import UTC, date, datetime, timedelta
from functools import lru_cache
from zoneinfo import ZoneInfo

from pydantic import BaseModel, ConfigDict

from app.core.config import settings
from app.core.errors import ValidationError


class WorkingHours(BaseModel):
    model_config = ConfigDict(frozen=True)

    day_start_hour: int = 8
    day_end_hour: int = 18  # exclusive
    lunch_start_hour: int = 12
    lunch_end_hour: int = 13
    slot_duration_minutes: int = 30
    timezone: str = "America/Sao_Paulo"

    @property
    def zone(self) -> ZoneInfo:
        return _zone(self.timezone)

    @classmethod
    def from_settings(cls) -> "WorkingHours":
        return cls(
            day_start_hour=settings.day_start_hour,
            day_end_hour=settings.day_end_hour,
            lunch_start_hour=settings.lunch_start_hour,
            lunch_end_hour=settings.lunch_end_hour,
            slot_duration_minutes=settings.slot_duration_minutes,
            timezone=settings.clinic_timezone,
        )


@lru_cache
def _zone(name: str) -> ZoneInfo:
    return ZoneInfo(name)


class Slot(BaseModel):
    model_config = ConfigDict(frozen=True)

    start_utc: datetime  # aware UTC
    duration_minutes: int
    time: str  # HH:MM, clinic-local
    period: str  # "morning" | "afternoon"

    @property
    def end_utc(self) -> datetime:
        return self.start_utc + timedelta(minutes=self.duration_minutes)


def to_utc(dt: datetime) -> datetime:
    """Aware UTC; naive datetimes are taken as UTC, like the stored columns."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def local_day_bounds_utc(d: date, hours: WorkingHours) -> tuple[datetime, datetime]:
    """[start, end) of the clinic-local calendar day, as aware UTC."""
    start = datetime(d.year, d.month, d.day, tzinfo=hours.zone)
    end = start + timedelta(days=1)
    return start.astimezone(UTC), end.astimezone(UTC)


def local_date_of(dt: datetime, hours: WorkingHours) -> date:
    return to_utc(dt).astimezone(hours.zone).date()


def localize(dt: datetime, hours: WorkingHours) -> datetime:
    """Aware datetime; naive input is read as clinic-local wall time."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=hours.zone)
    return dt


def format_local(dt: datetime, hours: WorkingHours) -> tuple[str, str]:
    """(DD/MM/YYYY, HH:MM) in clinic-local time."""
    local = to_utc(dt).astimezone(hours.zone)
    return local.strftime("%d/%m/%Y"), local.strftime("%H:%M")


def generate_slots(
    d: date,
    duration_minutes: int,
    hours: WorkingHours,
    now: datetime,
) -> list[Slot]:
    """Theoretical slot grid of the day, ordered by time.

    Candidates start every ``slot_duration_minutes`` inside each working hour,
    lunch hours are skipped, and a slot never starts in the past nor straddles
    lunch or the closing hour. Pure function of its inputs.
    """
    if duration_minutes <= 0:
        raise ValidationError("A duração deve ser maior que zero")
    if hours.slot_duration_minutes <= 0:
        raise ValidationError("slot_duration_minutes deve ser maior que zero")

    now_utc = to_utc(now)
    zone = hours.zone
    duration = timedelta(minutes=duration_minutes)
    midnight = datetime(d.year, d.month, d.day, tzinfo=zone)
    # same-zone arithmetic stays on the wall clock
    day_end = midnight + timedelta(hours=hours.day_end_hour)
    lunch_start = midnight + timedelta(hours=hours.lunch_start_hour)

    slots: list[Slot] = []
    for hour in range(hours.day_start_hour, min(hours.day_end_hour, 24)):
        if hours.lunch_start_hour <= hour < hours.lunch_end_hour:
            continue
        for minute in range(0, 60, hours.slot_duration_minutes):
            local_start = datetime(d.year, d.month, d.day, hour, minute, tzinfo=zone)
            start_utc = local_start.astimezone(UTC)
            if start_utc <= now_utc:
                continue
            local_end = local_start + duration
            if local_end > day_end:
                continue
            if local_start < lunch_start and local_end > lunch_start:
                continue
            slots.append(
                Slot(
                    start_utc=start_utc,
                    duration_minutes=duration_minutes,
                    time=local_start.strftime("%H:%M"),
                    period="morning" if hour < 12 else "afternoon",
                )
            )
    return slots
