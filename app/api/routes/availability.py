from calendar import monthrange
from datetime import UTC, date, datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_session, verify_api_token
from app.api.schemas.availability import AvailabilityResponse, ClosedDatesResponse, SlotInfo
from app.core.config import settings
from app.services.agenda_block_service import get_closed_dates
from app.services.availability_service import resolve_availability
from app.services.slot_service import WorkingHours, local_date_of

router = APIRouter(tags=["availability"], dependencies=[Depends(verify_api_token)])


def _add_one_month(d: date) -> date:
    year, month = (d.year + 1, 1) if d.month == 12 else (d.year, d.month + 1)
    return date(year, month, min(d.day, monthrange(year, month)[1]))


@router.get(
    "/check-availability",
    response_model=AvailabilityResponse,
    response_model_exclude_none=True,
)
async def check_availability(
    date_param: date = Query(..., alias="date"),
    owner_id: str = Query(..., alias="ownerId", min_length=1),
    doctor_id: int | None = Query(None, alias="doctorId"),
    duration: int = Query(settings.default_duration_minutes, gt=0, le=24 * 60),
    session: AsyncSession = Depends(get_session),
) -> AvailabilityResponse:
    """Offerable slots of a day for the intake chatbot."""
    result = await resolve_availability(session, date_param, duration, owner_id, doctor_id=doctor_id)
    return AvailabilityResponse(
        date=result.date.isoformat(),
        day_of_week=result.day_of_week,
        available=result.available,
        total_slots=result.total_slots,
        available_count=result.available_count,
        available_slots=[
            SlotInfo(time=s.time, date_time=s.start_utc, period=s.period) for s in result.slots
        ],
        message=result.message,
        suggested_message=result.suggested_message,
        next_available_date=result.next_available_date.isoformat() if result.next_available_date else None,
    )


@router.get("/closed-dates", response_model=ClosedDatesResponse)
async def closed_dates(
    owner_id: str = Query(..., alias="ownerId", min_length=1),
    from_date: date | None = Query(None, alias="from"),
    to_date: date | None = Query(None, alias="to"),
    doctor_id: int | None = Query(None, alias="doctorId"),
    session: AsyncSession = Depends(get_session),
) -> ClosedDatesResponse:
    """Closed days in [from, to]; defaults to today through one month ahead."""
    today = local_date_of(datetime.now(UTC), WorkingHours.from_settings())
    from_date = from_date or today
    to_date = to_date or _add_one_month(from_date)
    result = await get_closed_dates(session, owner_id, from_date, to_date, doctor_id=doctor_id)
    return ClosedDatesResponse(
        closed_dates=[d.isoformat() for d in result.closed_dates],
        human_summary=result.summary,
    )
