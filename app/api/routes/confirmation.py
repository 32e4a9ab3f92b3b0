from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_session
from app.core.errors import AppointmentNotFoundError, ValidationError
from app.api.schemas.appointment import (
    ConfirmationActionRequest,
    ConfirmationAppointment,
    ConfirmationResponse,
)
from app.services.appointment_service import (
    ConfirmationView,
    get_appointment_by_token,
    respond_to_confirmation,
)
from app.services.slot_service import to_utc

# Public: the token in the confirmation link is the credential
router = APIRouter(prefix="/confirm-appointment", tags=["confirmation"])


def _to_confirmation(view: ConfirmationView) -> ConfirmationAppointment:
    a = view.appointment
    return ConfirmationAppointment(
        id=a.id,
        patient_name=a.patient_name,
        start_time=to_utc(a.start_time),
        end_time=to_utc(a.end_time),
        doctor_name=view.doctor_name,
        title=a.title,
        status=a.status,
    )


@router.get("", response_model=ConfirmationResponse, response_model_exclude_none=True)
async def get_confirmation(
    token: str = Query(..., min_length=1),
    session: AsyncSession = Depends(get_session),
) -> ConfirmationResponse:
    try:
        view = await get_appointment_by_token(session, token)
    except ValidationError as e:
        # past or cancelled links read as missing to the patient page
        raise AppointmentNotFoundError(e.message) from e
    return ConfirmationResponse(appointment=_to_confirmation(view))


@router.post("", response_model=ConfirmationResponse)
async def answer_confirmation(
    body: ConfirmationActionRequest,
    session: AsyncSession = Depends(get_session),
) -> ConfirmationResponse:
    view = await respond_to_confirmation(session, body.token, body.action)
    if body.action == "confirm":
        message = "Agendamento confirmado com sucesso"
    else:
        message = "Agendamento cancelado"
    return ConfirmationResponse(message=message, appointment=_to_confirmation(view))
