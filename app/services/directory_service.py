"""Resolves the names sent by the intake chatbot to patients and doctors."""
import logging

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import PersistenceError, ValidationError
from app.models.directory import Doctor, Patient

logger = logging.getLogger(__name__)


async def get_patient_by_phone(session: AsyncSession, owner_id: str, phone: str) -> Patient | None:
    result = await session.execute(
        select(Patient).where(Patient.user_id == owner_id, Patient.phone == phone)
    )
    return result.scalar_one_or_none()


async def find_or_create_patient(session: AsyncSession, owner_id: str, name: str, phone: str) -> Patient:
    existing = await get_patient_by_phone(session, owner_id, phone)
    if existing:
        return existing
    patient = Patient(user_id=owner_id, name=name, phone=phone)
    session.add(patient)
    try:
        await session.flush()
    except SQLAlchemyError as e:
        logger.exception("Creating patient failed for owner %s", owner_id)
        raise PersistenceError("Erro ao criar paciente") from e
    await session.refresh(patient)
    logger.info("Created patient %s for owner %s", patient.id, owner_id)
    return patient


async def find_doctor(
    session: AsyncSession,
    owner_id: str,
    doctor_id: int | None = None,
    doctor_name: str | None = None,
) -> Doctor | None:
    """By id, then by name among active doctors, then the first active doctor."""
    if doctor_id is not None:
        result = await session.execute(
            select(Doctor).where(Doctor.id == doctor_id, Doctor.user_id == owner_id)
        )
        doctor = result.scalar_one_or_none()
        if doctor is None:
            raise ValidationError(f"Médico {doctor_id} não encontrado")
        return doctor

    active = select(Doctor).where(Doctor.user_id == owner_id, Doctor.active == True)  # noqa: E712
    if doctor_name and doctor_name.strip():
        pattern = f"%{doctor_name.strip().lower()}%"
        result = await session.execute(
            active.where(func.lower(Doctor.name).like(pattern)).order_by(Doctor.id).limit(1)
        )
        doctor = result.scalars().first()
        if doctor:
            return doctor
        logger.info("No active doctor named %r for owner %s, using default", doctor_name, owner_id)

    result = await session.execute(active.order_by(Doctor.id).limit(1))
    return result.scalars().first()
