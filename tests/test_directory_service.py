import pytest

from app.core.errors import ValidationError
from app.services.directory_service import find_doctor, find_or_create_patient
from tests.conftest import OWNER, add_doctor


@pytest.mark.asyncio
async def test_patient_is_reused_by_phone(session):
    first = await find_or_create_patient(session, OWNER, "Maria Silva", "5511999990000")
    second = await find_or_create_patient(session, OWNER, "Maria S.", "5511999990000")
    other_clinic = await find_or_create_patient(session, "other-clinic", "Maria Silva", "5511999990000")

    assert first.id == second.id
    assert second.name == "Maria Silva"
    assert other_clinic.id != first.id


@pytest.mark.asyncio
async def test_find_doctor_by_name(session):
    await add_doctor(session, "Dr. João Souza")
    ana = await add_doctor(session, "Dra. Ana Lima")

    assert (await find_doctor(session, OWNER, doctor_name="ana")).id == ana.id


@pytest.mark.asyncio
async def test_find_doctor_falls_back_to_first_active(session):
    await add_doctor(session, "Dr. Inativo", active=False)
    joao = await add_doctor(session, "Dr. João")

    assert (await find_doctor(session, OWNER, doctor_name="Pedro")).id == joao.id
    assert (await find_doctor(session, OWNER)).id == joao.id


@pytest.mark.asyncio
async def test_find_doctor_by_id(session):
    joao = await add_doctor(session, "Dr. João")
    stranger = await add_doctor(session, "Dr. Outro", owner="other-clinic")

    assert (await find_doctor(session, OWNER, doctor_id=joao.id)).id == joao.id
    with pytest.raises(ValidationError):
        await find_doctor(session, OWNER, doctor_id=stranger.id)


@pytest.mark.asyncio
async def test_no_doctors(session):
    assert await find_doctor(session, OWNER, doctor_name="qualquer") is None
