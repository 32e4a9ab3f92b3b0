import os

# Settings are read at import time; point them at a throwaway database first.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("API_SECRET_TOKEN", "test-secret")
os.environ.setdefault("ENV", "test")

from datetime import UTC, datetime
from zoneinfo import ZoneInfo

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

import app.models  # noqa: F401 - register tables
from app.core.db import get_session
from app.main import app as fastapi_app
from app.models import AgendaBlock, Appointment, AppointmentStatus, Doctor

CLINIC_TZ = ZoneInfo("America/Sao_Paulo")
OWNER = "clinic-1"
AUTH = {"Authorization": "Bearer test-secret"}
# Fixed "now" well before every test date
NOW = datetime(2031, 1, 1, 12, 0, tzinfo=UTC)


def local(year: int, month: int, day: int, hour: int, minute: int = 0) -> datetime:
    return datetime(year, month, day, hour, minute, tzinfo=CLINIC_TZ)


def naive_utc(dt: datetime) -> datetime:
    return dt.astimezone(UTC).replace(tzinfo=None)


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)

    # pysqlite's own transaction handling breaks SAVEPOINT; emit BEGIN ourselves.
    @event.listens_for(engine.sync_engine, "connect")
    def _connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_maker(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def session(session_maker):
    async with session_maker() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_maker):
    async def override_get_session():
        async with session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    fastapi_app.dependency_overrides[get_session] = override_get_session
    async with AsyncClient(transport=ASGITransport(app=fastapi_app), base_url="http://test") as c:
        yield c
    fastapi_app.dependency_overrides.clear()


async def add_doctor(session: AsyncSession, name: str = "Dr. João", owner: str = OWNER, active: bool = True) -> Doctor:
    doctor = Doctor(user_id=owner, name=name, active=active)
    session.add(doctor)
    await session.commit()
    return doctor


async def add_block(session: AsyncSession, **fields) -> AgendaBlock:
    fields.setdefault("user_id", OWNER)
    block = AgendaBlock(**fields)
    session.add(block)
    await session.commit()
    return block


async def add_appointment(
    session: AsyncSession,
    start: datetime,
    end: datetime,
    doctor_id: int | None = None,
    status: AppointmentStatus = AppointmentStatus.CONFIRMED,
    owner: str = OWNER,
) -> Appointment:
    appointment = Appointment(
        user_id=owner,
        patient_name="Maria",
        doctor_id=doctor_id,
        title="Consulta",
        start_time=naive_utc(start),
        end_time=naive_utc(end),
        status=status.value,
    )
    session.add(appointment)
    await session.commit()
    return appointment
