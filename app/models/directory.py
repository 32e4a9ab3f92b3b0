from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


class Patient(SQLModel, table=True):
    __tablename__ = "patients"
    __table_args__ = (UniqueConstraint("user_id", "phone", name="uq_patients_user_phone"),)
    id: int | None = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    name: str
    phone: str = Field(index=True)
    email: str | None = None


class Doctor(SQLModel, table=True):
    __tablename__ = "doctors"
    id: int | None = Field(default=None, primary_key=True)
    user_id: str = Field(index=True)
    name: str
    specialty: str | None = None
    active: bool = True
