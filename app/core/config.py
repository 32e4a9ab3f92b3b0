from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve .env from the project root so it loads regardless of cwd
_BACKEND_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_FILE = _BACKEND_ROOT / ".env"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=(str(_ENV_FILE), ".env", "../.env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str

    # Static shared secret used by the intake chatbot
    api_secret_token: str

    # CORS
    cors_origins: str = "http://localhost:3000"

    # Clinic working hours (local clinic time)
    day_start_hour: int = 8
    day_end_hour: int = 18  # exclusive, so last slot ends at 18:00
    lunch_start_hour: int = 12
    lunch_end_hour: int = 13
    slot_duration_minutes: int = 30
    clinic_timezone: str = "America/Sao_Paulo"
    default_duration_minutes: int = 30

    # What to do when the blocks or conflict reads fail.
    # admit_booking keeps the booking flow alive (fail-open).
    on_store_error: Literal["admit_booking", "reject_booking"] = "admit_booking"
    # Legacy rule: Sundays are closed even without a configured block
    sunday_closed: bool = True
    # Offset of the alternative offered when a slot is taken
    conflict_suggestion_minutes: int = 30

    # Env
    env: str = "development"
    service_name: str = "Proton Agendamento API"

    @property
    def cors_origins_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def fail_open(self) -> bool:
        return self.on_store_error == "admit_booking"


settings = Settings()
