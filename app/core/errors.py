"""Error taxonomy of the scheduling core.

Every error carries the HTTP status the API answers with, so routes can let
them propagate to the exception handler registered in ``app.main``.
"""
from datetime import datetime

from fastapi import status


class SchedulingError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error: str = "Erro interno do servidor"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.error
        super().__init__(self.message)

    def to_content(self) -> dict:
        return {"error": self.error, "message": self.message}


class ValidationError(SchedulingError):
    """Missing or malformed input. Never retried."""

    status_code = status.HTTP_400_BAD_REQUEST
    error = "Requisição inválida"


class AppointmentNotFoundError(SchedulingError):
    status_code = status.HTTP_404_NOT_FOUND
    error = "Agendamento não encontrado"


class BlockedDateError(SchedulingError):
    """The requested date is closed by an agenda block."""

    status_code = status.HTTP_409_CONFLICT
    error = "Data bloqueada"

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class SchedulingConflictError(SchedulingError):
    """The requested interval overlaps an existing appointment."""

    status_code = status.HTTP_409_CONFLICT
    error = "Horário não disponível"

    def __init__(self, suggestion: datetime | None = None, message: str | None = None) -> None:
        super().__init__(message or "Já existe um agendamento neste horário. Tente outro horário.")
        # Alternative start offered to the caller, aware UTC
        self.suggestion = suggestion


class InvalidStatusTransitionError(SchedulingError):
    status_code = status.HTTP_409_CONFLICT
    error = "Transição de status inválida"


class PersistenceError(SchedulingError):
    """The appointment store is unreachable or rejected the write."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    error = "Erro ao acessar o banco de dados"
