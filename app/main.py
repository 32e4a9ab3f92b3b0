import logging
import os
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.routes import appointments, availability, confirmation
from app.core.config import settings, _ENV_FILE
from app.core.errors import PersistenceError, SchedulingConflictError, SchedulingError
from app.services.slot_service import WorkingHours, format_local

if os.getenv("ENV") != "production":
    logging.basicConfig(level=logging.DEBUG)
else:
    logging.basicConfig(
        level=logging.INFO,
        format='{"time": "%(asctime)s", "level": "%(levelname)s", "message": "%(message)s"}',
    )
logger = logging.getLogger(__name__)

API_VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Loading .env from: %s (exists: %s)", _ENV_FILE, _ENV_FILE.exists())
    logger.info(
        "Working hours %02d:00-%02d:00, lunch %02d:00-%02d:00, %d min grid, timezone %s",
        settings.day_start_hour,
        settings.day_end_hour,
        settings.lunch_start_hour,
        settings.lunch_end_hour,
        settings.slot_duration_minutes,
        settings.clinic_timezone,
    )
    if settings.fail_open:
        logger.warning("Store errors on blocks/conflict reads admit bookings (ON_STORE_ERROR=admit_booking)")
    if settings.sunday_closed:
        logger.info("Sundays closed by default (SUNDAY_CLOSED=true)")
    yield


app = FastAPI(
    title=settings.service_name,
    description="Clinic scheduling: availability, bookings and agenda blocks",
    version=API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)

app.include_router(availability.router, prefix="/api")
app.include_router(appointments.router, prefix="/api")
app.include_router(confirmation.router, prefix="/api")


def _cors_headers(origin: str | None) -> dict[str, str]:
    """Add CORS headers to error responses so the browser doesn't block them."""
    headers = {
        "Access-Control-Allow-Credentials": "true",
        "Access-Control-Allow-Methods": "GET, POST, PUT, PATCH, OPTIONS",
        "Access-Control-Allow-Headers": "Authorization, Content-Type",
    }
    if origin and origin in settings.cors_origins_list:
        headers["Access-Control-Allow-Origin"] = origin
    elif settings.cors_origins_list:
        headers["Access-Control-Allow-Origin"] = settings.cors_origins_list[0]
    return headers


@app.exception_handler(SchedulingError)
async def scheduling_error_handler(request: Request, exc: SchedulingError) -> JSONResponse:
    content = exc.to_content()
    if isinstance(exc, SchedulingConflictError) and exc.suggestion is not None:
        date_str, time_str = format_local(exc.suggestion, WorkingHours.from_settings())
        content["suggestion"] = {"date": date_str, "time": time_str}
    if isinstance(exc, PersistenceError):
        logger.error("Persistence failure on %s %s: %s", request.method, request.url.path, exc.__cause__ or exc)
    return JSONResponse(
        status_code=exc.status_code,
        content=content,
        headers=_cors_headers(request.headers.get("origin")),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Missing or malformed input is a 400 for the intake integration."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    field = ".".join(str(p) for p in first.get("loc", ()) if p not in ("body", "query"))
    message = f'Parâmetro "{field}" inválido ou ausente' if field else "Requisição inválida"
    return JSONResponse(
        status_code=400,
        content={"error": message, "details": jsonable_encoder(errors)},
        headers=_cors_headers(request.headers.get("origin")),
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    headers = _cors_headers(request.headers.get("origin"))
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers={**headers, **(exc.headers or {})},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Return actual error in JSON; include CORS so 500 responses are not blocked by browser."""
    headers = _cors_headers(request.headers.get("origin"))
    logger.exception("Unhandled exception: %s", exc)
    return JSONResponse(
        status_code=500,
        content={"error": "Erro interno do servidor", "details": f"{type(exc).__name__}: {str(exc)}"},
        headers=headers,
    )


@app.get("/api/health")
async def health() -> dict:
    return {
        "status": "ok",
        "service": settings.service_name,
        "version": API_VERSION,
        "timestamp": datetime.now(UTC).isoformat(),
    }
