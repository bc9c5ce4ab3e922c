from contextlib import asynccontextmanager
import logging
import uuid

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from medtrack.api import health, patients, reminders
from medtrack.config import settings
from medtrack.database import close_db, init_db
from medtrack.exceptions import AuthenticationRequired, StoreUnavailable
from medtrack.logging import configure_logging, request_id_var
from medtrack.services.collection_store import InMemoryCollectionStore, SQLCollectionStore

configure_logging()
logger = logging.getLogger("medtrack")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    logger.info("Starting MedTrack API (store=%s)", settings.store_backend)
    if settings.store_backend == "memory":
        app.state.store = InMemoryCollectionStore()
    else:
        try:
            await init_db()
            logger.info("Database initialized")
        except Exception:
            logger.exception("Failed to initialize database")
            raise
        app.state.store = SQLCollectionStore(
            poll_interval_seconds=settings.store_poll_interval_seconds,
        )

    yield

    logger.info("Shutting down MedTrack API")
    store = app.state.store
    if isinstance(store, SQLCollectionStore):
        await store.close()
        try:
            await close_db()
            logger.info("Database connections closed")
        except Exception:
            logger.exception("Error closing database")
    logger.info("MedTrack API shutdown complete")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
    # MedTrack API

    Patient medication schedules with live reminder state.

    ## Features

    - **Patients** - Add and manage a care provider's patients
    - **Reminders** - Upcoming / done / missed doses derived from each schedule
    - **Live updates** - Server-Sent Events stream of the reminder view
    """,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    request_id = request.headers.get("X-Request-Id", str(uuid.uuid4()))
    request_id_var.set(request_id)
    response = await call_next(request)
    response.headers.setdefault("X-Request-Id", request_id)
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

app.include_router(health.router)
app.include_router(patients.router, prefix=settings.api_prefix)
app.include_router(reminders.router, prefix=settings.api_prefix)


def _error_response(status_code: int, message, error_type: str, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": {
                "message": message,
                "status_code": status_code,
                "type": error_type,
                "request_id": request_id_var.get(),
                **extra,
            }
        },
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(_request: Request, exc: HTTPException):
    response = _error_response(exc.status_code, exc.detail, "http_error")
    if exc.headers:
        response.headers.update(exc.headers)
    return response


@app.exception_handler(AuthenticationRequired)
async def authentication_required_handler(_request: Request, exc: AuthenticationRequired):
    response = _error_response(401, str(exc), "authentication_required")
    response.headers["WWW-Authenticate"] = "Bearer"
    return response


@app.exception_handler(StoreUnavailable)
async def store_unavailable_handler(_request: Request, _exc: StoreUnavailable):
    return _error_response(503, "Patient store unavailable", "store_unavailable")


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(_request: Request, exc: RequestValidationError):
    return _error_response(
        422,
        "Validation error",
        "validation_error",
        details=jsonable_encoder(exc.errors()),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(_request: Request, _exc: Exception):
    logger.exception("Unhandled error")
    return _error_response(500, "Internal server error", "server_error")
