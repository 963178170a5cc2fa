# clinicdesk/main.py
import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from . import __version__
from .bootstrap import create_initial_data
from .config import get_settings
from .core.logging import setup_logging
from .database import create_tables
from .limiter import limiter
from .routers import (
    appointment_templates,
    appointments,
    auth,
    booking,
    calendar,
    clinics,
    health,
    logs,
    patients,
    procedures,
    users,
    wa_templates,
)

settings = get_settings()
logger = setup_logging()

app = FastAPI(title=settings.app_name, version=__version__)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.on_event("startup")
def on_startup():
    create_tables()
    create_initial_data()
    logger.info(f"{settings.app_name} {__version__} started ({settings.environment})")


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "An internal server error occurred."},
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "HEAD"],
    allow_headers=["*"],
)

app.include_router(auth.router, prefix="/api/v1")
app.include_router(users.router, prefix="/api/v1")
app.include_router(clinics.router, prefix="/api/v1")
app.include_router(patients.router, prefix="/api/v1")
app.include_router(procedures.router, prefix="/api/v1")
app.include_router(appointment_templates.router, prefix="/api/v1")
app.include_router(wa_templates.router, prefix="/api/v1")
app.include_router(appointments.router, prefix="/api/v1")
app.include_router(calendar.router, prefix="/api/v1")
app.include_router(booking.router, prefix="/api/v1")
app.include_router(logs.router, prefix="/api/v1")
app.include_router(health.router, prefix="/api/v1")


if __name__ == "__main__":
    uvicorn.run("clinicdesk.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
