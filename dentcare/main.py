import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from dentcare.config import CORS_ORIGINS, ENABLE_SCHEDULER, LOG_LEVEL
from dentcare.core.exceptions import DentCareError
from dentcare.core.scheduler import shutdown_scheduler, start_scheduler
from dentcare.database import Base, engine
from dentcare.models import appointment, clinic, inventory, notification, service, treatment_plan, user, working_hours  # noqa: F401
from dentcare.routers import admin, appointments, auth, clinics, notifications, treatment_plans
from dentcare.routers import clinic as clinic_dashboard
from dentcare.routers import inventory as inventory_router
from dentcare.routers import working_hours as working_hours_router

# Configure logging
logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("apscheduler").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    Base.metadata.create_all(bind=engine)
    if ENABLE_SCHEDULER:
        start_scheduler()
    yield
    if ENABLE_SCHEDULER:
        shutdown_scheduler()
    logger.info("Application shutting down...")


app = FastAPI(title="DentCare API", version="1.0.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DentCareError)
async def dentcare_error_handler(request: Request, exc: DentCareError):
    logger.info(f"{request.method} {request.url.path} rejected ({exc.status_code}): {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Report only the first problem, prefixed with the offending field."""
    errors = exc.errors()
    logger.warning(f"Validation error for {request.url.path}: {errors}")
    if not errors:
        return JSONResponse(status_code=400, content={"error": "Invalid request"})

    first = errors[0]
    field = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query", "path"))
    message = first.get("msg", "Invalid value")
    return JSONResponse(status_code=400, content={"error": f"{field}: {message}" if field else message})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


# /api/clinics/working-hours must be matched before /api/clinics/{clinic_id}
app.include_router(auth.router)
app.include_router(working_hours_router.router)
app.include_router(clinics.router)
app.include_router(appointments.router)
app.include_router(clinic_dashboard.router)
app.include_router(inventory_router.router)
app.include_router(notifications.router)
app.include_router(treatment_plans.router)
app.include_router(admin.router)


@app.get("/")
async def root():
    return {"message": "Welcome to DentCare API"}


@app.get("/health")
async def health():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "dentcare.main:app",
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "8000")),
    )
