from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from smartlab.config import settings
from smartlab.core.audit import log_system_start
from smartlab.core.logging import logger
from smartlab.core.middleware import GeneralRateLimitMiddleware, RequestLoggingMiddleware
from smartlab.core.sanitize import SanitizeMiddleware
from smartlab.database import Database
from smartlab.features.appointments.router import router as appointments_router
from smartlab.features.auth.router import router as auth_router
from smartlab.features.complaints.router import router as complaints_router
from smartlab.features.logs.router import router as logs_router
from smartlab.features.patients.router import router as patients_router
from smartlab.features.payments.router import router as payments_router
from smartlab.features.reports.router import router as reports_router
from smartlab.shared.exceptions import register_exception_handlers


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan events for FastAPI application."""
    # Startup
    logger.info(f"Starting {settings.APP_NAME} API...")
    await Database.connect_db()
    log_system_start(settings.PORT, settings.ENVIRONMENT)

    yield

    # Shutdown
    logger.info("Shutting down...")
    await Database.close_db()
    logger.info("Application shutdown complete")


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    description="SmartLab clinic management API",
    version="1.0.0",
    lifespan=lifespan,
)

# Middleware runs outermost-last: CORS, general rate limit, request log, then body scrubbing
app.add_middleware(SanitizeMiddleware)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(GeneralRateLimitMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["RateLimit-Limit", "RateLimit-Remaining", "RateLimit-Reset", "Retry-After"],
)

register_exception_handlers(app)

# Register routers
app.include_router(auth_router, prefix=settings.API_PREFIX)
app.include_router(patients_router, prefix=settings.API_PREFIX)
app.include_router(appointments_router, prefix=settings.API_PREFIX)
app.include_router(reports_router, prefix=settings.API_PREFIX)
app.include_router(complaints_router, prefix=settings.API_PREFIX)
app.include_router(payments_router, prefix=settings.API_PREFIX)
app.include_router(logs_router, prefix=settings.API_PREFIX)


@app.get(f"{settings.API_PREFIX}/health")
async def health_check():
    """Health check endpoint. Not rate-limited or request-logged."""
    return {
        "message": f"{settings.APP_NAME} API is running!",
        "status": "OK",
    }
