"""
FastAPI Main Application
Clinical Trial Operations API Server
"""

from typing import Dict, Any, Optional
from datetime import datetime
import asyncio
import logging
import traceback
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from starlette.exceptions import HTTPException as StarletteHTTPException
from sqlalchemy.exc import IntegrityError
from starlette.middleware.gzip import GZipMiddleware
import uvicorn

from clinical_trial_ops.api.config import get_settings, initialize_services, cleanup_services
from clinical_trial_ops.api.routers import (
    assistants,
    dm_bot,
    domain_data,
    notifications,
    signal_detections,
    sites,
    tasks,
    trials,
)
from clinical_trial_ops.core.error_handling import ClinicalDataError, DataValidationError, get_error_tracker

settings = get_settings()

# Configure logging
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


class StartupState:
    """Tracks application startup state for readiness checks"""
    def __init__(self):
        self.is_ready = False
        self.startup_error: Optional[str] = None
        self.startup_time: Optional[datetime] = None
        self.ready_time: Optional[datetime] = None

    def mark_ready(self):
        self.is_ready = True
        self.ready_time = datetime.now()

    def mark_error(self, error: str):
        self.startup_error = error
        self.is_ready = False


startup_state = StartupState()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {settings.app_name}...")
    startup_state.startup_time = datetime.now()

    try:
        await initialize_services()
        startup_state.mark_ready()
    except Exception as e:
        logger.error(f"Startup error: {e}")
        startup_state.mark_error(str(e))

    try:
        yield
    except asyncio.CancelledError:
        logger.info("Received shutdown signal...")
    finally:
        try:
            logger.info("Shutting down API server...")
            await cleanup_services()
            logger.info("API server shutdown complete")
        except Exception as e:
            logger.error(f"Error during shutdown: {e}")


app = FastAPI(
    title=settings.app_name,
    description="Clinical trial monitoring: signals, tasks, domain data and data management assistants",
    version=settings.app_version,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    lifespan=lifespan
)

# ============== Middleware ==============
app.add_middleware(GZipMiddleware, minimum_size=500)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
    allow_headers=["*"],
    max_age=600,
)


@app.middleware("http")
async def add_security_headers(request, call_next):
    response = await call_next(request)
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("X-Frame-Options", "DENY")
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    return response


# ============== Pydantic Models ==============

class HealthResponse(BaseModel):
    status: str
    timestamp: str
    version: str
    services: Dict[str, str]


class ClientErrorReport(BaseModel):
    message: str
    stack: Optional[str] = None
    component_stack: Optional[str] = None
    timestamp: Optional[str] = None
    user_agent: Optional[str] = None
    url: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


# ============== Include Routers ==============

app.include_router(trials.router, prefix="/api/trials", tags=["Trials"])
app.include_router(sites.router, prefix="/api/sites", tags=["Sites"])
app.include_router(signal_detections.router, prefix="/api/signaldetections", tags=["Signal Detections"])
app.include_router(tasks.router, prefix="/api/tasks", tags=["Tasks"])
app.include_router(notifications.router, prefix="/api/notifications", tags=["Notifications"])
app.include_router(domain_data.router, prefix="/api", tags=["Domain Data"])
app.include_router(dm_bot.router, prefix="/api/dm-bot", tags=["DM Bot"])
app.include_router(assistants.router, prefix="/api/assistants", tags=["Assistants"])


# ============== Core Endpoints ==============

@app.get("/", tags=["Root"])
async def root():
    return {
        "application": settings.app_name,
        "version": settings.app_version,
        "status": "running",
        "timestamp": datetime.now().isoformat(),
        "documentation": {
            "swagger": "/api/docs",
            "redoc": "/api/redoc"
        },
        "endpoints": {
            "health": "/api/health",
            "trials": "/api/trials",
            "tasks": "/api/tasks",
            "signal_detections": "/api/signaldetections",
            "notifications": "/api/notifications",
            "dm_bot": "/api/dm-bot/studies",
            "assistants": "/api/assistants"
        }
    }


@app.get("/health", tags=["Root"])
async def root_health():
    """
    Root-level health check (alias for /api/health)
    Common convention for load balancers and health checks
    """
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat()
    }


@app.get("/api/health", response_model=HealthResponse, tags=["Root"])
async def health_check():
    """Liveness check with startup status"""
    if startup_state.startup_error:
        startup = "error"
    elif startup_state.is_ready:
        startup = "healthy"
    else:
        startup = "initializing"

    return HealthResponse(
        status="healthy" if startup != "error" else "degraded",
        timestamp=datetime.now().isoformat(),
        version=settings.app_version,
        services={"startup": startup}
    )


@app.post("/api/errors/report", tags=["Errors"])
async def report_client_error(payload: ClientErrorReport, request: Request):
    """Record a frontend error report in the error tracker"""
    context = {
        "source": "frontend",
        "url": payload.url,
        "user_agent": payload.user_agent,
        "client_ip": request.client.host if request.client else None,
        "timestamp": payload.timestamp or datetime.now().isoformat(),
        "component_stack": payload.component_stack,
        "metadata": payload.metadata,
    }

    error = ClinicalDataError(
        payload.message,
        error_code="CLIENT000",
        details={
            "stack": payload.stack,
            "component_stack": payload.component_stack,
        }
    )

    error_id = get_error_tracker().record_error(error, context=context)
    return {"success": True, "error_id": error_id}


@app.get("/api/errors/summary", tags=["Errors"])
async def error_summary():
    tracker = get_error_tracker()
    return {
        "summary": tracker.get_error_summary(),
        "recent": tracker.get_recent_errors(limit=10),
    }


@app.post("/api/errors/{error_id}/resolve", tags=["Errors"])
async def resolve_error(error_id: str):
    """Mark a tracked error as resolved"""
    if not get_error_tracker().resolve_error(error_id):
        raise HTTPException(status_code=404, detail=f"Error {error_id} not found")
    logger.info(f"Error {error_id} marked as resolved")
    return {"success": True, "error_id": error_id}


# ============== Error Handling ==============

@app.exception_handler(ClinicalDataError)
async def clinical_data_error_handler(request, exc: ClinicalDataError):
    """Handle domain errors raised by services"""
    error_id = get_error_tracker().record_error(exc, context={
        "path": str(request.url),
        "method": request.method,
    })
    logger.warning(f"{exc.error_code}: {exc} [{error_id}]")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "code": exc.error_code,
                "message": str(exc),
                "details": exc.details,
                "error_id": error_id,
                "timestamp": datetime.now().isoformat(),
                "path": str(request.url),
            }
        }
    )


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request, exc: IntegrityError):
    """Constraint violations the services did not catch are client errors"""
    error = DataValidationError("Request conflicts with existing data",
                                details={"reason": str(exc.orig)})
    return await clinical_data_error_handler(request, error)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request, exc: StarletteHTTPException):
    """Handle HTTP exceptions with structured response"""
    logger.warning(f"HTTP Exception: {exc.status_code} - {exc.detail}")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "code": f"HTTP_{exc.status_code}",
                "message": exc.detail,
                "timestamp": datetime.now().isoformat(),
                "path": str(request.url),
            }
        }
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request, exc: RequestValidationError):
    """Handle Pydantic validation errors"""
    logger.warning(f"Validation Error: {exc.errors()}")

    return JSONResponse(
        status_code=422,
        content={
            "error": {
                "code": "VALIDATION_ERROR",
                "message": "Request validation failed",
                "details": {
                    "validation_errors": jsonable_errors(exc),
                    "body": exc.body if hasattr(exc, 'body') else None,
                },
                "timestamp": datetime.now().isoformat(),
                "path": str(request.url),
            }
        }
    )


def jsonable_errors(exc: RequestValidationError):
    # ctx may carry exception instances that JSONResponse cannot encode
    errors = []
    for error in exc.errors():
        error = dict(error)
        if "ctx" in error:
            error["ctx"] = {k: str(v) for k, v in error["ctx"].items()}
        errors.append(error)
    return errors


@app.exception_handler(Exception)
async def general_exception_handler(request, exc: Exception):
    """Handle unexpected exceptions"""
    error_id = f"ERR_{datetime.now().strftime('%Y%m%d_%H%M%S')}_{hash(str(exc)) % 10000}"

    logger.error(f"Unexpected Error [{error_id}]: {str(exc)}", extra={
        "error_id": error_id,
        "exception_type": type(exc).__name__,
        "traceback": traceback.format_exc(),
        "path": str(request.url),
        "method": request.method,
    })

    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_SERVER_ERROR",
                "message": "An unexpected error occurred",
                "error_id": error_id,
                "timestamp": datetime.now().isoformat(),
                "path": str(request.url),
            }
        }
    )


# ============== Main Entry Point ==============

if __name__ == "__main__":
    uvicorn.run(
        "clinical_trial_ops.api.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
