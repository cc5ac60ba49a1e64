"""Main FastAPI application."""

import logging

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from timesheet_workflow.api.v1.api import api_router
from timesheet_workflow.config import settings
from timesheet_workflow import __version__
from timesheet_workflow.exceptions import TimesheetServiceError
from timesheet_workflow.dependencies import get_notifier
from timesheet_workflow.scheduler import start_scheduler, shutdown_scheduler

# Custom TRACE level
logging.TRACE = 5
logging.addLevelName(logging.TRACE, "TRACE")

# Add trace method to standard Logger class for all instances
def trace_method(self, msg, *args, **kwargs):
    if self.isEnabledFor(logging.TRACE):
        self._log(logging.TRACE, msg, args, **kwargs)

logging.Logger.trace = trace_method

# Configure root logger early
log_level_str = settings.log_level.upper()
if log_level_str == "TRACE":
    log_level = logging.TRACE
elif log_level_str == "VERBOSE":
    log_level = logging.DEBUG
else:
    log_level = getattr(logging, log_level_str, logging.INFO)
if not logging.getLogger().hasHandlers():
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)-8s - %(message)s'
    )

    root = logging.getLogger()

    # Handle VERBOSE mode and set specific loggers
    if log_level_str == "VERBOSE":
        root_level = logging.DEBUG
        http_level = logging.DEBUG
        services_level = logging.TRACE
        sqlalchemy_level = logging.INFO
        root.info("VERBOSE mode enabled: service traces and SQL statements active for debugging.")
    elif log_level_str == "TRACE":
        root_level = logging.TRACE
        http_level = logging.TRACE
        services_level = logging.TRACE
        sqlalchemy_level = logging.INFO
    else:
        root_level = log_level
        http_level = logging.WARNING
        services_level = root_level
        sqlalchemy_level = logging.WARNING

    root.setLevel(root_level)
    logging.getLogger("httpcore").setLevel(http_level)
    logging.getLogger("httpx").setLevel(http_level)
    logging.getLogger("apscheduler").setLevel(max(root_level, logging.INFO))
    logging.getLogger("sqlalchemy.engine").setLevel(sqlalchemy_level)
    logging.getLogger("timesheet_workflow.services").setLevel(services_level)

    root.trace("Trace logging enabled at startup (verbose details).") if log_level_str == "TRACE" else root.debug("Debug logging enabled at startup.")

log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    start_scheduler()
    yield
    shutdown_scheduler()
    get_notifier().close()


app = FastAPI(
    title="Timesheet Approval Workflow",
    description="Timesheet approval workflow and time-entry validation service",
    version=__version__,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": __version__
    }

@app.get("/")
async def root():
    """Root endpoint - redirect to docs."""
    return {
        "message": "Timesheet Approval Workflow API",
        "version": __version__,
        "docs": "/docs"
    }

app.include_router(api_router, prefix=settings.api_v1_str)


@app.exception_handler(TimesheetServiceError)
async def workflow_exception_handler(request: Request, exc: TimesheetServiceError):
    log.info(f"{type(exc).__name__} on {request.method} {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict()
    )

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    log.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "Internal server error", "error_type": "InternalError", "reason_code": None}
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000, log_level="debug" if log_level_str in ("TRACE", "VERBOSE") else settings.log_level.lower())
