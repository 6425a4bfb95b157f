# =====================================================
# FILE: app/main.py
# FastAPI application entry point
# =====================================================

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import settings
from app.core.database import check_connection, init_db
from app.core.exceptions import SigningWorkflowError, ValidationError
from app.core.responses import error_response, success_response
from app.middleware.request_context_middleware import RequestContextMiddleware
from app.api.api_v1.participants import router as participants_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()

    scheduler_task = None
    if settings.SCHEDULER_ENABLED:
        from app.services.scheduler_service import setup_scheduler

        scheduler = setup_scheduler()
        scheduler_task = asyncio.create_task(scheduler.start())

    logger.info(f"🚀 {settings.APP_NAME} started")
    yield

    if scheduler_task:
        from app.services.scheduler_service import scheduler

        scheduler.stop()
        scheduler_task.cancel()
    logger.info(f"{settings.APP_NAME} stopped")


app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.CLIENT_URL],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestContextMiddleware)


# =====================================================
# EXCEPTION HANDLERS
# =====================================================

@app.exception_handler(SigningWorkflowError)
async def signing_workflow_error_handler(request: Request, exc: SigningWorkflowError):
    if exc.status_code >= 500:
        logger.error(f" {exc.kind.value} on {request.url.path}: {exc.error}")
    else:
        logger.warning(f" {exc.kind.value} on {request.url.path}: {exc.error}")
    return error_response(exc)


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    detail = f"{location}: {first.get('msg')}" if location else str(first.get("msg", "Invalid request"))
    return error_response(ValidationError(detail, "Some of the submitted information is invalid."))


# =====================================================
# ROUTES
# =====================================================

app.include_router(participants_router)


@app.get("/health")
async def health():
    return success_response(
        {"status": "ok", "database": "connected" if check_connection() else "unavailable"},
        "Service is healthy",
    )
