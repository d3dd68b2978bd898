"""FastAPI application entrypoint and router wiring for the review workflow service."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import APIRouter, FastAPI, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi_pagination import add_pagination

from app.api.audit import router as audit_router
from app.api.calls import router as calls_router
from app.api.proposals import router as proposals_router
from app.api.reviewers import router as reviewers_router
from app.api.reviews import router as reviews_router
from app.core.config import settings
from app.core.error_handling import install_error_handling
from app.core.logging import configure_logging, get_logger
from app.db.session import init_db
from app.schemas.errors import ErrorResponse
from app.schemas.health import HealthStatusResponse

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

configure_logging()
logger = get_logger(__name__)
OPENAPI_TAGS = [
    {
        "name": "health",
        "description": (
            "Service liveness/readiness probes used by infrastructure and runtime checks."
        ),
    },
    {
        "name": "calls",
        "description": (
            "Call lifecycle: creation, phase transitions, timeline, scoring rubric, "
            "blind proposal listings, automatic distribution, and identity reveal."
        ),
    },
    {
        "name": "proposals",
        "description": (
            "Proposal submission, reviewer ranking and assignment, conflicts of "
            "interest, review aggregation, and final decisions."
        ),
    },
    {
        "name": "reviews",
        "description": (
            "Reviewer assignment queue plus draft and submission endpoints scoped to "
            "an assignment."
        ),
    },
    {
        "name": "reviewers",
        "description": "Reviewer confidentiality terms acceptance.",
    },
    {
        "name": "audit",
        "description": "Paginated, organization-scoped audit trail queries.",
    },
]


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    """Initialize application resources before serving requests."""
    logger.info(
        "app.lifecycle.starting environment=%s db_auto_migrate=%s",
        settings.environment,
        settings.db_auto_migrate,
    )
    await init_db()
    logger.info("app.lifecycle.started")
    try:
        yield
    finally:
        logger.info("app.lifecycle.stopped")


app = FastAPI(
    title="Call Review Workflow API",
    version="0.1.0",
    lifespan=lifespan,
    openapi_tags=OPENAPI_TAGS,
)

origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
if origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-Id"],
    )
    logger.info("app.cors.enabled origins_count=%s", len(origins))
else:
    logger.info("app.cors.disabled")

install_error_handling(app)


@app.get(
    "/health",
    tags=["health"],
    response_model=HealthStatusResponse,
    summary="Health Check",
    description="Lightweight liveness probe endpoint.",
    responses={
        status.HTTP_200_OK: {
            "description": "Service is alive.",
            "content": {"application/json": {"example": {"ok": True}}},
        }
    },
)
def health() -> HealthStatusResponse:
    """Lightweight liveness probe endpoint."""
    return HealthStatusResponse(ok=True)


@app.get(
    "/readyz",
    tags=["health"],
    response_model=HealthStatusResponse,
    summary="Readiness Check",
    description="Readiness probe endpoint for service orchestration checks.",
)
def readyz() -> HealthStatusResponse:
    """Readiness probe endpoint for service orchestration checks."""
    return HealthStatusResponse(ok=True)


api_v1 = APIRouter(
    prefix="/api/v1",
    responses={
        status.HTTP_403_FORBIDDEN: {
            "model": ErrorResponse,
            "description": "Missing identity headers or insufficient role.",
        },
        status.HTTP_404_NOT_FOUND: {
            "model": ErrorResponse,
            "description": "Resource missing or outside the caller's organization.",
        },
        status.HTTP_409_CONFLICT: {
            "model": ErrorResponse,
            "description": "Workflow precondition failed; branch on `code`.",
            "content": {
                "application/json": {
                    "example": {
                        "detail": {
                            "code": "premature_reveal",
                            "message": "Identities can only be revealed once the call is closed",
                        },
                        "request_id": "5f2b1c0e9a7d4e3f",
                        "code": "premature_reveal",
                    }
                }
            },
        },
    },
)
api_v1.include_router(calls_router)
api_v1.include_router(proposals_router)
api_v1.include_router(reviews_router)
api_v1.include_router(reviewers_router)
api_v1.include_router(audit_router)
app.include_router(api_v1)

add_pagination(app)
logger.debug("app.routes.registered count=%s", len(app.routes))
