"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse

from assessment.config import settings
from assessment.api import (
    access_router,
    attempts_router,
    health_router,
    ranking_router,
)
from assessment.core.errors import DomainError
from assessment.schemas.common import ErrorResponse

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s  %(name)-25s  %(levelname)-8s  %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("🚀 Assessment core starting (env=%s)…", settings.ENV)
    yield
    logger.info("✅ Assessment core shut down")


app = FastAPI(
    title="Assessment Core API",
    description="Quiz attempts, scoring, rankings and subject access approval",
    version="0.1.0",
    lifespan=lifespan,
)

# ── Middleware ─────────────────────────────────────────────────────────────────

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(TrustedHostMiddleware, allowed_hosts=settings.ALLOWED_HOSTS)

# ── Errors ────────────────────────────────────────────────────────────────────


@app.exception_handler(DomainError)
async def domain_error_handler(request: Request, exc: DomainError):
    logger.info(
        "%s %s → %s (%s)", request.method, request.url.path, exc.error_code, exc.message
    )
    body = ErrorResponse(error_code=exc.error_code, message=exc.message, details=exc.details)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump())


# ── Routers ───────────────────────────────────────────────────────────────────

app.include_router(health_router, tags=["Health"])
app.include_router(attempts_router, prefix="/api/attempt", tags=["Attempts"])
app.include_router(access_router, prefix="/api/subject-request", tags=["Subject access"])
app.include_router(ranking_router, prefix="/api/ranking", tags=["Ranking"])


@app.get("/")
async def root():
    return {
        "name": "Assessment Core API",
        "version": "0.1.0",
        "docs": "/docs",
        "health": "/health",
    }
