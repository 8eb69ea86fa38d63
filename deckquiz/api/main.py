"""
FastAPI application for deck-quiz.

Provides REST API for:
- Sampled quiz sessions over a deck
- Answer grading with streak-based mastery
- Deck progress
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from config import get_settings
from deckquiz import __version__
from deckquiz.db.database import check_database_health, init_db
from deckquiz.exceptions import NotFoundError, PersistenceError, ValidationError
from deckquiz.logging_setup import configure_logging

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    # Startup
    configure_logging()
    logger.info("Starting deck-quiz service...")
    init_db()
    logger.info(f"Service started on {settings.api_host}:{settings.api_port}")

    yield

    # Shutdown
    logger.info("Shutting down deck-quiz service...")


app = FastAPI(
    title="Deck Quiz",
    description="""
    Adaptive quiz sessions over generated question decks.

    ## Features

    - **Sessions**: Difficulty-stratified, type-balanced sampling with exposure ordering
    - **Grading**: Exact, fuzzy and (optionally) semantic answer grading
    - **Mastery**: Per-question streaks; two consecutive correct answers = mastered
    """,
    version=__version__,
    lifespan=lifespan,
)

# CORS middleware for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ========================================
# Error Handlers
# ========================================


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"detail": str(exc)},
    )


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(
        status_code=status.HTTP_404_NOT_FOUND,
        content={"detail": str(exc)},
    )


@app.exception_handler(PersistenceError)
async def persistence_error_handler(request: Request, exc: PersistenceError):
    """Storage failed after grading; the judgment still goes back to the client."""
    content: dict[str, Any] = {"detail": str(exc)}
    if exc.grade is not None:
        content["grade"] = exc.grade.to_dict()
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)


# ========================================
# Health & Status Endpoints
# ========================================


@app.get("/", tags=["Health"])
def root() -> dict[str, str]:
    """Root endpoint returning service info."""
    return {
        "service": "deck-quiz",
        "version": __version__,
        "status": "ok",
    }


@app.get("/health", tags=["Health"])
def health_check() -> dict[str, Any]:
    """Health check with a live database probe."""
    db_status, db_error = check_database_health()

    result: dict[str, Any] = {
        "status": "healthy" if db_status == "ok" else "unhealthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "components": {
            "database": db_status,
            "grading_delegate": "configured" if settings.has_grading_delegate() else "not_configured",
        },
        "config": {
            "quiz": settings.get_quiz_config(),
            "grading": settings.get_grading_config(),
        },
    }
    if db_error:
        result["errors"] = {"database": db_error}
    return result


# ========================================
# Import and mount routers
# ========================================

from deckquiz.api.routers import quiz_router

app.include_router(quiz_router.router, prefix="/api/quiz", tags=["Quiz"])
