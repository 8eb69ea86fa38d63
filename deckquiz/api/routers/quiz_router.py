"""
Quiz router for sessions, submissions and deck progress.

Endpoints for:
- Starting a sampled quiz session
- Submitting and grading one answer
- Question lookup
- Deck mastery progress
"""
from __future__ import annotations

from functools import lru_cache
from typing import Any, Dict, List, Literal, Optional, Union

from fastapi import APIRouter, Depends
from loguru import logger
from pydantic import BaseModel, Field

from deckquiz.study import QuizService

router = APIRouter()


@lru_cache(maxsize=1)
def get_quiz_service() -> QuizService:
    """Process-wide quiz service built from settings."""
    return QuizService.from_settings()


# ========================================
# Request/Response Models
# ========================================


class SessionRequest(BaseModel):
    """Request model for starting a quiz session."""

    deck_id: str = Field(..., min_length=1, description="Deck to draw questions from")
    count: Optional[int] = Field(None, ge=1, description="Number of questions (default from config)")
    mode: Literal["Mixed", "Weak", "Due"] = Field(
        "Mixed",
        description="Mixed: whole deck; Weak/Due: only questions not yet mastered",
    )
    difficulty: Optional[Literal["easy", "medium", "hard"]] = Field(
        None,
        description="Restrict to one difficulty tier (default: stratified across tiers)",
    )
    ratios: Optional[Dict[str, float]] = Field(
        None,
        description="Type mix, e.g. {\"MCQ\": 0.5, \"CLOZE\": 0.25, \"SHORT\": 0.25}",
    )
    seed: Optional[Union[int, str]] = Field(None, description="Replay key for a reproducible draw")


class PresentedQuestionResponse(BaseModel):
    """Response model for one presented question."""

    id: str
    deck_id: str
    type: str
    prompt: str
    options: Dict[str, str]
    answer_map: Optional[Dict[str, str]] = None


class SessionResponse(BaseModel):
    """Response model for a quiz session."""

    questions: List[PresentedQuestionResponse]


class SubmitRequest(BaseModel):
    """Request model for submitting an answer."""

    question_id: str = Field(..., min_length=1)
    user_answer: str = Field("", description="Answer text; for MCQ the presented label")
    answer_map: Optional[Dict[str, str]] = Field(
        None,
        description="answer_map served with an MCQ question (presented -> stored label)",
    )


class SubmitResponse(BaseModel):
    """Response model for a graded submission."""

    question_id: str
    is_correct: bool
    correct_answer: str
    explanation: str
    method: str
    streak: int
    mastered: bool
    completed: bool
    degraded: bool = False


class QuestionResponse(BaseModel):
    """Response model for a stored question."""

    id: str
    deck_id: str
    type: str
    prompt: str
    options: Dict[str, str]
    correct_answer: str
    explanation: str
    tags: List[str]
    difficulty: int


class ProgressResponse(BaseModel):
    """Response model for deck progress."""

    deck_id: str
    total: int
    completed: int
    mastered: int
    unmastered: int
    attempts: int
    accuracy: float


# ========================================
# Session Endpoints
# ========================================


@router.post(
    "/session",
    response_model=SessionResponse,
    summary="Start quiz session",
)
def start_session(
    request: SessionRequest,
    service: QuizService = Depends(get_quiz_service),
) -> dict[str, Any]:
    """
    Sample a session from a deck.

    Difficulty is stratified evenly across easy/medium/hard unless one tier is
    requested; question types follow the ratio mix. MCQ options come back
    re-labelled with an ``answer_map``.
    """
    logger.info(f"Starting {request.mode} session for deck {request.deck_id}")
    questions = service.start_session(
        deck_id=request.deck_id,
        count=request.count,
        mode=request.mode,
        difficulty=request.difficulty,
        ratios=request.ratios,
        seed=request.seed,
    )
    return {"questions": [q.to_dict() for q in questions]}


@router.post(
    "/submit",
    response_model=SubmitResponse,
    summary="Submit answer",
)
def submit_answer(
    request: SubmitRequest,
    service: QuizService = Depends(get_quiz_service),
) -> dict[str, Any]:
    """Grade one answer, update the question's streak and log the attempt."""
    result = service.submit_answer(
        question_id=request.question_id,
        user_answer=request.user_answer,
        answer_map=request.answer_map,
    )
    return result.to_dict()


# ========================================
# Read Endpoints
# ========================================


@router.get(
    "/questions/{question_id}",
    response_model=QuestionResponse,
    summary="Get question",
)
def get_question(
    question_id: str,
    service: QuizService = Depends(get_quiz_service),
) -> dict[str, Any]:
    return service.get_question(question_id).to_dict()


@router.get(
    "/decks/{deck_id}/progress",
    response_model=ProgressResponse,
    summary="Deck progress",
)
def deck_progress(
    deck_id: str,
    service: QuizService = Depends(get_quiz_service),
) -> dict[str, Any]:
    """Completed (streak >= 1) and mastered (streak >= 2) counts plus attempt accuracy."""
    return service.deck_progress(deck_id).to_dict()
