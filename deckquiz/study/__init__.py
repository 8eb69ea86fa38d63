"""
Study module: quiz session orchestration.
"""

from .quiz_service import QuizService, SubmitResult

__all__ = ["QuizService", "SubmitResult"]
