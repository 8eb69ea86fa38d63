"""
Answer grading.

Exact, fuzzy and delegated grading for MCQ / CLOZE / SHORT questions, plus
the per-option rationale parser used to build feedback.
"""

from .delegate import DelegateTransport, DelegateVerdict, SemanticGradingDelegate
from .grader import AnswerGrader, GradeResult, GradingMethod, normalize_answer
from .rationale import parse_option_rationales

__all__ = [
    "AnswerGrader",
    "DelegateTransport",
    "DelegateVerdict",
    "GradeResult",
    "GradingMethod",
    "SemanticGradingDelegate",
    "normalize_answer",
    "parse_option_rationales",
]
