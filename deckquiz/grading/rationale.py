"""
Per-option rationale parsing.

Generated MCQ explanations carry one rationale per option inline:

    "Paris is the capital. a) Correct, Paris is the seat of government.
     b) Lyon is the third-largest city. c) ... d) ..."

``parse_option_rationales`` is best effort: it returns only the letters it
finds, keeps the first occurrence of a repeated letter, and never raises.
"""
from __future__ import annotations

import re

_MARKER = re.compile(r"(?<![A-Za-z0-9])([a-dA-D])\)\s+")
_TRAILING = " \t\n;,|-"


def parse_option_rationales(explanation: str | None) -> dict[str, str]:
    """
    Extract ``{letter: rationale}`` from an explanation string.

    Args:
        explanation: Stored explanation text, possibly empty

    Returns:
        Mapping of lowercase option letter to its rationale text. Letters
        with an empty rationale are omitted.
    """
    if not explanation:
        return {}

    markers = list(_MARKER.finditer(explanation))
    rationales: dict[str, str] = {}
    for i, match in enumerate(markers):
        letter = match.group(1).lower()
        end = markers[i + 1].start() if i + 1 < len(markers) else len(explanation)
        text = explanation[match.end():end].strip().rstrip(_TRAILING).strip()
        if text and letter not in rationales:
            rationales[letter] = text
    return rationales
