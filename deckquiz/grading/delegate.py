"""
Semantic grading delegate.

Asks an OpenAI-compatible text service whether a free-text answer is
equivalent to the expected one. The call shape is chosen once, from
configuration, as a ``DelegateTransport``:

- responses: POST {base_url}/responses
- chat_completions: POST {base_url}/chat/completions
- disabled: no delegate

Every failure (timeout, HTTP error, unreadable reply) is raised as
``DelegateUnavailable``; the grader turns that into its heuristic result.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx
from loguru import logger

from config import Settings
from deckquiz.exceptions import DelegateUnavailable

GRADING_PROMPT = """You are a strict grader. Given a question, the expected correct answer and a
learner's answer, decide whether the learner's answer shows knowledge equivalent
to the correct answer. Allow synonyms, paraphrases and minor spelling slips.

Question: {prompt}
Correct Answer: {correct_answer}
Learner Answer: {user_answer}

Reply with JSON only: {{"correct": true or false, "explanation": "<one or two sentences>"}}
"""


class DelegateTransport(str, Enum):
    """Supported call shapes of the grading service."""

    DISABLED = "disabled"
    RESPONSES = "responses"
    CHAT_COMPLETIONS = "chat_completions"


@dataclass
class DelegateVerdict:
    """Judgment returned by the grading service."""

    correct: bool
    explanation: str | None = None


def parse_verdict(text: str) -> DelegateVerdict:
    """
    Read a verdict from the service's reply text.

    Accepts ``{"correct": bool, "explanation": str}`` (optionally inside a
    code fence) or a bare TRUE / FALSE.

    Raises:
        DelegateUnavailable: if the reply holds no usable verdict
    """
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = cleaned.strip("`")
        if cleaned.lower().startswith("json"):
            cleaned = cleaned[4:]
        cleaned = cleaned.strip()

    try:
        data = json.loads(cleaned)
    except (json.JSONDecodeError, TypeError):
        data = None

    if isinstance(data, dict) and isinstance(data.get("correct"), bool):
        explanation = str(data.get("explanation") or "").strip()
        return DelegateVerdict(correct=data["correct"], explanation=explanation or None)

    upper = cleaned.upper()
    has_true, has_false = "TRUE" in upper, "FALSE" in upper
    if has_true != has_false:
        return DelegateVerdict(correct=has_true)

    raise DelegateUnavailable(f"Unreadable grading reply: {text[:80]!r}")


class SemanticGradingDelegate:
    """HTTP client for the semantic grading service."""

    def __init__(
        self,
        transport: DelegateTransport,
        base_url: str,
        api_key: str | None,
        model: str,
        timeout_ms: int = 8000,
        client: httpx.Client | None = None,
    ):
        """
        Initialize grading delegate.

        Args:
            transport: Call shape, resolved once at startup
            base_url: Service base URL (e.g. https://api.openai.com/v1)
            api_key: Bearer token
            model: Model name sent with every call
            timeout_ms: Per-call timeout in milliseconds
            client: Pre-built httpx client (tests inject a MockTransport)
        """
        self.transport = transport
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout_seconds = timeout_ms / 1000.0
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self.client = client or httpx.Client(
            timeout=httpx.Timeout(self.timeout_seconds),
            headers=headers,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> SemanticGradingDelegate | None:
        """Resolve the transport from settings; ``None`` when grading is local only."""
        transport = DelegateTransport(settings.grading_delegate_mode)
        if transport is DelegateTransport.DISABLED:
            logger.info("Semantic grading disabled - heuristic grading only")
            return None
        if not settings.grading_delegate_api_key:
            logger.warning(
                f"Grading delegate mode '{transport.value}' set without an API key - heuristic grading only"
            )
            return None

        logger.info(f"Semantic grading via {transport.value} ({settings.grading_delegate_model})")
        return cls(
            transport=transport,
            base_url=settings.grading_delegate_url,
            api_key=settings.grading_delegate_api_key,
            model=settings.grading_delegate_model,
            timeout_ms=settings.grading_delegate_timeout_ms,
        )

    @property
    def enabled(self) -> bool:
        return self.transport is not DelegateTransport.DISABLED

    def close(self) -> None:
        """Close the HTTP client."""
        self.client.close()

    def judge(self, prompt: str, correct_answer: str, user_answer: str) -> DelegateVerdict:
        """
        Ask the service for a verdict.

        Raises:
            DelegateUnavailable: on any transport or parsing failure
        """
        message = GRADING_PROMPT.format(
            prompt=prompt,
            correct_answer=correct_answer,
            user_answer=user_answer,
        )
        try:
            text = self._send(message)
            if not isinstance(text, str):
                raise DelegateUnavailable(f"Grading reply is not text: {type(text).__name__}")
            return parse_verdict(text)
        except httpx.TimeoutException as e:
            raise DelegateUnavailable(f"Grading service timed out after {self.timeout_seconds}s") from e
        except httpx.HTTPStatusError as e:
            raise DelegateUnavailable(f"Grading service returned {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise DelegateUnavailable(f"Grading service request failed: {e}") from e
        except (ValueError, KeyError, IndexError, TypeError, AttributeError) as e:
            raise DelegateUnavailable(f"Malformed grading response: {e}") from e

    def _send(self, message: str) -> str:
        """Dispatch on the configured transport and return the reply text."""
        if self.transport is DelegateTransport.RESPONSES:
            data = self._post("/responses", {"model": self.model, "input": message})
            return _responses_text(data)
        if self.transport is DelegateTransport.CHAT_COMPLETIONS:
            data = self._post(
                "/chat/completions",
                {"model": self.model, "messages": [{"role": "user", "content": message}]},
            )
            return data["choices"][0]["message"]["content"] or ""
        raise DelegateUnavailable("Semantic grading is disabled")

    def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        response = self.client.post(f"{self.base_url}{path}", json=payload)
        response.raise_for_status()
        data = response.json()
        if not isinstance(data, dict):
            raise DelegateUnavailable(f"Grading reply is not a JSON object: {type(data).__name__}")
        return data


def _responses_text(data: dict[str, Any]) -> str:
    """Concatenate the output_text parts of a Responses API reply."""
    if isinstance(data.get("output_text"), str):
        return data["output_text"]
    parts = [
        part["text"]
        for item in data["output"]
        if isinstance(item, dict) and item.get("type") == "message"
        for part in item.get("content") or []
        if isinstance(part, dict) and part.get("type") == "output_text" and isinstance(part.get("text"), str)
    ]
    if not parts:
        raise ValueError("no output_text in response")
    return "".join(parts)
