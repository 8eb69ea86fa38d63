"""
Unit tests for the semantic grading delegate.
"""

import httpx
import pytest

from config import Settings
from deckquiz.exceptions import DelegateUnavailable
from deckquiz.grading import DelegateTransport, SemanticGradingDelegate
from deckquiz.grading.delegate import parse_verdict


class TestParseVerdict:
    def test_json_verdict(self):
        verdict = parse_verdict('{"correct": true, "explanation": "Same meaning."}')
        assert verdict.correct is True
        assert verdict.explanation == "Same meaning."

    def test_fenced_json(self):
        verdict = parse_verdict('```json\n{"correct": false}\n```')
        assert verdict.correct is False
        assert verdict.explanation is None

    @pytest.mark.parametrize("text,expected", [("TRUE", True), ("false.", False), ("Verdict: True", True)])
    def test_bare_boolean(self, text, expected):
        assert parse_verdict(text).correct is expected

    @pytest.mark.parametrize("text", ["", "maybe", "TRUE or FALSE", '{"correct": "yes"}'])
    def test_unreadable_reply(self, text):
        with pytest.raises(DelegateUnavailable):
            parse_verdict(text)


class TestTransports:
    def test_responses_transport(self):
        seen = []

        def handler(request):
            seen.append(request.url.path)
            return httpx.Response(
                200,
                json={
                    "output": [
                        {"type": "reasoning", "content": []},
                        {
                            "type": "message",
                            "content": [{"type": "output_text", "text": '{"correct": true}'}],
                        },
                    ]
                },
            )

        delegate = SemanticGradingDelegate(
            transport=DelegateTransport.RESPONSES,
            base_url="https://grader.test/v1/",
            api_key="k",
            model="m",
            client=httpx.Client(transport=httpx.MockTransport(handler)),
        )

        verdict = delegate.judge("Capital of France?", "Paris", "paris, france")

        assert verdict.correct is True
        assert seen == ["/v1/responses"]

    def test_responses_output_text_shortcut(self):
        delegate = SemanticGradingDelegate(
            transport=DelegateTransport.RESPONSES,
            base_url="https://grader.test/v1",
            api_key="k",
            model="m",
            client=httpx.Client(
                transport=httpx.MockTransport(lambda r: httpx.Response(200, json={"output_text": "FALSE"}))
            ),
        )
        assert delegate.judge("q", "a", "b").correct is False

    def test_http_error_becomes_unavailable(self):
        delegate = SemanticGradingDelegate(
            transport=DelegateTransport.CHAT_COMPLETIONS,
            base_url="https://grader.test/v1",
            api_key="k",
            model="m",
            client=httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(401))),
        )
        with pytest.raises(DelegateUnavailable, match="401"):
            delegate.judge("q", "a", "b")


class TestFromSettings:
    def test_disabled(self):
        settings = Settings(_env_file=None, grading_delegate_mode="disabled")
        assert SemanticGradingDelegate.from_settings(settings) is None

    def test_mode_without_key_is_disabled(self):
        settings = Settings(_env_file=None, grading_delegate_mode="responses", grading_delegate_api_key=None)
        assert SemanticGradingDelegate.from_settings(settings) is None

    def test_configured(self):
        settings = Settings(
            _env_file=None,
            grading_delegate_mode="chat_completions",
            grading_delegate_api_key="secret",
            grading_delegate_timeout_ms=2500,
        )
        delegate = SemanticGradingDelegate.from_settings(settings)
        try:
            assert delegate is not None
            assert delegate.transport is DelegateTransport.CHAT_COMPLETIONS
            assert delegate.enabled
            assert delegate.timeout_seconds == 2.5
        finally:
            delegate.close()
