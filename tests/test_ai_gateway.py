"""
AI gateway tests: no network, providers replaced by in-process fakes.

Covers:
  - Error classification (status codes, message hints, timeouts)
  - Retry only for retryable codes; exhaustion; overall deadline
  - Provider routing and local-stub fallback
  - AIReviewGateway: sanitising, prompt routing, lenient parsing,
    result caching and failure wrapping
"""

import json
from unittest.mock import patch

import pytest

from specflow.ai.gateway import (
    AIErrorCode,
    AIServiceError,
    LLMGateway,
    LLMProvider,
    LocalStubProvider,
    OpenAIProvider,
    classify_error,
)
from specflow.ai.review import (
    AIReviewGateway,
    build_review_prompt,
    map_phase_to_ai_phase,
    parse_review,
    sanitize_content,
)
from specflow.services import cache_service


class _HTTPError(Exception):
    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class APITimeoutError(Exception):
    pass


class ScriptedProvider(LLMProvider):
    """Raises the queued exceptions in order, then returns ``content``."""

    def __init__(self, *failures, content="{}"):
        self.failures = list(failures)
        self.content = content
        self.calls = 0
        self.messages = None

    def chat(self, messages, model, **kwargs):
        self.calls += 1
        self.messages = messages
        if self.failures:
            raise self.failures.pop(0)
        return {"content": self.content, "prompt_tokens": 1, "completion_tokens": 1, "model": model}


def _gateway(provider, **kwargs):
    kwargs.setdefault("backoff_base", 0)
    return LLMGateway("gpt-4o-mini", providers={"openai": provider}, **kwargs)


_REVIEW_JSON = json.dumps({
    "overallScore": 82,
    "suggestions": [{"id": "s1", "title": "Add NFRs", "severity": "medium"}],
    "completenessCheck": {"score": 80, "missingElements": ["NFRs"], "recommendations": []},
    "qualityMetrics": {"clarity": 85, "completeness": 80, "consistency": 90,
                       "testability": 75, "traceability": 70},
    "complianceIssues": [{"id": "c1", "type": "ears_format", "severity": "low",
                          "description": "One criterion lacks SHALL"}],
})


# ═══════════════════════════════════════════════════════════════════════════
# Error classification
# ═══════════════════════════════════════════════════════════════════════════


class TestClassifyError:

    @pytest.mark.parametrize("exc, code", [
        (_HTTPError("Too Many Requests", 429), AIErrorCode.RATE_LIMIT_EXCEEDED),
        (_HTTPError("Unauthorized", 401), AIErrorCode.API_KEY_INVALID),
        (RuntimeError("finish_reason=content_filter"), AIErrorCode.CONTENT_FILTERED),
        (RuntimeError("maximum context length exceeded: 9000 tokens"), AIErrorCode.TOKEN_LIMIT_EXCEEDED),
        (TimeoutError(), AIErrorCode.TIMEOUT),
        (APITimeoutError("Request timed out."), AIErrorCode.TIMEOUT),
        (_HTTPError("Bad Gateway", 502), AIErrorCode.SERVICE_UNAVAILABLE),
        (ConnectionError("reset by peer"), AIErrorCode.SERVICE_UNAVAILABLE),
    ])
    def test_classification(self, exc, code):
        assert classify_error(exc) == code

    def test_retryable_flag_follows_code(self):
        assert AIServiceError("x", AIErrorCode.RATE_LIMIT_EXCEEDED).retryable is True
        assert AIServiceError("x", AIErrorCode.TIMEOUT).retryable is True
        assert AIServiceError("x", AIErrorCode.SERVICE_UNAVAILABLE).retryable is True
        assert AIServiceError("x", AIErrorCode.API_KEY_INVALID).retryable is False
        assert AIServiceError("x", AIErrorCode.CONTENT_FILTERED).retryable is False
        assert AIServiceError("x", AIErrorCode.TOKEN_LIMIT_EXCEEDED).retryable is False


# ═══════════════════════════════════════════════════════════════════════════
# LLMGateway retry & routing
# ═══════════════════════════════════════════════════════════════════════════


class TestLLMGateway:

    def test_retryable_failures_are_retried(self):
        provider = ScriptedProvider(_HTTPError("slow down", 429), TimeoutError(), content="ok")
        result = _gateway(provider, max_retries=3).chat([{"role": "user", "content": "hi"}])
        assert provider.calls == 3
        assert result["content"] == "ok"
        assert result["provider"] == "openai"
        assert "latency_ms" in result

    def test_non_retryable_failure_is_raised_immediately(self):
        provider = ScriptedProvider(_HTTPError("bad key", 401), content="ok")
        with pytest.raises(AIServiceError) as exc:
            _gateway(provider, max_retries=3).chat([{"role": "user", "content": "hi"}])
        assert exc.value.code == AIErrorCode.API_KEY_INVALID
        assert provider.calls == 1

    def test_retries_are_bounded(self):
        provider = ScriptedProvider(*[_HTTPError("unavailable", 503) for _ in range(5)])
        with pytest.raises(AIServiceError) as exc:
            _gateway(provider, max_retries=2).chat([{"role": "user", "content": "hi"}])
        assert exc.value.code == AIErrorCode.SERVICE_UNAVAILABLE
        assert provider.calls == 3

    def test_deadline_stops_further_attempts(self):
        provider = ScriptedProvider(_HTTPError("slow down", 429), content="ok")
        gw = _gateway(provider, max_retries=3, backoff_base=10, deadline=1)
        with pytest.raises(AIServiceError) as exc:
            gw.chat([{"role": "user", "content": "hi"}])
        assert exc.value.code == AIErrorCode.TIMEOUT
        assert "deadline exceeded after 1 attempts" in exc.value.message
        assert provider.calls == 1

    def test_backoff_is_exponential(self):
        provider = ScriptedProvider(_HTTPError("slow down", 429), _HTTPError("slow down", 429), content="ok")
        gw = _gateway(provider, max_retries=3, backoff_base=0.5, deadline=100)
        with patch("specflow.ai.gateway.threading.Event") as event:
            gw.chat([{"role": "user", "content": "hi"}])
        waits = [c.args[0] for c in event.return_value.wait.call_args_list]
        assert waits == [0.5, 1.0]

    def test_sdk_exception_from_real_provider_is_classified(self):
        gw = LLMGateway("gpt-4o", providers={"openai": OpenAIProvider()}, max_retries=0)
        with patch.object(OpenAIProvider, "chat", side_effect=_HTTPError("Unauthorized", 401)):
            with pytest.raises(AIServiceError) as exc:
                gw.chat([{"role": "user", "content": "hi"}])
        assert exc.value.code == AIErrorCode.API_KEY_INVALID

    def test_missing_provider_falls_back_to_stub(self):
        result = LLMGateway("gpt-4o", providers={}).chat([{"role": "user", "content": "hi"}])
        assert result["provider"] == "local"
        assert json.loads(result["content"])["overallScore"] >= 60

    def test_missing_provider_without_fallback_is_rejected(self):
        gw = LLMGateway("gpt-4o", providers={}, stub_fallback=False, max_retries=3)
        with pytest.raises(AIServiceError) as exc:
            gw.chat([{"role": "user", "content": "hi"}])
        assert exc.value.code == AIErrorCode.API_KEY_INVALID
        assert exc.value.retryable is False

    def test_local_stub_model_ignores_fallback_flag(self):
        gw = LLMGateway("local-stub", providers={}, stub_fallback=False)
        assert gw.chat([{"role": "user", "content": "hi"}])["provider"] == "local"

    def test_unknown_model_routes_to_stub(self):
        gw = LLMGateway("mystery-model", providers={})
        provider, name = gw._get_provider("mystery-model")
        assert name == "local"
        assert isinstance(provider, LocalStubProvider)


# ═══════════════════════════════════════════════════════════════════════════
# Review helpers
# ═══════════════════════════════════════════════════════════════════════════


class TestReviewHelpers:

    def test_sanitize_redacts_sensitive_values(self):
        text = (
            "Contact jane.doe@example.com from 10.0.0.12, SSN 123-45-6789, "
            "card 4111 1111 1111 1111, key ABCDEFGHIJKLMNOPQRSTUV12"
        )
        cleaned = sanitize_content(text)
        for marker in ("[EMAIL]", "[IP]", "[SSN]", "[CARD]", "[TOKEN]"):
            assert marker in cleaned
        assert "jane.doe" not in cleaned
        assert "123-45-6789" not in cleaned

    def test_prompt_names_phase_focus(self):
        prompt = build_review_prompt("design", "doc body")
        assert "design document" in prompt
        assert "Data model completeness" in prompt
        assert prompt.rstrip().endswith("doc body")

    def test_implementation_reviewed_as_tasks(self):
        assert map_phase_to_ai_phase("IMPLEMENTATION") == "tasks"
        assert map_phase_to_ai_phase("DESIGN") == "design"

    def test_parse_plain_json(self):
        review = parse_review(_REVIEW_JSON)
        assert review.overall_score == 82
        assert review.suggestions[0]["title"] == "Add NFRs"
        assert review.compliance_issues[0]["type"] == "ears_format"
        assert review.quality_metrics["traceability"] == 70

    def test_parse_fenced_json(self):
        review = parse_review(f"```json\n{_REVIEW_JSON}\n```")
        assert review.overall_score == 82

    def test_parse_json_embedded_in_prose(self):
        review = parse_review(f"Here is my review:\n{_REVIEW_JSON}\nHope this helps.")
        assert review.overall_score == 82

    def test_unparseable_response_is_neutral(self):
        review = parse_review("I cannot review this document.")
        assert review.overall_score == 50
        assert len(review.suggestions) == 1
        assert review.suggestions[0]["title"] == "AI Response Parsing Failed"
        assert review.suggestions[0]["severity"] == "medium"

    def test_score_is_clamped(self):
        assert parse_review('{"overallScore": 140}').overall_score == 100
        assert parse_review('{"overallScore": "n/a"}').overall_score == 0


# ═══════════════════════════════════════════════════════════════════════════
# AIReviewGateway
# ═══════════════════════════════════════════════════════════════════════════


class TestAIReviewGateway:

    def test_review_returns_parsed_result(self):
        provider = ScriptedProvider(content=_REVIEW_JSON)
        result = AIReviewGateway(_gateway(provider)).review("# Requirements", "requirements", "p-1")
        assert result.overall_score == 82
        assert provider.messages[0]["role"] == "system"
        assert "requirements document" in provider.messages[1]["content"]

    def test_content_is_sanitised_before_sending(self):
        provider = ScriptedProvider(content=_REVIEW_JSON)
        AIReviewGateway(_gateway(provider)).review("Owner: ops@example.com", "design")
        sent = provider.messages[1]["content"]
        assert "ops@example.com" not in sent
        assert "[EMAIL]" in sent

    def test_identical_content_is_served_from_cache(self):
        provider = ScriptedProvider(content=_REVIEW_JSON)
        reviewer = AIReviewGateway(_gateway(provider))
        first = reviewer.review("same text", "tasks")
        second = reviewer.review("same text", "tasks")
        assert provider.calls == 1
        assert second.id == first.id
        assert second.overall_score == first.overall_score

    def test_cache_is_scoped_by_phase(self):
        provider = ScriptedProvider(content=_REVIEW_JSON)
        reviewer = AIReviewGateway(_gateway(provider))
        reviewer.review("same text", "tasks")
        reviewer.review("same text", "design")
        assert provider.calls == 2

    def test_cache_key_shape(self):
        key = AIReviewGateway.cache_key("design", "body")
        prefix, phase, digest = key.split(":")
        assert (prefix, phase) == ("ai", "design")
        assert len(digest) == 64

    def test_malformed_cache_entry_is_ignored(self):
        provider = ScriptedProvider(content=_REVIEW_JSON)
        reviewer = AIReviewGateway(_gateway(provider))
        cache_service.set_cached(reviewer.cache_key("tasks", "text"), {"overall_score": 1})
        assert reviewer.review("text", "tasks").overall_score == 82
        assert provider.calls == 1

    def test_failure_is_wrapped_with_phase_message(self):
        provider = ScriptedProvider(_HTTPError("bad key", 401))
        with pytest.raises(AIServiceError) as exc:
            AIReviewGateway(_gateway(provider)).review("text", "design")
        assert exc.value.message == "Failed to review design specification"
        assert exc.value.code == AIErrorCode.API_KEY_INVALID
        assert exc.value.retryable is False

    def test_failed_review_is_not_cached(self):
        provider = ScriptedProvider(_HTTPError("bad key", 401), content=_REVIEW_JSON)
        reviewer = AIReviewGateway(_gateway(provider))
        with pytest.raises(AIServiceError):
            reviewer.review("text", "design")
        assert reviewer.review("text", "design").overall_score == 82
        assert provider.calls == 2

    def test_unknown_phase_hint(self):
        with pytest.raises(ValueError):
            AIReviewGateway(_gateway(ScriptedProvider())).review("text", "implementation")
