"""
Specflow
LLM Gateway.

Provider-agnostic LLM router with:
    - Multi-provider support (OpenAI, Anthropic Claude, local stub)
    - Classified failures (AIServiceError with a stable AIErrorCode)
    - Retry with exponential backoff for retryable failures only
    - Per-call provider timeout plus an overall deadline across retries

Usage:
    from specflow.ai.gateway import LLMGateway
    gw = LLMGateway(model="gpt-4o-mini", timeout=30)
    result = gw.chat([{"role": "user", "content": "Review this document"}])
"""

import json
import logging
import os
import threading
import time
from abc import ABC, abstractmethod
from enum import Enum

logger = logging.getLogger(__name__)


# ── Error classification ──────────────────────────────────────────────────────

class AIErrorCode(str, Enum):
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    API_KEY_INVALID = "API_KEY_INVALID"
    CONTENT_FILTERED = "CONTENT_FILTERED"
    TOKEN_LIMIT_EXCEEDED = "TOKEN_LIMIT_EXCEEDED"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    TIMEOUT = "TIMEOUT"


RETRYABLE_CODES = frozenset({
    AIErrorCode.RATE_LIMIT_EXCEEDED,
    AIErrorCode.SERVICE_UNAVAILABLE,
    AIErrorCode.TIMEOUT,
})


class AIServiceError(Exception):
    """Failure of an AI call, tagged with a stable code."""

    def __init__(self, message: str, code: AIErrorCode, retryable: bool | None = None):
        self.message = message
        self.code = AIErrorCode(code)
        self.retryable = self.code in RETRYABLE_CODES if retryable is None else retryable
        super().__init__(message)

    def __repr__(self):
        return f"<AIServiceError {self.code.value} retryable={self.retryable}>"


def classify_error(exc: Exception) -> AIErrorCode:
    """
    Map a provider SDK exception onto an AIErrorCode.

    SDK exceptions expose the HTTP status as ``status_code``; the message
    is inspected for content-filter and token-limit hints.
    """
    if isinstance(exc, AIServiceError):
        return exc.code

    status = getattr(exc, "status_code", None) or getattr(exc, "status", None)
    if status == 429:
        return AIErrorCode.RATE_LIMIT_EXCEEDED
    if status == 401:
        return AIErrorCode.API_KEY_INVALID

    message = str(exc).lower()
    if "content_filter" in message:
        return AIErrorCode.CONTENT_FILTERED
    if "token" in message:
        return AIErrorCode.TOKEN_LIMIT_EXCEEDED
    if isinstance(exc, TimeoutError) or "timeout" in type(exc).__name__.lower():
        return AIErrorCode.TIMEOUT
    return AIErrorCode.SERVICE_UNAVAILABLE


def to_service_error(exc: Exception, message: str | None = None) -> AIServiceError:
    if isinstance(exc, AIServiceError) and message is None:
        return exc
    code = classify_error(exc)
    return AIServiceError(message or str(exc) or code.value, code)


# ── Provider Abstract Base ────────────────────────────────────────────────────

class LLMProvider(ABC):
    """Abstract interface for LLM providers."""

    @abstractmethod
    def chat(self, messages: list, model: str, **kwargs) -> dict:
        """
        Send a chat completion request.

        Args:
            messages: List of {"role": "...", "content": "..."} dicts.
            model: Model identifier string.
            **kwargs: temperature, max_tokens, etc.

        Returns:
            dict with keys: content, prompt_tokens, completion_tokens, model
        """
        ...


# ── Anthropic Provider ────────────────────────────────────────────────────────

class AnthropicProvider(LLMProvider):
    """Claude API (Anthropic) provider."""

    def __init__(self, timeout: float = 30.0):
        self.api_key = os.getenv("ANTHROPIC_API_KEY", "")
        self.timeout = timeout
        self._client = None

    def _get_client(self):
        if self._client is None:
            try:
                import anthropic
            except ImportError:
                raise RuntimeError("anthropic package not installed. Run: pip install anthropic")
            # Retries are owned by LLMGateway.
            self._client = anthropic.Anthropic(
                api_key=self.api_key, timeout=self.timeout, max_retries=0,
            )
        return self._client

    def chat(self, messages: list, model: str = "claude-3-5-haiku-20241022", **kwargs) -> dict:
        client = self._get_client()

        # Separate system message
        system_msg = ""
        chat_messages = []
        for m in messages:
            if m["role"] == "system":
                system_msg = m["content"]
            else:
                chat_messages.append(m)

        params = {
            "model": model,
            "messages": chat_messages,
            "max_tokens": kwargs.get("max_tokens", 2000),
            "temperature": kwargs.get("temperature", 0.3),
        }
        if system_msg:
            params["system"] = system_msg

        response = client.messages.create(**params)

        return {
            "content": response.content[0].text,
            "prompt_tokens": response.usage.input_tokens,
            "completion_tokens": response.usage.output_tokens,
            "model": model,
        }


# ── OpenAI Provider ───────────────────────────────────────────────────────────

class OpenAIProvider(LLMProvider):
    """OpenAI GPT provider."""

    def __init__(self, timeout: float = 30.0):
        self.api_key = os.getenv("OPENAI_API_KEY", "")
        self.timeout = timeout
        self._client = None

    def _get_client(self):
        if self._client is None:
            try:
                import openai
            except ImportError:
                raise RuntimeError("openai package not installed. Run: pip install openai")
            self._client = openai.OpenAI(
                api_key=self.api_key, timeout=self.timeout, max_retries=0,
            )
        return self._client

    def chat(self, messages: list, model: str = "gpt-4o-mini", **kwargs) -> dict:
        client = self._get_client()
        response = client.chat.completions.create(
            model=model,
            messages=messages,
            max_tokens=kwargs.get("max_tokens", 2000),
            temperature=kwargs.get("temperature", 0.3),
        )
        choice = response.choices[0]
        return {
            "content": choice.message.content or "",
            "prompt_tokens": response.usage.prompt_tokens,
            "completion_tokens": response.usage.completion_tokens,
            "model": model,
        }


# ── Local Stub Provider (for dev/test without API keys) ──────────────────────

class LocalStubProvider(LLMProvider):
    """
    Local stub that returns a deterministic review for dev/testing.
    No API key required.
    """

    def chat(self, messages: list, model: str = "local-stub", **kwargs) -> dict:
        user_msg = ""
        for m in reversed(messages):
            if m["role"] == "user":
                user_msg = m["content"]
                break

        content = self._generate_stub_review(user_msg)
        return {
            "content": content,
            "prompt_tokens": len(user_msg.split()) * 2,  # rough estimate
            "completion_tokens": len(content.split()) * 2,
            "model": "local-stub",
        }

    @staticmethod
    def _generate_stub_review(user_msg: str) -> str:
        words = len(user_msg.split())
        score = min(95, 60 + words // 25)
        return json.dumps({
            "overallScore": score,
            "suggestions": [
                {
                    "id": "stub-1",
                    "type": "improvement",
                    "severity": "low",
                    "title": "Clarify terminology",
                    "description": "Define domain terms on first use.",
                    "reasoning": "Shared vocabulary reduces review churn.",
                    "category": "clarity",
                },
            ],
            "completenessCheck": {"score": score, "missingElements": [], "recommendations": []},
            "qualityMetrics": {
                "clarity": score, "completeness": score, "consistency": score,
                "testability": score, "traceability": score,
            },
            "complianceIssues": [],
        })


# ── LLM Gateway (Main Interface) ─────────────────────────────────────────────

class LLMGateway:
    """
    Central gateway for all LLM calls.

    Features:
        - Provider routing based on model name
        - Retry with exponential backoff for retryable failures
        - Overall deadline across attempts

    Usage:
        gw = LLMGateway(model="gpt-4o-mini", timeout=30, max_retries=3)
        result = gw.chat(messages=[{"role": "user", "content": "Review..."}])
    """

    # Model → provider mapping
    PROVIDER_MAP = {
        # Anthropic
        "claude-3-5-haiku-20241022": "anthropic",
        "claude-3-5-sonnet-20241022": "anthropic",
        # OpenAI
        "gpt-4o-mini": "openai",
        "gpt-4o": "openai",
        "gpt-4-turbo": "openai",
        "gpt-4": "openai",
        # Local stub (dev/test)
        "local-stub": "local",
    }

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        *,
        timeout: float = 30.0,
        max_retries: int = 3,
        backoff_base: float = 1.0,
        deadline: float | None = None,
        providers: dict | None = None,
        stub_fallback: bool = True,
    ):
        self.model = model
        self.timeout = timeout
        self.max_retries = max(0, max_retries)
        self.backoff_base = backoff_base
        self.deadline = deadline if deadline is not None else timeout * 2
        self._providers = providers if providers is not None else self._init_providers(timeout)
        self._providers.setdefault("local", LocalStubProvider())
        self.stub_fallback = stub_fallback

    @staticmethod
    def _init_providers(timeout: float) -> dict:
        """Register real providers whose API keys are present."""
        providers = {}
        if os.getenv("ANTHROPIC_API_KEY"):
            providers["anthropic"] = AnthropicProvider(timeout=timeout)
        if os.getenv("OPENAI_API_KEY"):
            providers["openai"] = OpenAIProvider(timeout=timeout)
        return providers

    def _get_provider(self, model: str) -> tuple[LLMProvider, str]:
        """
        Resolve model to provider. Falls back to the local stub when the real
        provider is unavailable and ``stub_fallback`` is on.
        Returns (provider, provider_name).

        Raises:
            AIServiceError: API_KEY_INVALID when the provider is unavailable and
                fallback is off.
        """
        provider_name = self.PROVIDER_MAP.get(model, "local")

        if provider_name in self._providers:
            return self._providers[provider_name], provider_name

        if not self.stub_fallback:
            raise AIServiceError(
                f"Provider '{provider_name}' not configured for model '{model}'",
                AIErrorCode.API_KEY_INVALID,
            )

        logger.warning(
            "Provider '%s' not available (no API key?). Falling back to local stub for model '%s'.",
            provider_name, model,
        )
        return self._providers["local"], "local"

    def chat(self, messages: list, model: str | None = None, **kwargs) -> dict:
        """
        Send a chat completion request with classified retry.

        Only RATE_LIMIT_EXCEEDED, SERVICE_UNAVAILABLE and TIMEOUT are retried,
        up to ``max_retries`` extra attempts, with backoff
        ``backoff_base * 2**attempt``.  No new attempt starts once the overall
        deadline would be exceeded.

        Returns:
            dict: {content, prompt_tokens, completion_tokens, model, latency_ms, provider}

        Raises:
            AIServiceError: the classified failure of the last attempt.
        """
        model = model or self.model
        provider, provider_name = self._get_provider(model)
        deadline_at = time.monotonic() + self.deadline

        attempt = 0
        while True:
            start_time = time.monotonic()
            try:
                result = provider.chat(messages, model, **kwargs)
                result["latency_ms"] = int((time.monotonic() - start_time) * 1000)
                result["provider"] = provider_name
                return result
            except Exception as exc:
                error = to_service_error(exc)
                logger.warning(
                    "LLM call attempt %d/%d failed: %s",
                    attempt + 1, self.max_retries + 1, exc,
                    extra={"ai_code": error.code.value},
                )
                if not error.retryable or attempt >= self.max_retries:
                    raise error from exc

                backoff = self.backoff_base * (2 ** attempt)
                if time.monotonic() + backoff >= deadline_at:
                    raise AIServiceError(
                        f"AI call deadline exceeded after {attempt + 1} attempts",
                        AIErrorCode.TIMEOUT,
                    ) from exc
                threading.Event().wait(backoff)
                attempt += 1
