"""Provider adapters normalising requests and responses per AI backend."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from types import TracebackType
from typing import Any, Literal

import httpx

from persona_digest.core.config import LlmSettings

LOGGER = logging.getLogger(__name__)

UseCase = Literal["fast", "balanced", "detailed", "creative"]
ProviderErrorKind = Literal[
    "rate_limited",
    "auth_failed",
    "transient_unavailable",
    "unsupported_provider",
]
ResponseKind = Literal["chat", "message", "inference"]

USER_AGENT = "PersonaDigest/1.0"


class ProviderError(RuntimeError):
    """Raised when the AI provider cannot produce a completion."""

    def __init__(
        self,
        kind: ProviderErrorKind,
        message: str,
        *,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code


@dataclass(frozen=True, slots=True)
class ModelProfile:
    """Model choice and generation limits for one use case."""

    use_case: UseCase
    model: str
    max_tokens: int
    temperature: float


@dataclass(frozen=True, slots=True)
class ProviderResponse:
    """Canonical completion decoded from a provider specific payload."""

    kind: ResponseKind
    text: str
    total_tokens: int | None = None


# Output token ceiling and temperature per use case, before the provider cap.
_USE_CASE_LIMITS: dict[UseCase, tuple[int, float]] = {
    "fast": (512, 0.1),
    "balanced": (1024, 0.1),
    "detailed": (2048, 0.2),
    "creative": (1024, 0.7),
}


class ProviderAdapter:
    """Base adapter: model catalogue plus request/response shape for a backend."""

    name = "provider"
    base_url = ""
    max_tokens = 4096
    models: Mapping[str, str] = {}
    default_model = ""
    response_kind: ResponseKind = "chat"

    def __init__(self, *, model_override: str | None = None) -> None:
        self._model_override = model_override

    def profile(self, use_case: UseCase) -> ModelProfile:
        """Return the model/budget profile for ``use_case``."""
        ceiling, temperature = _USE_CASE_LIMITS.get(
            use_case, _USE_CASE_LIMITS["balanced"]
        )
        model_key = "fast" if use_case == "fast" else "balanced"
        model = (
            self._model_override or self.models.get(model_key) or self.default_model
        )
        return ModelProfile(
            use_case=use_case,
            model=model,
            max_tokens=min(ceiling, self.max_tokens),
            temperature=temperature,
        )

    def auth_headers(self, api_key: str) -> dict[str, str]:
        """Return headers authenticating requests with ``api_key``."""
        return {"Authorization": f"Bearer {api_key}"}

    def build_request(
        self, prompt: str, profile: ModelProfile
    ) -> tuple[str, dict[str, Any]]:
        """Return the request path and JSON payload for ``prompt``."""
        raise NotImplementedError

    def decode(self, raw: Any) -> ProviderResponse:
        """Extract the completion text from a raw response body."""
        raise NotImplementedError


class OpenAIAdapter(ProviderAdapter):
    """OpenAI chat completions API."""

    name = "openai"
    base_url = "https://api.openai.com/v1"
    max_tokens = 4096
    models = {"fast": "gpt-4o-mini", "balanced": "gpt-4o"}
    default_model = "gpt-4o-mini"

    def build_request(
        self, prompt: str, profile: ModelProfile
    ) -> tuple[str, dict[str, Any]]:
        payload = {
            "model": profile.model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": profile.max_tokens,
            "temperature": profile.temperature,
            "stream": False,
        }
        return "/chat/completions", payload

    def decode(self, raw: Any) -> ProviderResponse:
        try:
            text = raw["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise _shape_error(self.name) from exc
        usage = raw.get("usage") if isinstance(raw, dict) else None
        total = usage.get("total_tokens") if isinstance(usage, dict) else None
        return ProviderResponse(kind="chat", text=_as_text(text), total_tokens=total)


class GroqAdapter(OpenAIAdapter):
    """Groq's OpenAI compatible endpoint."""

    name = "groq"
    base_url = "https://api.groq.com/openai/v1"
    max_tokens = 8192
    models = {"fast": "llama-3.1-8b-instant", "balanced": "llama-3.3-70b-versatile"}
    default_model = "llama-3.1-8b-instant"


class AnthropicAdapter(ProviderAdapter):
    """Anthropic messages API."""

    name = "anthropic"
    base_url = "https://api.anthropic.com/v1"
    max_tokens = 4096
    models = {
        "fast": "claude-3-5-haiku-latest",
        "balanced": "claude-3-5-sonnet-latest",
    }
    default_model = "claude-3-5-haiku-latest"
    response_kind: ResponseKind = "message"
    api_version = "2023-06-01"

    def auth_headers(self, api_key: str) -> dict[str, str]:
        return {"x-api-key": api_key, "anthropic-version": self.api_version}

    def build_request(
        self, prompt: str, profile: ModelProfile
    ) -> tuple[str, dict[str, Any]]:
        payload = {
            "model": profile.model,
            "max_tokens": profile.max_tokens,
            "temperature": profile.temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        return "/messages", payload

    def decode(self, raw: Any) -> ProviderResponse:
        try:
            blocks = raw["content"]
            text = "".join(
                block.get("text", "")
                for block in blocks
                if isinstance(block, dict) and block.get("type", "text") == "text"
            )
        except (KeyError, TypeError) as exc:
            raise _shape_error(self.name) from exc
        if not blocks:
            raise _shape_error(self.name)
        usage = raw.get("usage") or {}
        total = None
        if isinstance(usage, dict) and "input_tokens" in usage:
            total = int(usage.get("input_tokens", 0)) + int(
                usage.get("output_tokens", 0)
            )
        return ProviderResponse(kind="message", text=text, total_tokens=total)


class HuggingFaceAdapter(ProviderAdapter):
    """Hugging Face hosted inference API."""

    name = "huggingface"
    base_url = "https://api-inference.huggingface.co/models"
    max_tokens = 1024
    models = {"fast": "facebook/bart-large-cnn", "balanced": "facebook/bart-large-cnn"}
    default_model = "facebook/bart-large-cnn"
    response_kind: ResponseKind = "inference"

    def build_request(
        self, prompt: str, profile: ModelProfile
    ) -> tuple[str, dict[str, Any]]:
        payload = {
            "inputs": prompt,
            "parameters": {
                "max_length": profile.max_tokens,
                "temperature": profile.temperature,
            },
        }
        return f"/{profile.model}", payload

    def decode(self, raw: Any) -> ProviderResponse:
        first = raw[0] if isinstance(raw, list) and raw else None
        if not isinstance(first, dict):
            raise _shape_error(self.name)
        text = first.get("summary_text") or first.get("generated_text")
        if text is None:
            raise _shape_error(self.name)
        return ProviderResponse(kind="inference", text=_as_text(text))


ADAPTERS: dict[str, type[ProviderAdapter]] = {
    adapter.name: adapter
    for adapter in (GroqAdapter, OpenAIAdapter, AnthropicAdapter, HuggingFaceAdapter)
}


def create_adapter(settings: LlmSettings) -> ProviderAdapter:
    """Select the adapter for the configured provider."""
    adapter_cls = ADAPTERS.get(settings.provider.lower())
    if adapter_cls is None:
        raise ProviderError(
            "unsupported_provider", f"Unsupported AI provider: {settings.provider}"
        )
    return adapter_cls(model_override=settings.model)


class HttpxTransport:
    """Async HTTP channel to one provider backed by ``httpx``."""

    def __init__(
        self,
        base_url: str,
        *,
        headers: Mapping[str, str] | None = None,
        timeout_seconds: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            headers={
                "Content-Type": "application/json",
                "User-Agent": USER_AGENT,
                **(headers or {}),
            },
            timeout=timeout_seconds,
        )

    async def invoke(self, path: str, payload: Mapping[str, Any]) -> Any:
        """POST ``payload`` and return the decoded JSON body."""
        LOGGER.debug("AI request to %s", path)
        response = await self._client.post(path, json=dict(payload))
        response.raise_for_status()
        return response.json()

    async def aclose(self) -> None:
        """Release pooled connections."""
        await self._client.aclose()

    async def __aenter__(self) -> HttpxTransport:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()


def create_transport(settings: LlmSettings, adapter: ProviderAdapter) -> HttpxTransport:
    """Build the transport for ``adapter`` using configured credentials."""
    if not settings.api_key:
        raise ProviderError(
            "auth_failed",
            f"Missing API key for {adapter.name}; set PERSONA_DIGEST_LLM__API_KEY",
        )
    return HttpxTransport(
        settings.base_url or adapter.base_url,
        headers=adapter.auth_headers(settings.api_key),
        timeout_seconds=settings.timeout_seconds,
    )


def classify_status(status_code: int, provider: str) -> ProviderError:
    """Map an HTTP status from ``provider`` onto a :class:`ProviderError`."""
    if status_code == 429:
        return ProviderError(
            "rate_limited",
            "AI service rate limit exceeded. Please try again later.",
            status_code=status_code,
        )
    if status_code in (401, 403):
        return ProviderError(
            "auth_failed",
            "AI service authentication failed. Please check the API key.",
            status_code=status_code,
        )
    if status_code >= 500:
        return ProviderError(
            "transient_unavailable",
            "AI service is temporarily unavailable. Please try again later.",
            status_code=status_code,
        )
    return ProviderError(
        "transient_unavailable",
        f"{provider} rejected the request with status {status_code}",
        status_code=status_code,
    )


def _shape_error(provider: str) -> ProviderError:
    return ProviderError(
        "transient_unavailable", f"{provider} returned an unexpected response shape"
    )


def _as_text(value: Any) -> str:
    return value if isinstance(value, str) else str(value)


__all__ = [
    "ADAPTERS",
    "AnthropicAdapter",
    "GroqAdapter",
    "HttpxTransport",
    "HuggingFaceAdapter",
    "ModelProfile",
    "OpenAIAdapter",
    "ProviderAdapter",
    "ProviderError",
    "ProviderErrorKind",
    "ProviderResponse",
    "UseCase",
    "classify_status",
    "create_adapter",
    "create_transport",
]
