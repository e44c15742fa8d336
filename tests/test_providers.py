"""Tests for provider adapters and the httpx transport."""

from __future__ import annotations

import json

import httpx
import pytest

from persona_digest.core.config import LlmSettings
from persona_digest.intelligence.providers import (
    AnthropicAdapter,
    GroqAdapter,
    HttpxTransport,
    HuggingFaceAdapter,
    OpenAIAdapter,
    ProviderError,
    classify_status,
    create_adapter,
    create_transport,
)


def test_create_adapter_selects_configured_provider() -> None:
    assert isinstance(create_adapter(LlmSettings(provider="groq")), GroqAdapter)
    assert isinstance(create_adapter(LlmSettings(provider="Anthropic")), AnthropicAdapter)


def test_create_adapter_rejects_unknown_provider() -> None:
    with pytest.raises(ProviderError) as excinfo:
        create_adapter(LlmSettings(provider="mystery"))
    assert excinfo.value.kind == "unsupported_provider"


def test_create_transport_requires_api_key() -> None:
    settings = LlmSettings(provider="openai", api_key=None)
    with pytest.raises(ProviderError) as excinfo:
        create_transport(settings, create_adapter(settings))
    assert excinfo.value.kind == "auth_failed"


def test_profiles_follow_use_case_limits() -> None:
    adapter = GroqAdapter()
    fast = adapter.profile("fast")
    detailed = adapter.profile("detailed")
    creative = adapter.profile("creative")

    assert (fast.max_tokens, fast.temperature) == (512, 0.1)
    assert fast.model == "llama-3.1-8b-instant"
    assert (detailed.max_tokens, detailed.temperature) == (2048, 0.2)
    assert detailed.model == "llama-3.3-70b-versatile"
    assert creative.temperature == 0.7


def test_profile_caps_tokens_at_provider_limit() -> None:
    assert HuggingFaceAdapter().profile("detailed").max_tokens == 1024


def test_model_override_applies_to_every_use_case() -> None:
    adapter = OpenAIAdapter(model_override="custom-model")
    assert adapter.profile("fast").model == "custom-model"
    assert adapter.profile("balanced").model == "custom-model"


def test_openai_request_and_decode() -> None:
    adapter = OpenAIAdapter()
    path, payload = adapter.build_request("Hi", adapter.profile("balanced"))

    assert path == "/chat/completions"
    assert payload["messages"] == [{"role": "user", "content": "Hi"}]
    response = adapter.decode(
        {"choices": [{"message": {"content": "Hello"}}], "usage": {"total_tokens": 7}}
    )
    assert response.kind == "chat"
    assert response.text == "Hello"
    assert response.total_tokens == 7


def test_anthropic_decode_joins_text_blocks() -> None:
    adapter = AnthropicAdapter()
    assert adapter.auth_headers("k")["x-api-key"] == "k"
    response = adapter.decode(
        {
            "content": [{"type": "text", "text": "Hel"}, {"type": "text", "text": "lo"}],
            "usage": {"input_tokens": 3, "output_tokens": 2},
        }
    )
    assert response.kind == "message"
    assert response.text == "Hello"
    assert response.total_tokens == 5


def test_huggingface_decode_reads_first_entry() -> None:
    adapter = HuggingFaceAdapter()
    path, payload = adapter.build_request("text", adapter.profile("fast"))

    assert path == "/facebook/bart-large-cnn"
    assert payload["inputs"] == "text"
    assert adapter.decode([{"summary_text": "short"}]).text == "short"


def test_unexpected_shape_is_transient() -> None:
    with pytest.raises(ProviderError) as excinfo:
        OpenAIAdapter().decode({"choices": []})
    assert excinfo.value.kind == "transient_unavailable"


@pytest.mark.parametrize(
    ("status", "kind"),
    [
        (429, "rate_limited"),
        (401, "auth_failed"),
        (403, "auth_failed"),
        (500, "transient_unavailable"),
        (503, "transient_unavailable"),
    ],
)
def test_classify_status(status: int, kind: str) -> None:
    error = classify_status(status, "groq")
    assert error.kind == kind
    assert error.status_code == status


@pytest.mark.asyncio
async def test_httpx_transport_posts_json() -> None:
    seen: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["auth"] = request.headers.get("Authorization")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"ok": True})

    client = httpx.AsyncClient(
        base_url="https://api.example.com/v1",
        headers={"Authorization": "Bearer token"},
        transport=httpx.MockTransport(handler),
    )
    async with HttpxTransport("https://api.example.com/v1", client=client) as transport:
        result = await transport.invoke("/chat/completions", {"model": "m"})

    assert result == {"ok": True}
    assert seen["path"] == "/v1/chat/completions"
    assert seen["auth"] == "Bearer token"
    assert seen["body"] == {"model": "m"}


@pytest.mark.asyncio
async def test_httpx_transport_raises_for_status() -> None:
    client = httpx.AsyncClient(
        base_url="https://api.example.com",
        transport=httpx.MockTransport(lambda request: httpx.Response(429)),
    )
    async with HttpxTransport("https://api.example.com", client=client) as transport:
        with pytest.raises(httpx.HTTPStatusError):
            await transport.invoke("/x", {})
