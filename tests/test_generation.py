"""Tests for the generation client against a mocked HTTP transport."""

from __future__ import annotations

import json
from collections.abc import Callable

import httpx
import pytest

from maestro.generation import GenerationClient, extract_generic_text
from maestro.models import GenerationOptions, ProviderType

Handler = Callable[[httpx.Request], httpx.Response]


def _client(handler: Handler, *, max_retries: int = 0, api_key: str | None = "test-key") -> GenerationClient:
    return GenerationClient(
        api_key=api_key,
        gemini_base_url="https://gemini.test/v1beta/",
        max_retries=max_retries,
        retry_backoff_secs=0,
        transport=httpx.MockTransport(handler),
    )


def _gemini_body(text: str) -> dict:
    return {
        "candidates": [{"content": {"parts": [{"text": text}]}}],
        "usageMetadata": {"promptTokenCount": 7, "candidatesTokenCount": 3},
    }


class TestGemini:
    @pytest.mark.asyncio
    async def test_request_shape_and_text(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=_gemini_body("hello"))

        client = _client(handler)
        options = GenerationOptions(
            model="gemini-2.5-flash",
            system_instruction="be brief",
            temperature=0.2,
            is_json_output=True,
            disable_thinking=True,
        )

        response = await client.generate("Say hi", options)
        await client.close()

        assert response.text == "hello"
        assert response.error is None
        assert response.usage == {"prompt_tokens": 7, "completion_tokens": 3}
        request = seen[0]
        assert str(request.url) == "https://gemini.test/v1beta/models/gemini-2.5-flash:generateContent"
        assert request.headers["x-goog-api-key"] == "test-key"
        payload = json.loads(request.content)
        assert payload["contents"][0]["parts"][0]["text"] == "Say hi"
        assert payload["systemInstruction"]["parts"][0]["text"] == "be brief"
        assert payload["generationConfig"] == {
            "responseMimeType": "application/json",
            "temperature": 0.2,
            "thinkingConfig": {"thinkingBudget": 0},
        }

    @pytest.mark.asyncio
    async def test_step_key_overrides_global(self) -> None:
        keys: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            keys.append(request.headers["x-goog-api-key"])
            return httpx.Response(200, json=_gemini_body("x"))

        client = _client(handler)
        await client.generate("p", GenerationOptions(model="m", api_key="step-key"))
        assert keys == ["step-key"]

    @pytest.mark.asyncio
    async def test_missing_key(self) -> None:
        client = _client(lambda r: httpx.Response(200, json=_gemini_body("x")), api_key="")
        response = await client.generate("p", GenerationOptions(model="m"))
        assert response.text is None
        assert "API key is not configured" in (response.error or "")

    @pytest.mark.asyncio
    async def test_http_error_becomes_response_error(self) -> None:
        client = _client(lambda r: httpx.Response(400, text="API key not valid"))
        response = await client.generate("p", GenerationOptions(model="m"))
        assert response.error is not None
        assert response.error.startswith("Gemini API Error (400)")
        assert "API key not valid" in response.error

    @pytest.mark.asyncio
    async def test_blocked_prompt(self) -> None:
        client = _client(lambda r: httpx.Response(200, json={"promptFeedback": {"blockReason": "SAFETY"}}))
        response = await client.generate("p", GenerationOptions(model="m"))
        assert response.error == "Gemini API Error: empty response (SAFETY)."

    @pytest.mark.asyncio
    async def test_transient_errors_are_retried(self) -> None:
        statuses = [503, 200]

        def handler(request: httpx.Request) -> httpx.Response:
            status = statuses.pop(0)
            if status != 200:
                return httpx.Response(status, text="unavailable")
            return httpx.Response(200, json=_gemini_body("second time lucky"))

        client = _client(handler, max_retries=1)
        response = await client.generate("p", GenerationOptions(model="m"))
        assert response.text == "second time lucky"
        assert statuses == []

    @pytest.mark.asyncio
    async def test_client_errors_are_not_retried(self) -> None:
        calls: list[int] = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(1)
            return httpx.Response(404, text="no such model")

        client = _client(handler, max_retries=3)
        response = await client.generate("p", GenerationOptions(model="m"))
        assert response.error is not None
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_connection_failure(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = _client(handler)
        response = await client.generate("p", GenerationOptions(model="m"))
        assert response.error == "Gemini API Error: connection refused"


class TestOtherProviders:
    @pytest.mark.asyncio
    async def test_generic_rest(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"generated_text": "rest reply"})

        client = _client(handler)
        options = GenerationOptions(
            model="local-model",
            provider_type=ProviderType.GENERIC_REST,
            api_endpoint="https://llm.test/generate",
            api_key="secret",
            top_k=40,
        )

        response = await client.generate("p", options)

        assert response.text == "rest reply"
        assert seen[0].headers["Authorization"] == "Bearer secret"
        assert json.loads(seen[0].content) == {"model": "local-model", "prompt": "p", "top_k": 40}

    @pytest.mark.asyncio
    async def test_generic_rest_unrecognised_body(self) -> None:
        client = _client(lambda r: httpx.Response(200, json={"weird": 1}))
        options = GenerationOptions(
            model="m", provider_type=ProviderType.GENERIC_REST, api_endpoint="https://llm.test"
        )
        response = await client.generate("p", options)
        assert response.error == "Could not extract meaningful text from generic REST API response."

    @pytest.mark.asyncio
    async def test_openai_compatible(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "choices": [{"message": {"role": "assistant", "content": "chat reply"}}],
                    "usage": {"prompt_tokens": 5, "completion_tokens": 2},
                },
            )

        client = _client(handler)
        options = GenerationOptions(
            model="gpt-x",
            provider_type=ProviderType.OPENAI_COMPATIBLE,
            api_endpoint="https://openrouter.ai/api/v1/",
            system_instruction="sys",
        )

        response = await client.generate("hi", options)

        assert response.text == "chat reply"
        assert response.usage == {"prompt_tokens": 5, "completion_tokens": 2}
        request = seen[0]
        assert str(request.url) == "https://openrouter.ai/api/v1/chat/completions"
        assert request.headers["X-Title"] == "Maestro Orchestrator"
        assert json.loads(request.content)["messages"] == [
            {"role": "system", "content": "sys"},
            {"role": "user", "content": "hi"},
        ]

    @pytest.mark.asyncio
    async def test_openai_compatible_bad_body(self) -> None:
        client = _client(lambda r: httpx.Response(200, json={"choices": []}))
        options = GenerationOptions(
            model="m", provider_type=ProviderType.OPENAI_COMPATIBLE, api_endpoint="https://llm.test"
        )
        response = await client.generate("p", options)
        assert (response.error or "").startswith("Chat Completions API Error: Unexpected chat completion body")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("provider", [ProviderType.GENERIC_REST, ProviderType.OPENAI_COMPATIBLE])
    async def test_missing_endpoint(self, provider: ProviderType) -> None:
        client = _client(lambda r: httpx.Response(500))
        response = await client.generate("p", GenerationOptions(model="m", provider_type=provider))
        assert "API Endpoint is not configured" in (response.error or "")


@pytest.mark.asyncio
async def test_missing_model_short_circuits() -> None:
    client = _client(lambda r: httpx.Response(500))
    response = await client.generate("p", GenerationOptions(model=""))
    assert response.error == "LLM Model not specified in agent step."


@pytest.mark.parametrize(
    ("body", "is_json", "expected"),
    [
        ("plain", False, "plain"),
        ({"text": "t"}, False, "t"),
        ({"response": "r"}, False, "r"),
        ({"choices": [{"text": "c"}]}, False, "c"),
        ({"choices": [{"message": {"content": "m"}}]}, False, "m"),
        ({"keywords": ["a"]}, True, '{\n  "keywords": [\n    "a"\n  ]\n}'),
        ({"keywords": ["a"]}, False, None),
        (42, False, None),
    ],
)
def test_extract_generic_text(body: object, is_json: bool, expected: str | None) -> None:
    assert extract_generic_text(body, is_json) == expected
