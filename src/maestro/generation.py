"""Generation client – the one place that talks to text-generation backends.

Three provider families are supported:

* ``google_gemini`` – the Gemini REST ``models/{model}:generateContent`` API.
* ``generic_rest`` – any JSON endpoint accepting ``{"model", "prompt", ...}``.
* ``openai_compatible`` – an OpenAI-style ``/chat/completions`` endpoint
  (vLLM, OpenRouter, ...).

:meth:`GenerationClient.generate` **never raises**: every transport or
protocol failure is folded into ``GenerationResponse.error`` so callers can
treat it as a normal result.
"""

from __future__ import annotations

import json
from typing import Any, Protocol

import httpx
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from maestro.config import settings
from maestro.models import GenerationOptions, GenerationResponse, ProviderType
from maestro.utils.logging import get_logger, truncate_for_log

logger = get_logger(__name__)


class TextGenerator(Protocol):
    """Anything that can turn a prompt into text (real client or test fake)."""

    async def generate(self, prompt: str, options: GenerationOptions) -> GenerationResponse:
        ...


class GenerationProtocolError(Exception):
    """The backend answered, but not with anything we can use."""


def _is_transient(exc: BaseException) -> bool:
    if isinstance(exc, (httpx.ConnectError, httpx.ReadTimeout)):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        code = exc.response.status_code
        return code == 429 or code >= 500
    return False


def _format_exception(exc: BaseException) -> str:
    """Return the most informative error string for nested retry exceptions."""
    if isinstance(exc, RetryError):
        last_exc = exc.last_attempt.exception()
        if last_exc is not None:
            return str(last_exc)
    return str(exc)


def extract_generic_text(data: Any, is_json_output: bool = False) -> str | None:
    """Pull generated text out of the many shapes a generic REST backend returns."""
    if isinstance(data, str):
        return data
    if isinstance(data, dict):
        for key in ("text", "response", "generated_text"):
            if isinstance(data.get(key), str):
                return data[key]
        choices = data.get("choices")
        if isinstance(choices, list) and choices:
            first = choices[0] or {}
            if isinstance(first.get("text"), str):
                return first["text"]
            message = first.get("message") or {}
            if isinstance(message.get("content"), str):
                return message["content"]
    if is_json_output and isinstance(data, (dict, list)):
        return json.dumps(data, indent=2)
    return None


class GenerationClient:
    """Async client dispatching prompts to the configured provider."""

    def __init__(
        self,
        *,
        api_key: str | None = None,
        gemini_base_url: str | None = None,
        timeout_secs: float | None = None,
        max_retries: int | None = None,
        retry_backoff_secs: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.google_api_key
        self.gemini_base_url = (gemini_base_url or settings.gemini_base_url).rstrip("/")
        self.max_retries = settings.max_retries if max_retries is None else max_retries
        self.retry_backoff_secs = (
            settings.retry_backoff_secs if retry_backoff_secs is None else retry_backoff_secs
        )
        timeout = timeout_secs or settings.request_timeout_secs
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=10.0),
            transport=transport,
        )

    # ── public API ───────────────────────────────────────────────────

    async def generate(self, prompt: str, options: GenerationOptions) -> GenerationResponse:
        if not options.model:
            return GenerationResponse(error="LLM Model not specified in agent step.")

        if settings.log_agent_io:
            logger.info(
                "generation.prompt",
                provider=options.provider_type.value,
                model=options.model,
                agent_id=options.agent_id,
                prompt=truncate_for_log(prompt, settings.log_max_chars),
            )

        try:
            if options.provider_type == ProviderType.GOOGLE_GEMINI:
                response = await self._with_retries(self._call_gemini, prompt, options)
            elif options.provider_type == ProviderType.GENERIC_REST:
                response = await self._with_retries(self._call_generic_rest, prompt, options)
            elif options.provider_type == ProviderType.OPENAI_COMPATIBLE:
                response = await self._with_retries(self._call_openai_compatible, prompt, options)
            else:
                return GenerationResponse(
                    error=f"Unsupported LLM provider type: {options.provider_type}"
                )
        except httpx.HTTPStatusError as exc:
            logger.error(
                "generation.http_error",
                provider=options.provider_type.value,
                status=exc.response.status_code,
            )
            return GenerationResponse(
                error=f"{_provider_label(options)} Error ({exc.response.status_code}): {exc}"
            )
        except Exception as exc:
            message = _format_exception(exc)
            logger.error(
                "generation.failed",
                provider=options.provider_type.value,
                error=message,
                error_type=type(exc).__name__,
            )
            return GenerationResponse(error=f"{_provider_label(options)} Error: {message}")

        if settings.log_agent_io and response.text:
            logger.info(
                "generation.output",
                provider=options.provider_type.value,
                output=truncate_for_log(response.text, settings.log_max_chars),
            )
        return response

    async def close(self) -> None:
        await self._client.aclose()

    # ── internal transport ───────────────────────────────────────────

    async def _with_retries(self, call, prompt: str, options: GenerationOptions) -> GenerationResponse:  # type: ignore[no-untyped-def]
        async for attempt in AsyncRetrying(
            retry=retry_if_exception(_is_transient),
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.retry_backoff_secs, min=0, max=15),
            before_sleep=self._log_retry,
            reraise=True,
        ):
            with attempt:
                return await call(prompt, options)
        raise AssertionError("unreachable")  # pragma: no cover

    @staticmethod
    def _log_retry(retry_state) -> None:  # type: ignore[no-untyped-def]
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "generation.retry",
            attempt=retry_state.attempt_number,
            error=str(exc) if exc else "",
        )

    async def _post(self, url: str, payload: dict[str, Any], headers: dict[str, str]) -> Any:
        resp = await self._client.post(url, json=payload, headers=headers)
        try:
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            detail = resp.text[:150] if resp.text else "<no response body>"
            raise httpx.HTTPStatusError(
                f"{resp.reason_phrase}. Details: {detail}",
                request=exc.request,
                response=exc.response,
            ) from exc
        try:
            return resp.json()
        except ValueError as exc:
            raise GenerationProtocolError(f"Response was not valid JSON: {exc}") from exc

    async def _call_gemini(self, prompt: str, options: GenerationOptions) -> GenerationResponse:
        api_key = options.api_key or self.api_key
        if not api_key:
            return GenerationResponse(
                error=(
                    "Google Gemini API key is not configured for this step "
                    "and no global key (GOOGLE_API_KEY) is set."
                )
            )

        config: dict[str, Any] = {}
        if options.is_json_output:
            config["responseMimeType"] = "application/json"
        if options.temperature is not None:
            config["temperature"] = options.temperature
        if options.top_k is not None:
            config["topK"] = options.top_k
        if options.top_p is not None:
            config["topP"] = options.top_p
        if options.disable_thinking and "flash" in options.model.lower():
            config["thinkingConfig"] = {"thinkingBudget": 0}

        payload: dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": config,
        }
        if options.system_instruction:
            payload["systemInstruction"] = {"parts": [{"text": options.system_instruction}]}

        url = f"{self.gemini_base_url}/models/{options.model}:generateContent"
        body = await self._post(url, payload, {"x-goog-api-key": api_key})

        candidates = body.get("candidates") or []
        parts = ((candidates[0].get("content") or {}).get("parts") or []) if candidates else []
        text = "".join(p.get("text", "") for p in parts if isinstance(p, dict))
        if not candidates:
            reason = (body.get("promptFeedback") or {}).get("blockReason", "no candidates")
            return GenerationResponse(error=f"Gemini API Error: empty response ({reason}).")

        usage_meta = body.get("usageMetadata") or {}
        usage = {
            "prompt_tokens": int(usage_meta.get("promptTokenCount", 0)),
            "completion_tokens": int(usage_meta.get("candidatesTokenCount", 0)),
        }
        return GenerationResponse(text=text, usage=usage)

    async def _call_generic_rest(self, prompt: str, options: GenerationOptions) -> GenerationResponse:
        if not options.api_endpoint:
            return GenerationResponse(
                error="API Endpoint is not configured for 'generic_rest' provider step."
            )

        payload: dict[str, Any] = {"model": options.model, "prompt": prompt}
        if options.system_instruction:
            payload["system_instruction"] = options.system_instruction
        if options.temperature is not None:
            payload["temperature"] = options.temperature
        if options.top_k is not None:
            payload["top_k"] = options.top_k
        if options.top_p is not None:
            payload["top_p"] = options.top_p
        if options.is_json_output:
            payload["response_format"] = {"type": "json_object"}

        headers = {"Accept": "application/json"}
        if options.api_key:
            headers["Authorization"] = f"Bearer {options.api_key}"

        body = await self._post(options.api_endpoint, payload, headers)
        text = extract_generic_text(body, options.is_json_output)
        if text is None:
            logger.warning("generation.unrecognised_body", body=truncate_for_log(str(body), 300))
            return GenerationResponse(
                error="Could not extract meaningful text from generic REST API response."
            )
        return GenerationResponse(text=text)

    async def _call_openai_compatible(
        self, prompt: str, options: GenerationOptions
    ) -> GenerationResponse:
        if not options.api_endpoint:
            return GenerationResponse(
                error="API Endpoint is not configured for 'openai_compatible' provider step."
            )

        messages: list[dict[str, str]] = []
        if options.system_instruction:
            messages.append({"role": "system", "content": options.system_instruction})
        messages.append({"role": "user", "content": prompt})

        payload: dict[str, Any] = {"model": options.model, "messages": messages}
        if options.temperature is not None:
            payload["temperature"] = options.temperature
        if options.top_p is not None:
            payload["top_p"] = options.top_p
        if options.is_json_output:
            payload["response_format"] = {"type": "json_object"}

        headers: dict[str, str] = {}
        if options.api_key:
            headers["Authorization"] = f"Bearer {options.api_key}"
        if "openrouter.ai" in options.api_endpoint:
            headers["HTTP-Referer"] = "https://github.com/maestro-orchestrator"
            headers["X-Title"] = "Maestro Orchestrator"

        url = options.api_endpoint.rstrip("/") + "/chat/completions"
        body = await self._post(url, payload, headers)
        try:
            text: str = body["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise GenerationProtocolError(f"Unexpected chat completion body: {exc}") from exc
        usage: dict[str, int] = {
            k: int(v) for k, v in (body.get("usage") or {}).items() if isinstance(v, int)
        }
        return GenerationResponse(text=text, usage=usage)


def _provider_label(options: GenerationOptions) -> str:
    return {
        ProviderType.GOOGLE_GEMINI: "Gemini API",
        ProviderType.GENERIC_REST: "Generic REST API",
        ProviderType.OPENAI_COMPATIBLE: "Chat Completions API",
    }.get(options.provider_type, "LLM API")
