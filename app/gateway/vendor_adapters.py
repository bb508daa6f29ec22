"""Vendor-Specific Adapters: protocol-level handling for each LLM vendor.

Every adapter exposes the same capability, ``complete(prompt, max_tokens)``,
returning the model's raw reply text. Adapters differ only in request shape
and authentication:

  - OpenAI: chat completions, optional ``response_format: json_object``,
    reasoning models take ``max_completion_tokens`` and no temperature
  - Anthropic: messages API, ``x-api-key`` auth, top-level ``system``
  - Perplexity: OpenAI-compatible shape on its own base URL
  - DeepSeek: OpenAI-compatible shape, JSON mode supported

Adapters are built from an explicit ProviderConfig. A missing API key raises
ConfigurationError inside ``complete()`` before any network call.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Any

import httpx

from app.core.exceptions import (
    ConfigurationError,
    ProviderError,
    ProviderRateLimitError,
    ProviderTimeoutError,
)
from app.gateway.types import (
    DEFAULT_PROVIDER_CONFIGS,
    CompletionRequest,
    CompletionResponse,
    ProviderConfig,
    ProviderVendor,
)

logger = logging.getLogger(__name__)


class BaseVendorAdapter(ABC):
    """Base class for all vendor adapters."""

    vendor: ProviderVendor

    def __init__(self, config: ProviderConfig):
        self.config = config
        defaults = DEFAULT_PROVIDER_CONFIGS.get(self.vendor)
        self.base_url = (config.base_url or (defaults.base_url if defaults else "")).rstrip("/")
        self.model = config.model or (defaults.model if defaults else "")

    @property
    def name(self) -> str:
        return self.vendor.value

    async def complete(
        self,
        prompt: str,
        max_tokens: int = 2000,
        *,
        system_prompt: str = "",
        json_mode: bool = False,
    ) -> str:
        """Send a prompt and return the raw reply text."""
        response = await self.send(
            CompletionRequest(
                prompt=prompt,
                max_tokens=max_tokens,
                system_prompt=system_prompt,
                json_mode=json_mode,
            )
        )
        return response.text

    async def send(self, request: CompletionRequest) -> CompletionResponse:
        """Send a request to the vendor and return a normalized response.

        Raises:
            ConfigurationError: no API key configured (no network call made).
            ProviderRateLimitError: vendor answered 429.
            ProviderTimeoutError: no answer within ``timeout_seconds``.
            ProviderError: any other network failure or non-2xx answer.
        """
        if not self.config.api_key:
            raise ConfigurationError(
                f"Provider '{self.name}' is not configured: set {self.name.upper()}_API_KEY"
            )

        url = self._url()
        payload = self._build_payload(request)
        start = time.monotonic()

        try:
            async with httpx.AsyncClient(timeout=self.config.timeout_seconds) as client:
                resp = await client.post(url, json=payload, headers=self._headers())
        except httpx.TimeoutException as e:
            raise ProviderTimeoutError(
                f"{self.name} timeout after {self.config.timeout_seconds}s",
                error_code="TIMEOUT",
            ) from e
        except httpx.HTTPError as e:
            raise ProviderError(f"{self.name} request failed: {e}", error_code="NETWORK") from e

        latency_ms = int((time.monotonic() - start) * 1000)

        if resp.status_code == 429:
            raise ProviderRateLimitError(f"Rate limited by {self.name}", status_code=429, error_code="429")

        if resp.status_code >= 400:
            error_msg = self._error_message(resp)
            logger.error("%s API %d for model=%s: %s", self.name, resp.status_code, self.model, error_msg)
            raise ProviderError(
                f"{self.name} API error {resp.status_code}: {error_msg}",
                status_code=resp.status_code,
                error_code=str(resp.status_code),
            )

        try:
            data = resp.json()
            response = self._parse_response(data)
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ProviderError(f"{self.name} returned an unexpected response body: {e}") from e

        response.latency_ms = latency_ms
        if response.truncated:
            logger.warning(
                "%s reply truncated at max_tokens=%d (model=%s)", self.name, request.max_tokens, self.model
            )
        return response

    def _url(self) -> str:
        return f"{self.base_url}/chat/completions"

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }

    @staticmethod
    def _error_message(resp: httpx.Response) -> str:
        try:
            body = resp.json()
            error = body.get("error", {})
            if isinstance(error, dict):
                return error.get("message", resp.text[:500])
            return str(error)[:500]
        except ValueError:
            return resp.text[:500]

    @abstractmethod
    def _build_payload(self, request: CompletionRequest) -> dict[str, Any]: ...

    @abstractmethod
    def _parse_response(self, data: dict[str, Any]) -> CompletionResponse: ...


# ---------------------------------------------------------------------------
# OpenAI-compatible chat completions (OpenAI, Perplexity, DeepSeek)
# ---------------------------------------------------------------------------


class ChatCompletionsAdapter(BaseVendorAdapter):
    """Adapter for any vendor speaking the OpenAI chat completions protocol."""

    supports_json_mode = True

    def _messages(self, request: CompletionRequest) -> list[dict[str, str]]:
        messages = []
        if request.system_prompt:
            messages.append({"role": "system", "content": request.system_prompt})
        messages.append({"role": "user", "content": request.prompt})
        return messages

    def _build_payload(self, request: CompletionRequest) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": self.model,
            "messages": self._messages(request),
            "temperature": self.config.temperature,
            "max_tokens": request.max_tokens,
        }
        if request.json_mode and self.supports_json_mode:
            payload["response_format"] = {"type": "json_object"}
        return payload

    def _parse_response(self, data: dict[str, Any]) -> CompletionResponse:
        choice = data["choices"][0]
        usage = data.get("usage") or {}
        return CompletionResponse(
            vendor=self.vendor,
            text=choice["message"].get("content") or "",
            model_version=data.get("model", self.model),
            input_tokens=usage.get("prompt_tokens", 0),
            output_tokens=usage.get("completion_tokens", 0),
            finish_reason=choice.get("finish_reason") or "",
            vendor_raw=data,
        )


# GPT-5 series and o-series are reasoning models that do NOT support
# temperature or max_tokens; they require max_completion_tokens instead.
_REASONING_MODEL_PREFIXES = ("gpt-5", "o1", "o3", "o4")


def _is_reasoning_model(model: str) -> bool:
    """Check if a model is a reasoning model (GPT-5 / o-series)."""
    return any(model.startswith(p) for p in _REASONING_MODEL_PREFIXES)


class OpenAIAdapter(ChatCompletionsAdapter):
    """OpenAI Chat Completions adapter."""

    vendor = ProviderVendor.OPENAI

    def _build_payload(self, request: CompletionRequest) -> dict[str, Any]:
        payload = super()._build_payload(request)
        if _is_reasoning_model(self.model):
            payload.pop("temperature", None)
            payload["max_completion_tokens"] = payload.pop("max_tokens")
        return payload


class PerplexityAdapter(ChatCompletionsAdapter):
    """Perplexity adapter (OpenAI-compatible, no json_object response format)."""

    vendor = ProviderVendor.PERPLEXITY
    supports_json_mode = False


class DeepSeekAdapter(ChatCompletionsAdapter):
    """DeepSeek adapter (OpenAI-compatible)."""

    vendor = ProviderVendor.DEEPSEEK


# ---------------------------------------------------------------------------
# Anthropic Messages API
# ---------------------------------------------------------------------------

ANTHROPIC_API_VERSION = "2023-06-01"


class AnthropicAdapter(BaseVendorAdapter):
    """Anthropic Messages API adapter."""

    vendor = ProviderVendor.ANTHROPIC

    def _url(self) -> str:
        return f"{self.base_url}/messages"

    def _headers(self) -> dict[str, str]:
        return {
            "x-api-key": self.config.api_key,
            "anthropic-version": ANTHROPIC_API_VERSION,
            "Content-Type": "application/json",
        }

    def _build_payload(self, request: CompletionRequest) -> dict[str, Any]:
        # No native JSON mode; the prompts themselves demand JSON-only output
        payload: dict[str, Any] = {
            "model": self.model,
            "max_tokens": request.max_tokens,
            "temperature": self.config.temperature,
            "messages": [{"role": "user", "content": request.prompt}],
        }
        if request.system_prompt:
            payload["system"] = request.system_prompt
        return payload

    def _parse_response(self, data: dict[str, Any]) -> CompletionResponse:
        blocks = data["content"]
        text = "".join(b.get("text", "") for b in blocks if b.get("type") == "text")
        usage = data.get("usage") or {}
        return CompletionResponse(
            vendor=self.vendor,
            text=text,
            model_version=data.get("model", self.model),
            input_tokens=usage.get("input_tokens", 0),
            output_tokens=usage.get("output_tokens", 0),
            finish_reason=data.get("stop_reason") or "",
            vendor_raw=data,
        )


# ---------------------------------------------------------------------------
# Adapter registry
# ---------------------------------------------------------------------------

ADAPTER_REGISTRY: dict[ProviderVendor, type[BaseVendorAdapter]] = {
    ProviderVendor.OPENAI: OpenAIAdapter,
    ProviderVendor.ANTHROPIC: AnthropicAdapter,
    ProviderVendor.PERPLEXITY: PerplexityAdapter,
    ProviderVendor.DEEPSEEK: DeepSeekAdapter,
}


def get_adapter(config: ProviderConfig) -> BaseVendorAdapter:
    """Factory: get the appropriate adapter for a vendor config."""
    cls = ADAPTER_REGISTRY.get(config.vendor)
    if cls is None:
        raise ConfigurationError(f"No adapter registered for vendor: {config.vendor}")
    return cls(config)
