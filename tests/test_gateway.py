"""Tests for the LLM provider gateway: adapters, rate limiter, retry."""

import asyncio
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from app.core.exceptions import (
    ConfigurationError,
    ProviderError,
    ProviderRateLimitError,
    ProviderTimeoutError,
)
from app.gateway.gateway import GatewayProvider, ProviderGateway, calculate_backoff
from app.gateway.rate_limiter import ProviderRateLimiter
from app.gateway.types import (
    DEFAULT_PROVIDER_CONFIGS,
    CompletionRequest,
    ProviderConfig,
    ProviderVendor,
)
from app.gateway.vendor_adapters import (
    AnthropicAdapter,
    DeepSeekAdapter,
    OpenAIAdapter,
    PerplexityAdapter,
    get_adapter,
)


def _config(vendor: ProviderVendor, **overrides) -> ProviderConfig:
    base = DEFAULT_PROVIDER_CONFIGS[vendor]
    values = {
        "vendor": vendor,
        "api_key": "test-key",
        "base_url": base.base_url,
        "model": base.model,
        **overrides,
    }
    return ProviderConfig(**values)


def _make_httpx_response(status_code: int, json_data: dict | None = None, text: str = "") -> httpx.Response:
    """Create a real httpx.Response for testing."""
    if json_data is not None:
        return httpx.Response(
            status_code=status_code,
            json=json_data,
            request=httpx.Request("POST", "https://example.com"),
        )
    return httpx.Response(
        status_code=status_code,
        text=text,
        request=httpx.Request("POST", "https://example.com"),
    )


def _mock_chat_response(content: str = '{"0": {"score": 90}}', finish_reason: str = "stop") -> httpx.Response:
    return _make_httpx_response(
        200,
        {
            "model": "gpt-4o-2024-08-06",
            "choices": [{"message": {"content": content}, "finish_reason": finish_reason}],
            "usage": {"prompt_tokens": 10, "completion_tokens": 20},
        },
    )


def _mock_anthropic_response(text: str = "Hello world") -> httpx.Response:
    return _make_httpx_response(
        200,
        {
            "model": "claude-sonnet-4-20250514",
            "content": [{"type": "text", "text": text}],
            "stop_reason": "end_turn",
            "usage": {"input_tokens": 12, "output_tokens": 34},
        },
    )


def _patched_client(mock_client_cls, response=None, side_effect=None) -> AsyncMock:
    mock_client = AsyncMock()
    if side_effect is not None:
        mock_client.post.side_effect = side_effect
    else:
        mock_client.post.return_value = response
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=None)
    mock_client_cls.return_value = mock_client
    return mock_client


# ---------------------------------------------------------------------------
# Vendor adapters
# ---------------------------------------------------------------------------


class TestOpenAIAdapter:
    async def test_success(self):
        adapter = OpenAIAdapter(_config(ProviderVendor.OPENAI))
        req = CompletionRequest(prompt="Hello", max_tokens=2000, system_prompt="Be terse", json_mode=True)

        with patch("app.gateway.vendor_adapters.httpx.AsyncClient") as mock_client_cls:
            mock_client = _patched_client(mock_client_cls, _mock_chat_response("Hello world"))
            resp = await adapter.send(req)

        assert resp.text == "Hello world"
        assert resp.total_tokens == 30
        assert resp.latency_ms >= 0
        assert not resp.truncated

        url = mock_client.post.call_args.args[0]
        payload = mock_client.post.call_args.kwargs["json"]
        headers = mock_client.post.call_args.kwargs["headers"]
        assert url == "https://api.openai.com/v1/chat/completions"
        assert headers["Authorization"] == "Bearer test-key"
        assert payload["response_format"] == {"type": "json_object"}
        assert payload["max_tokens"] == 2000
        assert payload["messages"][0] == {"role": "system", "content": "Be terse"}
        assert payload["messages"][1] == {"role": "user", "content": "Hello"}

    async def test_reasoning_model_payload(self):
        adapter = OpenAIAdapter(_config(ProviderVendor.OPENAI, model="o3-mini"))
        payload = adapter._build_payload(CompletionRequest(prompt="Hi", max_tokens=1500))
        assert "temperature" not in payload
        assert "max_tokens" not in payload
        assert payload["max_completion_tokens"] == 1500

    async def test_truncated_reply(self):
        adapter = OpenAIAdapter(_config(ProviderVendor.OPENAI))
        with patch("app.gateway.vendor_adapters.httpx.AsyncClient") as mock_client_cls:
            _patched_client(mock_client_cls, _mock_chat_response('{"0": {"sc', finish_reason="length"))
            resp = await adapter.send(CompletionRequest(prompt="Hi"))
        assert resp.truncated
        assert resp.text == '{"0": {"sc'

    async def test_rate_limited(self):
        adapter = OpenAIAdapter(_config(ProviderVendor.OPENAI))
        with patch("app.gateway.vendor_adapters.httpx.AsyncClient") as mock_client_cls:
            _patched_client(mock_client_cls, _make_httpx_response(429, text="rate limited"))
            with pytest.raises(ProviderRateLimitError) as exc_info:
                await adapter.send(CompletionRequest(prompt="Hi"))
        assert exc_info.value.status_code == 429

    async def test_server_error(self):
        adapter = OpenAIAdapter(_config(ProviderVendor.OPENAI))
        body = {"error": {"message": "The server had an error"}}
        with patch("app.gateway.vendor_adapters.httpx.AsyncClient") as mock_client_cls:
            _patched_client(mock_client_cls, _make_httpx_response(500, body))
            with pytest.raises(ProviderError) as exc_info:
                await adapter.send(CompletionRequest(prompt="Hi"))
        assert exc_info.value.status_code == 500
        assert "The server had an error" in str(exc_info.value)
        assert not isinstance(exc_info.value, ProviderRateLimitError)

    async def test_timeout(self):
        adapter = OpenAIAdapter(_config(ProviderVendor.OPENAI))
        with patch("app.gateway.vendor_adapters.httpx.AsyncClient") as mock_client_cls:
            _patched_client(mock_client_cls, side_effect=httpx.TimeoutException("timeout"))
            with pytest.raises(ProviderTimeoutError):
                await adapter.send(CompletionRequest(prompt="Hi"))

    async def test_network_error(self):
        adapter = OpenAIAdapter(_config(ProviderVendor.OPENAI))
        with patch("app.gateway.vendor_adapters.httpx.AsyncClient") as mock_client_cls:
            _patched_client(mock_client_cls, side_effect=httpx.ConnectError("refused"))
            with pytest.raises(ProviderError) as exc_info:
                await adapter.send(CompletionRequest(prompt="Hi"))
        assert exc_info.value.error_code == "NETWORK"

    async def test_unexpected_body(self):
        adapter = OpenAIAdapter(_config(ProviderVendor.OPENAI))
        with patch("app.gateway.vendor_adapters.httpx.AsyncClient") as mock_client_cls:
            _patched_client(mock_client_cls, _make_httpx_response(200, {"choices": []}))
            with pytest.raises(ProviderError):
                await adapter.send(CompletionRequest(prompt="Hi"))

    async def test_missing_key_makes_no_call(self):
        adapter = OpenAIAdapter(_config(ProviderVendor.OPENAI, api_key=""))
        with patch("app.gateway.vendor_adapters.httpx.AsyncClient") as mock_client_cls:
            with pytest.raises(ConfigurationError, match="OPENAI_API_KEY"):
                await adapter.complete("Hi")
        mock_client_cls.assert_not_called()


class TestChatCompletionsVendors:
    def test_perplexity_has_no_json_mode(self):
        adapter = PerplexityAdapter(_config(ProviderVendor.PERPLEXITY))
        payload = adapter._build_payload(CompletionRequest(prompt="Hi", json_mode=True))
        assert "response_format" not in payload
        assert payload["model"] == "sonar"

    async def test_deepseek_url(self):
        adapter = DeepSeekAdapter(_config(ProviderVendor.DEEPSEEK))
        with patch("app.gateway.vendor_adapters.httpx.AsyncClient") as mock_client_cls:
            mock_client = _patched_client(mock_client_cls, _mock_chat_response("ok"))
            text = await adapter.complete("Hi", json_mode=True)
        assert text == "ok"
        assert mock_client.post.call_args.args[0] == "https://api.deepseek.com/chat/completions"

    def test_get_adapter(self):
        for vendor in ProviderVendor:
            assert get_adapter(_config(vendor)).vendor == vendor


class TestAnthropicAdapter:
    async def test_success(self):
        adapter = AnthropicAdapter(_config(ProviderVendor.ANTHROPIC))
        with patch("app.gateway.vendor_adapters.httpx.AsyncClient") as mock_client_cls:
            mock_client = _patched_client(mock_client_cls, _mock_anthropic_response("Hello world"))
            resp = await adapter.send(
                CompletionRequest(prompt="Hello", max_tokens=1500, system_prompt="Be terse", json_mode=True)
            )

        assert resp.text == "Hello world"
        assert resp.input_tokens == 12
        assert resp.output_tokens == 34
        assert resp.finish_reason == "end_turn"

        url = mock_client.post.call_args.args[0]
        payload = mock_client.post.call_args.kwargs["json"]
        headers = mock_client.post.call_args.kwargs["headers"]
        assert url == "https://api.anthropic.com/v1/messages"
        assert headers["x-api-key"] == "test-key"
        assert headers["anthropic-version"] == "2023-06-01"
        assert payload["system"] == "Be terse"
        assert payload["max_tokens"] == 1500
        assert payload["messages"] == [{"role": "user", "content": "Hello"}]
        assert "response_format" not in payload

    def test_joins_text_blocks(self):
        adapter = AnthropicAdapter(_config(ProviderVendor.ANTHROPIC))
        resp = adapter._parse_response(
            {
                "content": [
                    {"type": "text", "text": '{"0": '},
                    {"type": "tool_use", "id": "x"},
                    {"type": "text", "text": '{"score": 80}}'},
                ],
                "stop_reason": "max_tokens",
            }
        )
        assert resp.text == '{"0": {"score": 80}}'
        assert resp.truncated


# ---------------------------------------------------------------------------
# Rate limiter
# ---------------------------------------------------------------------------


class TestProviderRateLimiter:
    def _limiter(self, rpm: int = 60, burst: int = 2) -> ProviderRateLimiter:
        config = ProviderConfig(vendor=ProviderVendor.OPENAI, rpm_limit=rpm, burst=burst)
        return ProviderRateLimiter({ProviderVendor.OPENAI: config})

    async def test_burst_then_wait(self):
        limiter = self._limiter(rpm=60, burst=2)
        assert await limiter.try_acquire(ProviderVendor.OPENAI) == 0.0
        assert await limiter.try_acquire(ProviderVendor.OPENAI) == 0.0
        wait = await limiter.try_acquire(ProviderVendor.OPENAI)
        assert 0 < wait <= 1.0  # 1 token/s refill

    async def test_failed_try_does_not_consume(self):
        limiter = self._limiter(rpm=60, burst=1)
        await limiter.try_acquire(ProviderVendor.OPENAI)
        await limiter.try_acquire(ProviderVendor.OPENAI)
        stats = limiter.get_stats(ProviderVendor.OPENAI)
        assert stats["total_acquired"] == 1
        assert stats["bucket_size"] == 1

    async def test_acquire_sleeps_until_token(self):
        limiter = self._limiter(rpm=6000, burst=1)  # 100 tokens/s
        await limiter.acquire(ProviderVendor.OPENAI)
        await asyncio.wait_for(limiter.acquire(ProviderVendor.OPENAI), timeout=1.0)
        assert limiter.get_stats(ProviderVendor.OPENAI)["total_acquired"] == 2

    async def test_vendors_are_independent(self):
        limiter = ProviderRateLimiter()
        for _ in range(DEFAULT_PROVIDER_CONFIGS[ProviderVendor.PERPLEXITY].bucket_size):
            await limiter.try_acquire(ProviderVendor.PERPLEXITY)
        assert await limiter.try_acquire(ProviderVendor.PERPLEXITY) > 0
        assert await limiter.try_acquire(ProviderVendor.OPENAI) == 0.0

    def test_default_bucket_size(self):
        assert ProviderConfig(vendor=ProviderVendor.OPENAI, rpm_limit=60).bucket_size == 15
        assert ProviderConfig(vendor=ProviderVendor.OPENAI, rpm_limit=2).bucket_size == 1

    def test_all_stats(self):
        stats = ProviderRateLimiter().get_all_stats()
        assert {s["vendor"] for s in stats} == {v.value for v in ProviderVendor}


# ---------------------------------------------------------------------------
# Retry and gateway
# ---------------------------------------------------------------------------


class TestBackoff:
    def test_exponential_with_jitter(self):
        for attempt in range(4):
            delay = calculate_backoff(attempt, base_delay=1.0, max_delay=60.0)
            assert 2**attempt <= delay <= 2**attempt + 0.5

    def test_capped(self):
        assert calculate_backoff(10, base_delay=2.0, max_delay=30.0) == 30.0


class _ScriptedAdapter:
    """Adapter double: raises or returns the scripted items in order."""

    def __init__(self, script, vendor=ProviderVendor.OPENAI, max_retries=2):
        self.script = list(script)
        self.vendor = vendor
        self.name = vendor.value
        self.config = ProviderConfig(vendor=vendor, max_retries=max_retries, base_retry_delay=0.0)
        self.calls = 0

    async def complete(self, prompt, max_tokens=2000, *, system_prompt="", json_mode=False):
        self.calls += 1
        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class TestGatewayProvider:
    async def test_retries_on_429(self):
        adapter = _ScriptedAdapter([ProviderRateLimitError("429", 429), "done"])
        provider = GatewayProvider(adapter, ProviderRateLimiter())
        with patch("app.gateway.gateway.asyncio.sleep", new=AsyncMock()) as mock_sleep:
            assert await provider.complete("Hi") == "done"
        assert adapter.calls == 2
        mock_sleep.assert_awaited_once()

    async def test_gives_up_after_max_retries(self):
        adapter = _ScriptedAdapter([ProviderRateLimitError("429", 429)] * 3, max_retries=2)
        provider = GatewayProvider(adapter, ProviderRateLimiter())
        with patch("app.gateway.gateway.asyncio.sleep", new=AsyncMock()):
            with pytest.raises(ProviderRateLimitError):
                await provider.complete("Hi")
        assert adapter.calls == 3

    @pytest.mark.parametrize(
        "error",
        [
            ProviderError("boom", 500),
            ProviderTimeoutError("slow", error_code="TIMEOUT"),
            ConfigurationError("no key"),
        ],
    )
    async def test_other_errors_are_not_retried(self, error):
        adapter = _ScriptedAdapter([error, "never"])
        provider = GatewayProvider(adapter, ProviderRateLimiter())
        with pytest.raises(type(error)):
            await provider.complete("Hi")
        assert adapter.calls == 1

    async def test_passes_options_to_adapter(self):
        adapter = AsyncMock()
        adapter.vendor = ProviderVendor.ANTHROPIC
        adapter.name = "anthropic"
        adapter.config = ProviderConfig(vendor=ProviderVendor.ANTHROPIC)
        adapter.complete.return_value = "{}"
        provider = GatewayProvider(adapter, ProviderRateLimiter())

        await provider.complete("Hi", 1500, system_prompt="sys", json_mode=True)
        adapter.complete.assert_awaited_once_with("Hi", 1500, system_prompt="sys", json_mode=True)


class _Settings:
    default_provider = "anthropic"

    def provider_keys(self):
        return {"openai": "", "anthropic": "sk-ant", "perplexity": "", "deepseek": "sk-ds"}

    def provider_models(self):
        return {"openai": "gpt-4o-mini", "anthropic": "", "perplexity": "", "deepseek": ""}


class TestProviderGateway:
    def test_from_settings(self):
        gateway = ProviderGateway.from_settings(_Settings())
        assert gateway.status() == {"openai": False, "anthropic": True, "perplexity": False, "deepseek": True}
        assert gateway.available_providers() == ["anthropic", "deepseek"]
        assert gateway.configs[ProviderVendor.OPENAI].model == "gpt-4o-mini"
        assert gateway.configs[ProviderVendor.ANTHROPIC].model == "claude-sonnet-4-20250514"

    def test_default_provider(self):
        gateway = ProviderGateway.from_settings(_Settings())
        assert gateway.provider().name == "anthropic"
        assert gateway.provider(None) is gateway.provider("anthropic")
        assert gateway.provider(" DeepSeek ").name == "deepseek"

    def test_unknown_provider(self):
        gateway = ProviderGateway.from_settings(_Settings())
        with pytest.raises(ConfigurationError, match="Unknown provider"):
            gateway.provider("gemini")

    async def test_unconfigured_provider_fails_before_network(self):
        gateway = ProviderGateway.from_settings(_Settings())
        with patch("app.gateway.vendor_adapters.httpx.AsyncClient") as mock_client_cls:
            with pytest.raises(ConfigurationError):
                await gateway.provider("openai").complete("Hi")
        mock_client_cls.assert_not_called()
