"""LLM Provider Gateway: resolves provider names to rate-limited adapters.

Every outbound call goes through:
  1. ProviderRateLimiter: per-vendor token bucket
  2. Vendor Adapter: protocol-specific HTTP call
  3. Retry: 429 answers only, exponential backoff with jitter

Usage:
    gateway = ProviderGateway.from_settings(settings)
    provider = gateway.provider("anthropic")
    text = await provider.complete(prompt, max_tokens=2000)
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import replace

from app.core.exceptions import ConfigurationError, ProviderError, ProviderRateLimitError
from app.core.metrics import PROVIDER_CALLS, PROVIDER_LATENCY
from app.gateway.rate_limiter import ProviderRateLimiter
from app.gateway.types import DEFAULT_PROVIDER_CONFIGS, ProviderConfig, ProviderVendor
from app.gateway.vendor_adapters import BaseVendorAdapter, get_adapter

logger = logging.getLogger(__name__)


def calculate_backoff(attempt: int, base_delay: float = 1.0, max_delay: float = 60.0) -> float:
    """Calculate exponential backoff with jitter.

    Formula: min(base * 2^attempt + jitter, max_delay)
    Jitter: random(0, base * 0.5)
    """
    exponential = base_delay * (2**attempt)
    jitter = random.uniform(0, base_delay * 0.5)
    return min(exponential + jitter, max_delay)


class GatewayProvider:
    """One vendor behind the shared rate limiter.

    Satisfies the ``LlmProvider`` protocol used by the evaluation pipeline.
    """

    def __init__(self, adapter: BaseVendorAdapter, rate_limiter: ProviderRateLimiter):
        self.adapter = adapter
        self.config = adapter.config
        self.rate_limiter = rate_limiter

    @property
    def name(self) -> str:
        return self.adapter.name

    @property
    def vendor(self) -> ProviderVendor:
        return self.adapter.vendor

    async def complete(
        self,
        prompt: str,
        max_tokens: int = 2000,
        *,
        system_prompt: str = "",
        json_mode: bool = False,
    ) -> str:
        """Send one prompt, retrying only on 429.

        ConfigurationError and every other ProviderError propagate on the
        first occurrence.
        """
        attempt = 0
        while True:
            await self.rate_limiter.acquire(self.vendor)
            start = time.monotonic()
            try:
                text = await self.adapter.complete(
                    prompt,
                    max_tokens,
                    system_prompt=system_prompt,
                    json_mode=json_mode,
                )
            except ProviderRateLimitError:
                PROVIDER_CALLS.labels(vendor=self.name, outcome="rate_limited").inc()
                if attempt >= self.config.max_retries:
                    logger.error("%s: still rate limited after %d retries", self.name, attempt)
                    raise
                delay = calculate_backoff(attempt, self.config.base_retry_delay, self.config.max_retry_delay)
                attempt += 1
                logger.warning(
                    "%s: 429, retry %d/%d in %.1fs", self.name, attempt, self.config.max_retries, delay
                )
                await asyncio.sleep(delay)
                continue
            except ConfigurationError:
                PROVIDER_CALLS.labels(vendor=self.name, outcome="not_configured").inc()
                raise
            except ProviderError:
                PROVIDER_CALLS.labels(vendor=self.name, outcome="error").inc()
                raise

            PROVIDER_CALLS.labels(vendor=self.name, outcome="success").inc()
            PROVIDER_LATENCY.labels(vendor=self.name).observe(time.monotonic() - start)
            return text


class ProviderGateway:
    """Holds one adapter per vendor and the shared rate limiter.

    Built once per application (lifespan) and handed to request handlers
    through a FastAPI dependency.
    """

    def __init__(
        self,
        configs: dict[ProviderVendor, ProviderConfig],
        rate_limiter: ProviderRateLimiter | None = None,
        default_provider: str = ProviderVendor.OPENAI.value,
    ):
        self.configs = configs
        self.rate_limiter = rate_limiter or ProviderRateLimiter(configs)
        self.default_provider = default_provider
        self._providers: dict[ProviderVendor, GatewayProvider] = {}

    @classmethod
    def from_settings(cls, settings) -> ProviderGateway:
        """Build configs from the defaults plus keys and models in settings."""
        keys = settings.provider_keys()
        models = settings.provider_models()
        configs = {
            vendor: replace(
                base,
                api_key=keys.get(vendor.value, ""),
                model=models.get(vendor.value) or base.model,
            )
            for vendor, base in DEFAULT_PROVIDER_CONFIGS.items()
        }
        return cls(configs, default_provider=settings.default_provider)

    def _resolve_vendor(self, name: str | None) -> ProviderVendor:
        name = (name or self.default_provider).strip().lower()
        try:
            vendor = ProviderVendor(name)
        except ValueError:
            raise ConfigurationError(f"Unknown provider: {name}") from None
        if vendor not in self.configs:
            raise ConfigurationError(f"Provider '{name}' has no configuration")
        return vendor

    def provider(self, name: str | None = None) -> GatewayProvider:
        """Get the provider for a name (default provider when None).

        An unconfigured provider is still returned; its first call raises
        ConfigurationError before any network traffic.
        """
        vendor = self._resolve_vendor(name)
        if vendor not in self._providers:
            adapter = get_adapter(self.configs[vendor])
            self._providers[vendor] = GatewayProvider(adapter, self.rate_limiter)
        return self._providers[vendor]

    def available_providers(self) -> list[str]:
        """Names of providers with an API key configured."""
        return [v.value for v, c in self.configs.items() if c.is_configured]

    def status(self) -> dict[str, bool]:
        """Provider name → whether an API key is configured."""
        return {v.value: c.is_configured for v, c in self.configs.items()}
