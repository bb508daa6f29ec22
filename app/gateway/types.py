"""Core types and DTOs for the LLM provider gateway."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class ProviderVendor(str, Enum):
    """Supported LLM vendors."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    PERPLEXITY = "perplexity"
    DEEPSEEK = "deepseek"


# ---------------------------------------------------------------------------
# Provider configuration, passed explicitly to every adapter
# ---------------------------------------------------------------------------


@dataclass
class ProviderConfig:
    """Connection, model and rate limit configuration for one vendor."""

    vendor: ProviderVendor
    api_key: str = ""
    base_url: str = ""
    model: str = ""
    temperature: float = 0.0
    timeout_seconds: float = 120.0  # Long prompts with 2000-token answers
    rpm_limit: int = 60  # Requests per minute
    burst: int = 0  # Token bucket size; 0 → rpm_limit // 4
    max_retries: int = 2  # Retries on 429 only
    base_retry_delay: float = 2.0  # Base delay for exponential backoff (seconds)
    max_retry_delay: float = 60.0  # Cap on retry delay

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    @property
    def bucket_size(self) -> int:
        return self.burst or max(self.rpm_limit // 4, 1)


# Defaults per vendor; api_key and model are filled from settings
DEFAULT_PROVIDER_CONFIGS: dict[ProviderVendor, ProviderConfig] = {
    ProviderVendor.OPENAI: ProviderConfig(
        vendor=ProviderVendor.OPENAI,
        base_url="https://api.openai.com/v1",
        model="gpt-4o",
        rpm_limit=60,
    ),
    ProviderVendor.ANTHROPIC: ProviderConfig(
        vendor=ProviderVendor.ANTHROPIC,
        base_url="https://api.anthropic.com/v1",
        model="claude-sonnet-4-20250514",
        rpm_limit=50,
        timeout_seconds=180.0,
    ),
    ProviderVendor.PERPLEXITY: ProviderConfig(
        vendor=ProviderVendor.PERPLEXITY,
        base_url="https://api.perplexity.ai",
        model="sonar",
        rpm_limit=20,
        temperature=0.2,
    ),
    ProviderVendor.DEEPSEEK: ProviderConfig(
        vendor=ProviderVendor.DEEPSEEK,
        base_url="https://api.deepseek.com",
        model="deepseek-chat",
        rpm_limit=30,
        timeout_seconds=180.0,  # DeepSeek: slow on long outputs
        base_retry_delay=5.0,
    ),
}


# ---------------------------------------------------------------------------
# Completion request / response
# ---------------------------------------------------------------------------


@dataclass
class CompletionRequest:
    """A single prompt to send to a vendor."""

    prompt: str
    max_tokens: int = 2000
    system_prompt: str = ""
    json_mode: bool = False  # Ask for a JSON object where the vendor supports it


@dataclass
class CompletionResponse:
    """Unified result of one vendor call."""

    vendor: ProviderVendor
    text: str = ""
    model_version: str = ""
    latency_ms: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    finish_reason: str = ""
    vendor_raw: dict[str, Any] = field(default_factory=dict)

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    @property
    def truncated(self) -> bool:
        """True when the vendor stopped because of the token budget."""
        return self.finish_reason in ("length", "max_tokens")
