"""Per-provider rate limiter (token bucket).

Every outbound call takes one token from its vendor's bucket. Buckets hold
up to ``ProviderConfig.bucket_size`` tokens and refill at ``rpm_limit`` tokens
per minute; an empty bucket makes the caller sleep until the next token.

Thread-safe via asyncio.Lock (one lock per vendor).
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field

from app.gateway.types import DEFAULT_PROVIDER_CONFIGS, ProviderConfig, ProviderVendor

logger = logging.getLogger(__name__)


@dataclass
class _VendorBucket:
    """Token bucket for a single vendor."""

    config: ProviderConfig
    tokens: float = 0.0
    last_refill: float = field(default_factory=time.monotonic)
    total_acquired: int = 0
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    def __post_init__(self) -> None:
        self.tokens = float(self.config.bucket_size)

    @property
    def refill_rate(self) -> float:
        """Tokens per second."""
        return self.config.rpm_limit / 60.0

    def refill(self, now: float) -> None:
        elapsed = now - self.last_refill
        self.tokens = min(float(self.config.bucket_size), self.tokens + elapsed * self.refill_rate)
        self.last_refill = now

    def wait_time(self, now: float) -> float:
        """Seconds until one token is available. 0 if available now."""
        self.refill(now)
        if self.tokens >= 1.0:
            return 0.0
        return (1.0 - self.tokens) / self.refill_rate


class ProviderRateLimiter:
    """Per-vendor token-bucket limiter.

    Usage:
        limiter = ProviderRateLimiter(configs)

        # Before sending a request (sleeps if the bucket is empty):
        await limiter.acquire(vendor)
    """

    def __init__(self, configs: dict[ProviderVendor, ProviderConfig] | None = None):
        configs = configs or DEFAULT_PROVIDER_CONFIGS
        self._buckets: dict[ProviderVendor, _VendorBucket] = {
            vendor: _VendorBucket(config=config) for vendor, config in configs.items()
        }

    def _get_bucket(self, vendor: ProviderVendor) -> _VendorBucket:
        """Get or create bucket for a vendor."""
        if vendor not in self._buckets:
            config = DEFAULT_PROVIDER_CONFIGS.get(vendor, ProviderConfig(vendor=vendor))
            self._buckets[vendor] = _VendorBucket(config=config)
        return self._buckets[vendor]

    async def try_acquire(self, vendor: ProviderVendor) -> float:
        """Take a token if one is available.

        Returns:
            0.0 when a token was taken; otherwise the wait time in seconds
            before one will be available (nothing is consumed).
        """
        bucket = self._get_bucket(vendor)
        async with bucket.lock:
            wait = bucket.wait_time(time.monotonic())
            if wait <= 0:
                bucket.tokens -= 1.0
                bucket.total_acquired += 1
                return 0.0
            return wait

    async def acquire(self, vendor: ProviderVendor) -> None:
        """Block until a token is taken for the vendor.

        Cancellation while sleeping leaves the bucket untouched.
        """
        while True:
            wait = await self.try_acquire(vendor)
            if wait <= 0:
                return
            logger.debug("Rate limiter: waiting %.2fs for %s", wait, vendor.value)
            await asyncio.sleep(wait)

    def get_stats(self, vendor: ProviderVendor) -> dict:
        """Get current bucket stats for a vendor."""
        bucket = self._get_bucket(vendor)
        bucket.refill(time.monotonic())
        return {
            "vendor": vendor.value,
            "available_tokens": round(bucket.tokens, 2),
            "bucket_size": bucket.config.bucket_size,
            "rpm_limit": bucket.config.rpm_limit,
            "total_acquired": bucket.total_acquired,
        }

    def get_all_stats(self) -> list[dict]:
        """Get stats for all configured vendors."""
        return [self.get_stats(v) for v in self._buckets]
