"""Inbound rate limiting using slowapi.

Evaluations fan out into several provider calls each, so the API caps how
often a single client can start one.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from app.core.config import settings

limiter = Limiter(key_func=get_remote_address, default_limits=[settings.api_rate_limit])
