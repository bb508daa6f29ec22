"""Sentry error tracking.

Enabled only when SENTRY_DSN is set. Events never carry passage text: request
bodies and local variables are not captured, and provider error messages are
cut to a short prefix.
"""

import logging

from app.core.config import settings

logger = logging.getLogger(__name__)

_MAX_MESSAGE_CHARS = 300


def scrub_event(event: dict, hint: dict) -> dict:
    """before_send hook: drop request payloads and shorten exception values."""
    request = event.get("request")
    if isinstance(request, dict):
        request.pop("data", None)
    for exc in (event.get("exception") or {}).get("values") or []:
        value = exc.get("value")
        if isinstance(value, str) and len(value) > _MAX_MESSAGE_CHARS:
            exc["value"] = value[:_MAX_MESSAGE_CHARS] + "..."
    return event


def init_sentry() -> None:
    if not settings.sentry_dsn:
        logger.debug("Sentry DSN not configured, skipping")
        return

    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.httpx import HttpxIntegration

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.app_env,
        traces_sample_rate=0.1 if settings.app_env == "production" else 1.0,
        send_default_pii=False,
        max_request_body_size="never",
        include_local_variables=False,
        before_send=scrub_event,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            HttpxIntegration(),
        ],
    )
    logger.info("Sentry initialized (env=%s)", settings.app_env)
