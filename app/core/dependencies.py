"""FastAPI dependencies: provider gateway and cancellation helper."""

import asyncio
import logging
from collections.abc import Awaitable
from typing import TypeVar

from fastapi import Request

from app.core.config import settings
from app.core.exceptions import ClientDisconnected
from app.gateway.gateway import ProviderGateway

logger = logging.getLogger(__name__)

T = TypeVar("T")


def get_gateway(request: Request) -> ProviderGateway:
    """The application's gateway (built in lifespan, lazily otherwise)."""
    gateway = getattr(request.app.state, "gateway", None)
    if gateway is None:
        gateway = ProviderGateway.from_settings(settings)
        request.app.state.gateway = gateway
    return gateway


async def run_until_disconnect(request: Request, aw: Awaitable[T], poll_interval: float | None = None) -> T:
    """Await ``aw`` as a task; cancel it if the client disconnects first.

    Raises:
        ClientDisconnected: the client went away (the task was cancelled).
    """
    interval = poll_interval if poll_interval is not None else settings.disconnect_poll_interval
    task = asyncio.ensure_future(aw)
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=interval)
            if done:
                return task.result()
            if await request.is_disconnected():
                logger.info("Client disconnected from %s, cancelling evaluation", request.url.path)
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)
                raise ClientDisconnected(request.url.path)
    finally:
        if not task.done():
            task.cancel()
