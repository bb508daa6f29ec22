from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from app.core.config import settings

# Override settings for tests
settings.app_env = "development"
settings.disconnect_poll_interval = 0.01

from app.core.dependencies import get_gateway  # noqa: E402
from app.core.rate_limit import limiter  # noqa: E402
from app.main import app  # noqa: E402
from fakes import FakeGateway, FakeProvider  # noqa: E402

limiter.enabled = False


@pytest.fixture
def fake_gateway() -> FakeGateway:
    return FakeGateway(FakeProvider([]))


@pytest.fixture
async def client(fake_gateway: FakeGateway) -> AsyncGenerator[AsyncClient, None]:
    app.dependency_overrides[get_gateway] = lambda: fake_gateway
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
