"""Shared fixtures: an API client bound to a fresh resolution service."""

import pytest
from httpx import ASGITransport, AsyncClient

from cart_resolver.api.routes.resolution import get_service
from cart_resolver.clients.catalog import StaticCatalogClient
from cart_resolver.clients.tie_breaker import HeuristicTieBreaker
from cart_resolver.main import app
from cart_resolver.resolution.service import ProductResolutionService


@pytest.fixture
def service():
    """Service over the demo catalog, rebuilt per test so the cache starts empty."""
    return ProductResolutionService(StaticCatalogClient(), HeuristicTieBreaker())


@pytest.fixture
async def client(service):
    app.dependency_overrides[get_service] = lambda: service
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()
