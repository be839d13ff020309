# backend/tests/conftest.py

import pytest
from datetime import datetime, timedelta, timezone
from pathlib import Path
from fastapi.testclient import TestClient
from dotenv import load_dotenv
from unittest.mock import AsyncMock, MagicMock

# Load environment variables FIRST, before any app imports, so the settings
# module sees the test configuration when it is imported.
load_dotenv(dotenv_path=Path(__file__).parent / ".env.test")

# Now it's safe to import the application and its components
from shopbot.main import app  # noqa: E402
from shopbot.models.domain import Product  # noqa: E402
from shopbot.services.session_store import InMemorySessionStore  # noqa: E402
from shopbot.services.string_service import StringService  # noqa: E402
from shopbot.workflows.definitions import load_flow_definition  # noqa: E402
from shopbot.workflows.engine import FlowEngine  # noqa: E402


class FakeClock:
    """A controllable clock for TTL tests."""

    def __init__(self):
        self.now = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float):
        self.now += timedelta(seconds=seconds)


def build_product(**overrides) -> Product:
    data = {
        "id": 101,
        "name": "Widget",
        "slug": "widget",
        "permalink": "https://shop.example.com/product/widget",
        "price": "19.99",
        "regular_price": "19.99",
        "stock_status": "instock",
        "stock_quantity": 5,
        "status": "publish",
        "sku": "generated",
    }
    data.update(overrides)
    return Product(**data)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def strings():
    service = StringService()
    service.load_strings()
    return service


@pytest.fixture
def flow():
    return load_flow_definition()


@pytest.fixture
def store(clock, flow):
    return InMemorySessionStore(flow.session_timeout_seconds, clock=clock)


@pytest.fixture
def catalog():
    """A catalog client whose calls are AsyncMocks; tests set return values as needed."""
    client = MagicMock()
    client.list_products = AsyncMock(return_value=[])
    client.create_product = AsyncMock(side_effect=lambda product_input: build_product(name=product_input.name, sku=product_input.sku))
    return client


@pytest.fixture
def engine(store, flow, strings, catalog):
    return FlowEngine(store, flow, strings, trigger_code="shop", catalog=catalog)


@pytest.fixture(scope="function")
def test_client():
    """
    Provides a TestClient for API integration tests. The app's lifespan
    (startup/shutdown events) is managed by the TestClient; MOCK_MODE keeps
    outbound messages in memory.
    """
    with TestClient(app) as client:
        yield client


@pytest.fixture
def product_factory():
    return build_product
