"""
Pytest fixtures for the stockroom test suite.

Provides:
- Structured logging capture
- A deterministic clock, identity and recording notifier
- An in-memory list store seeded with categories, parts and buyers
- ``GatedListStore``, which holds remote calls until a test releases them,
  so response ordering can be controlled explicitly
- A SQLite engine for the SQLAlchemy-backed store

Async code is driven with ``asyncio.run`` inside ordinary test functions.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from io import StringIO

import pytest

from stockroom_config import get_active_config
from stockroom_kernel.db.engine import (
    create_tables,
    drop_tables,
    init_engine_from_url,
    reset_engine,
)
from stockroom_kernel.domain.clock import DeterministicClock
from stockroom_kernel.domain.entities import EntityType
from stockroom_kernel.domain.roles import Role
from stockroom_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from stockroom_services.access_control import AccessControl
from stockroom_services.category_cache import CategoryFamilyCache
from stockroom_services.collaborators import RecordingNotifier, StaticIdentityProvider
from stockroom_services.list_store import InMemoryListStore
from stockroom_services.resource_cache import ResourceCache

# =============================================================================
# Logging fixtures
# =============================================================================

@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()

@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()

@pytest.fixture
def captured_logs():
    """
    Capture stockroom logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, parts_cache):
            asyncio.run(parts_cache.load())
            logs = captured_logs()
            assert any(r["message"] == "resource_loaded" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("stockroom")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)

# =============================================================================
# Seed data
# =============================================================================

CATEGORY_ROWS = (
    {"category": "Brake Pads", "family": "Brakes"},
    {"category": "Rotors", "family": "Brakes"},
    {"category": "Oil Filters", "family": "Filters"},
    {"category": "Air Filters", "family": "Filters"},
    {"category": "Spark Plugs", "family": ""},
)

PART_ROWS = (
    {
        "part_id": "BP-100",
        "description": "Ceramic brake pad set",
        "category": "Brake Pads",
        "unit_cost": "20.00",
        "unit_price": "45.00",
        "inventory_on_hand": 5,
        "status": "Active",
    },
    {
        "part_id": "RT-200",
        "description": "Vented rotor",
        "category": "Rotors",
        "unit_cost": "35.50",
        "unit_price": "80.00",
        "inventory_on_hand": 12,
        "status": "Active",
    },
    {
        "part_id": "OF-300",
        "description": "Spin-on oil filter",
        "category": "Oil Filters",
        "unit_cost": "4.25",
        "unit_price": "9.99",
        "inventory_on_hand": 0,
        "status": "Active",
    },
    {
        "part_id": "XX-900",
        "description": "Legacy gasket",
        "category": "Gaskets",
        "unit_cost": "1.00",
        "unit_price": "3.00",
        "inventory_on_hand": 3,
        "status": "Discontinued",
    },
)

BUYER_ROWS = (
    {"buyer_name": "Northside Garage", "contact_email": "parts@northside.example"},
    {"buyer_name": "Acme Fleet", "contact_email": "fleet@acme.example"},
)

# =============================================================================
# Collaborators
# =============================================================================

@pytest.fixture
def clock():
    return DeterministicClock()

@pytest.fixture
def identity():
    return StaticIdentityProvider(role=Role.USER, credential="test-token")

@pytest.fixture
def admin_identity():
    return StaticIdentityProvider(role=Role.ADMIN, credential="test-token")

@pytest.fixture
def notifier():
    return RecordingNotifier()

@pytest.fixture
def policy():
    return get_active_config()

@pytest.fixture
def access(policy):
    return AccessControl(policy)

@pytest.fixture
def store(clock):
    """In-memory store seeded with categories, parts and buyers."""
    s = InMemoryListStore(clock=clock)
    s.seed(EntityType.CATEGORIES, CATEGORY_ROWS)
    s.seed(EntityType.PARTS, PART_ROWS)
    s.seed(EntityType.BUYERS, BUYER_ROWS)
    return s

@pytest.fixture
def parts_cache(store, identity, notifier):
    cache = ResourceCache(EntityType.PARTS, store, identity, notifier)
    yield cache
    cache.teardown()

@pytest.fixture
def categories(store, identity, clock):
    return CategoryFamilyCache(store, identity, clock=clock, ttl_seconds=900)

# =============================================================================
# Gated store
# =============================================================================

@dataclass
class PendingCall:
    operation: str
    released: asyncio.Event

class GatedListStore:
    """
    Delegating store whose gated operations block until released.

    The inner store is read when the call is issued; only the response is
    held back.  ``release(i)`` lets the i-th pending call resolve, so tests
    choose the order in which overlapping requests complete.
    """

    def __init__(self, inner):
        self.inner = inner
        self.gated: set[str] = set()
        self.pending: list[PendingCall] = []

    def hold(self, *operations: str) -> None:
        self.gated.update(operations)

    def release(self, index: int) -> None:
        self.pending[index].released.set()

    def release_all(self) -> None:
        for call in self.pending:
            call.released.set()

    async def wait_for_pending(self, count: int) -> None:
        for _ in range(200):
            if len(self.pending) >= count:
                return
            await asyncio.sleep(0)
        raise AssertionError(f"expected {count} pending calls, saw {len(self.pending)}")

    async def _respond(self, operation, call):
        try:
            result = await call
        except Exception as exc:
            outcome = exc
        else:
            outcome = None
        if operation in self.gated:
            pending = PendingCall(operation, asyncio.Event())
            self.pending.append(pending)
            await pending.released.wait()
        if outcome is not None:
            raise outcome
        return result

    async def get(self, entity_type, credential, query=None):
        return await self._respond("get", self.inner.get(entity_type, credential, query))

    async def get_item(self, entity_type, credential, entity_id):
        return await self._respond(
            "get_item", self.inner.get_item(entity_type, credential, entity_id)
        )

    async def create(self, entity_type, credential, data):
        return await self._respond("create", self.inner.create(entity_type, credential, data))

    async def update(self, entity_type, credential, entity_id, data):
        return await self._respond(
            "update", self.inner.update(entity_type, credential, entity_id, data)
        )

    async def delete(self, entity_type, credential, entity_id):
        return await self._respond(
            "delete", self.inner.delete(entity_type, credential, entity_id)
        )

    async def delete_batch(self, entity_type, credential, ids):
        return await self._respond(
            "delete_batch", self.inner.delete_batch(entity_type, credential, ids)
        )

@pytest.fixture
def gated_store(store):
    return GatedListStore(store)

# =============================================================================
# Database fixtures
# =============================================================================

@pytest.fixture
def sql_engine():
    """Fresh in-memory SQLite database with the list_items table."""
    engine = init_engine_from_url("sqlite:///:memory:")
    create_tables()
    yield engine
    drop_tables()
    reset_engine()
