"""Pytest configuration and fixtures"""
import asyncio
import os
from typing import Dict, List, Optional
from unittest.mock import AsyncMock, Mock

import pytest

# Set test environment variables
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test_key")
os.environ.setdefault("UPSTASH_REDIS_REST_URL", "https://test.upstash.io")
os.environ.setdefault("UPSTASH_REDIS_REST_TOKEN", "test_token")

from storefront.cart.models import CartOwner
from storefront.cart.storage import CartStorage
from storefront.cart.store import CartStore
from storefront.config import CartSettings
from storefront.errors import PersistenceError
from storefront.services.models import CatalogEntity
from storefront.services.normalize import normalize_combo, normalize_product


class FakeRedis:
    """Async stand-in for the Upstash client, backed by a dict."""

    def __init__(self):
        self.values: Dict[str, str] = {}
        self.expiry: Dict[str, int] = {}
        self.streams: Dict[str, list] = {}

    async def get(self, key):
        return self.values.get(key)

    async def set(self, key, value, ex=None):
        self.values[key] = value
        if ex is not None:
            self.expiry[key] = ex
        return True

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            removed += 1 if self.values.pop(key, None) is not None else 0
        return removed

    async def xadd(self, key, id, data):
        self.streams.setdefault(key, []).append(data)
        return f"{len(self.streams[key])}-0"


class InMemoryCartStorage(CartStorage):
    """CartStorage fake with failure switches and per-call completion gates."""

    name = "memory"

    def __init__(self, data: Optional[Dict[str, List[dict]]] = None):
        self.data = {owner: [dict(p) for p in payloads] for owner, payloads in (data or {}).items()}
        self.fail_loads = False
        self.fail_replaces = 0
        self.gates: List[asyncio.Event] = []
        self.replace_calls: List[tuple] = []

    async def load(self, owner_id):
        if self.fail_loads:
            raise PersistenceError("storage down", owner=owner_id)
        return [dict(p) for p in self.data.get(owner_id, [])]

    async def replace(self, owner_id, payloads):
        gate = self.gates.pop(0) if self.gates else None
        self.replace_calls.append((owner_id, [dict(p) for p in payloads]))
        if gate is not None:
            await gate.wait()
        if self.fail_replaces:
            self.fail_replaces -= 1
            raise PersistenceError("storage down", owner=owner_id)
        if payloads:
            self.data[owner_id] = [dict(p) for p in payloads]
        else:
            self.data.pop(owner_id, None)
        return True


class FakeCatalog:
    """Catalog collaborator returning fixed entities per composite key."""

    def __init__(self, entities: Optional[dict] = None):
        self.entities = entities or {}
        self.calls = []

    async def resolve_catalog_entity(self, product_id, variant_id=None, combo_id=None):
        self.calls.append((product_id, variant_id, combo_id))
        return self.entities.get((product_id, variant_id, combo_id))


@pytest.fixture
def mock_supabase_client():
    """Mock async Supabase client"""
    client = Mock()

    # Mock table operations
    table_mock = Mock()
    table_mock.select.return_value = table_mock
    table_mock.insert.return_value = table_mock
    table_mock.delete.return_value = table_mock
    table_mock.eq.return_value = table_mock
    table_mock.limit.return_value = table_mock
    table_mock.execute = AsyncMock(return_value=Mock(data=[]))

    client.table.return_value = table_mock
    return client


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def memory_storage():
    return InMemoryCartStorage()


@pytest.fixture
def settings():
    return CartSettings(serialize_saves=True, realtime_enabled=False)


@pytest.fixture
def sample_product_payload():
    """Product row as returned by a joined Supabase query"""
    return {
        "id": "prod-1",
        "name": "Classic Pack",
        "brand_id": "brand-1",
        "brand": {"id": "brand-1", "name": "Premium"},
        "price": None,
        "is_active": True,
        "product_variants": [
            {
                "id": "var-10",
                "product_id": "prod-1",
                "variant_name": "10 pack",
                "price": 500,
                "is_active": True,
                "is_default": False,
                "images": ["https://img.test/var-10.jpg"],
            },
            {
                "id": "var-20",
                "product_id": "prod-1",
                "variant_name": "20 pack",
                "price": "900.00",
                "is_active": True,
                "is_default": True,
                "images": None,
            },
        ],
    }


@pytest.fixture
def sample_product(sample_product_payload):
    return normalize_product(sample_product_payload)


@pytest.fixture
def product_x():
    """Product without variants, legacy price 250"""
    return normalize_product({"id": "prod-x", "name": "Product X", "price": 250})


@pytest.fixture
def product_y():
    return normalize_product({"id": "prod-y", "name": "Product Y", "price": "99.50"})


@pytest.fixture
def variant_product():
    """Product with one non-default variant V1 priced 500"""
    return normalize_product({
        "id": "prod-x",
        "name": "Product X",
        "price": 250,
        "product_variants": [
            {"id": "v1", "variant_name": "V1", "price": 500, "images": ["https://img.test/v1.jpg"]},
        ],
    })


@pytest.fixture
def sample_combo_payload():
    return {
        "id": "combo-c",
        "name": "Starter Combo",
        "combo_price": 1200,
        "is_active": True,
        "combo_image": "https://img.test/combo.jpg",
        "combo_items": [
            {"product_id": "prod-y", "variant_id": None, "quantity": 1, "sort_order": 2},
            {"product_id": "prod-1", "variant_id": "var-20", "quantity": 2, "sort_order": 1},
        ],
    }


@pytest.fixture
def sample_combo(sample_combo_payload):
    return normalize_combo(sample_combo_payload)


@pytest.fixture
def catalog():
    return FakeCatalog({
        ("prod-a", None, None): CatalogEntity(unit_price=100, display_name="Product A"),
        ("prod-b", None, None): CatalogEntity(unit_price=40, display_name="Product B"),
        ("prod-1", "var-20", None): CatalogEntity(
            unit_price=900, display_name="Classic Pack", variant_name="20 pack"
        ),
        ("prod-1", None, "combo-c"): CatalogEntity(
            unit_price=1200, display_name="Starter Combo", combo_name="Starter Combo"
        ),
    })


@pytest.fixture
def guest_owner():
    return CartOwner.anonymous("guest-token-123")


@pytest.fixture
def ready_store(guest_owner, memory_storage):
    """Empty store, loaded and ready for mutations"""
    store = CartStore(serialize_saves=True)
    store.begin_loading(guest_owner, memory_storage)
    store.seed([])
    return store


@pytest.fixture
def make_storage():
    """Factory for in-memory storages seeded with payloads per owner"""
    return InMemoryCartStorage
