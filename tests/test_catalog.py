"""Tests for hydration and catalog lookups"""
from decimal import Decimal
from unittest.mock import AsyncMock, Mock

import pytest

from storefront.cart.catalog import hydrate_lines
from storefront.cart.models import BaseLine, ComboLine, VariantLine
from storefront.services.repositories.catalog_repo import CatalogRepository


@pytest.mark.asyncio
async def test_snapshot_payloads_rebuilt_without_catalog():
    """Test guest payloads keep their own price snapshot"""
    lines = await hydrate_lines([
        {"product_id": "prod-x", "quantity": 2, "product_price": "250"},
    ])

    assert len(lines) == 1
    assert isinstance(lines[0], BaseLine)
    assert lines[0].product_price == Decimal("250")


@pytest.mark.asyncio
async def test_rows_priced_through_catalog(catalog):
    """Test id-only durable rows are resolved in stored order"""
    lines = await hydrate_lines(
        [
            {"product_id": "prod-1", "variant_id": "var-20", "combo_id": None, "quantity": 1},
            {"product_id": "prod-a", "variant_id": None, "combo_id": None, "quantity": 3},
            {"product_id": "prod-1", "variant_id": None, "combo_id": "combo-c", "quantity": 1},
        ],
        catalog,
    )

    assert [type(line) for line in lines] == [VariantLine, BaseLine, ComboLine]
    assert lines[0].variant_price == Decimal("900")
    assert lines[1].quantity == 3
    assert lines[2].combo_price == Decimal("1200")


@pytest.mark.asyncio
async def test_unresolvable_and_malformed_rows_dropped(catalog):
    lines = await hydrate_lines(
        [
            {"product_id": "deleted-product", "quantity": 1},
            {"product_id": "prod-a", "quantity": 0},
            {"product_id": "prod-b", "quantity": 1},
        ],
        catalog,
    )

    assert [line.product_id for line in lines] == ["prod-b"]


@pytest.mark.asyncio
async def test_row_with_variant_and_combo_resolved_as_variant(catalog):
    await hydrate_lines(
        [{"product_id": "prod-1", "variant_id": "var-20", "combo_id": "combo-c", "quantity": 1}],
        catalog,
    )

    assert catalog.calls == [("prod-1", "var-20", None)]


@pytest.mark.asyncio
async def test_catalog_failure_propagates():
    catalog = Mock()
    catalog.resolve_catalog_entity = AsyncMock(side_effect=RuntimeError("catalog down"))

    with pytest.raises(RuntimeError):
        await hydrate_lines([{"product_id": "p", "quantity": 1}], catalog)


@pytest.mark.asyncio
async def test_rows_dropped_without_catalog():
    assert await hydrate_lines([{"product_id": "p", "quantity": 1}]) == []


@pytest.mark.asyncio
async def test_repository_resolves_product_variant(mock_supabase_client, sample_product_payload):
    """Test catalog repository normalizes and prices a variant"""
    table = mock_supabase_client.table.return_value
    table.execute.return_value = Mock(data=[sample_product_payload])
    repo = CatalogRepository(mock_supabase_client)

    entity = await repo.resolve_catalog_entity("prod-1", "var-10")

    mock_supabase_client.table.assert_called_with("products")
    assert entity.unit_price == Decimal("500")
    assert entity.display_name == "Classic Pack"
    assert entity.variant_name == "10 pack"


@pytest.mark.asyncio
async def test_repository_resolves_combo(mock_supabase_client, sample_combo_payload):
    table = mock_supabase_client.table.return_value
    table.execute.return_value = Mock(data=[sample_combo_payload])
    repo = CatalogRepository(mock_supabase_client)

    entity = await repo.resolve_catalog_entity("prod-1", combo_id="combo-c")

    mock_supabase_client.table.assert_called_with("product_combos")
    assert entity.unit_price == Decimal("1200")
    assert entity.combo_name == "Starter Combo"


@pytest.mark.asyncio
async def test_repository_missing_product(mock_supabase_client):
    repo = CatalogRepository(mock_supabase_client)

    assert await repo.get_product("nope") is None
    assert await repo.resolve_catalog_entity("nope") is None
    assert await repo.get_combo("nope") is None
