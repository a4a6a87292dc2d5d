"""
Tests for the guest-to-user cart merge
"""

from decimal import Decimal

import pytest

from storefront.cart.merge import MergeResolver, collapse_lines, merge_lines
from storefront.cart.models import BaseLine, ComboLine, VariantLine


def base(product_id, quantity, price="10"):
    return BaseLine(product_id=product_id, quantity=quantity, product_price=price)


class TestMergeLines:
    """Pure merge of two line lists."""

    def test_keys_on_both_sides_add_quantities(self):
        result = merge_lines([base("a", 1)], [base("a", 3), base("b", 1)])

        assert [(line.product_id, line.quantity) for line in result.lines] == [("a", 4), ("b", 1)]
        assert result.anomalies == []

    def test_one_sided_keys_unchanged(self):
        guest = VariantLine(product_id="a", quantity=2, variant_id="v", variant_price="7.5")
        durable = base("b", 1)

        result = merge_lines([guest], [durable])

        assert result.lines == [durable, guest]

    def test_result_size_is_union_of_keys(self):
        guest = [base("a", 1), VariantLine(product_id="a", quantity=1, variant_id="v"), base("c", 2)]
        durable = [base("a", 5), ComboLine(product_id="a", quantity=1, combo_id="k")]

        result = merge_lines(guest, durable)

        keys = {line.key for line in guest} | {line.key for line in durable}
        assert len(result.lines) == len(keys) == 4
        assert next(line for line in result.lines if line.key == ("a", None, None)).quantity == 6

    def test_durable_snapshot_kept_for_shared_keys(self):
        result = merge_lines([base("a", 1, price="99")], [base("a", 1, price="10")])

        assert result.lines[0].product_price == Decimal("10")

    def test_empty_sides(self):
        assert merge_lines([], []).lines == []
        only_guest = merge_lines([base("a", 1)], []).lines
        assert [(line.product_id, line.quantity) for line in only_guest] == [("a", 1)]

    def test_duplicate_keys_reported_as_anomalies(self):
        result = merge_lines([base("a", 1), base("a", 2)], [base("a", 4)])

        assert result.lines[0].quantity == 7
        assert len(result.anomalies) == 1
        anomaly = result.anomalies[0]
        assert anomaly.source == "anonymous"
        assert anomaly.quantities == (1, 2)

    def test_collapse_keeps_first_position(self):
        result = collapse_lines([base("a", 1), base("b", 1), base("a", 1)])

        assert [(line.product_id, line.quantity) for line in result.lines] == [("a", 2), ("b", 1)]


@pytest.fixture
def storages(make_storage):
    ephemeral = make_storage({
        "guest-token-123": [{"product_id": "prod-a", "quantity": 1, "product_price": "100"}],
    })
    durable = make_storage({
        "user-123": [
            {"product_id": "prod-a", "variant_id": None, "combo_id": None, "quantity": 3},
            {"product_id": "prod-b", "variant_id": None, "combo_id": None, "quantity": 1},
        ],
    })
    return ephemeral, durable


class TestMergeResolver:
    """Merge run against both storages."""

    @pytest.mark.asyncio
    async def test_login_merge(self, storages, catalog):
        """Guest A x1 + user A x3, B x1 -> A x4, B x1; guest cart cleared"""
        ephemeral, durable = storages
        resolver = MergeResolver(ephemeral, durable, catalog)

        outcome = await resolver.run("guest-token-123", "user-123")

        assert outcome.completed
        assert [(line.product_id, line.quantity) for line in outcome.lines] == [("prod-a", 4), ("prod-b", 1)]
        assert [(row["product_id"], row["quantity"]) for row in durable.data["user-123"]] == [
            ("prod-a", 4),
            ("prod-b", 1),
        ]
        assert "guest-token-123" not in ephemeral.data

    @pytest.mark.asyncio
    async def test_empty_guest_cart_skips_write(self, storages, catalog):
        ephemeral, durable = storages
        ephemeral.data.clear()
        resolver = MergeResolver(ephemeral, durable, catalog)

        outcome = await resolver.run("guest-token-123", "user-123")

        assert outcome.completed
        assert len(outcome.lines) == 2
        assert durable.replace_calls == []

    @pytest.mark.asyncio
    async def test_guest_line_keeps_its_snapshot(self, catalog, make_storage):
        ephemeral = make_storage({
            "guest": [{"product_id": "prod-z", "quantity": 2, "product_price": "33.00", "name": "Z"}],
        })
        durable = make_storage()
        resolver = MergeResolver(ephemeral, durable, catalog)

        outcome = await resolver.run("guest", "user-123")

        assert outcome.lines[0].product_price == Decimal("33.00")
        assert durable.data["user-123"][0]["product_id"] == "prod-z"

    @pytest.mark.asyncio
    async def test_durable_load_failure_fails_open(self, storages, catalog):
        """Empty cart shown, guest lines kept for the next attempt"""
        ephemeral, durable = storages
        durable.fail_loads = True
        resolver = MergeResolver(ephemeral, durable, catalog)

        outcome = await resolver.run("guest-token-123", "user-123")

        assert not outcome.completed
        assert outcome.lines == []
        assert "guest-token-123" in ephemeral.data
        assert durable.replace_calls == []

    @pytest.mark.asyncio
    async def test_durable_replace_failure_keeps_guest_cart(self, storages, catalog):
        ephemeral, durable = storages
        durable.fail_replaces = 1
        resolver = MergeResolver(ephemeral, durable, catalog)

        outcome = await resolver.run("guest-token-123", "user-123")

        assert not outcome.completed
        assert [(line.product_id, line.quantity) for line in outcome.lines] == [("prod-a", 3), ("prod-b", 1)]
        assert "guest-token-123" in ephemeral.data
