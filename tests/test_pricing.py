"""
Tests for order pricing, weight derivation and legacy order normalization.
"""

from datetime import datetime, timezone

import pytest

from pricing import (
    compute_order_total,
    compute_order_weight_kg,
    dashboard_summary,
    format_money,
    format_weight,
    normalize_order,
    order_aggregates,
    parse_price,
    quote_order,
)
from schemas import DeliveryZone, OrderStatus, UnitSize


class TestQuoteOrder:
    """Tests for the checkout pricing derivation."""

    @pytest.mark.parametrize("price", [0, 1, 199.5, 500, 1234.75])
    @pytest.mark.parametrize("unit_size", list(UnitSize))
    @pytest.mark.parametrize("quantity", [1, 2, 7])
    @pytest.mark.parametrize("zone", list(DeliveryZone))
    def test_totals_are_consistent(self, price, unit_size, quantity, zone):
        quote = quote_order(price, unit_size, quantity, zone)

        fraction = 0.5 if unit_size == UnitSize.HALF else 1.0
        assert quote.unit_price == price * fraction
        assert quote.items_total == quote.unit_price * quantity
        assert quote.grand_total == quote.unit_price * quantity + quote.delivery_fee
        assert quote.total_weight_kg == fraction * quantity

    def test_half_kg_inside_zone(self):
        quote = quote_order(500, UnitSize.HALF, 3, DeliveryZone.INSIDE)

        assert quote.unit_price == 250
        assert quote.items_total == 750
        assert quote.delivery_fee == 80
        assert quote.grand_total == 830
        assert quote.total_weight_kg == 1.5

    def test_whole_kg_outside_zone(self):
        quote = quote_order(200, UnitSize.WHOLE, 1, DeliveryZone.OUTSIDE)

        assert quote.delivery_fee == 120
        assert quote.grand_total == 320

    def test_accepts_raw_enum_values(self):
        quote = quote_order(100, "1kg", 2, "outside")
        assert quote.grand_total == 320


class TestParsePrice:
    """Tests for parsing stored prices."""

    def test_numbers_pass_through(self):
        assert parse_price(450) == 450.0
        assert parse_price(12.5) == 12.5

    def test_bengali_digits_and_currency_sign(self):
        assert parse_price("৳ ১২০০") == 1200.0
        assert parse_price("১,৫০০.৫০") == 1500.5

    def test_garbage_degrades_to_zero(self):
        assert parse_price(None) == 0.0
        assert parse_price("call us") == 0.0
        assert parse_price(float("nan")) == 0.0


class TestOrderWeight:
    """Tests for the weight fallback chain on stored orders."""

    def test_explicit_kg_beats_ambiguous_weight(self):
        record = {"quantity": 2, "unit_weight_kg": 0.5, "unit_weight": 750}
        assert compute_order_weight_kg(record) == 1.0

    def test_camel_case_explicit_kg(self):
        assert compute_order_weight_kg({"quantity": 3, "unitWeightKg": "1"}) == 3.0

    def test_ambiguous_below_threshold_is_kg(self):
        assert compute_order_weight_kg({"quantity": 1, "unitWeight": 9.99}) == pytest.approx(9.99)

    def test_ambiguous_at_threshold_is_grams(self):
        assert compute_order_weight_kg({"quantity": 1, "unitWeight": 10}) == pytest.approx(0.01)

    def test_ambiguous_grams_times_quantity(self):
        assert compute_order_weight_kg({"quantity": 4, "unitWeight": 500}) == pytest.approx(2.0)

    def test_label_in_grams(self):
        assert compute_order_weight_kg({"quantity": 4, "weightLabel": "250g"}) == pytest.approx(1.0)

    def test_label_in_kg_with_space_and_comma(self):
        assert compute_order_weight_kg({"quantity": 2, "weight_label": "0,5 KG"}) == pytest.approx(1.0)

    def test_unitless_label_uses_threshold(self):
        assert compute_order_weight_kg({"quantity": 2, "weightLabel": "2"}) == pytest.approx(4.0)
        assert compute_order_weight_kg({"quantity": 2, "weightLabel": "500"}) == pytest.approx(1.0)

    def test_non_positive_ambiguous_weight_falls_through_to_label(self):
        record = {"quantity": 2, "unitWeight": 0, "weightLabel": "1kg"}
        assert compute_order_weight_kg(record) == pytest.approx(2.0)

    def test_defaults_to_one_kg_per_item(self):
        assert compute_order_weight_kg({"quantity": 3, "weightLabel": "heavy"}) == 3.0

    def test_missing_or_bad_quantity_is_zero(self):
        assert compute_order_weight_kg({"unitWeightKg": 1}) == 0.0
        assert compute_order_weight_kg({"quantity": "many", "unitWeightKg": 1}) == 0.0


class TestOrderTotal:
    """Tests for the grand total fallback chain on stored orders."""

    def test_stored_grand_total_wins(self):
        assert compute_order_total({"grandTotal": 830, "itemsTotal": 1, "deliveryFee": 1}) == 830

    def test_items_total_plus_fee(self):
        assert compute_order_total({"itemsTotal": 750, "deliveryFee": 80}) == 830

    def test_unit_price_times_quantity_plus_fee(self):
        assert compute_order_total({"unitPrice": 250, "quantity": 3, "deliveryFee": 120}) == 870

    def test_falls_back_to_legacy_price_field(self):
        assert compute_order_total({"price": "100", "quantity": 2}) == 200

    def test_nothing_usable_is_zero(self):
        assert compute_order_total({}) == 0
        assert compute_order_total({"grandTotal": "n/a"}) == 0


class TestNormalizeOrder:
    """Tests for resolving raw order documents."""

    def test_legacy_camel_case_record(self):
        created = datetime(2024, 5, 1, tzinfo=timezone.utc)
        order = normalize_order({
            "_id": "abc",
            "productTitle": "Ghee",
            "quantity": 4,
            "unitWeight": 500,
            "unitPrice": 300,
            "deliveryFee": 80,
            "deliveryType": "inside",
            "name": "Rahim",
            "phone": "01711000000",
            "address": "Dhaka",
            "status": "confirmed",
            "createdAt": created,
        })

        assert order.id == "abc"
        assert order.product_title == "Ghee"
        assert order.total_weight_kg == pytest.approx(2.0)
        assert order.grand_total == 1280
        assert order.delivery_zone == "inside"
        assert order.status == OrderStatus.CONFIRMED
        assert order.created_at == created

    def test_unknown_status_reads_as_pending(self):
        assert normalize_order({"_id": "x", "status": "shipped"}).status == OrderStatus.PENDING


class TestAggregates:
    """Tests for dashboard and orders-page aggregates."""

    def _orders(self):
        return [
            normalize_order({"_id": "1", "quantity": 2, "unit_weight_kg": 0.5, "grand_total": 580, "status": "pending"}),
            normalize_order({"_id": "2", "quantity": 1, "unit_weight_kg": 1, "grand_total": 320, "status": "confirmed"}),
            normalize_order({"_id": "3", "quantity": 3, "grand_total": 100}),
        ]

    def test_order_aggregates(self):
        totals = order_aggregates(self._orders())

        assert totals == {
            "total_orders": 3,
            "total_quantity": 6,
            "total_weight_kg": 5.0,
            "total_revenue": 1000,
        }

    def test_dashboard_summary(self):
        summary = dashboard_summary(self._orders(), recent=2)

        assert summary["total_orders"] == 3
        assert summary["pending"] == 2
        assert summary["confirmed"] == 1
        assert summary["revenue_estimate"] == 1000
        assert [o.id for o in summary["recent"]] == ["1", "2"]


class TestFormatting:
    """Tests for display formatting."""

    def test_money(self):
        assert format_money(1250) == "1,250"
        assert format_money(830.0) == "830"

    def test_weight(self):
        assert format_weight(1.5) == "1.50 kg"
        assert format_weight(0.5) == "500 g"
