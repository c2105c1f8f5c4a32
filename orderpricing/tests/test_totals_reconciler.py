"""
订单金额归一化测试
"""

import pytest

from orderpricing.models.order import AmountsOrder, LineItemsOrder, TotalsCentsOrder, TotalsDecimalOrder
from orderpricing.services.totals_reconciler import (
    classify_order,
    legacy_line_total_cents,
    reconcile_totals,
)

# 同一笔订单（小计 23.00 含配送费，小费 2.00）的四种历史存储形态
TOTALS_DECIMAL = {"totals": {"subtotal": 20, "deliveryFee": 3, "tip": 2, "currency": "MXN"}}
AMOUNTS = {"amounts": {"subtotal": "23.00", "tip": "2.00", "total": "25.00"}, "currency": "MXN"}
TOTALS_CENTS = {"totals": {"totalCents": 2300, "currency": "MXN"}, "amounts": {"tip": 2}}
LINE_ITEMS = {
    "items": [{"basePrice": 10, "quantity": 2}, {"name": "envio", "totalCents": 300}],
    "tip": "2",
    "taxSnapshot": {"currency": "MXN"},
}


class TestClassification:
    """形态识别"""

    @pytest.mark.parametrize("raw, shape", [
        (TOTALS_DECIMAL, TotalsDecimalOrder),
        (AMOUNTS, AmountsOrder),
        (TOTALS_CENTS, TotalsCentsOrder),
        (LINE_ITEMS, LineItemsOrder),
    ])
    def test_shape_detection(self, raw, shape):
        assert isinstance(classify_order(raw), shape)

    def test_non_finite_amounts_total_falls_through(self):
        raw = {"amounts": {"total": "NaN", "tip": 1}, "totals": {"totalCents": 500}}
        assert isinstance(classify_order(raw), TotalsCentsOrder)

    def test_garbage_document_is_empty_line_items(self):
        totals = reconcile_totals(None)
        assert totals.grand_total_cents == 0
        assert totals.source == "line_items"


class TestEquivalence:
    """四种形态得到相同的总计"""

    @pytest.mark.parametrize("raw", [TOTALS_DECIMAL, AMOUNTS, TOTALS_CENTS, LINE_ITEMS])
    def test_same_grand_total_across_shapes(self, raw):
        totals = reconcile_totals(raw)
        assert totals.grand_total_cents == 2500
        assert totals.tip_cents == 200
        assert totals.currency == "MXN"

    def test_stored_order_total_wins(self):
        raw = {"totals": {"subtotal": 10, "tip": 1}, "orderTotal": "12.34"}
        assert reconcile_totals(raw).grand_total_cents == 1234

    def test_non_finite_order_total_is_recomputed(self):
        raw = {"totals": {"subtotal": 10, "tip": 1, "discount": 2, "orderTotal": "NaN"}}
        assert reconcile_totals(raw).grand_total_cents == 900

    def test_default_currency_when_missing(self):
        assert reconcile_totals({"amounts": {"total": 1}}, default_currency="EUR").currency == "EUR"


class TestLegacyLines:
    """历史订单行的异常值"""

    def test_stored_line_total_wins(self):
        assert legacy_line_total_cents({"basePrice": 99, "quantity": 5, "totalCents": 1234}) == 1234

    @pytest.mark.parametrize("quantity", [0, "-3", "abc", None])
    def test_bad_quantity_counts_as_one(self, quantity):
        assert legacy_line_total_cents({"basePriceCents": 450, "quantity": quantity}) == 450

    def test_selected_options_and_extras_are_added(self):
        raw_line = {
            "price": 5,
            "qty": 2,
            "options": [{"selected": [{"priceDelta": "1.50"}]}],
            "extras": [{"priceCents": 25}, "salsa"],
        }
        assert legacy_line_total_cents(raw_line) == (500 + 150 + 25) * 2

    def test_menu_item_price_fallback(self):
        assert legacy_line_total_cents({"menuItem": {"price": "7.25"}}) == 725

    def test_unparseable_price_is_zero(self):
        assert legacy_line_total_cents({"price": "NaN", "quantity": 3}) == 0

    def test_negative_deltas_clamp_line_at_zero(self):
        raw_line = {"basePriceCents": 100, "optionGroups": [{"items": [{"priceDeltaCents": -500}]}]}
        assert legacy_line_total_cents(raw_line) == 0

    def test_non_dict_line_is_ignored(self):
        assert legacy_line_total_cents("oops") == 0
