"""
报表服务测试
"""

import pytest

from orderpricing.models.order import CheckoutRequest
from orderpricing.models.tax import TaxProfile
from orderpricing.services.checkout_service import CheckoutService
from orderpricing.services.config_repository import TaxProfileRepository
from orderpricing.services.report_service import ReportService

from factories import NOW, TENANT, make_line

PROFILE = {
    "currency": "MXN",
    "pricesIncludeTax": False,
    "rates": [
        {"code": "ZERO", "rateBps": 0, "zeroRated": True, "appliesTo": {"tags": ["basic"]}},
        {"code": "IVA", "rateBps": 1600, "appliesTo": {"excludeTags": ["basic"]}},
    ],
}


@pytest.fixture
def reports(test_db, test_settings):
    TaxProfileRepository(test_db).save_profile(TENANT, TaxProfile.model_validate(PROFILE))
    checkout = CheckoutService(test_db, test_settings)
    checkout.place_order(TENANT, CheckoutRequest(lines=[make_line(base=1000)], order_type="mesa"), now=NOW)
    checkout.place_order(TENANT, CheckoutRequest(
        lines=[make_line(base=500), make_line(menu_item_id="tortilla", base=200, tags=("basic",))],
        order_type="pickup",
    ), now=NOW)
    # 没有税额快照的历史订单
    checkout.orders.insert(TENANT, "legacy-1", {"amounts": {"subtotal": 10, "tip": 1, "total": 11},
                                                "currency": "USD"})
    return ReportService(test_db, test_settings)


class TestRevenue:
    """营业额"""

    def test_grouped_by_currency_and_source(self, reports):
        result = reports.revenue(TENANT)

        assert result["order_count"] == 3
        assert result["by_source"] == {"totals_decimal": 2, "amounts": 1}
        assert result["by_currency"]["MXN"]["grand_total_cents"] == 1160 + 580 + 200
        assert result["by_currency"]["MXN"]["tax_cents"] == 160 + 80
        assert result["by_currency"]["USD"]["grand_total_cents"] == 1100

    def test_other_tenant_is_empty(self, reports):
        assert reports.revenue("tenant-b")["order_count"] == 0


class TestTaxReport:
    """税务汇总"""

    def test_rates_zero_rated_and_legacy_counts(self, reports):
        result = reports.tax(TENANT)

        assert result["order_count"] == 2
        assert result["orders_without_snapshot"] == 1
        iva = result["rates"][0]
        assert (iva["code"], iva["rate_bps"], iva["currency"]) == ("IVA", 1600, "MXN")
        assert iva["base_cents"] == 1500
        assert iva["tax_cents"] == 240
        assert iva["order_count"] == 2
        assert result["zero_rated"] == [{"jurisdiction": "", "code": "ZERO", "currency": "MXN", "base_cents": 200}]

    def test_order_type_filter_accepts_aliases(self, reports):
        result = reports.tax(TENANT, order_type="dine-in")
        assert result["order_count"] == 1
        assert result["rates"][0]["tax_cents"] == 160

    def test_rate_code_filter(self, reports):
        assert reports.tax(TENANT, rate_code="zero")["order_count"] == 0
        assert reports.tax(TENANT, rate_code="iva")["order_count"] == 2

    def test_malformed_legacy_snapshot_is_coerced(self, reports):
        """历史快照中的字符串金额、非字符串辖区和非对象条目不影响汇总"""
        reports.orders.insert(TENANT, "legacy-2", {"taxSnapshot": {
            "jurisdictionApplied": 7,
            "currency": "MXN",
            "summaryByRate": [
                {"code": "IVA", "rateBps": "1600", "baseCents": "1000", "taxCents": "160.0"},
                "IVA 16%",
                None,
            ],
            "summaryZeroRated": [{"code": "ZERO", "baseCents": "50"}, 3],
            "summaryExempt": "none",
        }})
        result = reports.tax(TENANT)

        assert result["order_count"] == 3
        legacy = [row for row in result["rates"] if row["jurisdiction"] == "7"]
        assert legacy == [{
            "jurisdiction": "7", "code": "IVA", "rate_bps": 1600, "currency": "MXN",
            "base_cents": 1000, "tax_cents": 160, "order_count": 1,
        }]
        assert {"jurisdiction": "7", "code": "ZERO", "currency": "MXN", "base_cents": 50} in result["zero_rated"]
        assert reports.tax(TENANT, jurisdiction="7")["order_count"] == 1
