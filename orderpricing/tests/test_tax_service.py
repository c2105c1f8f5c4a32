"""
税额快照计算测试
"""

import pytest

from orderpricing.models.tax import AddressInfo, CustomerInfo, TaxProfile, zero_tax_profile
from orderpricing.services.config_repository import TaxProfileRepository
from orderpricing.services.line_pricer import price_lines
from orderpricing.services.promotion_service import allocate_discount
from orderpricing.services.tax_service import calculate_tax_snapshot, resolve_effective_profile

from factories import TENANT, make_line, make_promotion


def _profile(**overrides) -> TaxProfile:
    data = {
        "currency": "MXN",
        "pricesIncludeTax": False,
        "rates": [{"code": "IVA", "label": "IVA 10%", "rateBps": 1000, "appliesTo": "all"}],
    }
    data.update(overrides)
    return TaxProfile.model_validate(data)


class TestInclusiveExclusive:
    """价内税与价外税"""

    def test_exclusive_tax_added_on_top(self):
        snapshot = calculate_tax_snapshot(_profile(), price_lines([make_line(base=100)]))

        assert snapshot.totals.sub_total_cents == 100
        assert snapshot.totals.tax_cents == 10
        assert snapshot.totals.grand_total_cents == 110

    def test_inclusive_tax_embedded(self):
        snapshot = calculate_tax_snapshot(_profile(pricesIncludeTax=True), price_lines([make_line(base=110)]))

        assert snapshot.totals.sub_total_cents == 100
        assert snapshot.totals.tax_cents == 10
        assert snapshot.totals.grand_total_cents == 110

    def test_discount_reduces_taxable_base(self):
        lines = price_lines([make_line(base=1000)])
        applied = allocate_discount(make_promotion(value=20), lines)
        snapshot = calculate_tax_snapshot(_profile(), lines, applied_promotion=applied)

        assert snapshot.line_breakdown[0].base_cents == 800
        assert snapshot.totals.tax_cents == 80
        assert snapshot.totals.grand_total_cents == 880

    def test_half_even_rounding_mode(self):
        profile = _profile(rounding="half_even", rates=[{"code": "T", "rateBps": 500}])
        # 50 × 5% = 2.5 → 2（half_up 为 3）
        snapshot = calculate_tax_snapshot(profile, price_lines([make_line(base=50)]))
        assert snapshot.totals.tax_cents == 2


class TestZeroTax:
    """零税率兜底"""

    def test_zero_tax_profile_yields_sum_of_lines(self):
        lines = price_lines([make_line(base=1234, quantity=2), make_line(base=99)])
        snapshot = calculate_tax_snapshot(zero_tax_profile(), lines, delivery_fee_cents=500)

        assert snapshot.totals.tax_cents == 0
        assert snapshot.totals.grand_total_cents == snapshot.totals.sub_total_cents
        assert snapshot.totals.grand_total_cents == 2468 + 99 + 500

    def test_repository_falls_back_to_zero_tax(self, test_db, test_settings):
        repo = TaxProfileRepository(test_db, test_settings)
        profile = repo.get_active(TENANT)

        assert profile.prices_include_tax is True
        assert profile.rates[0].rate_bps == 0
        assert profile.delivery.mode.value == "as_line"
        assert profile.currency == test_settings.default_currency

    def test_repository_returns_saved_profile(self, test_db):
        repo = TaxProfileRepository(test_db)
        repo.save_profile(TENANT, _profile())
        assert repo.get_active(TENANT).rates[0].code == "IVA"


class TestExemptAndZeroRated:
    """免税与零税率"""

    def test_exempt_line_adds_base_without_tax(self):
        lines = price_lines([make_line(base=100), make_line(base=200, tax_exempt=True)])
        snapshot = calculate_tax_snapshot(_profile(), lines)

        assert snapshot.totals.sub_total_cents == 300
        assert snapshot.totals.tax_cents == 10
        assert snapshot.summary_exempt[0].base_cents == 200

    def test_zero_rated_rule_by_category(self):
        profile = _profile(rates=[
            {"code": "ZERO", "rateBps": 0, "zeroRated": True, "appliesTo": {"categoryIds": ["basics"]}},
            {"code": "IVA", "rateBps": 1000, "appliesTo": {"excludeTags": ["basic"]}},
        ])
        lines = price_lines([
            make_line(base=500, category_id="basics", tags=("basic",)),
            make_line(base=100, category_id="food"),
        ])
        snapshot = calculate_tax_snapshot(profile, lines)

        assert snapshot.summary_zero_rated[0].code == "ZERO"
        assert snapshot.summary_zero_rated[0].base_cents == 500
        assert snapshot.totals.tax_cents == 10
        assert snapshot.totals.grand_total_cents == 610

    def test_zero_rated_wins_over_overlapping_general_rate(self):
        """通用税率与零税率规则同时匹配时，整行按零税率处理"""
        profile = _profile(rates=[
            {"code": "IVA", "rateBps": 1000, "appliesTo": "all"},
            {"code": "ZERO", "rateBps": 0, "zeroRated": True, "appliesTo": {"categoryIds": ["basics"]}},
        ])
        snapshot = calculate_tax_snapshot(profile, price_lines([make_line(base=500, category_id="basics")]))

        assert snapshot.totals.tax_cents == 0
        assert snapshot.totals.grand_total_cents == 500
        assert snapshot.line_breakdown[0].zero_rated is True
        assert snapshot.summary_zero_rated[0].code == "ZERO"
        assert snapshot.summary_zero_rated[0].base_cents == 500
        assert snapshot.summary_by_rate == ()

    def test_b2b_customer_with_tax_id_is_exempt(self):
        profile = _profile(taxExemptWithTaxId=True)
        lines = price_lines([make_line(base=1000)])

        exempt = calculate_tax_snapshot(profile, lines, customer=CustomerInfo(tax_id="RFC123", name="ACME"))
        retail = calculate_tax_snapshot(profile, lines, customer=CustomerInfo(name="Juan"))

        assert exempt.totals.tax_cents == 0
        assert exempt.customer.tax_id == "RFC123"
        assert retail.totals.tax_cents == 100

    def test_order_type_restricted_rate(self):
        profile = _profile(rates=[{"code": "DLV", "rateBps": 1000, "orderTypes": ["delivery"]}])
        lines = price_lines([make_line(base=100)])

        assert calculate_tax_snapshot(profile, lines, order_type="envio").totals.tax_cents == 10
        assert calculate_tax_snapshot(profile, lines, order_type="pickup").totals.tax_cents == 0


class TestDeliveryAndSurcharges:
    """配送费与附加费"""

    def test_delivery_as_taxable_line(self):
        profile = _profile(delivery={"mode": "as_line", "taxable": True, "taxCode": "IVA"})
        snapshot = calculate_tax_snapshot(profile, price_lines([make_line(base=1000)]), delivery_fee_cents=200)

        assert snapshot.totals.tax_cents == 120
        assert snapshot.totals.grand_total_cents == 1320
        assert snapshot.line_breakdown[-1].line_id == "delivery"

    @pytest.mark.parametrize("mode", ["outside", "out_of_scope"])
    def test_delivery_outside_is_excluded(self, mode):
        profile = _profile(delivery={"mode": mode})
        snapshot = calculate_tax_snapshot(profile, price_lines([make_line(base=1000)]), delivery_fee_cents=200)

        assert snapshot.totals.grand_total_cents == 1100
        assert all(line.line_id != "delivery" for line in snapshot.line_breakdown)

    def test_taxable_surcharge(self):
        profile = _profile(surcharges=[
            {"code": "SVC", "label": "Servicio", "percentBps": 1000, "orderTypes": ["dine_in"], "taxable": True},
        ])
        lines = price_lines([make_line(base=1000)])

        dine_in = calculate_tax_snapshot(profile, lines, order_type="dine-in")
        pickup = calculate_tax_snapshot(profile, lines, order_type="pickup")

        assert dine_in.surcharges[0].base_cents == 100
        assert dine_in.surcharges[0].tax_cents == 10
        assert dine_in.totals.grand_total_cents == 1000 + 100 + 100 + 10
        assert pickup.surcharges == ()
        assert pickup.totals.grand_total_cents == 1100


class TestJurisdictions:
    """辖区覆盖"""

    def test_most_specific_match_wins(self):
        profile = _profile(jurisdictions=[
            {"code": "MX", "match": {"country": "MX"}, "rates": [{"code": "IVA16", "rateBps": 1600}]},
            {"code": "MX-FRONTERA", "match": {"country": "MX", "zipPrefix": "22"},
             "rates": [{"code": "IVA8", "rateBps": 800}]},
        ])
        effective, code = resolve_effective_profile(profile, AddressInfo(country="mx", zip="22000"))
        assert code == "MX-FRONTERA"
        assert effective.rates[0].code == "IVA8"

        snapshot = calculate_tax_snapshot(profile, price_lines([make_line(base=1000)]),
                                          address=AddressInfo(country="MX", zip="01000"))
        assert snapshot.jurisdiction_applied == "MX"
        assert snapshot.totals.tax_cents == 160

    def test_no_match_keeps_base_profile(self):
        profile = _profile(jurisdictions=[{"code": "US", "match": {"country": "US"}, "pricesIncludeTax": True}])
        effective, code = resolve_effective_profile(profile, AddressInfo(country="GT"))
        assert code is None
        assert effective.prices_include_tax is False
