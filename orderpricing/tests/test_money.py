"""
金额工具测试
"""

from decimal import Decimal

import pytest

from orderpricing.core.exceptions import ValidationError
from orderpricing.core.money import (
    ROUNDING_STRATEGIES,
    apply_bps,
    coerce_decimal,
    embedded_bps,
    from_cents,
    percent_of,
    round_div,
    to_cents,
)


class TestCentsConversion:
    """小数金额与分的转换"""

    def test_to_cents_rounds_half_up(self):
        assert to_cents("10.005") == 1001
        assert to_cents(Decimal("0.125")) == 13
        assert to_cents(12) == 1200

    def test_float_artifacts_do_not_leak(self):
        # 1.005 在二进制浮点中略小于 1.005
        assert to_cents(1.005) == 101
        assert to_cents(0.1 + 0.2) == 30

    @pytest.mark.parametrize("value", [float("nan"), float("inf"), "abc", None, True])
    def test_invalid_amounts_rejected(self, value):
        with pytest.raises(ValidationError):
            to_cents(value)

    def test_from_cents_has_two_places(self):
        assert from_cents(1234) == Decimal("12.34")
        assert str(from_cents(5)) == "0.05"

    def test_coerce_decimal_absorbs_garbage(self):
        assert coerce_decimal("12.5") == Decimal("12.5")
        assert coerce_decimal("NaN") is None
        assert coerce_decimal({}) is None
        assert coerce_decimal(False) is None


class TestRounding:
    """整数取整"""

    def test_half_up_vs_half_even(self):
        assert round_div(25, 10, "half_up") == 3
        assert round_div(25, 10, "half_even") == 2
        assert round_div(35, 10, "half_even") == 4
        assert round_div(24, 10, "half_even") == 2

    def test_negative_numerators_round_away_from_zero(self):
        assert round_div(-25, 10, "half_up") == -3

    def test_unknown_mode_rejected(self):
        with pytest.raises(ValidationError):
            round_div(1, 2, "bankers_ceiling")

    def test_registry_lists_supported_modes(self):
        assert set(ROUNDING_STRATEGIES) == {"half_up", "half_even"}

    def test_bps_helpers(self):
        assert apply_bps(100, 1000) == 10
        assert embedded_bps(110, 1000) == 10
        assert embedded_bps(1160, 1600) == 160
        assert percent_of(3, 33) == 1
