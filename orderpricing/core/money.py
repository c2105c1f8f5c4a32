"""
金额工具模块
所有金额在内部一律以整数"分"表示，小数金额只在系统边界转换一次

主要功能：
- 小数金额与分之间的转换
- 精确的整数除法取整（可扩展的取整策略注册表）
- 基点（bps）税率和百分比计算
"""

import math
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Callable, Dict, Optional

from .exceptions import ValidationError

BPS_DENOMINATOR = 10000

CENTS = Decimal("0.01")


def _half_up(quotient: int, remainder: int, denominator: int) -> int:
    return quotient + 1 if 2 * remainder >= denominator else quotient


def _half_even(quotient: int, remainder: int, denominator: int) -> int:
    doubled = 2 * remainder
    if doubled > denominator:
        return quotient + 1
    if doubled == denominator:
        return quotient + (quotient % 2)
    return quotient


# 取整策略注册表：新增模式只需在此登记，调用方无需改动
ROUNDING_STRATEGIES: Dict[str, Callable[[int, int, int], int]] = {
    "half_up": _half_up,
    "half_even": _half_even,
}


def ensure_rounding_mode(mode: str) -> str:
    """校验取整模式是否已注册"""
    if mode not in ROUNDING_STRATEGIES:
        raise ValidationError(
            f"不支持的取整模式: {mode}",
            details={"rounding": mode, "supported": sorted(ROUNDING_STRATEGIES)}
        )
    return mode


def round_div(numerator: int, denominator: int, mode: str = "half_up") -> int:
    """
    整数除法并按指定模式取整，全程不经过浮点数

    负数按绝对值取整后再恢复符号（half_up 即"远离零"）。
    """
    if denominator <= 0:
        raise ValueError("denominator must be positive")
    strategy = ROUNDING_STRATEGIES[ensure_rounding_mode(mode)]
    sign = -1 if numerator < 0 else 1
    quotient, remainder = divmod(abs(numerator), denominator)
    return sign * strategy(quotient, remainder, denominator)


def apply_bps(amount_cents: int, rate_bps: int, mode: str = "half_up") -> int:
    """价外税：amount × rate_bps / 10000"""
    return round_div(amount_cents * rate_bps, BPS_DENOMINATOR, mode)


def embedded_bps(gross_cents: int, rate_bps: int, mode: str = "half_up") -> int:
    """价内税：gross − gross / (1 + rate)，即 gross × bps / (10000 + bps)"""
    return round_div(gross_cents * rate_bps, BPS_DENOMINATOR + rate_bps, mode)


def percent_of(amount_cents: int, percent: int, mode: str = "half_up") -> int:
    """amount 的 percent%"""
    return round_div(amount_cents * percent, 100, mode)


def coerce_decimal(value: Any) -> Optional[Decimal]:
    """把任意值转换为有限的 Decimal，无法转换或非有限时返回 None"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not result.is_finite():
        return None
    return result


def to_cents(amount: Any) -> int:
    """
    小数金额转换为分：round(amount × 100)，半数进位

    Raises:
        ValidationError: NaN、无穷大或无法解析的金额
    """
    value = coerce_decimal(amount)
    if value is None:
        raise ValidationError(f"无效的金额: {amount!r}", details={"amount": repr(amount)})
    return decimal_to_cents(value)


def from_cents(cents: int) -> Decimal:
    """分转换为两位小数的 Decimal（仅用于展示边界）"""
    return (Decimal(int(cents)) / 100).quantize(CENTS)


def decimal_to_cents(value: Decimal) -> int:
    """已知有限的 Decimal 转换为分"""
    return int((value * 100).quantize(Decimal(1), rounding=ROUND_HALF_UP))
