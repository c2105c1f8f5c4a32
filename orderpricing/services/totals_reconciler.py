"""
订单金额归一化
历史订单文档的金额字段形态各异，按固定优先级识别为四种形态之一，
再统一转换为以分表示的 OrderTotals。对历史数据中的异常值只做吸收，从不抛出异常。

识别优先级：
1. totals 中含 subtotal/deliveryFee/tip（小数金额）
2. amounts.total 为有限数值
3. totals.totalCents 为有限数值
4. 以上都没有，按订单行重算
"""

from decimal import Decimal
from typing import Any, Dict, List, Optional

from ..core.money import coerce_decimal, decimal_to_cents
from ..models.cart import CartLine, OptionGroup, OptionItem
from ..models.order import (
    AmountsOrder,
    LegacyOrder,
    LineItemsOrder,
    OrderTotals,
    TotalsCentsOrder,
    TotalsDecimalOrder,
)
from .line_pricer import price_line

_ZERO = Decimal("0")


def _dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _dec(value: Any) -> Decimal:
    """无法解析的值按 0 处理"""
    result = coerce_decimal(value)
    return result if result is not None else _ZERO


def _cents_value(value: Any) -> Optional[int]:
    """把"分"字段取整，无法解析返回 None"""
    result = coerce_decimal(value)
    if result is None:
        return None
    return decimal_to_cents(result / 100)


def _first_decimal(*values: Any) -> Optional[Decimal]:
    for value in values:
        result = coerce_decimal(value)
        if result is not None:
            return result
    return None


def _first_cents(*values: Any) -> Optional[int]:
    for value in values:
        result = _cents_value(value)
        if result is not None:
            return result
    return None


def legacy_quantity(raw_line: Dict[str, Any]) -> int:
    """数量缺失、非数值或小于 1 时按 1 处理"""
    value = raw_line.get("quantity")
    if value is None:
        value = raw_line.get("qty")
    quantity = coerce_decimal(value)
    if quantity is None or quantity < 1:
        return 1
    return int(quantity)


def _delta_cents(entry: Any) -> int:
    if not isinstance(entry, dict):
        return 0
    decimal_delta = _first_decimal(entry.get("priceDelta"), entry.get("priceExtra"))
    if decimal_delta is not None:
        return decimal_to_cents(decimal_delta)
    cents = _first_cents(entry.get("priceDeltaCents"), entry.get("priceExtraCents"))
    if cents is not None:
        return cents
    price = coerce_decimal(entry.get("price"))
    if price is not None:
        return decimal_to_cents(price)
    return _cents_value(entry.get("priceCents")) or 0


def legacy_deltas_cents(raw_line: Dict[str, Any]) -> List[int]:
    """收集历史订单行中所有单份加价（选项组、选项、加料/配料/修饰）"""
    deltas = []
    for group in raw_line.get("optionGroups") or []:
        for item in _dict(group).get("items") or []:
            deltas.append(_delta_cents(item))
    for group in raw_line.get("options") or []:
        for item in _dict(group).get("selected") or []:
            deltas.append(_delta_cents(item))
    for key in ("addons", "extras", "modifiers"):
        entries = raw_line.get(key)
        if isinstance(entries, list):
            deltas.extend(_delta_cents(entry) for entry in entries if not isinstance(entry, str))
    return deltas


def legacy_base_price_cents(raw_line: Dict[str, Any]) -> int:
    """按历史字段优先级推断基础单价（分）"""
    menu_item = _dict(raw_line.get("menuItem"))
    cents = _first_cents(raw_line.get("basePriceCents"), raw_line.get("menuItemPriceCents"))
    if cents is not None:
        return cents
    value = _first_decimal(raw_line.get("basePrice"), raw_line.get("menuItemPrice"))
    if value is not None:
        return decimal_to_cents(value)
    cents = _cents_value(menu_item.get("priceCents"))
    if cents is not None:
        return cents
    value = coerce_decimal(menu_item.get("price"))
    if value is not None:
        return decimal_to_cents(value)
    cents = _cents_value(raw_line.get("unitPriceCents"))
    if cents is not None:
        return cents
    value = coerce_decimal(raw_line.get("unitPrice"))
    if value is not None:
        return decimal_to_cents(value)
    total_cents = _cents_value(raw_line.get("totalCents"))
    if total_cents is not None:
        per_unit = total_cents // legacy_quantity(raw_line) - sum(legacy_deltas_cents(raw_line))
        return max(0, per_unit)
    cents = _cents_value(raw_line.get("priceCents"))
    if cents is not None:
        return cents
    value = coerce_decimal(raw_line.get("price"))
    return decimal_to_cents(value) if value is not None else 0


def coerce_legacy_line(raw_line: Dict[str, Any], index: int = 0) -> CartLine:
    """把历史订单行转换为 CartLine，所有单份加价归入一个选项组"""
    deltas = legacy_deltas_cents(raw_line)
    return CartLine(
        line_id=str(raw_line.get("lineId") or index),
        menu_item_id=str(raw_line.get("menuItemId") or _dict(raw_line.get("menuItem")).get("id") or ""),
        menu_item_name=str(raw_line.get("menuItemName") or raw_line.get("name") or ""),
        base_price_cents=max(0, legacy_base_price_cents(raw_line)),
        quantity=legacy_quantity(raw_line),
        option_groups=(
            OptionGroup(
                group_id="legacy",
                items=tuple(OptionItem(price_delta_cents=delta) for delta in deltas),
            ),
        ) if deltas else (),
    )


def legacy_line_total_cents(raw_line: Any, index: int = 0) -> int:
    """历史订单行合计：保存的 totalCents 优先，否则重新定价"""
    if not isinstance(raw_line, dict):
        return 0
    total_cents = _cents_value(raw_line.get("totalCents"))
    if total_cents is not None:
        return total_cents
    return price_line(coerce_legacy_line(raw_line, index)).line_total_cents


def _preferred_lines(raw: Dict[str, Any]) -> List[Any]:
    items = raw.get("items")
    if isinstance(items, list) and items:
        return items
    lines = raw.get("lines")
    return lines if isinstance(lines, list) else []


def _currency(raw: Dict[str, Any]) -> Optional[str]:
    for source in (_dict(raw.get("totals")), _dict(raw.get("taxSnapshot")), raw):
        currency = source.get("currency")
        if isinstance(currency, str) and currency.strip():
            return currency.strip()
    return None


def classify_order(raw: Dict[str, Any]) -> LegacyOrder:
    """按优先级识别订单文档的金额形态"""
    raw = _dict(raw)
    totals = _dict(raw.get("totals"))
    amounts = _dict(raw.get("amounts"))
    currency = _currency(raw)

    if any(key in totals for key in ("subtotal", "deliveryFee", "tip")):
        return TotalsDecimalOrder(
            subtotal=_dec(totals.get("subtotal")),
            delivery_fee=_dec(totals.get("deliveryFee")),
            tip=_dec(totals.get("tip")),
            discount=_dec(totals.get("discount")),
            tax=_dec(totals.get("tax")),
            order_total=_first_decimal(raw.get("orderTotal"), totals.get("orderTotal")),
            currency=currency,
        )

    amounts_total = coerce_decimal(amounts.get("total"))
    if amounts_total is not None:
        return AmountsOrder(
            subtotal=_dec(amounts.get("subtotal")),
            tax=_dec(amounts.get("tax")),
            service_fee=_dec(amounts.get("serviceFee")),
            discount=_dec(amounts.get("discount")),
            tip=_dec(amounts.get("tip")),
            total=amounts_total,
            currency=currency,
        )

    total_cents = _cents_value(totals.get("totalCents"))
    if total_cents is not None:
        return TotalsCentsOrder(
            subtotal_cents=_cents_value(totals.get("subtotalCents")) or 0,
            tax_cents=_cents_value(totals.get("taxCents")) or 0,
            service_fee_cents=_cents_value(totals.get("serviceFeeCents")) or 0,
            discount_cents=_cents_value(totals.get("discountCents")) or 0,
            total_cents=total_cents,
            tip=_dec(amounts.get("tip")),
            currency=currency,
        )

    tip = coerce_decimal(amounts.get("tip"))
    if tip is None:
        tip = _dec(raw.get("tip"))
    return LineItemsOrder(
        line_totals_cents=tuple(
            legacy_line_total_cents(line, index) for index, line in enumerate(_preferred_lines(raw))
        ),
        tip=tip,
        currency=currency,
    )


def totals_for(order: LegacyOrder, default_currency: str = "USD") -> OrderTotals:
    """对已识别的形态计算规范金额"""
    currency = order.currency or default_currency

    if isinstance(order, TotalsDecimalOrder):
        subtotal = decimal_to_cents(order.subtotal)
        delivery_fee = decimal_to_cents(order.delivery_fee)
        tip = decimal_to_cents(order.tip)
        discount = decimal_to_cents(order.discount)
        if order.order_total is not None:
            grand_total = decimal_to_cents(order.order_total)
        else:
            grand_total = subtotal + delivery_fee + tip - discount
        return OrderTotals(
            subtotal_cents=subtotal, delivery_fee_cents=delivery_fee, tip_cents=tip,
            discount_cents=discount, tax_cents=decimal_to_cents(order.tax),
            grand_total_cents=grand_total, currency=currency, source=order.kind,
        )

    if isinstance(order, AmountsOrder):
        return OrderTotals(
            subtotal_cents=decimal_to_cents(order.subtotal),
            tip_cents=decimal_to_cents(order.tip),
            discount_cents=decimal_to_cents(order.discount),
            tax_cents=decimal_to_cents(order.tax),
            grand_total_cents=decimal_to_cents(order.total),
            currency=currency, source=order.kind,
        )

    if isinstance(order, TotalsCentsOrder):
        tip = decimal_to_cents(order.tip)
        return OrderTotals(
            subtotal_cents=order.subtotal_cents,
            tip_cents=tip,
            discount_cents=order.discount_cents,
            tax_cents=order.tax_cents,
            grand_total_cents=order.total_cents + tip,
            currency=currency, source=order.kind,
        )

    if isinstance(order, LineItemsOrder):
        subtotal = sum(order.line_totals_cents)
        tip = decimal_to_cents(order.tip)
        return OrderTotals(
            subtotal_cents=subtotal, tip_cents=tip,
            grand_total_cents=subtotal + tip,
            currency=currency, source=order.kind,
        )

    raise TypeError(f"unsupported order shape: {type(order).__name__}")


def reconcile_totals(raw: Dict[str, Any], default_currency: str = "USD") -> OrderTotals:
    """任意订单文档 → 规范金额"""
    return totals_for(classify_order(raw), default_currency)
