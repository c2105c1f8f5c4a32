"""
购物车行定价
纯函数，无副作用：单价 = 基础价 + 单份加料 + 选项增量，行合计 = 单价 × 数量
"""

import json
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError as PydanticValidationError

from ..core.exceptions import ValidationError
from ..models.cart import CartLine, PricedLine


def parse_cart_line(raw: Dict[str, Any]) -> CartLine:
    """
    把原始字典解析为 CartLine

    Raises:
        ValidationError: 字段缺失或类型错误（例如金额使用浮点数）
    """
    try:
        return CartLine.model_validate(raw)
    except PydanticValidationError as e:
        raise ValidationError(
            "购物车行格式错误",
            error_code="INVALID_CART_LINE",
            details={"errors": json.loads(e.json(include_url=False))}
        )


def _check_line(line: CartLine):
    quantity = line.quantity
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise ValidationError(
            f"数量必须为不小于 1 的整数: {quantity!r}",
            error_code="INVALID_QUANTITY",
            details={"menu_item_id": line.menu_item_id, "quantity": repr(quantity)}
        )
    if line.base_price_cents < 0:
        raise ValidationError(
            "基础价格不能为负数",
            error_code="INVALID_CART_LINE",
            details={"menu_item_id": line.menu_item_id}
        )
    for addon in line.addons:
        if addon.price_cents < 0:
            raise ValidationError(
                f"加料价格不能为负数: {addon.name}",
                error_code="INVALID_CART_LINE",
                details={"menu_item_id": line.menu_item_id, "addon": addon.name}
            )


def unit_price_cents(line: CartLine) -> int:
    """单价（分），只在行级别截断为非负"""
    unit = line.base_price_cents
    unit += sum(addon.price_cents for addon in line.addons)
    unit += sum(item.price_delta_cents for group in line.option_groups for item in group.items)
    return max(0, unit)


def price_line(line: CartLine, line_id: Optional[str] = None) -> PricedLine:
    """
    计算单行价格

    Args:
        line: 购物车行
        line_id: 行ID，缺省时使用 line.line_id

    Raises:
        ValidationError: 数量小于 1 或金额为负
    """
    _check_line(line)
    unit = unit_price_cents(line)
    data = line.model_dump()
    data.update(
        line_id=line_id or line.line_id or "0",
        unit_price_cents=unit,
        line_total_cents=unit * line.quantity,
    )
    return PricedLine(**data)


def price_lines(lines: Sequence[CartLine]) -> List[PricedLine]:
    """
    为整个购物车定价，缺少 line_id 的行按输入下标编号

    Raises:
        ValidationError: 行ID重复或任一行非法
    """
    priced = []
    seen = set()
    for index, line in enumerate(lines):
        line_id = line.line_id or str(index)
        if line_id in seen:
            raise ValidationError(
                f"购物车行ID重复: {line_id}",
                error_code="DUPLICATE_LINE_ID",
                details={"line_id": line_id}
            )
        seen.add(line_id)
        priced.append(price_line(line, line_id))
    return priced


def cart_subtotal_cents(lines: Sequence[PricedLine]) -> int:
    """购物车小计（未扣折扣）"""
    return sum(line.line_total_cents for line in lines)
