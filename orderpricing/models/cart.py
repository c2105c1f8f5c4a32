"""
购物车行相关数据模型
所有金额字段均为整数分，浮点数在模型层即被拒绝
"""

from enum import Enum
from typing import Optional, Tuple

from pydantic import Field, StrictInt, model_validator

from .base import FrozenModel


class OptionGroupType(str, Enum):
    """选项组类型"""
    SINGLE = "single"         # 单选
    MULTIPLE = "multiple"     # 多选


class Addon(FrozenModel):
    """加料"""
    name: str = ""
    price_cents: StrictInt = Field(0, description="单份加料价格（分），不可为负")


class OptionItem(FrozenModel):
    """选项条目"""
    id: str = ""
    name: str = ""
    price_delta_cents: StrictInt = Field(0, description="价格增量（分），可为负数表示折扣")


class OptionGroup(FrozenModel):
    """选项组"""
    group_id: str = ""
    group_name: str = ""
    type: OptionGroupType = OptionGroupType.MULTIPLE
    items: Tuple[OptionItem, ...] = ()


class CartLine(FrozenModel):
    """购物车行（定价后不可变）"""
    line_id: Optional[str] = Field(None, description="行ID，缺省时按输入顺序编号")
    menu_item_id: str = Field(..., description="菜品ID")
    menu_item_name: str = Field("", description="菜品名称")
    base_price_cents: StrictInt = Field(..., description="基础单价（分）")
    quantity: StrictInt = Field(..., description="数量")
    addons: Tuple[Addon, ...] = ()
    option_groups: Tuple[OptionGroup, ...] = ()
    category_id: Optional[str] = Field(None, description="分类ID，用于促销和税率范围匹配")
    subcategory_id: Optional[str] = Field(None, description="子分类ID")
    tags: Tuple[str, ...] = ()
    tax_exempt: bool = False


class PricedLine(CartLine):
    """已定价的购物车行"""
    line_id: str = Field(..., description="行ID")
    unit_price_cents: StrictInt = Field(..., ge=0, description="单价（基础价+单份加料/选项增量）")
    line_total_cents: StrictInt = Field(..., ge=0, description="行合计 = 单价 × 数量")

    @model_validator(mode="after")
    def check_line_total(self):
        """行合计必须可由单价和数量还原"""
        if self.line_total_cents != self.unit_price_cents * self.quantity:
            raise ValueError("line_total_cents must equal unit_price_cents * quantity")
        return self
