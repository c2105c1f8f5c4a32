"""
促销相关数据模型
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional, Tuple

from pydantic import Field, StrictInt, field_validator, model_validator

from .base import CamelModel, FrozenModel, normalize_order_type
from .cart import CartLine


def normalize_code(code) -> str:
    """促销码规范化：去除所有空白并转为大写"""
    return "".join(str(code or "").split()).upper()


class PromotionType(str, Enum):
    """促销类型"""
    PERCENT = "percent"       # 百分比折扣，value 为 1..100
    FIXED = "fixed"           # 固定金额折扣，value 为分


class PromotionScope(FrozenModel):
    """促销适用范围，三个列表全为空表示全单适用"""
    category_ids: Tuple[str, ...] = ()
    subcategory_ids: Tuple[str, ...] = ()
    menu_item_ids: Tuple[str, ...] = ()

    @property
    def is_global(self) -> bool:
        return not (self.category_ids or self.subcategory_ids or self.menu_item_ids)

    def matches(self, line: CartLine) -> bool:
        """判断购物车行是否在适用范围内"""
        if self.is_global:
            return True
        return (
            (line.category_id is not None and line.category_id in self.category_ids)
            or (line.subcategory_id is not None and line.subcategory_id in self.subcategory_ids)
            or line.menu_item_id in self.menu_item_ids
        )


class PromotionConstraints(FrozenModel):
    """促销使用约束"""
    min_target_subtotal_cents: StrictInt = Field(0, ge=0)
    allowed_order_types: Tuple[str, ...] = ()
    global_limit: Optional[StrictInt] = Field(None, ge=0)
    per_user_limit: Optional[StrictInt] = Field(None, ge=0)
    stackable: bool = False
    auto_apply: bool = False

    @field_validator("allowed_order_types")
    @classmethod
    def normalize_order_types(cls, values):
        normalized = []
        for value in values:
            order_type = normalize_order_type(value)
            normalized.append(order_type.value if order_type else str(value).strip().lower())
        return tuple(normalized)


class Promotion(CamelModel):
    """促销定义"""
    id: str = Field(..., description="促销ID")
    code: str = Field(..., description="促销码（存储为规范化形式）")
    name: str = ""
    type: PromotionType
    value: StrictInt = Field(..., description="百分比点数或固定金额（分）")
    active: bool = True
    scope: PromotionScope = PromotionScope()
    constraints: PromotionConstraints = PromotionConstraints()
    start_at: Optional[datetime] = None
    end_at: Optional[datetime] = None
    times_redeemed: StrictInt = Field(0, ge=0)

    @field_validator("code")
    @classmethod
    def normalize_promotion_code(cls, value: str) -> str:
        code = normalize_code(value)
        if not code:
            raise ValueError("promotion code must not be empty")
        return code

    @field_validator("start_at", "end_at")
    @classmethod
    def ensure_aware(cls, value: Optional[datetime]) -> Optional[datetime]:
        # 无时区的时间按 UTC 处理
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    @model_validator(mode="after")
    def check_value(self):
        if self.type == PromotionType.PERCENT and not 1 <= self.value <= 100:
            raise ValueError("percent promotion value must be within 1..100")
        if self.type == PromotionType.FIXED and self.value < 0:
            raise ValueError("fixed promotion value must not be negative")
        return self


class LineDiscount(FrozenModel):
    """单行折扣分摊结果"""
    line_id: str
    menu_item_id: str
    eligible: bool
    line_subtotal_cents: StrictInt
    discount_cents: StrictInt = Field(..., ge=0)


class AppliedPromotion(FrozenModel):
    """已应用的促销（报价阶段的结果，不含计数变更）"""
    promo_id: str
    code: str
    type: PromotionType
    value: StrictInt
    eligible_subtotal_cents: StrictInt
    discount_total_cents: StrictInt = Field(..., ge=0)
    discount_by_line: Tuple[LineDiscount, ...] = ()

    @model_validator(mode="after")
    def check_allocation(self):
        """分摊之和必须等于折扣总额，且任一行不超过行小计"""
        if sum(line.discount_cents for line in self.discount_by_line) != self.discount_total_cents:
            raise ValueError("line discounts must sum to discount_total_cents")
        for line in self.discount_by_line:
            if line.discount_cents > max(line.line_subtotal_cents, 0):
                raise ValueError(f"discount exceeds subtotal on line {line.line_id}")
            if not line.eligible and line.discount_cents:
                raise ValueError(f"ineligible line {line.line_id} received a discount")
        return self

    def discount_map(self) -> Dict[str, int]:
        return {line.line_id: line.discount_cents for line in self.discount_by_line}


class ConsumptionResult(CamelModel):
    """促销核销结果"""
    promo_id: str
    code: str
    order_id: str
    already_consumed: bool = False
    times_redeemed: int
    remaining_global: Optional[int] = None
