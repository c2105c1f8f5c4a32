"""
订单金额相关数据模型
历史订单文档存在多种金额写法，这里把它们表示为带标签的联合类型，
统一由 totals_reconciler 归一为 OrderTotals
"""

from decimal import Decimal
from typing import Annotated, List, Literal, Optional, Tuple, Union

from pydantic import Field, StrictInt

from .base import CamelModel, FrozenModel
from .cart import CartLine, PricedLine
from .promotion import AppliedPromotion
from .tax import AddressInfo, CustomerInfo, TaxSnapshot

_ZERO = Decimal("0")


class TotalsDecimalOrder(FrozenModel):
    """totals 中保存小数金额（当前下单流程写入的形态）"""
    kind: Literal["totals_decimal"] = "totals_decimal"
    subtotal: Decimal = _ZERO
    delivery_fee: Decimal = _ZERO
    tip: Decimal = _ZERO
    discount: Decimal = _ZERO
    tax: Decimal = _ZERO
    order_total: Optional[Decimal] = None
    currency: Optional[str] = None


class AmountsOrder(FrozenModel):
    """amounts 中保存小数金额及总额"""
    kind: Literal["amounts"] = "amounts"
    subtotal: Decimal = _ZERO
    tax: Decimal = _ZERO
    service_fee: Decimal = _ZERO
    discount: Decimal = _ZERO
    tip: Decimal = _ZERO
    total: Decimal
    currency: Optional[str] = None


class TotalsCentsOrder(FrozenModel):
    """totals 中保存整数分"""
    kind: Literal["totals_cents"] = "totals_cents"
    subtotal_cents: int = 0
    tax_cents: int = 0
    service_fee_cents: int = 0
    discount_cents: int = 0
    total_cents: int
    tip: Decimal = _ZERO
    currency: Optional[str] = None


class LineItemsOrder(FrozenModel):
    """没有任何总额字段，只能按行重算"""
    kind: Literal["line_items"] = "line_items"
    line_totals_cents: Tuple[int, ...] = ()
    tip: Decimal = _ZERO
    currency: Optional[str] = None


LegacyOrder = Annotated[
    Union[TotalsDecimalOrder, AmountsOrder, TotalsCentsOrder, LineItemsOrder],
    Field(discriminator="kind"),
]


class OrderTotals(FrozenModel):
    """规范化后的订单金额（全部为分）"""
    subtotal_cents: int
    delivery_fee_cents: int = 0
    tip_cents: int = 0
    discount_cents: int = 0
    tax_cents: int = 0
    grand_total_cents: int
    currency: str
    source: str = Field(..., description="产生该结果的文档形态")


class CheckoutRequest(CamelModel):
    """报价/下单请求"""
    lines: List[CartLine] = Field(..., min_length=1, description="购物车行")
    order_type: str = Field("dine_in", description="订单类型，支持别名")
    promotion_code: Optional[str] = None
    delivery_fee_cents: StrictInt = Field(0, ge=0)
    tip_cents: StrictInt = Field(0, ge=0)
    customer: Optional[CustomerInfo] = None
    address: Optional[AddressInfo] = None
    user_id: Optional[str] = None


class Quote(CamelModel):
    """报价结果（不落库）"""
    currency: str
    order_type: Optional[str] = None
    items: Tuple[PricedLine, ...] = ()
    applied_promotion: Optional[AppliedPromotion] = None
    tax_snapshot: TaxSnapshot
    totals: OrderTotals


class PlacedOrder(CamelModel):
    """下单结果"""
    order_id: str
    quote: Quote
    promotion_consumed: bool = False
    promotion_error: Optional[str] = None
