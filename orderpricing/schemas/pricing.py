"""
定价、促销和发票相关的请求模式
"""

from typing import List, Optional

from pydantic import Field

from ..models.base import CamelModel
from ..models.cart import CartLine
from ..models.order import CheckoutRequest


class PromotionApplyRequest(CamelModel):
    """促销码试算请求"""
    code: str = Field(..., description="促销码")
    order_type: str = Field("dine_in", description="订单类型")
    lines: List[CartLine] = Field(..., min_length=1, description="购物车行")
    user_id: Optional[str] = Field(None, description="用户ID（单用户限次）")


class PromotionConsumeRequest(CamelModel):
    """促销核销请求"""
    promo_id: str = Field(..., description="促销ID")
    code: str = Field(..., description="促销码")
    order_id: str = Field(..., description="订单ID")
    user_id: Optional[str] = Field(None, description="用户ID")


class PlaceOrderRequest(CheckoutRequest):
    """下单请求"""
    order_id: Optional[str] = Field(None, description="订单ID，缺省时自动生成")


class InvoiceIssueRequest(CamelModel):
    """发票编号分配请求"""
    order_id: str = Field(..., description="订单ID")
