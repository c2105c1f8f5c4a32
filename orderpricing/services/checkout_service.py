"""
结账服务模块
串联定价流程：购物车行定价 → 促销折扣 → 税额快照 → 订单金额

主要功能：
- 报价（不落库）
- 下单：保存订单文档后再核销促销，核销失败不影响已创建的订单
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from ..config.settings import Settings, settings
from ..core.database import DatabaseManager
from ..core.exceptions import PromotionRejected, TransientError
from ..core.money import from_cents
from ..models.order import CheckoutRequest, OrderTotals, PlacedOrder, Quote
from .config_repository import TaxProfileRepository
from .line_pricer import cart_subtotal_cents, price_lines
from .order_store import OrderStore
from .promotion_service import PromotionService
from .tax_service import DELIVERY_LINE_ID, calculate_tax_snapshot

logger = logging.getLogger(__name__)


def _amount(cents: int) -> str:
    return str(from_cents(cents))


class CheckoutService:
    """结账业务服务"""

    def __init__(self, db: DatabaseManager, app_settings: Optional[Settings] = None):
        self.db = db
        self.settings = app_settings or settings
        self.promotions = PromotionService(db)
        self.tax_profiles = TaxProfileRepository(db, self.settings)
        self.orders = OrderStore(db)

    def quote(self, tenant_id: str, request: CheckoutRequest,
              now: Optional[datetime] = None) -> Quote:
        """
        计算报价，不写入任何数据

        Raises:
            ValidationError: 购物车行非法
            PromotionRejected: 促销码被拒绝
        """
        now = now or datetime.now(timezone.utc)
        items = price_lines(request.lines)

        applied = None
        if request.promotion_code and request.promotion_code.strip():
            applied = self.promotions.apply_code(
                tenant_id, request.promotion_code, request.order_type, items,
                user_id=request.user_id, now=now
            )

        profile = self.tax_profiles.get_active(tenant_id)
        snapshot = calculate_tax_snapshot(
            profile, items,
            applied_promotion=applied,
            delivery_fee_cents=request.delivery_fee_cents,
            order_type=request.order_type,
            customer=request.customer,
            address=request.address,
            computed_at=now,
        )

        grand_total = snapshot.totals.grand_total_cents + request.tip_cents
        if not any(line.line_id == DELIVERY_LINE_ID for line in snapshot.line_breakdown):
            # outside 模式：配送费不在快照中
            grand_total += request.delivery_fee_cents

        totals = OrderTotals(
            subtotal_cents=cart_subtotal_cents(items),
            delivery_fee_cents=request.delivery_fee_cents,
            tip_cents=request.tip_cents,
            discount_cents=applied.discount_total_cents if applied else 0,
            tax_cents=snapshot.totals.tax_cents,
            grand_total_cents=grand_total,
            currency=snapshot.currency,
            source="quote",
        )
        return Quote(
            currency=snapshot.currency,
            order_type=snapshot.order_type,
            items=tuple(items),
            applied_promotion=applied,
            tax_snapshot=snapshot,
            totals=totals,
        )

    @staticmethod
    def build_order_document(tenant_id: str, order_id: str, request: CheckoutRequest,
                             quote: Quote, created_at: datetime) -> Dict[str, Any]:
        """订单文档：totals 使用小数金额形态，同时保存整数分和税额快照"""
        totals = quote.totals
        applied = quote.applied_promotion
        return {
            "orderId": order_id,
            "tenantId": tenant_id,
            "status": "placed",
            "orderType": quote.order_type or request.order_type,
            "userId": request.user_id,
            "createdAt": created_at.isoformat(),
            "items": [item.to_document() for item in quote.items],
            "appliedPromotions": [applied.to_document()] if applied else [],
            "promotionCode": applied.code if applied else None,
            "customer": request.customer.to_document() if request.customer else None,
            "totals": {
                "subtotal": _amount(totals.subtotal_cents),
                "deliveryFee": _amount(totals.delivery_fee_cents),
                "tip": _amount(totals.tip_cents),
                "discount": _amount(totals.discount_cents),
                "tax": _amount(totals.tax_cents),
                "currency": totals.currency,
            },
            "orderTotal": _amount(totals.grand_total_cents),
            "totalsCents": totals.to_document(),
            "taxSnapshot": quote.tax_snapshot.to_document(),
        }

    def place_order(self, tenant_id: str, request: CheckoutRequest,
                    order_id: Optional[str] = None,
                    now: Optional[datetime] = None) -> PlacedOrder:
        """
        下单

        订单持久化之后才核销促销；核销被拒绝或暂时失败时只记录日志，
        结果中 promotion_consumed 为 False。

        Raises:
            ValidationError: 购物车行非法
            PromotionRejected: 报价阶段促销码被拒绝（此时不会创建订单）
        """
        now = now or datetime.now(timezone.utc)
        quote = self.quote(tenant_id, request, now)
        order_id = order_id or uuid.uuid4().hex

        document = self.build_order_document(tenant_id, order_id, request, quote, now)
        self.orders.insert(tenant_id, order_id, document)
        self.db.write_log(
            "order_place",
            {"order_id": order_id, "grand_total_cents": quote.totals.grand_total_cents,
             "promotion_code": document["promotionCode"]},
            tenant_id=tenant_id, actor_id=request.user_id
        )

        consumed = False
        error = None
        applied = quote.applied_promotion
        if applied:
            try:
                self.promotions.consume(
                    tenant_id, applied.promo_id, applied.code, order_id,
                    user_id=request.user_id, now=now
                )
                consumed = True
            except PromotionRejected as e:
                error = e.reason.value
                logger.warning("promotion %s not consumed for order %s: %s", applied.code, order_id, e.message)
            except TransientError as e:
                error = e.error_code
                logger.warning("promotion %s consumption deferred for order %s: %s", applied.code, order_id, e.message)

        return PlacedOrder(order_id=order_id, quote=quote, promotion_consumed=consumed, promotion_error=error)
