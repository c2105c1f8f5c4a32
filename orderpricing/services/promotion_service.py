"""
促销服务模块
处理促销码校验、折扣分摊和核销

主要功能：
- 促销码校验（按固定顺序，首个失败即返回）
- 折扣按行比例分摊，保证分摊之和精确等于折扣总额
- 事务性核销，按订单幂等
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from ..core.database import DatabaseManager, load_json, utcnow
from ..core.exceptions import (
    OrderNotFoundError,
    PromotionRejected,
    RejectionReason,
    ValidationError,
)
from ..core.money import percent_of
from ..models.base import normalize_order_type
from ..models.cart import PricedLine
from ..models.promotion import (
    AppliedPromotion,
    ConsumptionResult,
    LineDiscount,
    Promotion,
    PromotionType,
    normalize_code,
)

logger = logging.getLogger(__name__)


def _utc(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now


def check_promotion_state(promotion: Promotion, now: datetime):
    """校验促销是否启用且在有效期内"""
    if not promotion.active:
        raise PromotionRejected(RejectionReason.INACTIVE, "促销未启用")
    now = _utc(now)
    if promotion.start_at and now < promotion.start_at:
        raise PromotionRejected(RejectionReason.EXPIRED, "促销尚未开始")
    if promotion.end_at and now > promotion.end_at:
        raise PromotionRejected(RejectionReason.EXPIRED, "促销已过期")


def check_promotion_limits(promotion: Promotion, user_usage_count: int = 0):
    """校验全局和单用户使用次数"""
    constraints = promotion.constraints
    if constraints.global_limit is not None and promotion.times_redeemed >= constraints.global_limit:
        raise PromotionRejected(
            RejectionReason.LIMIT_REACHED, "促销已达到使用上限",
            details={"limit": "global", "times_redeemed": promotion.times_redeemed}
        )
    if constraints.per_user_limit is not None and user_usage_count >= constraints.per_user_limit:
        raise PromotionRejected(
            RejectionReason.LIMIT_REACHED, "您已达到该促销的使用上限",
            details={"limit": "per_user", "usage_count": user_usage_count}
        )


def eligible_subtotal_cents(promotion: Promotion, lines: Sequence[PricedLine]) -> int:
    return sum(line.line_total_cents for line in lines if promotion.scope.matches(line))


def validate_promotion(promotion: Optional[Promotion], code: str, order_type: Any,
                       lines: Sequence[PricedLine], now: Optional[datetime] = None,
                       user_usage_count: int = 0) -> int:
    """
    按顺序校验促销码：不存在 → 未启用 → 过期 → 订单类型 → 最低消费 → 使用次数

    Returns:
        int: 适用范围内的小计（分）

    Raises:
        PromotionRejected: 首个未通过的校验
    """
    if promotion is None or promotion.code != normalize_code(code):
        raise PromotionRejected(RejectionReason.NOT_FOUND, "促销码无效", details={"code": normalize_code(code)})

    check_promotion_state(promotion, _utc(now))

    allowed = promotion.constraints.allowed_order_types
    if allowed:
        normalized = normalize_order_type(order_type)
        if normalized is None or normalized.value not in allowed:
            raise PromotionRejected(
                RejectionReason.ORDER_TYPE_NOT_ALLOWED, "该促销不适用于当前订单类型",
                details={"order_type": normalized.value if normalized else order_type}
            )

    eligible_lines = [line for line in lines if promotion.scope.matches(line)]
    subtotal = sum(line.line_total_cents for line in eligible_lines)
    minimum = promotion.constraints.min_target_subtotal_cents
    if not eligible_lines:
        raise PromotionRejected(RejectionReason.BELOW_MINIMUM, "购物车中没有适用该促销的商品",
                                details={"eligible_subtotal_cents": 0, "minimum_cents": minimum})
    if subtotal < minimum:
        raise PromotionRejected(RejectionReason.BELOW_MINIMUM, "未达到促销最低消费",
                                details={"eligible_subtotal_cents": subtotal, "minimum_cents": minimum})

    check_promotion_limits(promotion, user_usage_count)
    return subtotal


def discount_total_cents(promotion: Promotion, eligible_subtotal: int) -> int:
    """折扣总额：百分比按半数进位取整，固定金额不超过适用小计"""
    if eligible_subtotal <= 0:
        return 0
    if promotion.type == PromotionType.PERCENT:
        return percent_of(eligible_subtotal, promotion.value, "half_up")
    return min(promotion.value, eligible_subtotal)


def allocate_shares(total: int, weights: Sequence[int], eligible: Sequence[bool]) -> List[int]:
    """
    按权重向下取整分摊 total，余数归最后一个适用行

    最后一行放不下的部分按倒序退回到前面的适用行，
    因此每行分摊额不超过其权重，且合计精确等于 total（前提是 total 不超过权重之和）。
    """
    shares = [0] * len(weights)
    indexes = [i for i, flag in enumerate(eligible) if flag]
    weight_sum = sum(weights[i] for i in indexes)
    if total <= 0 or weight_sum <= 0:
        return shares

    for i in indexes[:-1]:
        shares[i] = total * weights[i] // weight_sum
    last = indexes[-1]
    shares[last] = total - sum(shares)

    overflow = shares[last] - weights[last]
    if overflow > 0:
        shares[last] = weights[last]
        for i in reversed(indexes[:-1]):
            take = min(weights[i] - shares[i], overflow)
            shares[i] += take
            overflow -= take
            if overflow == 0:
                break
    return shares


def allocate_discount(promotion: Promotion, lines: Sequence[PricedLine]) -> AppliedPromotion:
    """计算折扣并按行分摊（不做校验）"""
    eligible = [promotion.scope.matches(line) for line in lines]
    weights = [line.line_total_cents for line in lines]
    subtotal = sum(w for w, flag in zip(weights, eligible) if flag)
    total = discount_total_cents(promotion, subtotal)
    shares = allocate_shares(total, weights, eligible)
    return AppliedPromotion(
        promo_id=promotion.id,
        code=promotion.code,
        type=promotion.type,
        value=promotion.value,
        eligible_subtotal_cents=subtotal,
        discount_total_cents=total,
        discount_by_line=tuple(
            LineDiscount(
                line_id=line.line_id,
                menu_item_id=line.menu_item_id,
                eligible=flag,
                line_subtotal_cents=line.line_total_cents,
                discount_cents=share,
            )
            for line, flag, share in zip(lines, eligible, shares)
        ),
    )


def validate_and_allocate(promotion: Optional[Promotion], code: str, order_type: Any,
                          lines: Sequence[PricedLine], now: Optional[datetime] = None,
                          user_usage_count: int = 0) -> AppliedPromotion:
    """校验促销码并分摊折扣"""
    validate_promotion(promotion, code, order_type, lines, now, user_usage_count)
    return allocate_discount(promotion, lines)


def order_has_promotion(order_doc: Dict[str, Any], promotion: Promotion) -> bool:
    """订单文档是否应用了该促销"""
    for applied in order_doc.get("appliedPromotions") or []:
        if not isinstance(applied, dict):
            continue
        if applied.get("promoId") == promotion.id or normalize_code(applied.get("code")) == promotion.code:
            return True
    return normalize_code(order_doc.get("promotionCode")) == promotion.code


class PromotionRepository:
    """促销存储"""

    def __init__(self, db: DatabaseManager):
        self.db = db

    @staticmethod
    def _from_row(doc_json: Any, times_redeemed: int) -> Promotion:
        doc = load_json(doc_json) or {}
        doc["timesRedeemed"] = int(times_redeemed or 0)
        return Promotion.model_validate(doc)

    @staticmethod
    def _to_doc(promotion: Promotion) -> str:
        return promotion.model_dump_json(by_alias=True, exclude={"times_redeemed"})

    def save(self, tenant_id: str, promotion: Promotion) -> Promotion:
        """
        新增或更新促销定义，已有的核销次数保持不变

        Raises:
            ValidationError: 促销码已被同租户的其他促销占用
        """
        def work(conn):
            taken = conn.execute(
                "SELECT promo_id FROM promotions WHERE tenant_id=? AND code=? AND promo_id<>?",
                [tenant_id, promotion.code, promotion.id]
            ).fetchone()
            if taken:
                raise ValidationError(
                    f"促销码已存在: {promotion.code}",
                    error_code="DUPLICATE_PROMOTION_CODE",
                    details={"promo_id": taken[0]}
                )
            existing = conn.execute(
                "SELECT times_redeemed FROM promotions WHERE tenant_id=? AND promo_id=?",
                [tenant_id, promotion.id]
            ).fetchone()
            if existing:
                conn.execute(
                    "UPDATE promotions SET code=?, doc_json=?, updated_at=? WHERE tenant_id=? AND promo_id=?",
                    [promotion.code, self._to_doc(promotion), utcnow(), tenant_id, promotion.id]
                )
                return int(existing[0])
            conn.execute(
                "INSERT INTO promotions(tenant_id, promo_id, code, doc_json, times_redeemed, updated_at) VALUES (?,?,?,?,?,?)",
                [tenant_id, promotion.id, promotion.code, self._to_doc(promotion),
                 promotion.times_redeemed, utcnow()]
            )
            return promotion.times_redeemed

        times_redeemed = self.db.run_in_transaction(work, "promotion_save")
        return promotion.model_copy(update={"times_redeemed": times_redeemed})

    def get(self, tenant_id: str, promo_id: str) -> Optional[Promotion]:
        row = self.db.execute_one(
            "SELECT doc_json, times_redeemed FROM promotions WHERE tenant_id=? AND promo_id=?",
            [tenant_id, promo_id]
        )
        return self._from_row(*row) if row else None

    def get_by_code(self, tenant_id: str, code: str) -> Optional[Promotion]:
        row = self.db.execute_one(
            "SELECT doc_json, times_redeemed FROM promotions WHERE tenant_id=? AND code=?",
            [tenant_id, normalize_code(code)]
        )
        return self._from_row(*row) if row else None

    def user_usage_count(self, tenant_id: str, promo_id: str, user_id: Optional[str]) -> int:
        if not user_id:
            return 0
        row = self.db.execute_one(
            "SELECT usage_count FROM promotion_usages WHERE tenant_id=? AND promo_id=? AND user_id=?",
            [tenant_id, promo_id, user_id]
        )
        return int(row[0]) if row else 0


class PromotionService:
    """促销业务服务"""

    def __init__(self, db: DatabaseManager):
        self.db = db
        self.repository = PromotionRepository(db)

    def apply_code(self, tenant_id: str, code: str, order_type: Any,
                   lines: Sequence[PricedLine], user_id: Optional[str] = None,
                   now: Optional[datetime] = None) -> AppliedPromotion:
        """
        报价阶段应用促销码（只读，不改变任何计数）

        Raises:
            PromotionRejected: 促销码被拒绝
        """
        promotion = self.repository.get_by_code(tenant_id, code)
        usage = self.repository.user_usage_count(tenant_id, promotion.id, user_id) if promotion else 0
        return validate_and_allocate(promotion, code, order_type, lines, now, usage)

    def consume(self, tenant_id: str, promo_id: str, code: str, order_id: str,
                user_id: Optional[str] = None, now: Optional[datetime] = None) -> ConsumptionResult:
        """
        核销促销（按订单幂等）

        在同一事务内重新校验状态和使用次数并递增计数，
        同一订单重复核销直接返回 already_consumed=True。

        Raises:
            OrderNotFoundError: 订单不存在
            ValidationError: 订单未应用该促销
            PromotionRejected: 促销不可用或已达上限
            TransientError: 并发冲突重试耗尽
        """
        now = _utc(now)

        def work(conn) -> ConsumptionResult:
            order_row = conn.execute(
                "SELECT doc_json FROM orders WHERE tenant_id=? AND order_id=?",
                [tenant_id, order_id]
            ).fetchone()
            if not order_row:
                raise OrderNotFoundError(f"订单不存在: {order_id}", details={"order_id": order_id})

            promo_row = conn.execute(
                "SELECT doc_json, times_redeemed FROM promotions WHERE tenant_id=? AND promo_id=?",
                [tenant_id, promo_id]
            ).fetchone()
            if not promo_row:
                raise PromotionRejected(RejectionReason.NOT_FOUND, "促销不存在", details={"promo_id": promo_id})
            promotion = PromotionRepository._from_row(*promo_row)
            if promotion.code != normalize_code(code):
                raise PromotionRejected(RejectionReason.NOT_FOUND, "促销码与促销不匹配",
                                        details={"promo_id": promo_id, "code": normalize_code(code)})

            redeemed = conn.execute(
                "SELECT 1 FROM promotion_redemptions WHERE tenant_id=? AND promo_id=? AND order_id=?",
                [tenant_id, promo_id, order_id]
            ).fetchone()
            if redeemed:
                return self._result(promotion, order_id, already_consumed=True)

            if not order_has_promotion(load_json(order_row[0]) or {}, promotion):
                raise ValidationError(
                    "订单未应用该促销",
                    error_code="PROMOTION_NOT_APPLIED",
                    details={"order_id": order_id, "promo_id": promo_id}
                )

            usage_row = None
            if user_id:
                usage_row = conn.execute(
                    "SELECT usage_count FROM promotion_usages WHERE tenant_id=? AND promo_id=? AND user_id=?",
                    [tenant_id, promo_id, user_id]
                ).fetchone()
            check_promotion_state(promotion, now)
            check_promotion_limits(promotion, int(usage_row[0]) if usage_row else 0)

            stamp = utcnow()
            conn.execute(
                "INSERT INTO promotion_redemptions(tenant_id, promo_id, order_id, code, user_id, created_at) VALUES (?,?,?,?,?,?)",
                [tenant_id, promo_id, order_id, promotion.code, user_id, stamp]
            )
            conn.execute(
                "UPDATE promotions SET times_redeemed = times_redeemed + 1, updated_at=? WHERE tenant_id=? AND promo_id=?",
                [stamp, tenant_id, promo_id]
            )
            if user_id:
                if usage_row:
                    conn.execute(
                        "UPDATE promotion_usages SET usage_count = usage_count + 1, last_used_at=? "
                        "WHERE tenant_id=? AND promo_id=? AND user_id=?",
                        [stamp, tenant_id, promo_id, user_id]
                    )
                else:
                    conn.execute(
                        "INSERT INTO promotion_usages(tenant_id, promo_id, user_id, usage_count, last_used_at) VALUES (?,?,?,?,?)",
                        [tenant_id, promo_id, user_id, 1, stamp]
                    )
            consumed = promotion.model_copy(update={"times_redeemed": promotion.times_redeemed + 1})
            return self._result(consumed, order_id)

        try:
            result = self.db.run_in_transaction(work, "promotion_consume")
        except PromotionRejected as e:
            self.db.write_log(
                "promotion_consume_denied",
                {"promo_id": promo_id, "order_id": order_id, "reason": e.reason.value},
                tenant_id=tenant_id, actor_id=user_id
            )
            raise

        if not result.already_consumed:
            self.db.write_log(
                "promotion_consume",
                {"promo_id": promo_id, "code": result.code, "order_id": order_id,
                 "times_redeemed": result.times_redeemed},
                tenant_id=tenant_id, actor_id=user_id
            )
        return result

    @staticmethod
    def _result(promotion: Promotion, order_id: str, already_consumed: bool = False) -> ConsumptionResult:
        limit = promotion.constraints.global_limit
        return ConsumptionResult(
            promo_id=promotion.id,
            code=promotion.code,
            order_id=order_id,
            already_consumed=already_consumed,
            times_redeemed=promotion.times_redeemed,
            remaining_global=None if limit is None else max(0, limit - promotion.times_redeemed),
        )
