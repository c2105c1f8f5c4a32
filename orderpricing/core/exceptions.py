"""
自定义异常类
提供定价、税费、促销和发票编号流程中的精确错误分类

错误分类：
- ValidationError: 购物车行等输入格式错误（调用方的问题，直接拒绝）
- PromotionRejected: 促销码被拒绝，携带类型化的拒绝原因
- ProfileMissingError: 租户没有税务配置（内部以零税率配置兜底，不对外暴露）
- TransactionConflictError: 事务并发冲突（内部重试）
- TransientError: 重试耗尽后的暂时性失败
- OrderNotFoundError: 订单不存在
"""

from enum import Enum
from typing import Any, Dict, Optional


class BaseApplicationError(Exception):
    """应用基础异常类"""

    default_error_code = "APPLICATION_ERROR"

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(self.message)


class DatabaseError(BaseApplicationError):
    """数据库相关异常"""
    default_error_code = "DATABASE_ERROR"


class ValidationError(BaseApplicationError):
    """数据验证异常"""
    default_error_code = "VALIDATION_ERROR"


class RejectionReason(str, Enum):
    """促销码拒绝原因，按校验顺序排列"""
    NOT_FOUND = "not_found"
    INACTIVE = "inactive"
    EXPIRED = "expired"
    ORDER_TYPE_NOT_ALLOWED = "order_type_not_allowed"
    BELOW_MINIMUM = "below_minimum"
    LIMIT_REACHED = "limit_reached"


class PromotionRejected(BaseApplicationError):
    """促销码被拒绝（预期内的、面向用户的错误）"""
    default_error_code = "PROMOTION_REJECTED"

    def __init__(self, reason: RejectionReason, message: str,
                 details: Optional[Dict[str, Any]] = None):
        self.reason = RejectionReason(reason)
        payload = {"reason": self.reason.value}
        payload.update(details or {})
        super().__init__(message, details=payload)


class ProfileMissingError(BaseApplicationError):
    """租户没有有效的税务配置"""
    default_error_code = "TAX_PROFILE_MISSING"


class TransactionConflictError(BaseApplicationError):
    """事务并发修改冲突"""
    default_error_code = "TRANSACTION_CONFLICT"


class TransientError(BaseApplicationError):
    """暂时性失败，稍后重试即可"""
    default_error_code = "TRANSIENT_ERROR"


class OrderNotFoundError(BaseApplicationError):
    """订单不存在异常"""
    default_error_code = "ORDER_NOT_FOUND"
