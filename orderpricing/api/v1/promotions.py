"""
促销路由模块
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends

from ..deps import get_promotion_service
from ...core.error_handler import create_success_response
from ...models.promotion import Promotion
from ...schemas.common import ApiResponse, ErrorResponse
from ...schemas.pricing import PromotionApplyRequest, PromotionConsumeRequest
from ...services import PromotionService
from ...services.line_pricer import price_lines

router = APIRouter()


@router.put("/tenants/{tenant_id}/promotions", response_model=ApiResponse[Dict[str, Any]])
def save_promotion(tenant_id: str, promotion: Promotion,
                   service: PromotionService = Depends(get_promotion_service)):
    """新增或更新促销定义"""
    saved = service.repository.save(tenant_id, promotion)
    return create_success_response(saved.model_dump(mode="json", by_alias=True), "促销已保存")


@router.post(
    "/tenants/{tenant_id}/promotions/apply",
    response_model=ApiResponse[Dict[str, Any]],
    responses={422: {"model": ErrorResponse}},
)
def apply_promotion(tenant_id: str, req: PromotionApplyRequest,
                    service: PromotionService = Depends(get_promotion_service)):
    """试算促销码（不改变使用次数）"""
    lines = price_lines(req.lines)
    applied = service.apply_code(tenant_id, req.code, req.order_type, lines, user_id=req.user_id)
    return create_success_response(applied.to_document(), "促销码可用")


@router.post(
    "/tenants/{tenant_id}/promotions/consume",
    response_model=ApiResponse[Dict[str, Any]],
    responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
def consume_promotion(tenant_id: str, req: PromotionConsumeRequest,
                      service: PromotionService = Depends(get_promotion_service)):
    """核销促销（按订单幂等）"""
    result = service.consume(tenant_id, req.promo_id, req.code, req.order_id, user_id=req.user_id)
    message = "促销已核销过" if result.already_consumed else "促销核销成功"
    return create_success_response(result.model_dump(mode="json", by_alias=True), message)
