"""
报价路由模块
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends

from ..deps import get_checkout_service
from ...core.error_handler import create_success_response
from ...models.order import CheckoutRequest
from ...schemas.common import ApiResponse, ErrorResponse
from ...services import CheckoutService

router = APIRouter()


@router.post(
    "/tenants/{tenant_id}/pricing/quote",
    response_model=ApiResponse[Dict[str, Any]],
    responses={400: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
def quote(tenant_id: str, req: CheckoutRequest,
          service: CheckoutService = Depends(get_checkout_service)):
    """计算报价（不落库）"""
    result = service.quote(tenant_id, req)
    return create_success_response(result.to_document(), "报价成功")
