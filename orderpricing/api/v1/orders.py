"""
订单路由模块
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends

from ..deps import get_checkout_service, get_invoice_configs, get_invoice_service, get_settings
from ...config.settings import Settings
from ...core.error_handler import create_success_response
from ...schemas.common import ApiResponse, ErrorResponse
from ...schemas.pricing import PlaceOrderRequest
from ...services import CheckoutService, InvoiceConfigRepository, InvoiceService
from ...services.totals_reconciler import reconcile_totals

router = APIRouter()


@router.post(
    "/tenants/{tenant_id}/orders",
    response_model=ApiResponse[Dict[str, Any]],
    responses={400: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
def place_order(tenant_id: str, req: PlaceOrderRequest,
                service: CheckoutService = Depends(get_checkout_service)):
    """下单"""
    placed = service.place_order(tenant_id, req, order_id=req.order_id)
    return create_success_response(placed.model_dump(mode="json", by_alias=True), "下单成功")


@router.get(
    "/tenants/{tenant_id}/orders/{order_id}/totals",
    response_model=ApiResponse[Dict[str, Any]],
    responses={404: {"model": ErrorResponse}},
)
def get_order_totals(tenant_id: str, order_id: str,
                     service: CheckoutService = Depends(get_checkout_service),
                     app_settings: Settings = Depends(get_settings)):
    """订单规范金额（兼容历史文档形态）"""
    order = service.orders.get(tenant_id, order_id)
    totals = reconcile_totals(order, app_settings.default_currency)
    return create_success_response(totals.to_document())


@router.get(
    "/tenants/{tenant_id}/orders/{order_id}/invoice",
    response_model=ApiResponse[Dict[str, Any]],
    responses={404: {"model": ErrorResponse}},
)
def get_order_invoice(tenant_id: str, order_id: str,
                      service: InvoiceService = Depends(get_invoice_service),
                      configs: InvoiceConfigRepository = Depends(get_invoice_configs)):
    """发票/小票展示数据，首次查看时分配发票编号"""
    view = service.invoice_view(tenant_id, order_id, configs.get(tenant_id))
    return create_success_response(view)
