"""
发票编号路由模块
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends

from ..deps import get_invoice_configs, get_invoice_service
from ...core.error_handler import create_success_response
from ...schemas.common import ApiResponse, ErrorResponse
from ...schemas.pricing import InvoiceIssueRequest
from ...services import InvoiceConfigRepository, InvoiceService

router = APIRouter()


@router.post(
    "/tenants/{tenant_id}/invoices/issue",
    response_model=ApiResponse[Dict[str, Any]],
    responses={404: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
def issue_invoice_number(tenant_id: str, req: InvoiceIssueRequest,
                         service: InvoiceService = Depends(get_invoice_service),
                         configs: InvoiceConfigRepository = Depends(get_invoice_configs)):
    """为订单分配发票编号（幂等）"""
    config = configs.get(tenant_id)
    number = service.ensure_invoice_number(req.order_id, tenant_id, config)
    message = "发票编号已分配" if number else "发票编号未启用"
    return create_success_response(
        {"orderId": req.order_id, "invoiceNumber": number, "enabled": config.enabled},
        message
    )
