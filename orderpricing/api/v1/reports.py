"""
报表路由模块
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from ..deps import get_report_service
from ...core.error_handler import create_success_response
from ...schemas.common import ApiResponse
from ...services import ReportService

router = APIRouter()


@router.get("/tenants/{tenant_id}/reports/revenue", response_model=ApiResponse[Dict[str, Any]])
def revenue_report(tenant_id: str, service: ReportService = Depends(get_report_service)):
    """营业额报表"""
    return create_success_response(service.revenue(tenant_id))


@router.get("/tenants/{tenant_id}/reports/tax", response_model=ApiResponse[Dict[str, Any]])
def tax_report(
    tenant_id: str,
    jurisdiction: Optional[str] = Query(None, description="辖区代码"),
    order_type: Optional[str] = Query(None, alias="orderType", description="订单类型"),
    rate_code: Optional[str] = Query(None, alias="rateCode", description="税率代码"),
    service: ReportService = Depends(get_report_service),
):
    """税务报表"""
    return create_success_response(
        service.tax(tenant_id, jurisdiction=jurisdiction, order_type=order_type, rate_code=rate_code)
    )
