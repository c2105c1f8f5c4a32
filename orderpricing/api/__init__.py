"""
API routes and endpoints.
"""

from fastapi import APIRouter
from .v1 import invoices, orders, pricing, promotions, reports, tenant_config

api_router = APIRouter()

# 包含所有v1路由，租户ID位于路径中
api_router.include_router(pricing.router, tags=["报价"])
api_router.include_router(promotions.router, tags=["促销"])
api_router.include_router(orders.router, tags=["订单"])
api_router.include_router(invoices.router, tags=["发票"])
api_router.include_router(reports.router, tags=["报表"])
api_router.include_router(tenant_config.router, tags=["租户配置"])
