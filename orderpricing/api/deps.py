"""
路由依赖
数据库和配置挂在 app.state 上，测试中可通过 dependency_overrides 替换
"""

from fastapi import Depends, Request

from ..config.settings import Settings
from ..core.database import DatabaseManager
from ..services import (
    CheckoutService,
    InvoiceConfigRepository,
    InvoiceService,
    PromotionService,
    ReportService,
    TaxProfileRepository,
)


def get_db(request: Request) -> DatabaseManager:
    return request.app.state.db


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_checkout_service(db: DatabaseManager = Depends(get_db),
                         app_settings: Settings = Depends(get_settings)) -> CheckoutService:
    return CheckoutService(db, app_settings)


def get_promotion_service(db: DatabaseManager = Depends(get_db)) -> PromotionService:
    return PromotionService(db)


def get_invoice_service(db: DatabaseManager = Depends(get_db),
                        app_settings: Settings = Depends(get_settings)) -> InvoiceService:
    return InvoiceService(db, app_settings)


def get_report_service(db: DatabaseManager = Depends(get_db),
                       app_settings: Settings = Depends(get_settings)) -> ReportService:
    return ReportService(db, app_settings)


def get_tax_profiles(db: DatabaseManager = Depends(get_db),
                     app_settings: Settings = Depends(get_settings)) -> TaxProfileRepository:
    return TaxProfileRepository(db, app_settings)


def get_invoice_configs(db: DatabaseManager = Depends(get_db)) -> InvoiceConfigRepository:
    return InvoiceConfigRepository(db)
