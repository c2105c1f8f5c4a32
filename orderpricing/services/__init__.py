"""
Business logic services.
Contains the pricing pipeline, promotion, tax, invoice numbering and report services.
"""

from .checkout_service import CheckoutService
from .config_repository import ConfigRepository, InvoiceConfigRepository, TaxProfileRepository
from .invoice_service import InvoiceService
from .order_store import OrderStore
from .promotion_service import PromotionRepository, PromotionService
from .report_service import ReportService

__all__ = [
    "CheckoutService",
    "ConfigRepository",
    "InvoiceConfigRepository",
    "TaxProfileRepository",
    "InvoiceService",
    "OrderStore",
    "PromotionRepository",
    "PromotionService",
    "ReportService",
]
