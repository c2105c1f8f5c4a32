"""
租户配置路由模块（税务配置、发票编号配置）
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends

from ..deps import get_invoice_configs, get_tax_profiles
from ...core.error_handler import create_success_response
from ...models.invoice import InvoiceNumberingConfig
from ...models.tax import TaxProfile
from ...schemas.common import ApiResponse
from ...services import InvoiceConfigRepository, TaxProfileRepository

router = APIRouter()


@router.get("/tenants/{tenant_id}/config/tax-profile", response_model=ApiResponse[Dict[str, Any]])
def get_tax_profile(tenant_id: str, repo: TaxProfileRepository = Depends(get_tax_profiles)):
    """当前生效的税务配置（未配置时为零税率配置）"""
    return create_success_response(repo.get_active(tenant_id).to_document())


@router.put("/tenants/{tenant_id}/config/tax-profile", response_model=ApiResponse[Dict[str, Any]])
def save_tax_profile(tenant_id: str, profile: TaxProfile,
                     repo: TaxProfileRepository = Depends(get_tax_profiles)):
    """保存税务配置"""
    return create_success_response(repo.save_profile(tenant_id, profile).to_document(), "税务配置已保存")


@router.get("/tenants/{tenant_id}/config/invoice-numbering", response_model=ApiResponse[Dict[str, Any]])
def get_invoice_numbering(tenant_id: str, repo: InvoiceConfigRepository = Depends(get_invoice_configs)):
    """发票编号配置"""
    return create_success_response(repo.get(tenant_id).to_document())


@router.put("/tenants/{tenant_id}/config/invoice-numbering", response_model=ApiResponse[Dict[str, Any]])
def save_invoice_numbering(tenant_id: str, config: InvoiceNumberingConfig,
                           repo: InvoiceConfigRepository = Depends(get_invoice_configs)):
    """保存发票编号配置"""
    return create_success_response(repo.save_config(tenant_id, config).to_document(), "发票编号配置已保存")
