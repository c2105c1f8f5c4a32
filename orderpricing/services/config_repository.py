"""
租户配置存储
税务配置和发票编号配置按租户保存在 tenant_configs 表中
"""

import logging
from typing import Any, Dict, Optional

from pydantic import ValidationError as PydanticValidationError

from ..config.settings import Settings, settings
from ..core.database import DatabaseManager, load_json, utcnow
from ..core.exceptions import ProfileMissingError, ValidationError
from ..models.base import CamelModel
from ..models.invoice import InvoiceNumberingConfig
from ..models.tax import TaxProfile, zero_tax_profile

logger = logging.getLogger(__name__)

TAX_PROFILE = "tax_profile"
INVOICE_NUMBERING = "invoice_numbering"


class ConfigRepository:
    """按 (tenant_id, kind) 读写配置文档"""

    def __init__(self, db: DatabaseManager):
        self.db = db

    def load(self, tenant_id: str, kind: str) -> Optional[Dict[str, Any]]:
        row = self.db.execute_one(
            "SELECT config_json FROM tenant_configs WHERE tenant_id=? AND kind=?",
            [tenant_id, kind]
        )
        return load_json(row[0]) if row else None

    def save(self, tenant_id: str, kind: str, config: CamelModel):
        document = config.model_dump_json(by_alias=True)

        def work(conn):
            exists = conn.execute(
                "SELECT 1 FROM tenant_configs WHERE tenant_id=? AND kind=?", [tenant_id, kind]
            ).fetchone()
            if exists:
                conn.execute(
                    "UPDATE tenant_configs SET config_json=?, updated_at=? WHERE tenant_id=? AND kind=?",
                    [document, utcnow(), tenant_id, kind]
                )
            else:
                conn.execute(
                    "INSERT INTO tenant_configs(tenant_id, kind, config_json, updated_at) VALUES (?,?,?,?)",
                    [tenant_id, kind, document, utcnow()]
                )

        self.db.run_in_transaction(work, f"config_save:{kind}")


class TaxProfileRepository(ConfigRepository):
    """税务配置存储，没有配置时回退到零税率配置"""

    def __init__(self, db: DatabaseManager, app_settings: Optional[Settings] = None):
        super().__init__(db)
        self.settings = app_settings or settings

    def get(self, tenant_id: str) -> TaxProfile:
        """
        读取租户税务配置

        Raises:
            ProfileMissingError: 未配置或配置无法解析
        """
        document = self.load(tenant_id, TAX_PROFILE)
        if not document:
            raise ProfileMissingError(f"租户未配置税务信息: {tenant_id}", details={"tenant_id": tenant_id})
        try:
            return TaxProfile.model_validate(document)
        except PydanticValidationError as e:
            raise ProfileMissingError(
                f"租户税务配置无效: {tenant_id}",
                details={"tenant_id": tenant_id, "errors": e.error_count()}
            )

    def get_active(self, tenant_id: str) -> TaxProfile:
        """读取有效的税务配置，缺失时返回零税率配置"""
        try:
            return self.get(tenant_id)
        except ProfileMissingError as e:
            logger.info("%s, falling back to zero-tax profile", e.message)
            return zero_tax_profile(self.settings.default_currency)

    def save_profile(self, tenant_id: str, profile: TaxProfile) -> TaxProfile:
        self.save(tenant_id, TAX_PROFILE, profile)
        return profile


class InvoiceConfigRepository(ConfigRepository):
    """发票编号配置存储"""

    def get(self, tenant_id: str) -> InvoiceNumberingConfig:
        """
        读取发票编号配置，未配置时使用默认配置（启用，无前缀）

        Raises:
            ValidationError: 已保存的配置无法解析
        """
        document = self.load(tenant_id, INVOICE_NUMBERING)
        if not document:
            return InvoiceNumberingConfig()
        try:
            return InvoiceNumberingConfig.model_validate(document)
        except PydanticValidationError as e:
            raise ValidationError(
                "发票编号配置无效",
                error_code="INVALID_INVOICE_CONFIG",
                details={"tenant_id": tenant_id, "errors": e.error_count()}
            )

    def save_config(self, tenant_id: str, config: InvoiceNumberingConfig) -> InvoiceNumberingConfig:
        self.save(tenant_id, INVOICE_NUMBERING, config)
        return config
