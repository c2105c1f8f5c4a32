"""
税务相关数据模型
包括租户税务配置（TaxProfile）与下单时冻结的税额快照（TaxSnapshot）
"""

from datetime import datetime
from enum import Enum
from typing import Literal, Optional, Tuple, Union

from pydantic import Field, StrictInt, field_validator

from .base import FrozenModel, normalize_order_type
from ..core.money import ROUNDING_STRATEGIES


def _normalize_order_types(values):
    if values is None:
        return None
    normalized = []
    for value in values:
        order_type = normalize_order_type(value)
        normalized.append(order_type.value if order_type else str(value).strip().lower())
    return tuple(normalized)


class RateScope(FrozenModel):
    """税率适用范围"""
    category_ids: Tuple[str, ...] = ()
    tags: Tuple[str, ...] = ()
    exclude_tags: Tuple[str, ...] = ()


class TaxRateRule(FrozenModel):
    """税率规则"""
    code: str = Field(..., description="税率代码，如 IVA")
    label: Optional[str] = None
    rate_bps: StrictInt = Field(..., ge=0, description="税率（基点），1600 表示 16%")
    applies_to: Union[Literal["all"], RateScope] = "all"
    order_types: Optional[Tuple[str, ...]] = None
    zero_rated: bool = False
    exempt: bool = False

    @field_validator("order_types")
    @classmethod
    def normalize_order_types(cls, values):
        return _normalize_order_types(values)

    @property
    def applies_to_all(self) -> bool:
        return self.applies_to == "all"


class SurchargeRule(FrozenModel):
    """附加费规则（如服务费）"""
    code: str
    label: Optional[str] = None
    percent_bps: StrictInt = Field(..., ge=0)
    order_types: Optional[Tuple[str, ...]] = None
    taxable: bool = False
    tax_code: Optional[str] = None

    @field_validator("order_types")
    @classmethod
    def normalize_order_types(cls, values):
        return _normalize_order_types(values)


class DeliveryMode(str, Enum):
    """配送费计税方式"""
    AS_LINE = "as_line"       # 作为一行参与计税
    OUTSIDE = "outside"       # 不进入税额快照，由调用方另行加到总额


class DeliveryPolicy(FrozenModel):
    """配送费策略"""
    mode: DeliveryMode = DeliveryMode.AS_LINE
    taxable: bool = False
    tax_code: Optional[str] = None

    @field_validator("mode", mode="before")
    @classmethod
    def accept_legacy_mode(cls, value):
        # 历史配置中的 out_of_scope 等价于 outside
        if value == "out_of_scope":
            return DeliveryMode.OUTSIDE
        return value


def _check_rounding(value: Optional[str]) -> Optional[str]:
    if value is not None and value not in ROUNDING_STRATEGIES:
        raise ValueError(f"unknown rounding mode: {value}")
    return value


class JurisdictionMatch(FrozenModel):
    """辖区匹配条件"""
    country: Optional[str] = None
    state: Optional[str] = None
    city: Optional[str] = None
    zip_prefix: Optional[str] = None


class JurisdictionRule(FrozenModel):
    """辖区覆盖规则，命中时替换对应的税务配置"""
    code: str
    match: JurisdictionMatch = JurisdictionMatch()
    rates: Optional[Tuple[TaxRateRule, ...]] = None
    surcharges: Optional[Tuple[SurchargeRule, ...]] = None
    delivery: Optional[DeliveryPolicy] = None
    prices_include_tax: Optional[bool] = None
    rounding: Optional[str] = None

    @field_validator("rounding")
    @classmethod
    def check_rounding(cls, value):
        return _check_rounding(value)


class TaxProfile(FrozenModel):
    """租户税务配置"""
    id: Optional[str] = None
    currency: str = "USD"
    prices_include_tax: bool = True
    rounding: str = "half_up"
    rates: Tuple[TaxRateRule, ...] = ()
    surcharges: Tuple[SurchargeRule, ...] = ()
    delivery: DeliveryPolicy = DeliveryPolicy()
    jurisdictions: Tuple[JurisdictionRule, ...] = ()
    tax_exempt_with_tax_id: bool = False

    @field_validator("rounding")
    @classmethod
    def check_rounding(cls, value):
        return _check_rounding(value)


def zero_tax_profile(currency: str = "USD") -> TaxProfile:
    """未配置税务时使用的零税率配置"""
    return TaxProfile(
        id="zero-tax",
        currency=currency,
        prices_include_tax=True,
        rounding="half_up",
        rates=(TaxRateRule(code="NONE", label="Sin impuesto", rate_bps=0),),
        delivery=DeliveryPolicy(mode=DeliveryMode.AS_LINE, taxable=False),
    )


class CustomerInfo(FrozenModel):
    """开票客户信息"""
    tax_id: Optional[str] = None
    name: Optional[str] = None
    tax_exempt: bool = False

    @property
    def has_tax_id(self) -> bool:
        return bool(self.tax_id and self.tax_id.strip())


class AddressInfo(FrozenModel):
    """配送/开票地址，仅用于辖区匹配"""
    country: Optional[str] = None
    state: Optional[str] = None
    city: Optional[str] = None
    zip: Optional[str] = None


class RateTax(FrozenModel):
    code: str
    rate_bps: int
    tax_cents: int


class LineTaxBreakdown(FrozenModel):
    """单行计税明细"""
    line_id: str
    gross_cents: int
    discount_cents: int
    base_cents: int
    taxes: Tuple[RateTax, ...] = ()
    exempt: bool = False
    zero_rated: bool = False


class RateSummary(FrozenModel):
    """按税率汇总"""
    code: str
    label: Optional[str] = None
    rate_bps: int
    base_cents: int
    tax_cents: int


class CodeSummary(FrozenModel):
    """免税/零税率汇总"""
    code: str
    base_cents: int


class SurchargeLine(FrozenModel):
    code: str
    label: Optional[str] = None
    base_cents: int
    tax_cents: int


class SnapshotTotals(FrozenModel):
    sub_total_cents: int
    tax_cents: int
    grand_total_cents: int


class TaxSnapshot(FrozenModel):
    """下单时冻结的税额快照，展示时只读不重算"""
    currency: str
    order_type: Optional[str] = None
    prices_include_tax: bool
    rounding: str
    profile_id: Optional[str] = None
    totals: SnapshotTotals
    summary_by_rate: Tuple[RateSummary, ...] = ()
    summary_zero_rated: Tuple[CodeSummary, ...] = ()
    summary_exempt: Tuple[CodeSummary, ...] = ()
    surcharges: Tuple[SurchargeLine, ...] = ()
    line_breakdown: Tuple[LineTaxBreakdown, ...] = ()
    customer: Optional[CustomerInfo] = None
    jurisdiction_applied: Optional[str] = None
    computed_at: Optional[datetime] = None
