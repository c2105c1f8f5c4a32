"""
税额快照计算
纯函数：根据租户税务配置、已定价的购物车行和已分摊的折扣生成 TaxSnapshot

计算规则：
- 行计税基数 = 行合计 − 分摊折扣
- 价外税：round(基数 × bps / 10000)；价内税：round(基数 × bps / (10000 + bps))
- 小计为不含税金额，总计 = 小计 + 附加费基数 + 税额
"""

from datetime import datetime, timezone
from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple

from ..core.money import apply_bps, embedded_bps
from ..models.base import normalize_order_type
from ..models.cart import PricedLine
from ..models.promotion import AppliedPromotion
from ..models.tax import (
    AddressInfo,
    CodeSummary,
    CustomerInfo,
    DeliveryMode,
    JurisdictionRule,
    LineTaxBreakdown,
    RateSummary,
    RateTax,
    SnapshotTotals,
    SurchargeLine,
    TaxProfile,
    TaxRateRule,
    TaxSnapshot,
)

DELIVERY_LINE_ID = "delivery"
DELIVERY_CATEGORY = "delivery"


class _TaxableLine(NamedTuple):
    line_id: str
    gross_cents: int
    discount_cents: int
    category_id: Optional[str]
    tags: Tuple[str, ...]
    tax_exempt: bool
    tax_code: Optional[str] = None

    @property
    def base_cents(self) -> int:
        return max(0, self.gross_cents - self.discount_cents)


def _norm(value: Optional[str]) -> str:
    return str(value or "").strip().lower()


def _jurisdiction_score(rule: JurisdictionRule) -> int:
    match = rule.match
    if match.zip_prefix:
        return 4
    if match.city:
        return 3
    if match.state:
        return 2
    return 1 if match.country else 0


def _jurisdiction_matches(rule: JurisdictionRule, address: AddressInfo) -> bool:
    match = rule.match
    if match.country and _norm(match.country) != _norm(address.country):
        return False
    if match.state and _norm(match.state) != _norm(address.state):
        return False
    if match.city and _norm(match.city) != _norm(address.city):
        return False
    if match.zip_prefix and not _norm(address.zip).startswith(_norm(match.zip_prefix)):
        return False
    return True


def resolve_effective_profile(profile: TaxProfile,
                              address: Optional[AddressInfo]) -> Tuple[TaxProfile, Optional[str]]:
    """
    按地址选择辖区覆盖规则，优先级：邮编前缀 > 城市 > 州/省 > 国家

    Returns:
        (生效的税务配置, 命中的辖区代码或 None)
    """
    if address is None or not profile.jurisdictions:
        return profile, None
    matches = [rule for rule in profile.jurisdictions if _jurisdiction_matches(rule, address)]
    if not matches:
        return profile, None
    best = max(matches, key=_jurisdiction_score)

    update = {}
    if best.prices_include_tax is not None:
        update["prices_include_tax"] = best.prices_include_tax
    if best.rounding is not None:
        update["rounding"] = best.rounding
    if best.rates:
        update["rates"] = best.rates
    if best.surcharges:
        update["surcharges"] = best.surcharges
    if best.delivery is not None:
        update["delivery"] = best.delivery
    return profile.model_copy(update=update), best.code


def _order_type_allowed(order_types: Optional[Tuple[str, ...]], order_type: Optional[str]) -> bool:
    if not order_types:
        return True
    return order_type is not None and order_type in order_types


def rule_applies(rule: TaxRateRule, line: _TaxableLine, order_type: Optional[str]) -> bool:
    """税率规则是否适用于该行"""
    if not _order_type_allowed(rule.order_types, order_type):
        return False
    if rule.applies_to_all:
        return True
    scope = rule.applies_to
    tags = set(line.tags)
    if scope.category_ids and line.category_id not in scope.category_ids:
        return False
    if scope.tags and not tags.intersection(scope.tags):
        return False
    if scope.exclude_tags and tags.intersection(scope.exclude_tags):
        return False
    return bool(scope.category_ids or scope.tags or scope.exclude_tags)


def _rule_by_code(profile: TaxProfile, code: Optional[str]) -> Optional[TaxRateRule]:
    if not code:
        return None
    return next((rule for rule in profile.rates if rule.code == code), None)


def _surcharge_rule(profile: TaxProfile, tax_code: Optional[str]) -> Optional[TaxRateRule]:
    """附加费计税使用的税率：指定代码 > 第一个全局税率 > 第一个税率"""
    return (
        _rule_by_code(profile, tax_code)
        or next((rule for rule in profile.rates if rule.applies_to_all), None)
        or (profile.rates[0] if profile.rates else None)
    )


class _Accumulator:
    """按税率代码累加基数和税额，保持首次出现的顺序"""

    def __init__(self):
        self.by_rate: Dict[str, dict] = {}
        self.zero_rated: Dict[str, int] = {}
        self.exempt: Dict[str, int] = {}

    def add_rate(self, rule: TaxRateRule, base_cents: int, tax_cents: int):
        entry = self.by_rate.setdefault(
            rule.code,
            {"code": rule.code, "label": rule.label, "rate_bps": rule.rate_bps, "base_cents": 0, "tax_cents": 0}
        )
        entry["base_cents"] += base_cents
        entry["tax_cents"] += tax_cents

    @staticmethod
    def _add_code(bucket: Dict[str, int], code: str, base_cents: int):
        bucket[code] = bucket.get(code, 0) + base_cents

    def add_zero_rated(self, code: str, base_cents: int):
        self._add_code(self.zero_rated, code, base_cents)

    def add_exempt(self, code: str, base_cents: int):
        self._add_code(self.exempt, code, base_cents)

    @property
    def tax_cents(self) -> int:
        return sum(entry["tax_cents"] for entry in self.by_rate.values())


def _tax_amount(base_cents: int, rate_bps: int, inclusive: bool, mode: str) -> int:
    if inclusive:
        return embedded_bps(base_cents, rate_bps, mode)
    return apply_bps(base_cents, rate_bps, mode)


def _build_taxable_lines(profile: TaxProfile, lines: Sequence[PricedLine],
                         applied_promotion: Optional[AppliedPromotion],
                         delivery_fee_cents: int) -> List[_TaxableLine]:
    discounts = applied_promotion.discount_map() if applied_promotion else {}
    taxables = [
        _TaxableLine(
            line_id=line.line_id,
            gross_cents=line.line_total_cents,
            discount_cents=min(discounts.get(line.line_id, 0), line.line_total_cents),
            category_id=line.category_id,
            tags=tuple(line.tags),
            tax_exempt=line.tax_exempt,
        )
        for line in lines
    ]
    if delivery_fee_cents > 0 and profile.delivery.mode == DeliveryMode.AS_LINE:
        taxables.append(_TaxableLine(
            line_id=DELIVERY_LINE_ID,
            gross_cents=delivery_fee_cents,
            discount_cents=0,
            category_id=DELIVERY_CATEGORY,
            tags=(DELIVERY_CATEGORY,),
            tax_exempt=not profile.delivery.taxable,
            tax_code=profile.delivery.tax_code,
        ))
    return taxables


def calculate_tax_snapshot(profile: TaxProfile,
                           lines: Sequence[PricedLine],
                           applied_promotion: Optional[AppliedPromotion] = None,
                           delivery_fee_cents: int = 0,
                           order_type: Optional[str] = None,
                           customer: Optional[CustomerInfo] = None,
                           address: Optional[AddressInfo] = None,
                           computed_at: Optional[datetime] = None) -> TaxSnapshot:
    """
    计算税额快照

    Args:
        profile: 租户税务配置
        lines: 已定价的购物车行
        applied_promotion: 已分摊的促销折扣
        delivery_fee_cents: 配送费（分）；outside 模式下不计入快照
        order_type: 订单类型（支持别名）
        customer: 开票客户信息（B2B 免税判断）
        address: 地址（辖区匹配）

    Returns:
        TaxSnapshot: 不可变的税额快照
    """
    effective, jurisdiction = resolve_effective_profile(profile, address)
    mode = effective.rounding
    inclusive = effective.prices_include_tax
    normalized = normalize_order_type(order_type)
    order_type_value = normalized.value if normalized else None
    b2b_exempt = bool(
        effective.tax_exempt_with_tax_id and customer is not None
        and (customer.has_tax_id or customer.tax_exempt)
    )

    acc = _Accumulator()
    breakdown = []
    gross_total = 0
    line_tax_total = 0
    for line in _build_taxable_lines(effective, lines, applied_promotion, delivery_fee_cents):
        base = line.base_cents
        gross_total += base
        row = {"line_id": line.line_id, "gross_cents": line.gross_cents,
               "discount_cents": line.discount_cents, "base_cents": base}

        if line.tax_exempt or b2b_exempt:
            acc.add_exempt("B2B" if b2b_exempt and not line.tax_exempt else "EXEMPT", base)
            breakdown.append(LineTaxBreakdown(exempt=True, **row))
            continue

        if line.tax_code:
            selected = _rule_by_code(effective, line.tax_code)
            rules = [selected] if selected else []
        else:
            rules = [rule for rule in effective.rates if rule_applies(rule, line, order_type_value)]

        if not rules:
            acc.add_exempt("NO_RULE", base)
            breakdown.append(LineTaxBreakdown(exempt=True, **row))
            continue

        exempt_rule = next((rule for rule in rules if rule.exempt), None)
        if exempt_rule is not None:
            acc.add_exempt(exempt_rule.code, base)
            breakdown.append(LineTaxBreakdown(exempt=True, **row))
            continue

        # 任一匹配规则为零税率即整行零税率
        zero_rule = next((rule for rule in rules if rule.zero_rated), None)
        if zero_rule is not None:
            acc.add_zero_rated(zero_rule.code, base)
            breakdown.append(LineTaxBreakdown(zero_rated=True, **row))
            continue

        taxes = []
        for rule in rules:
            tax = _tax_amount(base, rule.rate_bps, inclusive, mode)
            acc.add_rate(rule, base - tax if inclusive else base, tax)
            taxes.append(RateTax(code=rule.code, rate_bps=rule.rate_bps, tax_cents=tax))
            line_tax_total += tax
        breakdown.append(LineTaxBreakdown(taxes=tuple(taxes), **row))

    surcharge_lines = []
    surcharge_net_total = 0
    for surcharge in effective.surcharges:
        if not _order_type_allowed(surcharge.order_types, order_type_value):
            continue
        gross = apply_bps(gross_total, surcharge.percent_bps, mode)
        tax = 0
        if surcharge.taxable and not b2b_exempt:
            rule = _surcharge_rule(effective, surcharge.tax_code)
            if rule is not None and not (rule.exempt or rule.zero_rated):
                tax = _tax_amount(gross, rule.rate_bps, inclusive, mode)
                acc.add_rate(rule, gross - tax if inclusive else gross, tax)
        net = gross - tax if inclusive else gross
        surcharge_net_total += net
        surcharge_lines.append(SurchargeLine(code=surcharge.code, label=surcharge.label,
                                             base_cents=net, tax_cents=tax))

    tax_total = acc.tax_cents
    sub_total = gross_total - line_tax_total if inclusive else gross_total

    return TaxSnapshot(
        currency=effective.currency,
        order_type=order_type_value,
        prices_include_tax=inclusive,
        rounding=mode,
        profile_id=effective.id,
        totals=SnapshotTotals(
            sub_total_cents=sub_total,
            tax_cents=tax_total,
            grand_total_cents=sub_total + surcharge_net_total + tax_total,
        ),
        summary_by_rate=tuple(RateSummary(**entry) for entry in acc.by_rate.values()),
        summary_zero_rated=tuple(CodeSummary(code=code, base_cents=base) for code, base in acc.zero_rated.items()),
        summary_exempt=tuple(CodeSummary(code=code, base_cents=base) for code, base in acc.exempt.items()),
        surcharges=tuple(surcharge_lines),
        line_breakdown=tuple(breakdown),
        customer=customer,
        jurisdiction_applied=jurisdiction,
        computed_at=computed_at or datetime.now(timezone.utc),
    )
