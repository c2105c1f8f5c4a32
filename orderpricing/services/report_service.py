"""
报表服务模块
营业额报表基于规范化后的订单金额，税务报表只汇总下单时保存的税额快照
"""

from typing import Any, Dict, List, Optional

from ..config.settings import Settings, settings
from ..core.database import DatabaseManager
from ..core.money import coerce_decimal, decimal_to_cents
from ..models.base import normalize_order_type
from .order_store import OrderStore
from .totals_reconciler import reconcile_totals

_REVENUE_FIELDS = (
    "subtotal_cents", "delivery_fee_cents", "tip_cents",
    "discount_cents", "tax_cents", "grand_total_cents",
)


def _int_value(value: Any) -> int:
    """快照中的分或基点字段取整，无法解析按 0 处理"""
    result = coerce_decimal(value)
    if result is None:
        return 0
    return decimal_to_cents(result / 100)


def _code(entry: Dict[str, Any]) -> Optional[str]:
    code = entry.get("code")
    return str(code) if code is not None else None


def _entries(value: Any) -> List[Dict[str, Any]]:
    """快照中的汇总列表，忽略非对象条目"""
    if not isinstance(value, list):
        return []
    return [entry for entry in value if isinstance(entry, dict)]


class ReportService:
    """报表业务服务"""

    def __init__(self, db: DatabaseManager, app_settings: Optional[Settings] = None):
        self.db = db
        self.settings = app_settings or settings
        self.orders = OrderStore(db)

    def revenue(self, tenant_id: str) -> Dict[str, Any]:
        """
        营业额汇总，按币种分组

        Returns:
            Dict: order_count、by_currency（各金额合计）、by_source（各文档形态的订单数）
        """
        by_currency: Dict[str, Dict[str, int]] = {}
        by_source: Dict[str, int] = {}
        count = 0
        for order in self.orders.iter_orders(tenant_id):
            totals = reconcile_totals(order, self.settings.default_currency)
            count += 1
            by_source[totals.source] = by_source.get(totals.source, 0) + 1
            bucket = by_currency.setdefault(
                totals.currency, dict({field: 0 for field in _REVENUE_FIELDS}, order_count=0)
            )
            bucket["order_count"] += 1
            for field in _REVENUE_FIELDS:
                bucket[field] += getattr(totals, field)
        return {"order_count": count, "by_currency": by_currency, "by_source": by_source}

    def tax(self, tenant_id: str, jurisdiction: Optional[str] = None,
            order_type: Optional[str] = None, rate_code: Optional[str] = None) -> Dict[str, Any]:
        """
        税务汇总：按 (辖区, 税率代码, 税率, 币种) 汇总快照中的 summaryByRate

        没有税额快照的历史订单不参与汇总，只计数。
        """
        wanted_type = normalize_order_type(order_type) if order_type else None
        rows: Dict[tuple, Dict[str, Any]] = {}
        zero_rated: Dict[tuple, int] = {}
        exempt: Dict[tuple, int] = {}
        without_snapshot = 0
        included = 0

        for order in self.orders.iter_orders(tenant_id):
            snapshot = order.get("taxSnapshot")
            if not isinstance(snapshot, dict):
                without_snapshot += 1
                continue
            applied = str(snapshot.get("jurisdictionApplied") or "")
            if jurisdiction and applied.lower() != jurisdiction.strip().lower():
                continue
            if order_type and normalize_order_type(snapshot.get("orderType")) != wanted_type:
                continue
            summaries = _entries(snapshot.get("summaryByRate"))
            if rate_code and not any(
                str(entry.get("code", "")).lower() == rate_code.strip().lower() for entry in summaries
            ):
                continue

            included += 1
            currency = str(snapshot.get("currency") or self.settings.default_currency)
            for entry in summaries:
                if rate_code and str(entry.get("code", "")).lower() != rate_code.strip().lower():
                    continue
                key = (applied, _code(entry), _int_value(entry.get("rateBps")), currency)
                row = rows.setdefault(key, {
                    "jurisdiction": applied, "code": key[1], "rate_bps": key[2], "currency": currency,
                    "base_cents": 0, "tax_cents": 0, "order_count": 0,
                })
                row["base_cents"] += _int_value(entry.get("baseCents"))
                row["tax_cents"] += _int_value(entry.get("taxCents"))
                row["order_count"] += 1
            for bucket, field in ((zero_rated, "summaryZeroRated"), (exempt, "summaryExempt")):
                for entry in _entries(snapshot.get(field)):
                    key = (applied, _code(entry), currency)
                    bucket[key] = bucket.get(key, 0) + _int_value(entry.get("baseCents"))

        return {
            "order_count": included,
            "orders_without_snapshot": without_snapshot,
            "rates": sorted(rows.values(), key=lambda r: (r["jurisdiction"], str(r["code"]), r["rate_bps"])),
            "zero_rated": self._code_rows(zero_rated),
            "exempt": self._code_rows(exempt),
        }

    @staticmethod
    def _code_rows(bucket: Dict[tuple, int]) -> List[Dict[str, Any]]:
        return [
            {"jurisdiction": key[0], "code": key[1], "currency": key[2], "base_cents": base}
            for key, base in sorted(bucket.items(), key=lambda item: (item[0][0], str(item[0][1])))
        ]
