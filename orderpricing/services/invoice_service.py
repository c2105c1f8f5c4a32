"""
发票编号服务
每个订单只分配一次发票编号，编号在租户内唯一且单调递增

分配流程在同一事务内完成：读取订单 → 已有编号直接返回 →
读取计数器 → 生成编号 → 计数器加一并写回订单。并发冲突时整体重试。
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from ..config.settings import Settings, settings
from ..core.database import DatabaseManager, load_json, utcnow
from ..core.exceptions import (
    DatabaseError,
    OrderNotFoundError,
    TransactionConflictError,
    TransientError,
)
from ..models.invoice import InvoiceNumberingConfig, ResetPolicy
from .order_store import OrderStore
from .totals_reconciler import reconcile_totals

logger = logging.getLogger(__name__)

GLOBAL_COUNTER = "global"


def counter_key(policy: ResetPolicy, issued_at: datetime) -> str:
    """按重置策略确定计数器键"""
    if policy == ResetPolicy.YEARLY:
        return issued_at.strftime("year-%Y")
    if policy == ResetPolicy.MONTHLY:
        return issued_at.strftime("month-%Y-%m")
    if policy == ResetPolicy.DAILY:
        return issued_at.strftime("day-%Y-%m-%d")
    return GLOBAL_COUNTER


def period_segment(policy: ResetPolicy, issued_at: datetime) -> str:
    """
    计数器周期在编号中的标记，保证重置后的编号不会与上一周期重复

    never 返回空串；yearly → 2024，monthly → 202406，daily → 20240615
    """
    if policy == ResetPolicy.YEARLY:
        return issued_at.strftime("%Y")
    if policy == ResetPolicy.MONTHLY:
        return issued_at.strftime("%Y%m")
    if policy == ResetPolicy.DAILY:
        return issued_at.strftime("%Y%m%d")
    return ""


def format_invoice_number(config: InvoiceNumberingConfig, sequence: int,
                          separator: str = "-", default_padding: int = 8,
                          period: str = "") -> str:
    """
    生成发票编号：[前缀, 系列, 周期, 补零序号, 后缀] 中非空部分以分隔符连接

    例如 prefix="INV", series="A", padding=6, sequence=42 → "INV-A-000042"；
    按月重置时 → "INV-A-202406-000042"
    """
    padding = config.padding if config.padding is not None else default_padding
    padded = str(sequence).zfill(max(1, padding))
    parts = [config.prefix, config.series, period, padded, config.suffix]
    return separator.join(part.strip() for part in parts if part and part.strip())


def _document_invoice_number(doc_json: Any) -> Optional[str]:
    """历史订单文档中已保存的发票编号"""
    document = load_json(doc_json)
    if not isinstance(document, dict):
        return None
    number = document.get("invoiceNumber")
    if number is None or not str(number).strip():
        return None
    return str(number).strip()


class InvoiceService:
    """发票编号业务服务"""

    def __init__(self, db: DatabaseManager, app_settings: Optional[Settings] = None):
        self.db = db
        self.settings = app_settings or settings

    def ensure_invoice_number(self, order_id: str, tenant_id: str,
                              config: InvoiceNumberingConfig,
                              now: Optional[datetime] = None) -> Optional[str]:
        """
        确保订单已有发票编号（幂等）

        Args:
            order_id: 订单ID
            tenant_id: 租户ID
            config: 发票编号配置，未启用时直接返回 None
            now: 开票时间，默认当前 UTC 时间

        Returns:
            Optional[str]: 发票编号

        Raises:
            OrderNotFoundError: 订单不存在
            TransientError: 并发冲突重试耗尽
        """
        if not config.enabled:
            return None
        issued_at = now or utcnow()
        if issued_at.tzinfo is not None:
            issued_at = issued_at.astimezone(timezone.utc).replace(tzinfo=None)
        key = counter_key(config.reset_policy, issued_at)
        period = period_segment(config.reset_policy, issued_at)

        def work(conn) -> Tuple[str, bool]:
            order_row = conn.execute(
                "SELECT invoice_number, doc_json FROM orders WHERE tenant_id=? AND order_id=?",
                [tenant_id, order_id]
            ).fetchone()
            if not order_row:
                raise OrderNotFoundError(f"订单不存在: {order_id}", details={"order_id": order_id})
            existing = order_row[0]
            if existing and str(existing).strip():
                return str(existing), False
            # 迁移过来的历史订单可能只在文档中保存了编号
            legacy = _document_invoice_number(order_row[1])
            if legacy:
                return legacy, False

            counter_row = conn.execute(
                "SELECT next FROM invoice_counters WHERE tenant_id=? AND counter_key=?",
                [tenant_id, key]
            ).fetchone()
            sequence = int(counter_row[0]) if counter_row else 1
            number = format_invoice_number(
                config, sequence,
                separator=self.settings.invoice_separator,
                default_padding=self.settings.invoice_default_padding,
                period=period,
            )

            if counter_row:
                updated = conn.execute(
                    "UPDATE invoice_counters SET next=?, updated_at=? WHERE tenant_id=? AND counter_key=? AND next=?",
                    [sequence + 1, issued_at, tenant_id, key, sequence]
                ).fetchone()
                if not updated or updated[0] != 1:
                    raise TransactionConflictError("发票计数器已被修改", details={"cause": "counter moved"})
            else:
                conn.execute(
                    "INSERT INTO invoice_counters(tenant_id, counter_key, next, updated_at) VALUES (?,?,?,?)",
                    [tenant_id, key, sequence + 1, issued_at]
                )

            conn.execute(
                "UPDATE orders SET invoice_number=?, invoice_date=?, updated_at=? WHERE tenant_id=? AND order_id=?",
                [number, issued_at, utcnow(), tenant_id, order_id]
            )
            return number, True

        number, issued = self.db.run_in_transaction(work, "invoice_issue")
        if issued:
            self.db.write_log(
                "invoice_issue",
                {"order_id": order_id, "invoice_number": number, "counter_key": key},
                tenant_id=tenant_id
            )
        return number

    def try_ensure_invoice_number(self, order_id: str, tenant_id: str,
                                  config: InvoiceNumberingConfig,
                                  now: Optional[datetime] = None) -> Optional[str]:
        """展示场景使用：暂时性失败时记录日志并返回 None，订单不存在仍然抛出"""
        try:
            return self.ensure_invoice_number(order_id, tenant_id, config, now)
        except (TransientError, DatabaseError) as e:
            logger.warning("invoice number not assigned for %s/%s: %s", tenant_id, order_id, e.message)
            return None

    def invoice_view(self, tenant_id: str, order_id: str,
                     config: InvoiceNumberingConfig) -> Dict[str, Any]:
        """
        发票/小票展示数据：按需分配编号，税额只读取下单时保存的快照

        Raises:
            OrderNotFoundError: 订单不存在
        """
        self.try_ensure_invoice_number(order_id, tenant_id, config)
        order = OrderStore(self.db).get(tenant_id, order_id)
        totals = reconcile_totals(order, self.settings.default_currency)
        return {
            "order_id": order_id,
            "invoice_number": order.get("invoiceNumber"),
            "invoice_date": order.get("invoiceDate"),
            "customer": order.get("customer"),
            "tax_snapshot": order.get("taxSnapshot"),
            "totals": totals.to_document(),
            "order": order,
        }
