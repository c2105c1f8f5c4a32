"""
订单文档存储
订单以 JSON 文档形式保存，发票编号和开票时间单独成列
"""

import json
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional

from ..core.database import DatabaseManager, load_json, utcnow
from ..core.exceptions import OrderNotFoundError


def _parse_date(value: Any) -> Optional[datetime]:
    """文档中的开票时间转为 UTC naive datetime，无法解析时为 None"""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


class OrderStore:
    """订单文档读写"""

    def __init__(self, db: DatabaseManager):
        self.db = db

    def insert(self, tenant_id: str, order_id: str, document: Dict[str, Any]):
        """写入订单文档；文档自带的发票编号写入编号列，之后不会重新分配"""
        now = utcnow()
        invoice_number = document.get("invoiceNumber")
        invoice_number = str(invoice_number).strip() if invoice_number is not None else ""
        invoice_date = _parse_date(document.get("invoiceDate")) if invoice_number else None
        self.db.execute(
            "INSERT INTO orders(tenant_id, order_id, doc_json, invoice_number, invoice_date, created_at, updated_at) "
            "VALUES (?,?,?,?,?,?,?)",
            [tenant_id, order_id, json.dumps(document, default=str),
             invoice_number or None, invoice_date, now, now]
        )

    @staticmethod
    def _merge(doc_json: Any, invoice_number: Optional[str], invoice_date: Any) -> Dict[str, Any]:
        document = load_json(doc_json) or {}
        if invoice_number:
            document["invoiceNumber"] = invoice_number
            if invoice_date is not None:
                document["invoiceDate"] = invoice_date.isoformat()
            else:
                document.setdefault("invoiceDate", None)
        return document

    def find(self, tenant_id: str, order_id: str) -> Optional[Dict[str, Any]]:
        row = self.db.execute_one(
            "SELECT doc_json, invoice_number, invoice_date FROM orders WHERE tenant_id=? AND order_id=?",
            [tenant_id, order_id]
        )
        return self._merge(*row) if row else None

    def get(self, tenant_id: str, order_id: str) -> Dict[str, Any]:
        """
        读取订单文档（含发票编号）

        Raises:
            OrderNotFoundError: 订单不存在
        """
        document = self.find(tenant_id, order_id)
        if document is None:
            raise OrderNotFoundError(f"订单不存在: {order_id}", details={"order_id": order_id})
        return document

    def iter_orders(self, tenant_id: str) -> Iterator[Dict[str, Any]]:
        rows = self.db.execute_query(
            "SELECT doc_json, invoice_number, invoice_date FROM orders WHERE tenant_id=? ORDER BY created_at, order_id",
            [tenant_id]
        )
        for row in rows:
            yield self._merge(*row)
