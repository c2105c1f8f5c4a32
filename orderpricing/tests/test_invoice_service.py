"""
发票编号服务测试
"""

import threading
from datetime import datetime

import pytest

from orderpricing.core.exceptions import OrderNotFoundError, TransientError
from orderpricing.models.invoice import InvoiceNumberingConfig, ResetPolicy
from orderpricing.services.invoice_service import (
    InvoiceService,
    counter_key,
    format_invoice_number,
    period_segment,
)
from orderpricing.services.order_store import OrderStore

from factories import NOW, TENANT

CONFIG = InvoiceNumberingConfig(prefix="INV", series="A", padding=6)


def _insert_orders(db, count, tenant_id=TENANT):
    store = OrderStore(db)
    for index in range(count):
        store.insert(tenant_id, f"order-{index}", {"orderId": f"order-{index}", "totals": {"totalCents": 100}})


class TestFormatting:
    """编号格式"""

    def test_prefix_series_and_padding(self):
        assert format_invoice_number(CONFIG, 42) == "INV-A-000042"

    def test_empty_parts_are_skipped(self):
        config = InvoiceNumberingConfig(prefix="F", suffix="MX")
        assert format_invoice_number(config, 7, default_padding=4) == "F-0007-MX"

    def test_sequence_longer_than_padding_is_kept(self):
        config = InvoiceNumberingConfig(padding=2)
        assert format_invoice_number(config, 12345, separator="/") == "12345"

    @pytest.mark.parametrize("policy, expected", [
        (ResetPolicy.NEVER, "global"),
        (ResetPolicy.YEARLY, "year-2024"),
        (ResetPolicy.MONTHLY, "month-2024-06"),
        (ResetPolicy.DAILY, "day-2024-06-15"),
    ])
    def test_counter_key_by_reset_policy(self, policy, expected):
        assert counter_key(policy, NOW) == expected

    @pytest.mark.parametrize("policy, expected", [
        (ResetPolicy.NEVER, "INV-A-000042"),
        (ResetPolicy.YEARLY, "INV-A-2024-000042"),
        (ResetPolicy.MONTHLY, "INV-A-202406-000042"),
        (ResetPolicy.DAILY, "INV-A-20240615-000042"),
    ])
    def test_period_segment_in_number(self, policy, expected):
        assert format_invoice_number(CONFIG, 42, period=period_segment(policy, NOW)) == expected


class TestEnsureInvoiceNumber:
    """编号分配"""

    def test_disabled_returns_none(self, test_db, test_settings):
        _insert_orders(test_db, 1)
        service = InvoiceService(test_db, test_settings)
        assert service.ensure_invoice_number("order-0", TENANT, InvoiceNumberingConfig(enabled=False)) is None
        assert OrderStore(test_db).get(TENANT, "order-0").get("invoiceNumber") is None

    def test_idempotent_per_order(self, test_db, test_settings):
        _insert_orders(test_db, 1)
        service = InvoiceService(test_db, test_settings)

        first = service.ensure_invoice_number("order-0", TENANT, CONFIG, now=NOW)
        second = service.ensure_invoice_number("order-0", TENANT, CONFIG, now=NOW)

        assert first == second == "INV-A-000001"
        issued = test_db.execute_one("SELECT COUNT(*) FROM logs WHERE action='invoice_issue'")
        assert issued[0] == 1

    def test_sequential_numbers_and_stored_on_order(self, test_db, test_settings):
        _insert_orders(test_db, 3)
        service = InvoiceService(test_db, test_settings)

        numbers = [service.ensure_invoice_number(f"order-{i}", TENANT, CONFIG, now=NOW) for i in range(3)]

        assert numbers == ["INV-A-000001", "INV-A-000002", "INV-A-000003"]
        document = OrderStore(test_db).get(TENANT, "order-2")
        assert document["invoiceNumber"] == "INV-A-000003"
        assert document["invoiceDate"].startswith("2024-06-15T12:00")

    def test_counters_are_per_tenant_and_period(self, test_db, test_settings):
        _insert_orders(test_db, 2)
        _insert_orders(test_db, 1, tenant_id="tenant-b")
        service = InvoiceService(test_db, test_settings)
        monthly = InvoiceNumberingConfig(prefix="M", padding=3, reset_policy=ResetPolicy.MONTHLY)

        assert service.ensure_invoice_number("order-0", TENANT, monthly, now=datetime(2024, 6, 30)) == "M-202406-001"
        assert service.ensure_invoice_number("order-1", TENANT, monthly, now=datetime(2024, 7, 1)) == "M-202407-001"
        assert service.ensure_invoice_number("order-0", "tenant-b", monthly, now=datetime(2024, 6, 30)) == "M-202406-001"

    def test_reset_periods_never_repeat_numbers(self, test_db, test_settings):
        """按月重置后序号从 1 开始，但不同月份的编号不能相同"""
        _insert_orders(test_db, 2)
        service = InvoiceService(test_db, test_settings)
        monthly = InvoiceNumberingConfig(prefix="INV", padding=4, reset_policy=ResetPolicy.MONTHLY)

        january = service.ensure_invoice_number("order-0", TENANT, monthly, now=datetime(2024, 1, 5))
        february = service.ensure_invoice_number("order-1", TENANT, monthly, now=datetime(2024, 2, 5))

        assert january == "INV-202401-0001"
        assert february == "INV-202402-0001"
        assert january != february

    def test_number_saved_in_document_is_kept(self, test_db, test_settings):
        """文档中已有发票编号的历史订单不再分配新编号，也不占用计数器"""
        store = OrderStore(test_db)
        store.insert(TENANT, "legacy", {"orderId": "legacy", "invoiceNumber": "OLD-7",
                                        "invoiceDate": "2023-12-01T10:00:00+00:00"})
        _insert_orders(test_db, 1)
        service = InvoiceService(test_db, test_settings)

        assert service.ensure_invoice_number("legacy", TENANT, CONFIG, now=NOW) == "OLD-7"
        assert service.ensure_invoice_number("order-0", TENANT, CONFIG, now=NOW) == "INV-A-000001"
        document = store.get(TENANT, "legacy")
        assert document["invoiceNumber"] == "OLD-7"
        assert document["invoiceDate"].startswith("2023-12-01T10:00")
        issued = test_db.execute_one("SELECT COUNT(*) FROM logs WHERE action='invoice_issue'")
        assert issued[0] == 1

    def test_number_only_in_document_json_is_kept(self, test_db, test_settings):
        """编号列为空、只有文档里带编号的迁移数据同样保持原编号"""
        test_db.execute(
            "INSERT INTO orders(tenant_id, order_id, doc_json) VALUES (?,?,?)",
            [TENANT, "migrated", '{"orderId": "migrated", "invoiceNumber": "OLD-9"}']
        )
        service = InvoiceService(test_db, test_settings)

        assert service.ensure_invoice_number("migrated", TENANT, CONFIG, now=NOW) == "OLD-9"
        assert OrderStore(test_db).get(TENANT, "migrated")["invoiceNumber"] == "OLD-9"

    def test_missing_order_raises(self, test_db, test_settings):
        with pytest.raises(OrderNotFoundError):
            InvoiceService(test_db, test_settings).ensure_invoice_number("nope", TENANT, CONFIG)

    def test_concurrent_issuance_is_unique_and_gap_free(self, file_db, test_settings):
        count = 8
        _insert_orders(file_db, count)
        service = InvoiceService(file_db, test_settings)
        results, errors = {}, []
        barrier = threading.Barrier(count)

        def issue(order_id):
            barrier.wait()
            try:
                results[order_id] = service.ensure_invoice_number(order_id, TENANT, CONFIG, now=NOW)
            except Exception as e:  # 记录到主线程断言
                errors.append(e)

        threads = [threading.Thread(target=issue, args=(f"order-{i}",)) for i in range(count)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert sorted(results.values()) == [f"INV-A-{i:06d}" for i in range(1, count + 1)]


class TestSoftFailure:
    """展示场景的软失败"""

    def test_transient_failure_returns_none(self, test_db, test_settings, monkeypatch):
        _insert_orders(test_db, 1)
        service = InvoiceService(test_db, test_settings)

        def exhausted(work, operation, max_attempts=None):
            raise TransientError("busy", details={"operation": operation})

        monkeypatch.setattr(test_db, "run_in_transaction", exhausted)
        assert service.try_ensure_invoice_number("order-0", TENANT, CONFIG) is None

    def test_missing_order_still_raises(self, test_db, test_settings):
        with pytest.raises(OrderNotFoundError):
            InvoiceService(test_db, test_settings).try_ensure_invoice_number("nope", TENANT, CONFIG)

    def test_invoice_view_reads_stored_snapshot(self, test_db, test_settings):
        snapshot = {"currency": "MXN", "totals": {"subTotalCents": 100, "taxCents": 16, "grandTotalCents": 116}}
        OrderStore(test_db).insert(TENANT, "o1", {
            "orderId": "o1",
            "customer": {"taxId": "RFC123", "name": "ACME"},
            "taxSnapshot": snapshot,
            "totals": {"totalCents": 116, "currency": "MXN"},
        })
        view = InvoiceService(test_db, test_settings).invoice_view(TENANT, "o1", CONFIG)

        assert view["invoice_number"] == "INV-A-000001"
        assert view["tax_snapshot"] == snapshot
        assert view["customer"]["taxId"] == "RFC123"
        assert view["totals"]["grandTotalCents"] == 116
