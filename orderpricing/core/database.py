"""
数据库连接和管理模块
以 DuckDB 作为租户文档存储，提供乐观事务与冲突重试

设计要点：
- 每个事务使用独立游标，DuckDB 的写写冲突检测负责并发正确性
- 冲突统一转换为 TransactionConflictError，由 run_in_transaction 整体重试
- 重试次数耗尽后抛出 TransientError
"""

import json
import logging
import random
import threading
import time
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Generator, Optional, TypeVar

import duckdb

from .exceptions import (
    BaseApplicationError,
    DatabaseError,
    TransactionConflictError,
    TransientError,
)
from ..config.settings import Settings, settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

# 完整的表结构定义
SCHEMA_SQL = r"""
CREATE TABLE IF NOT EXISTS orders (
  tenant_id TEXT NOT NULL,
  order_id TEXT NOT NULL,
  doc_json TEXT NOT NULL,
  invoice_number TEXT,
  invoice_date TIMESTAMP,
  created_at TIMESTAMP DEFAULT now(),
  updated_at TIMESTAMP DEFAULT now(),
  PRIMARY KEY (tenant_id, order_id)
);

CREATE TABLE IF NOT EXISTS promotions (
  tenant_id TEXT NOT NULL,
  promo_id TEXT NOT NULL,
  code TEXT NOT NULL,
  doc_json TEXT NOT NULL,
  times_redeemed INTEGER DEFAULT 0 NOT NULL,
  updated_at TIMESTAMP DEFAULT now(),
  PRIMARY KEY (tenant_id, promo_id)
);

CREATE TABLE IF NOT EXISTS promotion_redemptions (
  tenant_id TEXT NOT NULL,
  promo_id TEXT NOT NULL,
  order_id TEXT NOT NULL,
  code TEXT NOT NULL,
  user_id TEXT,
  created_at TIMESTAMP DEFAULT now(),
  PRIMARY KEY (tenant_id, promo_id, order_id)
);

CREATE TABLE IF NOT EXISTS promotion_usages (
  tenant_id TEXT NOT NULL,
  promo_id TEXT NOT NULL,
  user_id TEXT NOT NULL,
  usage_count INTEGER DEFAULT 0 NOT NULL,
  last_used_at TIMESTAMP,
  PRIMARY KEY (tenant_id, promo_id, user_id)
);

CREATE TABLE IF NOT EXISTS invoice_counters (
  tenant_id TEXT NOT NULL,
  counter_key TEXT NOT NULL,
  next INTEGER NOT NULL CHECK (next >= 1),
  updated_at TIMESTAMP DEFAULT now(),
  PRIMARY KEY (tenant_id, counter_key)
);

CREATE TABLE IF NOT EXISTS tenant_configs (
  tenant_id TEXT NOT NULL,
  kind TEXT CHECK (kind IN ('tax_profile', 'invoice_numbering')) NOT NULL,
  config_json TEXT NOT NULL,
  updated_at TIMESTAMP DEFAULT now(),
  PRIMARY KEY (tenant_id, kind)
);

CREATE TABLE IF NOT EXISTS logs (
  log_id TEXT PRIMARY KEY,
  tenant_id TEXT,
  actor_id TEXT,
  action TEXT NOT NULL,
  detail_json TEXT,
  created_at TIMESTAMP DEFAULT now()
);

CREATE INDEX IF NOT EXISTS idx_logs_tenant ON logs(tenant_id);
CREATE INDEX IF NOT EXISTS idx_logs_action ON logs(action);
"""

_CONFLICT_MARKERS = ("conflict", "serialization", "duplicate key")


def utcnow() -> datetime:
    """当前 UTC 时间（无时区信息，与 TIMESTAMP 列一致）"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def is_conflict_error(error: Exception) -> bool:
    """判断 DuckDB 异常是否属于可重试的并发冲突"""
    if isinstance(error, duckdb.TransactionException):
        return True
    message = str(error).lower()
    return any(marker in message for marker in _CONFLICT_MARKERS)


def load_json(value: Any) -> Any:
    """读取 JSON 文本列"""
    if value is None:
        return None
    return json.loads(value) if isinstance(value, str) else value


class DatabaseManager:
    """数据库管理器，封装所有数据库操作"""

    def __init__(self, db_path: Optional[str] = None, app_settings: Optional[Settings] = None):
        self.settings = app_settings or settings
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._lock = threading.RLock()
        self.db_path = db_path or self._get_db_path_from_settings()

    def _get_db_path_from_settings(self) -> str:
        """从设置中获取数据库路径"""
        db_url = self.settings.database_url
        if db_url.startswith("duckdb://"):
            return db_url.replace("duckdb://", "", 1) or ":memory:"
        return db_url

    @property
    def connection(self) -> duckdb.DuckDBPyConnection:
        """获取根连接（首次访问时建表）"""
        with self._lock:
            if self._connection is None:
                if self.db_path != ":memory:":
                    Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
                try:
                    self._connection = duckdb.connect(self.db_path)
                    self._connection.execute(SCHEMA_SQL)
                except duckdb.Error as e:
                    self._connection = None
                    raise DatabaseError(f"Failed to initialize schema: {e}")
            return self._connection

    def cursor(self) -> duckdb.DuckDBPyConnection:
        """为当前调用创建独立游标（每个线程/事务各用一个）"""
        with self._lock:
            return self.connection.cursor()

    def init_database(self):
        """初始化数据库"""
        self.connection

    def close(self):
        """关闭根连接"""
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None

    @contextmanager
    def transaction(self) -> Generator[duckdb.DuckDBPyConnection, None, None]:
        """
        数据库事务上下文管理器

        冲突不在这里重试，只转换为 TransactionConflictError，
        由调用方决定是否整体重做读-改-写。
        """
        conn = self.cursor()
        try:
            conn.execute("BEGIN TRANSACTION")
            try:
                yield conn
                conn.execute("COMMIT")
            except BaseException:
                self._rollback_quietly(conn)
                raise
        except BaseApplicationError:
            raise
        except duckdb.Error as e:
            if is_conflict_error(e):
                raise TransactionConflictError("并发修改冲突", details={"cause": str(e)})
            raise DatabaseError(f"数据库操作失败: {e}")
        finally:
            conn.close()

    @staticmethod
    def _rollback_quietly(conn: duckdb.DuckDBPyConnection):
        try:
            conn.execute("ROLLBACK")
        except duckdb.Error:
            # 提交失败或冲突后 DuckDB 已自动回滚
            pass

    def run_in_transaction(self, work: Callable[[duckdb.DuckDBPyConnection], T],
                           operation: str, max_attempts: Optional[int] = None) -> T:
        """
        在事务中执行 work，冲突时整体重试

        Args:
            work: 接收事务游标的函数，必须是完整的读-改-写单元
            operation: 操作名称，用于日志
            max_attempts: 最大尝试次数，默认取配置

        Raises:
            TransientError: 重试次数耗尽
        """
        attempts = max_attempts or self.settings.transaction_max_attempts
        backoff_ms = self.settings.transaction_retry_backoff_ms
        for attempt in range(1, attempts + 1):
            try:
                with self.transaction() as conn:
                    return work(conn)
            except TransactionConflictError as e:
                logger.warning("%s: transaction conflict (attempt %d/%d): %s",
                               operation, attempt, attempts, e.details.get("cause"))
                if attempt < attempts and backoff_ms > 0:
                    time.sleep(random.uniform(0, backoff_ms * attempt) / 1000.0)
        raise TransientError(
            "系统繁忙，请稍后重试",
            details={"operation": operation, "attempts": attempts}
        )

    def execute(self, query: str, params: Optional[list] = None):
        """执行写操作（自动提交）"""
        conn = self.cursor()
        try:
            conn.execute(query, params or [])
        except duckdb.Error as e:
            raise DatabaseError(f"Query execution failed: {e}")
        finally:
            conn.close()

    def execute_query(self, query: str, params: Optional[list] = None) -> list:
        """执行查询并返回结果"""
        conn = self.cursor()
        try:
            return conn.execute(query, params or []).fetchall()
        except duckdb.Error as e:
            raise DatabaseError(f"Query execution failed: {e}")
        finally:
            conn.close()

    def execute_one(self, query: str, params: Optional[list] = None) -> Optional[tuple]:
        """执行查询并返回单条结果"""
        conn = self.cursor()
        try:
            return conn.execute(query, params or []).fetchone()
        except duckdb.Error as e:
            raise DatabaseError(f"Query execution failed: {e}")
        finally:
            conn.close()

    def write_log(self, action: str, detail: Dict[str, Any],
                  tenant_id: Optional[str] = None, actor_id: Optional[str] = None):
        """记录业务操作日志"""
        self.execute(
            "INSERT INTO logs(log_id, tenant_id, actor_id, action, detail_json, created_at) VALUES (?,?,?,?,?,?)",
            [uuid.uuid4().hex, tenant_id, actor_id, action,
             json.dumps(detail, default=str), utcnow()]
        )
