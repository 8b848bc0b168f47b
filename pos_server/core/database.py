"""
数据库连接和管理模块
以 DuckDB 为底层实现一个简单的文档存储（集合 / 文档 / 版本号）

主要功能：
- 文档的创建、读取、覆盖写、局部更新、删除
- 查询：等值过滤、单字段排序、条数限制
- 实时订阅：写入提交后向订阅者推送该集合的最新快照
- 事务：可重入，由最外层负责 BEGIN/COMMIT/ROLLBACK
- 审计日志：logs 表
"""

import json
import logging
import re
import threading
import uuid
from contextlib import contextmanager
from datetime import date, datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Generator, List, Optional, Set

import duckdb
from pydantic import BaseModel, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from .exceptions import ConcurrencyError, ConflictError, NotFoundError, StorageUnavailableError
from ..config.settings import settings

logger = logging.getLogger(__name__)


class Collections:
    """集合名称"""
    PRODUCTS = "products"
    CATEGORIES = "categories"
    ORDERS = "orders"
    TABLES = "tables"
    SESSIONS = "sessions"
    CARTS = "carts"
    SETTINGS = "settings"


# 完整的表结构定义
SCHEMA_SQL = r"""
CREATE TABLE IF NOT EXISTS documents (
  collection TEXT NOT NULL,
  doc_id TEXT NOT NULL,
  data TEXT NOT NULL,
  version INTEGER NOT NULL DEFAULT 1,
  created_at TIMESTAMP DEFAULT now(),
  updated_at TIMESTAMP DEFAULT now()
);

CREATE INDEX IF NOT EXISTS idx_documents_collection ON documents(collection);

CREATE SEQUENCE IF NOT EXISTS logs_id_seq;
CREATE TABLE IF NOT EXISTS logs (
  log_id INTEGER DEFAULT nextval('logs_id_seq') PRIMARY KEY,
  actor_id TEXT,
  action TEXT NOT NULL,
  entity TEXT,
  entity_id TEXT,
  detail_json TEXT,
  created_at TIMESTAMP DEFAULT now()
);

CREATE INDEX IF NOT EXISTS idx_logs_action ON logs(action);
"""


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    raise TypeError(f"无法序列化类型 {type(value).__name__}")


def _dumps(data: Any) -> str:
    return json.dumps(data, default=_json_default, ensure_ascii=False)


def _lookup(data: Dict[str, Any], field: str) -> Any:
    """按点号路径取值，如 customer.customer_id"""
    value: Any = data
    for part in field.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


_ISO_DATETIME = re.compile(r"^\d{4}-\d{2}-\d{2}T")
_datetime_adapter = TypeAdapter(datetime)


def _sort_key(value: Any) -> tuple:
    """时间戳按时间先后排序；序列化后的秒数不一定带小数部分，不能按字符串比较"""
    if isinstance(value, str) and _ISO_DATETIME.match(value):
        try:
            parsed = _datetime_adapter.validate_python(value)
        except PydanticValidationError:
            return (1, value)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return (0, parsed)
    return (1, value)


def _matches(actual: Any, expected: Any) -> bool:
    if isinstance(expected, Enum):
        expected = expected.value
    return actual == expected


class Document(BaseModel):
    """存储中的一个文档"""
    id: str
    data: Dict[str, Any]
    version: int = 1


class _Subscription:
    def __init__(self, collection: str, callback: Callable[[List[Document]], None],
                 where: Optional[Dict[str, Any]], order_by: Optional[str],
                 descending: bool, limit: Optional[int]):
        self.collection = collection
        self.callback = callback
        self.where = where
        self.order_by = order_by
        self.descending = descending
        self.limit = limit


class DatabaseManager:
    """数据库管理器，封装所有文档存储操作"""

    def __init__(self, db_path: Optional[str] = None):
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._lock = threading.RLock()
        self._tx_depth = 0
        self._pending: Set[str] = set()
        self._subscriptions: Dict[int, _Subscription] = {}
        self._next_subscription_id = 0
        self.db_path = db_path or self._get_db_path_from_settings()

    def _get_db_path_from_settings(self) -> str:
        """从设置中获取数据库路径"""
        db_url = settings.database_url
        if db_url.startswith("duckdb://"):
            return db_url[len("duckdb://"):]
        return db_url

    @property
    def connection(self) -> duckdb.DuckDBPyConnection:
        """获取数据库连接，首次访问时建表"""
        if self._connection is None:
            try:
                if self.db_path != ":memory:":
                    Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
                conn = duckdb.connect(self.db_path)
                conn.execute(SCHEMA_SQL)
            except (duckdb.Error, OSError) as e:
                raise StorageUnavailableError(
                    f"无法打开数据库: {e}", details={"db_path": self.db_path}
                ) from e
            self._connection = conn
        return self._connection

    def get_connection(self) -> duckdb.DuckDBPyConnection:
        return self.connection

    def init_database(self):
        """初始化数据库"""
        with self._lock:
            self.connection

    def close(self):
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None

    # ------------------------------------------------------------------
    # 事务
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Generator[duckdb.DuckDBPyConnection, None, None]:
        """
        数据库事务上下文管理器

        可重入：嵌套调用共享最外层事务。业务异常原样抛出，
        DuckDB 异常回滚后转换为 StorageUnavailableError。
        提交成功后才向订阅者推送变更。
        """
        changed: Set[str] = set()
        with self._lock:
            conn = self.connection
            outermost = self._tx_depth == 0
            if outermost:
                try:
                    conn.execute("BEGIN")
                except duckdb.Error as e:
                    raise StorageUnavailableError(f"无法开始事务: {e}") from e
            self._tx_depth += 1
            try:
                yield conn
            except BaseException as e:
                self._tx_depth -= 1
                if outermost:
                    self._pending.clear()
                    self._rollback(conn)
                if isinstance(e, duckdb.Error):
                    raise StorageUnavailableError(f"数据库操作失败: {e}") from e
                raise
            self._tx_depth -= 1
            if outermost:
                try:
                    conn.execute("COMMIT")
                except duckdb.Error as e:
                    self._pending.clear()
                    self._rollback(conn)
                    raise StorageUnavailableError(f"事务提交失败: {e}") from e
                changed = set(self._pending)
                self._pending.clear()
        if changed:
            self._notify(changed)

    def _rollback(self, conn: duckdb.DuckDBPyConnection):
        try:
            conn.execute("ROLLBACK")
        except duckdb.Error as e:
            logger.warning("事务回滚失败: %s", e)

    def _read(self, sql: str, params: List[Any]) -> List[tuple]:
        with self._lock:
            try:
                return self.connection.execute(sql, params).fetchall()
            except duckdb.Error as e:
                raise StorageUnavailableError(f"数据库查询失败: {e}") from e

    @staticmethod
    def _fetch_row(conn: duckdb.DuckDBPyConnection, collection: str, doc_id: str) -> Optional[tuple]:
        return conn.execute(
            "SELECT data, version FROM documents WHERE collection = ? AND doc_id = ?",
            [collection, doc_id]
        ).fetchone()

    # ------------------------------------------------------------------
    # 文档操作
    # ------------------------------------------------------------------

    def create(self, collection: str, data: Dict[str, Any], doc_id: Optional[str] = None) -> Document:
        """新建文档，未指定 doc_id 时自动生成"""
        doc_id = doc_id or uuid.uuid4().hex
        payload = _dumps(data)
        with self.transaction() as conn:
            if self._fetch_row(conn, collection, doc_id) is not None:
                raise ConflictError(
                    f"文档 {collection}/{doc_id} 已存在",
                    details={"collection": collection, "doc_id": doc_id}
                )
            conn.execute(
                "INSERT INTO documents(collection, doc_id, data, version) VALUES (?, ?, ?, 1)",
                [collection, doc_id, payload]
            )
            self._pending.add(collection)
        return Document(id=doc_id, data=json.loads(payload), version=1)

    def get(self, collection: str, doc_id: str) -> Optional[Document]:
        rows = self._read(
            "SELECT data, version FROM documents WHERE collection = ? AND doc_id = ?",
            [collection, doc_id]
        )
        if not rows:
            return None
        data, version = rows[0]
        return Document(id=doc_id, data=json.loads(data), version=version)

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> Document:
        """整体写入文档（不存在则创建）"""
        payload = _dumps(data)
        with self.transaction() as conn:
            row = self._fetch_row(conn, collection, doc_id)
            if row is None:
                version = 1
                conn.execute(
                    "INSERT INTO documents(collection, doc_id, data, version) VALUES (?, ?, ?, 1)",
                    [collection, doc_id, payload]
                )
            else:
                version = row[1] + 1
                conn.execute(
                    "UPDATE documents SET data = ?, version = ?, updated_at = now() "
                    "WHERE collection = ? AND doc_id = ?",
                    [payload, version, collection, doc_id]
                )
            self._pending.add(collection)
        return Document(id=doc_id, data=json.loads(payload), version=version)

    def update(self, collection: str, doc_id: str, changes: Dict[str, Any],
               expected_version: Optional[int] = None) -> Document:
        """
        局部更新文档字段

        Args:
            expected_version: 乐观并发控制，版本不一致时抛出 ConcurrencyError

        Raises:
            NotFoundError: 文档不存在
            ConcurrencyError: 版本号不一致
        """
        with self.transaction() as conn:
            row = self._fetch_row(conn, collection, doc_id)
            if row is None:
                raise NotFoundError(
                    f"文档 {collection}/{doc_id} 不存在",
                    details={"collection": collection, "doc_id": doc_id}
                )
            current, version = row
            if expected_version is not None and version != expected_version:
                raise ConcurrencyError(
                    "数据已被其他终端修改，请刷新后重试",
                    details={
                        "collection": collection,
                        "doc_id": doc_id,
                        "expected_version": expected_version,
                        "actual_version": version,
                    }
                )
            data = json.loads(current)
            data.update(json.loads(_dumps(changes)))
            conn.execute(
                "UPDATE documents SET data = ?, version = ?, updated_at = now() "
                "WHERE collection = ? AND doc_id = ?",
                [_dumps(data), version + 1, collection, doc_id]
            )
            self._pending.add(collection)
        return Document(id=doc_id, data=data, version=version + 1)

    def delete(self, collection: str, doc_id: str) -> bool:
        """删除文档，返回是否确实删除"""
        with self.transaction() as conn:
            if self._fetch_row(conn, collection, doc_id) is None:
                return False
            conn.execute(
                "DELETE FROM documents WHERE collection = ? AND doc_id = ?",
                [collection, doc_id]
            )
            self._pending.add(collection)
        return True

    def query(self, collection: str, where: Optional[Dict[str, Any]] = None,
              order_by: Optional[str] = None, descending: bool = False,
              limit: Optional[int] = None) -> List[Document]:
        """
        查询集合

        Args:
            where: 等值过滤条件 {字段: 值}，字段支持点号路径
            order_by: 排序字段，缺少该字段的文档排在最后
            descending: 是否倒序
            limit: 最多返回条数
        """
        rows = self._read(
            "SELECT doc_id, data, version FROM documents WHERE collection = ? ORDER BY rowid",
            [collection]
        )
        docs = [Document(id=r[0], data=json.loads(r[1]), version=r[2]) for r in rows]

        if where:
            docs = [
                d for d in docs
                if all(_matches(_lookup(d.data, field), value) for field, value in where.items())
            ]

        if order_by:
            present = [d for d in docs if d.data.get(order_by) is not None]
            missing = [d for d in docs if d.data.get(order_by) is None]
            present.sort(key=lambda d: _sort_key(d.data[order_by]), reverse=descending)
            docs = present + missing

        if limit is not None:
            docs = docs[:limit]
        return docs

    # ------------------------------------------------------------------
    # 实时订阅
    # ------------------------------------------------------------------

    def subscribe(self, collection: str, callback: Callable[[List[Document]], None],
                  where: Optional[Dict[str, Any]] = None, order_by: Optional[str] = None,
                  descending: bool = False, limit: Optional[int] = None) -> Callable[[], None]:
        """
        订阅查询结果

        立即推送一次当前快照，之后每次该集合的写入提交后推送完整快照。
        返回取消订阅函数。
        """
        sub = _Subscription(collection, callback, where, order_by, descending, limit)
        with self._lock:
            self._next_subscription_id += 1
            sub_id = self._next_subscription_id
            self._subscriptions[sub_id] = sub

        self._deliver(sub)

        def unsubscribe():
            with self._lock:
                self._subscriptions.pop(sub_id, None)

        return unsubscribe

    def _notify(self, collections: Set[str]):
        with self._lock:
            targets = [s for s in self._subscriptions.values() if s.collection in collections]
        for sub in targets:
            self._deliver(sub)

    def _deliver(self, sub: _Subscription):
        try:
            docs = self.query(sub.collection, sub.where, sub.order_by, sub.descending, sub.limit)
            sub.callback(docs)
        except Exception:
            logger.exception("订阅推送失败: collection=%s", sub.collection)

    # ------------------------------------------------------------------
    # 审计日志
    # ------------------------------------------------------------------

    def log_action(self, action: str, actor_id: Optional[str] = None,
                   entity: Optional[str] = None, entity_id: Optional[str] = None,
                   detail: Optional[Dict[str, Any]] = None):
        """记录业务操作日志"""
        with self.transaction() as conn:
            conn.execute(
                "INSERT INTO logs(actor_id, action, entity, entity_id, detail_json) VALUES (?, ?, ?, ?, ?)",
                [actor_id, action, entity, entity_id, _dumps(detail or {})]
            )

    def list_logs(self, action: Optional[str] = None, entity_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """按动作或实体查询操作日志"""
        sql = "SELECT log_id, actor_id, action, entity, entity_id, detail_json, created_at FROM logs WHERE 1=1"
        params: List[Any] = []
        if action:
            sql += " AND action = ?"
            params.append(action)
        if entity_id:
            sql += " AND entity_id = ?"
            params.append(entity_id)
        sql += " ORDER BY log_id"
        return [
            {
                "log_id": r[0],
                "actor_id": r[1],
                "action": r[2],
                "entity": r[3],
                "entity_id": r[4],
                "detail": json.loads(r[5]) if r[5] else {},
                "created_at": r[6],
            }
            for r in self._read(sql, params)
        ]


# 全局数据库管理器实例
db_manager = DatabaseManager()
