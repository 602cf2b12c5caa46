"""本地持久化 key-value 存储（SQLite）。

移动端 AsyncStorage 的等价物：单表 key -> value(text)。
所有阻塞 I/O 通过 asyncio.to_thread 执行，不阻塞事件循环。
"""

import asyncio
import sqlite3
from pathlib import Path

from loguru import logger

from src.core.config import settings
from src.core.infrastructure.health import HealthStatus, LocalStoreHealthResult

_SCHEMA = """
CREATE TABLE IF NOT EXISTS kv_store (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
)
"""


class SQLiteKVStore:
    """SQLite-backed implementation of the KVClient port."""

    def __init__(self, path: str | Path | None = None):
        self.path = Path(path or settings.LOCAL_STORE_PATH)
        self._initialized = False

    def _connect(self) -> sqlite3.Connection:
        if not self._initialized:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.path)
        if not self._initialized:
            conn.execute(_SCHEMA)
            conn.commit()
            self._initialized = True
        return conn

    def _get(self, key: str) -> str | None:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT value FROM kv_store WHERE key = ?", (key,)
            ).fetchone()
            return row[0] if row else None
        finally:
            conn.close()

    def _set(self, key: str, value: str) -> None:
        conn = self._connect()
        try:
            conn.execute(
                "INSERT INTO kv_store (key, value) VALUES (?, ?) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
                (key, value),
            )
            conn.commit()
        finally:
            conn.close()

    def _delete(self, keys: tuple[str, ...]) -> int:
        if not keys:
            return 0
        conn = self._connect()
        try:
            placeholders = ",".join("?" for _ in keys)
            cursor = conn.execute(
                f"DELETE FROM kv_store WHERE key IN ({placeholders})", keys
            )
            conn.commit()
            return cursor.rowcount
        finally:
            conn.close()

    def _keys(self, prefix: str) -> list[str]:
        conn = self._connect()
        try:
            # LIKE 通配符需要转义
            escaped = (
                prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
            )
            rows = conn.execute(
                "SELECT key FROM kv_store WHERE key LIKE ? ESCAPE '\\' ORDER BY key",
                (f"{escaped}%",),
            ).fetchall()
            return [row[0] for row in rows]
        finally:
            conn.close()

    async def get(self, key: str) -> str | None:
        return await asyncio.to_thread(self._get, key)

    async def set(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._set, key, value)

    async def delete(self, *keys: str) -> int:
        return await asyncio.to_thread(self._delete, keys)

    async def keys(self, prefix: str = "") -> list[str]:
        return await asyncio.to_thread(self._keys, prefix)

    async def health_check(self) -> LocalStoreHealthResult:
        """执行本地存储健康检查。"""
        try:
            entries = len(await self.keys())
            return LocalStoreHealthResult(
                status=HealthStatus.OK, path=str(self.path), entries=entries
            )
        except (OSError, sqlite3.Error) as e:
            logger.warning(f"Local store health check failed: {e}")
            return LocalStoreHealthResult(
                status=HealthStatus.ERROR, path=str(self.path), error=str(e)
            )


local_store = SQLiteKVStore()


def get_local_store() -> SQLiteKVStore:
    """获取本地存储依赖。"""
    return local_store
