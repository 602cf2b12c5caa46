"""Key-value store port.

本地持久化存储（key -> str），用于图片字节缓存与访客 ID。
"""

from typing import Protocol


class KVClient(Protocol):
    """Port for a simple string key-value store."""

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> None: ...

    async def delete(self, *keys: str) -> int: ...

    async def keys(self, prefix: str = "") -> list[str]: ...
