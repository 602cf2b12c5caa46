"""远程图片本地字节缓存。

条目存储在本地 KV 存储中：
    key   = normalize_image_key(url)   ("cached_image_" + sha256(规范化 URL))
    value = {"data": base64, "fetched_at": epoch ms}

过期是惰性的：只在访问时检查 TTL；cleanup_expired() 是显式清理，从不自动调度。
任何失败都不会向上抛出：存储读错误视为未命中，下载失败返回 unavailable 结果。
"""

import base64
import binascii
import hashlib
import json
import re
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Protocol
from urllib.parse import urlsplit

from loguru import logger

from src.core.config import settings
from src.core.domain.ports.kv import KVClient
from src.core.infrastructure.logging import BusinessEvents

CACHE_KEY_PREFIX = "cached_image_"
# 下载失败时返回的 1x1 透明 PNG
PLACEHOLDER_IMAGE = base64.b64decode(
    "iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAQAAAC1HAwCAAAAC0lEQVR42mNkYAAAAAYAAjCB0C8AAAAASUVORK5CYII="
)
PLACEHOLDER_MEDIA_TYPE = "image/png"

_DUPLICATE_SLASHES = re.compile(r"/{2,}")


def normalize_image_key(url: str) -> str:
    """Deterministic cache key for a remote image URL.

    Scheme, query and fragment are dropped, the host is lowercased and
    repeated slashes are collapsed, so ``HTTP://Host//a.jpg?v=2`` and
    ``https://host/a.jpg`` share one entry. The normalized URL is hashed
    so distinct paths never collapse onto the same key.
    """
    parts = urlsplit(url.strip())
    host = parts.netloc.lower()
    path = _DUPLICATE_SLASHES.sub("/", parts.path)
    raw = f"{host}{path}" if host else path
    return CACHE_KEY_PREFIX + hashlib.sha256(raw.encode("utf-8")).hexdigest()


def _now_ms() -> int:
    return int(time.time() * 1000)


class ImageSource(str, Enum):
    """Where the returned bytes came from."""

    CACHE = "cache"
    NETWORK = "network"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class ImageFetchResult:
    """图片解析结果；unavailable 时调用方应渲染占位图。"""

    source: ImageSource
    data: bytes | None = None
    error_message: str | None = None

    @property
    def available(self) -> bool:
        return self.source is not ImageSource.UNAVAILABLE and self.data is not None

    @classmethod
    def from_cache(cls, data: bytes) -> "ImageFetchResult":
        return cls(source=ImageSource.CACHE, data=data)

    @classmethod
    def from_network(cls, data: bytes) -> "ImageFetchResult":
        return cls(source=ImageSource.NETWORK, data=data)

    @classmethod
    def unavailable(cls, error_message: str) -> "ImageFetchResult":
        return cls(source=ImageSource.UNAVAILABLE, error_message=error_message)


class ImageFetcher(Protocol):
    """Port for downloading image bytes; raises on any failure."""

    async def fetch(self, url: str) -> bytes: ...


class ImageByteCache:
    """Read-through byte cache with time-based staleness."""

    def __init__(
        self,
        store: KVClient,
        fetcher: ImageFetcher,
        ttl_ms: int | None = None,
        clock: Callable[[], int] | None = None,
    ):
        """
        Args:
            store: 本地持久化 KV 存储
            fetcher: 远程下载实现
            ttl_ms: 条目有效期（毫秒），默认 IMAGE_CACHE_TTL_DAYS
            clock: 返回当前 epoch 毫秒的函数（测试可注入）
        """
        self.store = store
        self.fetcher = fetcher
        self.ttl_ms = ttl_ms if ttl_ms is not None else settings.image_cache_ttl_ms
        self.clock = clock or _now_ms

    async def resolve(self, url: str) -> ImageFetchResult:
        """返回图片字节：TTL 内命中缓存不访问网络，否则下载并覆盖条目。"""
        key = normalize_image_key(url)

        cached = await self._read_fresh(key)
        if cached is not None:
            BusinessEvents.image_cache_lookup(key=key, outcome="hit")
            return ImageFetchResult.from_cache(cached)

        try:
            data = await self.fetcher.fetch(url)
        except Exception as e:
            logger.warning(f"Image fetch failed for {url}: {e}")
            BusinessEvents.image_cache_lookup(key=key, outcome="unavailable", reason=str(e))
            return ImageFetchResult.unavailable(str(e))

        await self._write(key, data)
        BusinessEvents.image_cache_lookup(key=key, outcome="miss")
        return ImageFetchResult.from_network(data)

    async def resolve_or_placeholder(self, url: str | None, placeholder: bytes) -> bytes:
        if not url:
            return placeholder
        result = await self.resolve(url)
        return result.data if result.available and result.data is not None else placeholder

    async def cleanup_expired(self) -> int:
        """删除过期或损坏的条目，返回删除数量。"""
        now = self.clock()
        expired: list[str] = []
        for key in await self.store.keys(CACHE_KEY_PREFIX):
            entry = self._decode(await self.store.get(key))
            if entry is None or now - entry[1] >= self.ttl_ms:
                expired.append(key)
        if not expired:
            return 0
        removed = await self.store.delete(*expired)
        logger.info(f"Removed {removed} expired image cache entries")
        return removed

    async def clear(self) -> int:
        keys = await self.store.keys(CACHE_KEY_PREFIX)
        if not keys:
            return 0
        return await self.store.delete(*keys)

    async def size_bytes(self) -> int:
        """Total size of the stored (encoded) entries."""
        total = 0
        for key in await self.store.keys(CACHE_KEY_PREFIX):
            value = await self.store.get(key)
            if value:
                total += len(value)
        return total

    async def _read_fresh(self, key: str) -> bytes | None:
        try:
            raw = await self.store.get(key)
        except Exception as e:
            logger.warning(f"Image cache read failed for {key}, treating as miss: {e}")
            return None
        entry = self._decode(raw)
        if entry is None:
            return None
        data, fetched_at = entry
        if self.clock() - fetched_at >= self.ttl_ms:
            return None
        return data

    async def _write(self, key: str, data: bytes) -> None:
        value = json.dumps(
            {"data": base64.b64encode(data).decode("ascii"), "fetched_at": self.clock()}
        )
        try:
            await self.store.set(key, value)
        except Exception as e:
            # 字节照常返回，下次访问重新下载
            logger.warning(f"Image cache write failed for {key}: {e}")

    @staticmethod
    def _decode(raw: str | None) -> tuple[bytes, int] | None:
        if not raw:
            return None
        try:
            entry = json.loads(raw)
            data = base64.b64decode(entry["data"], validate=True)
            fetched_at = int(entry["fetched_at"])
        except (ValueError, TypeError, KeyError, binascii.Error):
            return None
        return data, fetched_at
