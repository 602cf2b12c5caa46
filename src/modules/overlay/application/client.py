"""Overlay store client.

唯一允许直接访问实时存储的组件；上层服务只依赖这里的窄接口，
因此底层存储可替换（Redis / 内存实现）。

读取策略：
- get: 异常向上抛出，由调用方决定默认值
- batch_get: 并发扇出，单个路径失败只影响该路径（返回默认值）
- set/delete: 失败统一转换为 OverlayWriteError
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable, Iterable
from typing import Any

from loguru import logger

from src.core.domain.exceptions import OverlayWriteError
from src.core.infrastructure.logging import BusinessEvents
from src.modules.overlay.domain.store import OverlayBackend, OverlayChannel

OnChange = Callable[[Any | None], Awaitable[None] | None]


class Subscription:
    """A live subscription on one overlay path.

    ``close()`` is idempotent; use ``async with`` to guarantee release.
    """

    def __init__(self, path: str, channel: OverlayChannel, task: asyncio.Task):
        self.path = path
        self._channel = channel
        self._task = task
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        finally:
            await self._channel.close()

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()


class OverlayStoreClient:
    """Typed accessor over the realtime overlay backend."""

    def __init__(self, backend: OverlayBackend):
        self.backend = backend

    async def get(self, path: str) -> Any | None:
        """读取单个文档，不存在返回 None。"""
        return await self.backend.get(path)

    async def set(self, path: str, value: Any) -> None:
        """写入（覆盖）单个文档。"""
        try:
            await self.backend.set(path, value)
        except Exception as e:
            logger.error(f"Overlay write failed for {path}: {e}")
            raise OverlayWriteError(path, str(e)) from e

    async def delete(self, path: str) -> None:
        try:
            await self.backend.delete(path)
        except Exception as e:
            logger.error(f"Overlay delete failed for {path}: {e}")
            raise OverlayWriteError(path, str(e)) from e

    async def batch_get(
        self,
        paths: Iterable[str],
        default: Any = None,
    ) -> dict[str, Any]:
        """并发读取多个文档。

        Args:
            paths: 路径列表（重复路径只读取一次）
            default: 文档不存在或读取失败时的值

        Returns:
            path -> 文档（或 default）
        """
        unique_paths = list(dict.fromkeys(paths))
        values = await asyncio.gather(
            *(self._get_or_default(path, default) for path in unique_paths)
        )
        return dict(zip(unique_paths, values, strict=True))

    async def _get_or_default(self, path: str, default: Any) -> Any:
        try:
            value = await self.backend.get(path)
        except Exception as e:
            logger.warning(f"Overlay read failed for {path}, using default: {e}")
            BusinessEvents.overlay_read_degraded(
                attribute=path.split("/", 1)[0],
                item_id=path.rsplit("/", 1)[-1],
                reason=str(e),
            )
            return default
        return default if value is None else value

    async def add_to_index(self, index_path: str, member: str) -> None:
        try:
            await self.backend.add_member(index_path, member)
        except Exception as e:
            logger.error(f"Overlay index write failed for {index_path}: {e}")
            raise OverlayWriteError(index_path, str(e)) from e

    async def index_members(self, index_path: str) -> set[str]:
        return await self.backend.members(index_path)

    async def subscribe(self, path: str, on_change: OnChange) -> Subscription:
        """订阅路径变更，每次变更回调一次完整快照。

        订阅在返回前已建立；回调异常被隔离并记录，不会终止订阅。
        """
        channel = await self.backend.open_channel(path)
        task = asyncio.create_task(
            self._pump(path, channel, on_change), name=f"overlay:{path}"
        )
        return Subscription(path, channel, task)

    async def _pump(self, path: str, channel: OverlayChannel, on_change: OnChange) -> None:
        try:
            async for snapshot in channel:
                try:
                    result = on_change(snapshot)
                    if inspect.isawaitable(result):
                        await result
                except Exception as e:
                    logger.error(f"Error handling overlay change on {path}: {e}")
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Overlay channel {path} stopped: {e}")
