"""Live update fan-out.

为当前可见的 id 集合订阅 overlay 通道，变更到达时原地修补调用方持有的
EnrichedRecord（按字段整体替换），无需重新执行完整的 enrich。

通道按路径引用计数：多个 watch 共享同一个底层订阅，最后一个释放时关闭。
    餐厅: restaurant_status/{id}          -> is_open, cover_url, logo_url
    商品: product_promos/{id}             -> promo, effective_price
          product_images/{id}             -> cover_url
"""

import asyncio
import inspect
from collections.abc import Callable, Iterable, Mapping
from datetime import UTC, datetime
from typing import Any

from loguru import logger

from src.core.infrastructure.logging import BusinessEvents
from src.modules.catalog.application.reconciler import (
    AttributeReconciler,
    resolve_effective_price,
    resolve_is_open,
)
from src.modules.catalog.domain.entities import EnrichedRecord, Product, Restaurant
from src.modules.overlay.application.client import OverlayStoreClient, Subscription
from src.modules.overlay.application.promo_service import parse_promo
from src.modules.overlay.application.status_service import parse_images, parse_status
from src.modules.overlay.domain.entities import ItemType
from src.modules.overlay.domain.store import OverlayPaths

OnPatch = Callable[[EnrichedRecord, list[str]], Any]
Listener = Callable[[Any], Any]


class _SharedChannel:
    """One underlying subscription shared by every watcher of a path."""

    def __init__(self, path: str):
        self.path = path
        self.refcount = 0
        self.listeners: dict[object, Listener] = {}
        self.opening: asyncio.Task[Subscription] | None = None
        self.subscription: Subscription | None = None


class WatchHandle:
    """Returned by ``LiveUpdateFanout.watch``; ``close()`` is idempotent."""

    def __init__(self, fanout: "LiveUpdateFanout", item_type: ItemType):
        self._fanout = fanout
        self.item_type = item_type
        self.paths: list[str] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        paths, self.paths = self.paths, []
        for path in paths:
            await self._fanout._release(path, self)

    async def __aenter__(self) -> "WatchHandle":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()


class LiveUpdateFanout:
    """Ref-counted overlay subscriptions patching rendered records."""

    def __init__(
        self,
        overlay: OverlayStoreClient,
        reconciler: AttributeReconciler,
        clock: Callable[[], datetime] | None = None,
    ):
        self.overlay = overlay
        self.reconciler = reconciler
        self.clock = clock or (lambda: datetime.now(UTC))
        self._channels: dict[str, _SharedChannel] = {}
        self._closing: set[asyncio.Task[None]] = set()

    def active_channel_count(self) -> int:
        return len(self._channels)

    async def watch(
        self,
        ids: Iterable[str],
        item_type: ItemType,
        records: Mapping[str, EnrichedRecord] | Iterable[EnrichedRecord],
        on_patch: OnPatch | None = None,
    ) -> WatchHandle:
        """订阅 ids 对应的 overlay 路径。

        Args:
            ids: 当前可见的 id 集合（可与其他 watch 重叠）
            item_type: 商品或餐厅
            records: 调用方持有的视图模型（id -> EnrichedRecord）
            on_patch: 每次修补后回调 (record, 变更字段)

        单个 id 订阅失败会被记录并跳过，不影响其他 id。
        """
        item_type = ItemType(item_type)
        if not isinstance(records, Mapping):
            records = {r.id: r for r in records}
        handle = WatchHandle(self, item_type)

        targets: list[tuple[str, Listener]] = []
        for item_id in dict.fromkeys(str(i) for i in ids):
            for path, patch in self._patchers(item_id, item_type):
                targets.append(
                    (path, self._listener(item_id, item_type, records, patch, on_patch))
                )

        acquired: set[str] = set()

        async def _track(path: str, listener: Listener) -> None:
            if await self._acquire(path, handle, listener):
                acquired.add(path)

        try:
            await asyncio.gather(*(_track(path, listener) for path, listener in targets))
        except BaseException:
            # 被取消时，已完成的订阅由这里释放，未完成的由 _acquire 自行回收
            for path in acquired:
                await self._release(path, handle)
            raise
        handle.paths = [path for path, _ in targets if path in acquired]
        return handle

    # ------------------------------------------------------------------
    # Channel table
    # ------------------------------------------------------------------

    async def _acquire(self, path: str, owner: object, listener: Listener) -> bool:
        channel = self._channels.get(path)
        if channel is None:
            channel = _SharedChannel(path)
            self._channels[path] = channel
            # 立即登记打开中的任务，并发 watch 共享同一次打开
            channel.opening = asyncio.create_task(
                self.overlay.subscribe(path, lambda doc: self._dispatch(channel, doc))
            )
        channel.refcount += 1
        channel.listeners[owner] = listener
        if channel.subscription is not None or channel.opening is None:
            return True

        opening = channel.opening
        try:
            # shield: 一个等待者被取消不能中断其他 watch 共享的打开过程
            channel.subscription = await asyncio.shield(opening)
        except asyncio.CancelledError:
            await self._drop(channel, owner)
            current = asyncio.current_task()
            if opening.cancelled() and current is not None and not current.cancelling():
                return False
            raise
        except Exception as e:
            logger.warning(f"Live update subscription failed for {path}: {e}")
            self._forget(channel)
            await self._drop(channel, owner)
            return False
        return True

    async def _release(self, path: str, owner: object) -> None:
        channel = self._channels.get(path)
        if channel is not None:
            await self._drop(channel, owner)

    def _forget(self, channel: _SharedChannel) -> None:
        if self._channels.get(channel.path) is channel:
            del self._channels[channel.path]

    async def _drop(self, channel: _SharedChannel, owner: object) -> None:
        channel.listeners.pop(owner, None)
        channel.refcount -= 1
        if channel.refcount > 0:
            return
        self._forget(channel)
        if channel.subscription is not None:
            await channel.subscription.close()
        elif channel.opening is not None:
            # 没有等待者了：中止打开；若已打开成功则在完成后关闭
            channel.opening.add_done_callback(self._close_orphan)
            channel.opening.cancel()

    def _close_orphan(self, opening: "asyncio.Task[Subscription]") -> None:
        if opening.cancelled() or opening.exception() is not None:
            return
        task = asyncio.ensure_future(opening.result().close())
        self._closing.add(task)
        task.add_done_callback(self._closing.discard)

    async def _dispatch(self, channel: _SharedChannel, document: Any) -> None:
        for listener in list(channel.listeners.values()):
            try:
                result = listener(document)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"Live update listener failed on {channel.path}: {e}")

    # ------------------------------------------------------------------
    # Patching
    # ------------------------------------------------------------------

    def _patchers(
        self, item_id: str, item_type: ItemType
    ) -> list[tuple[str, Callable[[EnrichedRecord, Any], dict[str, Any]]]]:
        if item_type is ItemType.RESTAURANT:
            return [(OverlayPaths.restaurant_status(item_id), self._patch_status)]
        return [
            (OverlayPaths.product_promo(item_id), self._patch_promo),
            (OverlayPaths.product_images(item_id), self._patch_images),
        ]

    def _listener(
        self,
        item_id: str,
        item_type: ItemType,
        records: Mapping[str, EnrichedRecord],
        patch: Callable[[EnrichedRecord, Any], dict[str, Any]],
        on_patch: OnPatch | None,
    ) -> Listener:
        async def _on_change(document: Any) -> None:
            record = records.get(item_id)
            if record is None:
                return
            changed = []
            for field, value in patch(record, document).items():
                if getattr(record, field) != value:
                    setattr(record, field, value)
                    changed.append(field)
            if not changed:
                return
            BusinessEvents.live_update_applied(
                item_id=item_id, item_type=item_type.value, fields=changed
            )
            if on_patch is not None:
                result = on_patch(record, changed)
                if inspect.isawaitable(result):
                    await result

        return _on_change

    def _patch_status(self, record: EnrichedRecord, document: Any) -> dict[str, Any]:
        # 同一文档携带状态与图片；删除（None）时全部回到默认/目录值
        images = parse_images(record.id, document)
        fields: dict[str, Any] = {
            "is_open": resolve_is_open(parse_status(record.id, document)),
            "cover_url": self.reconciler.cover_url(record.record, images),
        }
        if isinstance(record.record, Restaurant):
            fields["logo_url"] = self.reconciler.logo_url(record.record, images)
        return fields

    def _patch_promo(self, record: EnrichedRecord, document: Any) -> dict[str, Any]:
        if not isinstance(record.record, Product):
            return {}
        promo = parse_promo(record.id, document)
        return {
            "promo": promo,
            "effective_price": resolve_effective_price(
                record.record.base_price, promo, self.clock()
            ),
        }

    def _patch_images(self, record: EnrichedRecord, document: Any) -> dict[str, Any]:
        images = parse_images(record.id, document)
        return {"cover_url": self.reconciler.cover_url(record.record, images)}
