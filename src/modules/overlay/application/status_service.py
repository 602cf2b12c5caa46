"""餐厅营业状态与图片覆盖服务。

restaurant_status/{id} 文档结构：
    {"isOpen": bool, "updatedAt": iso8601, "cover": url?, "logo": url?}

没有状态文档的餐厅视为营业中。
"""

from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from typing import Any

import pydantic
from loguru import logger

from src.core.domain.exceptions import OverlayWriteError
from src.core.infrastructure.logging import BusinessEvents
from src.modules.overlay.application.client import OverlayStoreClient, Subscription
from src.modules.overlay.domain.entities import ItemType, OverlayImages, OverlayStatus
from src.modules.overlay.domain.store import OverlayPaths

DEFAULT_IS_OPEN = True


def parse_status(item_id: str, document: Any) -> OverlayStatus | None:
    """Parse a status document; ``None`` when absent or malformed."""
    if not isinstance(document, dict) or "isOpen" not in document:
        return None
    try:
        return OverlayStatus.model_validate({**document, "itemId": item_id})
    except pydantic.ValidationError as e:
        logger.warning(f"Malformed status document for {item_id}: {e}")
        return None


def parse_images(item_id: str, document: Any) -> OverlayImages | None:
    """Parse the sparse image override fields of a document."""
    if not isinstance(document, dict):
        return None
    cover = document.get("cover")
    logo = document.get("logo")
    if not isinstance(cover, str):
        cover = None
    if not isinstance(logo, str):
        logo = None
    if cover is None and logo is None:
        return None
    return OverlayImages(item_id=item_id, cover_url=cover, logo_url=logo)


class RestaurantStatusService:
    """Service for restaurant open/closed status and image overrides."""

    def __init__(self, overlay: OverlayStoreClient):
        self.overlay = overlay

    async def get_status(self, restaurant_id: str) -> OverlayStatus:
        """获取单个餐厅状态，缺失或读取失败时默认营业。"""
        path = OverlayPaths.restaurant_status(restaurant_id)
        try:
            status = parse_status(restaurant_id, await self.overlay.get(path))
        except Exception as e:
            logger.warning(f"Status read failed for {restaurant_id}: {e}")
            BusinessEvents.overlay_read_degraded(
                attribute="status", item_id=restaurant_id, reason=str(e)
            )
            status = None
        return status or OverlayStatus(item_id=restaurant_id, is_open=DEFAULT_IS_OPEN)

    async def get_batch_statuses(
        self, restaurant_ids: Iterable[str]
    ) -> dict[str, OverlayStatus | None]:
        """批量获取状态（一次 batch_get）；None 表示无状态文档。"""
        ids = [str(i) for i in restaurant_ids]
        documents = await self.overlay.batch_get(
            OverlayPaths.restaurant_status(i) for i in ids
        )
        return {
            i: parse_status(i, documents.get(OverlayPaths.restaurant_status(i)))
            for i in ids
        }

    async def get_batch_images(
        self, item_ids: Iterable[str], item_type: ItemType
    ) -> dict[str, OverlayImages | None]:
        """批量获取图片覆盖（一次 batch_get）。"""
        ids = [str(i) for i in item_ids]
        documents = await self.overlay.batch_get(
            OverlayPaths.images(item_type, i) for i in ids
        )
        return {
            i: parse_images(i, documents.get(OverlayPaths.images(item_type, i)))
            for i in ids
        }

    async def set_status(self, restaurant_id: str, is_open: bool) -> OverlayStatus:
        """更新营业状态，保留同一文档中的图片覆盖字段。"""
        path = OverlayPaths.restaurant_status(restaurant_id)
        document = await self._current_document(path)
        document.update(
            {"isOpen": is_open, "updatedAt": datetime.now(UTC).isoformat()}
        )
        await self.overlay.set(path, document)
        BusinessEvents.restaurant_status_changed(
            restaurant_id=restaurant_id, is_open=is_open
        )
        return OverlayStatus.model_validate({**document, "itemId": restaurant_id})

    async def set_images(
        self,
        item_id: str,
        item_type: ItemType,
        cover_url: str | None = None,
        logo_url: str | None = None,
    ) -> OverlayImages | None:
        """设置图片覆盖；传入空字符串表示移除该字段。"""
        path = OverlayPaths.images(item_type, item_id)
        document = await self._current_document(path)
        for field, value in (("cover", cover_url), ("logo", logo_url)):
            if value is None:
                continue
            if value:
                document[field] = value
            else:
                document.pop(field, None)
        await self.overlay.set(path, document)
        return parse_images(item_id, document)

    async def subscribe_status(
        self,
        restaurant_id: str,
        callback: Callable[[OverlayStatus], Any],
    ) -> Subscription:
        """订阅单个餐厅状态；文档被删除时回调默认营业状态。"""

        def _on_change(document: Any) -> Any:
            status = parse_status(restaurant_id, document) or OverlayStatus(
                item_id=restaurant_id, is_open=DEFAULT_IS_OPEN
            )
            return callback(status)

        return await self.overlay.subscribe(
            OverlayPaths.restaurant_status(restaurant_id), _on_change
        )

    async def _current_document(self, path: str) -> dict[str, Any]:
        # 读-改-写：读取失败时不能安全合并，直接作为写入失败抛出
        try:
            current = await self.overlay.get(path)
        except Exception as e:
            raise OverlayWriteError(path, f"read before write failed: {e}") from e
        return dict(current) if isinstance(current, dict) else {}
