"""Overlay store ports and path layout."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any, Protocol

from src.modules.overlay.domain.entities import ItemType


class OverlayChannel(Protocol):
    """An open change stream for one overlay path.

    Iterating yields full-document snapshots (``None`` when the document was
    removed). The subscription is established before ``open_channel`` returns.
    """

    def __aiter__(self) -> AsyncIterator[Any]: ...

    async def close(self) -> None: ...


class OverlayBackend(Protocol):
    """Port for the realtime path-addressable document store."""

    async def get(self, path: str) -> Any | None: ...

    async def set(self, path: str, value: Any) -> None: ...

    async def delete(self, path: str) -> None: ...

    async def add_member(self, index_path: str, member: str) -> None: ...

    async def members(self, index_path: str) -> set[str]: ...

    async def open_channel(self, path: str) -> OverlayChannel: ...


class OverlayPaths:
    """Overlay 路径命名规范。"""

    RESTAURANT_STATUS = "restaurant_status"
    PRODUCT_PROMOS = "product_promos"
    PRODUCT_IMAGES = "product_images"
    RATINGS = "ratings"
    RATINGS_BY_ITEM = "ratings_by_item"

    # 聚合文档集合（与移动端保持一致）
    METADATA_COLLECTIONS = {
        ItemType.PRODUCT: "products_metadata",
        ItemType.RESTAURANT: "restaurants_metadata",
    }

    @classmethod
    def restaurant_status(cls, restaurant_id: str) -> str:
        """营业状态文档，同时承载 cover/logo 图片覆盖。"""
        return f"{cls.RESTAURANT_STATUS}/{restaurant_id}"

    @classmethod
    def product_promo(cls, product_id: str) -> str:
        return f"{cls.PRODUCT_PROMOS}/{product_id}"

    @classmethod
    def product_images(cls, product_id: str) -> str:
        return f"{cls.PRODUCT_IMAGES}/{product_id}"

    @classmethod
    def images(cls, item_type: ItemType, item_id: str) -> str:
        if item_type == ItemType.RESTAURANT:
            return cls.restaurant_status(item_id)
        return cls.product_images(item_id)

    @classmethod
    def rating(cls, rating_id: str) -> str:
        return f"{cls.RATINGS}/{rating_id}"

    @classmethod
    def ratings_index(cls, item_type: ItemType, item_id: str) -> str:
        return f"{cls.RATINGS_BY_ITEM}/{item_type.value}/{item_id}"

    @classmethod
    def rating_aggregate(cls, item_type: ItemType, item_id: str) -> str:
        return f"{cls.METADATA_COLLECTIONS[item_type]}/{item_id}"
