"""Attribute reconciler: catalog ⊕ overlay -> EnrichedRecord.

每个字段独立解析（一条记录可以使用 overlay 图片但使用目录状态）：

    字段        | 优先级
    ------------|------------------------------------------------------------
    cover/logo  | overlay URL（http(s):// 或 gs://）> 目录路径（拼接上传目录）> 默认资源
    is_open     | overlay 状态 > DEFAULT_IS_OPEN
    rating      | 聚合文档 > DEFAULT_RATING
    price       | 生效中的促销价 > 目录基础价（仅商品）

批量读取：每个属性类对整个 id 集合只发起一次 batch_get，
某个属性类整体失败时该类对所有记录退化为默认值。
"""

import asyncio
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from loguru import logger

from src.core.config import settings
from src.core.infrastructure.logging import BusinessEvents
from src.modules.catalog.domain.entities import EnrichedRecord, Product, Restaurant
from src.modules.overlay.application.promo_service import PromoService
from src.modules.overlay.application.status_service import (
    DEFAULT_IS_OPEN,
    RestaurantStatusService,
)
from src.modules.overlay.domain.entities import (
    ItemType,
    OverlayImages,
    OverlayStatus,
    PromoPrice,
)
from src.modules.ratings.application.services import RatingService
from src.modules.ratings.domain.entities import RatingAggregate

DEFAULT_RATING: tuple[float, int] = (0.0, 0)

OVERLAY_URL_SCHEMES = ("http://", "https://", "gs://")


@dataclass(frozen=True)
class OverlaySnapshot:
    """Overlay attributes of one item; ``None`` means absent (use the default)."""

    item_id: str
    item_type: ItemType
    status: OverlayStatus | None = None
    images: OverlayImages | None = None
    rating: RatingAggregate | None = None
    promo: PromoPrice | None = None


# ============================================================================
# Field resolution
# ============================================================================


def resolve_image_url(
    overlay_url: str | None,
    catalog_path: str | None,
    default: str,
    uploads_base_url: str | None = None,
) -> str:
    if overlay_url:
        candidate = overlay_url.strip()
        if candidate.startswith(OVERLAY_URL_SCHEMES):
            return candidate

    if catalog_path:
        path = catalog_path.strip()
        if path.startswith(("http://", "https://")):
            return path
        if path:
            base = (uploads_base_url or settings.UPLOADS_BASE_URL).rstrip("/")
            return f"{base}/{path.lstrip('/')}"

    return default


def resolve_is_open(status: OverlayStatus | None) -> bool:
    return status.is_open if status is not None else DEFAULT_IS_OPEN


def resolve_rating(aggregate: RatingAggregate | None) -> tuple[float, int]:
    if aggregate is None:
        return DEFAULT_RATING
    return aggregate.average_rating, aggregate.total_ratings


def resolve_effective_price(
    base_price: float,
    promo: PromoPrice | None,
    now: datetime | None = None,
) -> float:
    """促销价仅在 active 且 now 位于 [start, end] 时生效。"""
    if promo is None or not promo.is_effective(now):
        return base_price
    # 违反 0 < promo < base 的历史文档不生效
    if not 0 < promo.promo_price < base_price:
        return base_price
    return promo.promo_price


def sort_by_rating(records: Iterable[EnrichedRecord]) -> list[EnrichedRecord]:
    """Average rating descending, then rating count descending (stable)."""
    return sorted(records, key=lambda r: (-r.average_rating, -r.total_ratings))


# ============================================================================
# Reconciler
# ============================================================================


class AttributeReconciler:
    """Merge catalog records with overlay attributes."""

    def __init__(
        self,
        status_service: RestaurantStatusService,
        promo_service: PromoService,
        rating_service: RatingService,
        *,
        uploads_base_url: str | None = None,
        default_cover: str | None = None,
        default_logo: str | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.status_service = status_service
        self.promo_service = promo_service
        self.rating_service = rating_service
        self.uploads_base_url = uploads_base_url or settings.UPLOADS_BASE_URL
        self.default_cover = default_cover or settings.DEFAULT_COVER_ASSET
        self.default_logo = default_logo or settings.DEFAULT_LOGO_ASSET
        self.clock = clock or (lambda: datetime.now(UTC))

    async def enrich_batch(
        self, item_ids: Iterable[str], item_type: ItemType
    ) -> dict[str, OverlaySnapshot]:
        """为整个 id 集合读取 overlay 属性。

        Returns:
            id -> OverlaySnapshot（输入中的每个 id 都有结果）
        """
        item_type = ItemType(item_type)
        ids = list(dict.fromkeys(str(i) for i in item_ids))
        if not ids:
            return {}

        fetchers: dict[str, Callable[[], Awaitable[dict[str, Any]]]] = {
            "images": lambda: self.status_service.get_batch_images(ids, item_type),
            "rating": lambda: self.rating_service.get_batch_ratings(ids, item_type),
        }
        if item_type is ItemType.RESTAURANT:
            fetchers["status"] = lambda: self.status_service.get_batch_statuses(ids)
        else:
            fetchers["promo"] = lambda: self.promo_service.get_batch_promos(ids)

        names = list(fetchers)
        results = await asyncio.gather(
            *(self._fetch_class(name, fetchers[name]) for name in names)
        )
        by_class = dict(zip(names, results, strict=True))

        return {
            i: OverlaySnapshot(
                item_id=i,
                item_type=item_type,
                status=by_class.get("status", {}).get(i),
                images=by_class["images"].get(i),
                rating=by_class["rating"].get(i),
                promo=by_class.get("promo", {}).get(i),
            )
            for i in ids
        }

    async def enrich(
        self,
        records: Sequence[Restaurant | Product],
        item_type: ItemType | None = None,
    ) -> list[EnrichedRecord]:
        """批量补全，输出顺序与输入一致。"""
        if not records:
            return []
        item_type = ItemType(item_type) if item_type else records[0].item_type
        snapshots = await self.enrich_batch((r.id for r in records), item_type)
        now = self.clock()
        return [
            self.build_record(
                record,
                snapshots.get(record.id)
                or OverlaySnapshot(item_id=record.id, item_type=item_type),
                now,
            )
            for record in records
        ]

    def build_record(
        self,
        record: Restaurant | Product,
        snapshot: OverlaySnapshot,
        now: datetime | None = None,
    ) -> EnrichedRecord:
        average, total = resolve_rating(snapshot.rating)
        fields: dict[str, Any] = {
            "id": record.id,
            "item_type": record.item_type,
            "name": record.name,
            "record": record,
            "cover_url": self.cover_url(record, snapshot.images),
            "average_rating": average,
            "total_ratings": total,
        }
        if isinstance(record, Restaurant):
            fields["logo_url"] = self.logo_url(record, snapshot.images)
            fields["is_open"] = resolve_is_open(snapshot.status)
        else:
            fields["base_price"] = record.base_price
            fields["effective_price"] = resolve_effective_price(
                record.base_price, snapshot.promo, now or self.clock()
            )
            fields["promo"] = snapshot.promo
        return EnrichedRecord(**fields)

    def cover_url(
        self, record: Restaurant | Product, images: OverlayImages | None
    ) -> str:
        return resolve_image_url(
            images.cover_url if images else None,
            record.cover_path,
            self.default_cover,
            self.uploads_base_url,
        )

    def logo_url(self, record: Restaurant, images: OverlayImages | None) -> str:
        return resolve_image_url(
            images.logo_url if images else None,
            record.logo_path,
            self.default_logo,
            self.uploads_base_url,
        )

    async def _fetch_class(
        self, name: str, fetch: Callable[[], Awaitable[dict[str, Any]]]
    ) -> dict[str, Any]:
        try:
            return await fetch()
        except Exception as e:
            logger.warning(f"Overlay attribute class '{name}' unavailable, using defaults: {e}")
            BusinessEvents.overlay_read_degraded(attribute=name, reason=str(e))
            return {}
