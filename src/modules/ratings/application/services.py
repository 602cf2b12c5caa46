"""评分聚合服务。

写入流程（submit_rating）：
1. 按 (user, item, type) 计算确定性 rating_id，覆盖写入评分文档（幂等 upsert）
2. 将 rating_id 加入 ratings_by_item/{type}/{item} 索引
3. 读取该 item 的全部评分，重新计算并覆盖写入聚合文档
4. 使本地 memo 失效

聚合写入没有并发令牌：两个几乎同时的提交可能互相覆盖聚合结果，
下一次提交或显式重建时自愈（last-writer-wins）。
"""

import asyncio
from collections.abc import Iterable
from typing import Any

import pydantic
from loguru import logger

from src.core.domain.exceptions import OverlayWriteError, ValidationError
from src.core.infrastructure.logging import BusinessEvents
from src.modules.overlay.application.client import OverlayStoreClient
from src.modules.overlay.domain.entities import ItemType
from src.modules.overlay.domain.store import OverlayPaths
from src.modules.ratings.domain.entities import (
    MAX_RATING,
    MIN_RATING,
    Rating,
    RatingAggregate,
    rating_id,
)


class RatingAggregateMemo:
    """进程内聚合缓存，按 (item_id, type) 索引。"""

    def __init__(self) -> None:
        self._entries: dict[tuple[str, ItemType], RatingAggregate] = {}

    def get(self, item_id: str, item_type: ItemType) -> RatingAggregate | None:
        return self._entries.get((str(item_id), ItemType(item_type)))

    def put(self, aggregate: RatingAggregate, item_type: ItemType) -> None:
        self._entries[(aggregate.item_id, ItemType(item_type))] = aggregate

    def invalidate(self, item_id: str, item_type: ItemType) -> None:
        self._entries.pop((str(item_id), ItemType(item_type)), None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


def _parse_rating(document: Any, rid: str) -> Rating | None:
    if not isinstance(document, dict):
        return None
    try:
        return Rating.model_validate({**document, "id": rid})
    except pydantic.ValidationError as e:
        logger.warning(f"Skipping malformed rating {rid}: {e}")
        return None


def _parse_aggregate(item_id: str, item_type: ItemType, document: Any) -> RatingAggregate:
    if not isinstance(document, dict):
        return RatingAggregate.empty(item_id, item_type)
    try:
        return RatingAggregate.model_validate(
            {**document, "itemId": item_id, "type": item_type}
        )
    except pydantic.ValidationError as e:
        logger.warning(f"Malformed rating aggregate for {item_id}: {e}")
        return RatingAggregate.empty(item_id, item_type)


class RatingService:
    """Service for rating submission and aggregate lookup."""

    def __init__(
        self,
        overlay: OverlayStoreClient,
        memo: RatingAggregateMemo | None = None,
    ):
        self.overlay = overlay
        self.memo = memo if memo is not None else RatingAggregateMemo()

    async def submit_rating(
        self,
        item_id: str,
        item_type: ItemType,
        rating: int,
        user_id: str,
        comment: str = "",
    ) -> RatingAggregate:
        """提交评分（同一用户对同一 item 重复提交会覆盖）。

        Returns:
            重新计算后的聚合

        Raises:
            ValidationError: 评分不是 1-5 的整数
            OverlayWriteError: 评分或聚合写入失败（memo 保持不变）
        """
        if isinstance(rating, bool) or not isinstance(rating, int):
            raise ValidationError(f"Rating must be an integer, got {rating!r}")
        if not MIN_RATING <= rating <= MAX_RATING:
            raise ValidationError(
                f"Rating must be between {MIN_RATING} and {MAX_RATING}, got {rating}"
            )
        if not user_id:
            raise ValidationError("Rating requires a user id")

        item_id = str(item_id)
        item_type = ItemType(item_type)
        rid = rating_id(user_id, item_id, item_type)
        path = OverlayPaths.rating(rid)

        previous = await self._read_existing(path, rid)
        entity = Rating(
            id=rid,
            item_id=item_id,
            type=item_type,
            rating=rating,
            user_id=user_id,
            comment=comment,
        )
        if previous is not None:
            entity.created_at = previous.created_at

        await self.overlay.set(path, entity.to_document())
        await self.overlay.add_to_index(OverlayPaths.ratings_index(item_type, item_id), rid)

        aggregate = await self.recompute_aggregate(item_id, item_type)
        self.memo.invalidate(item_id, item_type)

        BusinessEvents.rating_submitted(
            item_id=item_id,
            item_type=item_type.value,
            rating=rating,
            average_rating=aggregate.average_rating,
            total_ratings=aggregate.total_ratings,
        )
        return aggregate

    async def get_ratings(self, item_id: str, item_type: ItemType) -> list[Rating]:
        """获取某个 item 的全部评分（最新在前），读取失败返回空列表。"""
        try:
            ratings = await self._load_ratings(str(item_id), ItemType(item_type))
        except Exception as e:
            logger.warning(f"Ratings read failed for {item_type}:{item_id}: {e}")
            BusinessEvents.overlay_read_degraded(
                attribute="ratings", item_id=str(item_id), reason=str(e)
            )
            return []
        return sorted(ratings, key=lambda r: r.updated_at, reverse=True)

    async def get_average_rating(
        self, item_id: str, item_type: ItemType
    ) -> RatingAggregate:
        """获取平均分：优先 memo，否则从全部评分重新计算。"""
        item_id = str(item_id)
        item_type = ItemType(item_type)
        cached = self.memo.get(item_id, item_type)
        if cached is not None:
            return cached

        try:
            ratings = await self._load_ratings(item_id, item_type)
        except Exception as e:
            logger.warning(f"Average rating read failed for {item_type}:{item_id}: {e}")
            BusinessEvents.overlay_read_degraded(
                attribute="ratings", item_id=item_id, reason=str(e)
            )
            return RatingAggregate.empty(item_id, item_type)

        aggregate = RatingAggregate.from_ratings(item_id, item_type, ratings)
        self.memo.put(aggregate, item_type)
        return aggregate

    async def get_batch_ratings(
        self, item_ids: Iterable[str], item_type: ItemType
    ) -> dict[str, RatingAggregate]:
        """批量读取聚合文档（不读取原始评分），缺失或失败为 0/0。"""
        item_type = ItemType(item_type)
        ids = [str(i) for i in item_ids]
        documents = await self.overlay.batch_get(
            OverlayPaths.rating_aggregate(item_type, i) for i in ids
        )
        return {
            i: _parse_aggregate(
                i, item_type, documents.get(OverlayPaths.rating_aggregate(item_type, i))
            )
            for i in ids
        }

    async def recompute_aggregate(
        self, item_id: str, item_type: ItemType
    ) -> RatingAggregate:
        """从全部评分重新计算聚合并覆盖写入。"""
        item_id = str(item_id)
        item_type = ItemType(item_type)
        path = OverlayPaths.rating_aggregate(item_type, item_id)
        try:
            ratings = await self._load_ratings(item_id, item_type)
        except Exception as e:
            raise OverlayWriteError(path, f"could not read ratings: {e}") from e

        aggregate = RatingAggregate.from_ratings(item_id, item_type, ratings)
        await self.overlay.set(path, aggregate.to_document())
        return aggregate

    async def _load_ratings(self, item_id: str, item_type: ItemType) -> list[Rating]:
        # 严格读取：任何单条失败都会抛出，避免用不完整的数据计算聚合
        rating_ids = sorted(
            await self.overlay.index_members(OverlayPaths.ratings_index(item_type, item_id))
        )
        documents = await asyncio.gather(
            *(self.overlay.get(OverlayPaths.rating(rid)) for rid in rating_ids)
        )
        ratings = []
        for rid, document in zip(rating_ids, documents, strict=True):
            parsed = _parse_rating(document, rid)
            if parsed is not None and parsed.item_id == item_id and parsed.type == item_type:
                ratings.append(parsed)
        return ratings

    async def _read_existing(self, path: str, rid: str) -> Rating | None:
        try:
            return _parse_rating(await self.overlay.get(path), rid)
        except Exception as e:
            logger.debug(f"Could not read previous rating {rid}: {e}")
            return None
