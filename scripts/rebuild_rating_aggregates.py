#!/usr/bin/env python
"""从原始评分重建评分聚合文档。

聚合文档是可丢弃的缓存（last-writer-wins），并发提交导致的短暂偏差可以用本脚本修正。

用法:
    uv run python scripts/rebuild_rating_aggregates.py --type restaurant [--ids 1 2 3]

不指定 --ids 时从目录 API 读取全部餐厅/商品 ID。
"""

import argparse
import asyncio
import sys
from pathlib import Path


def _ensure_project_root_on_path() -> None:
    """确保项目根目录在 Python 路径中，便于直接运行脚本。"""
    project_root = Path(__file__).parent.parent
    project_root_str = str(project_root)
    if project_root_str not in sys.path:
        sys.path.insert(0, project_root_str)


_ensure_project_root_on_path()


async def _catalog_ids(item_type: str) -> list[str]:
    from src.modules.catalog.infrastructure.api_client import CatalogApiClient

    catalog = CatalogApiClient()
    if item_type == "restaurant":
        records = await catalog.list_restaurants()
    else:
        records = await catalog.list_products()
    return [record.id for record in records]


async def rebuild_aggregates(item_type: str, item_ids: list[str] | None = None) -> int:
    """重建指定类型的评分聚合。

    Args:
        item_type: product / restaurant
        item_ids: ID 列表（None 表示目录中的全部记录）

    Returns:
        成功重建的聚合数
    """
    from loguru import logger

    from src.core.infrastructure.logging import setup_logging
    from src.core.infrastructure.redis import RedisClient, RedisUnavailableError
    from src.modules.overlay.application.client import OverlayStoreClient
    from src.modules.overlay.domain.entities import ItemType
    from src.modules.overlay.infrastructure.redis_backend import RedisOverlayBackend
    from src.modules.ratings.application.services import RatingService

    setup_logging()
    kind = ItemType(item_type)
    ids = item_ids or await _catalog_ids(kind.value)
    logger.info(f"Rebuilding {len(ids)} {kind.value} rating aggregates")

    redis_client = RedisClient()
    rebuilt = 0
    try:
        async with redis_client.ensure_available(timeout=5.0, close_on_exit=True):
            service = RatingService(OverlayStoreClient(RedisOverlayBackend(redis_client)))
            for i, item_id in enumerate(ids):
                try:
                    aggregate = await service.recompute_aggregate(item_id, kind)
                except Exception as e:
                    logger.error(f"Failed to rebuild aggregate for {item_id}: {e}")
                    continue
                rebuilt += 1
                logger.debug(
                    f"{kind.value}:{item_id} -> "
                    f"{aggregate.average_rating} ({aggregate.total_ratings})"
                )

                # 进度日志
                if (i + 1) % 50 == 0:
                    logger.info(f"  Progress: {i + 1}/{len(ids)}")
    except RedisUnavailableError as e:
        logger.error(f"Overlay store unavailable: {e}")
        return rebuilt

    logger.info(f"Rebuilt {rebuilt}/{len(ids)} aggregates")
    return rebuilt


def main():
    parser = argparse.ArgumentParser(description="重建评分聚合文档")
    parser.add_argument(
        "--type",
        choices=["product", "restaurant"],
        required=True,
        help="记录类型",
    )
    parser.add_argument(
        "--ids",
        nargs="*",
        default=None,
        help="指定 ID（不指定则使用目录中的全部记录）",
    )

    args = parser.parse_args()
    asyncio.run(rebuild_aggregates(args.type, args.ids))


if __name__ == "__main__":
    main()
