"""Catalog module application dependencies."""

from typing import NoReturn

from fastapi import Depends

from src.modules.catalog.application.live_updates import LiveUpdateFanout
from src.modules.catalog.application.reconciler import AttributeReconciler
from src.modules.catalog.domain.catalog import CatalogSource
from src.modules.overlay.application.client import OverlayStoreClient
from src.modules.overlay.application.dependencies import (
    get_overlay_client,
    get_promo_service,
    get_status_service,
)
from src.modules.overlay.application.promo_service import PromoService
from src.modules.overlay.application.status_service import RestaurantStatusService
from src.modules.ratings.application.dependencies import get_rating_service
from src.modules.ratings.application.services import RatingService


def _missing_dependency(name: str) -> NoReturn:
    raise RuntimeError(f"Missing dependency override for {name}")


async def get_catalog_source() -> CatalogSource:
    _missing_dependency("CatalogSource")


async def get_reconciler(
    status_service: RestaurantStatusService = Depends(get_status_service),
    promo_service: PromoService = Depends(get_promo_service),
    rating_service: RatingService = Depends(get_rating_service),
) -> AttributeReconciler:
    return AttributeReconciler(status_service, promo_service, rating_service)


async def get_live_update_fanout(
    overlay: OverlayStoreClient = Depends(get_overlay_client),
    reconciler: AttributeReconciler = Depends(get_reconciler),
) -> LiveUpdateFanout:
    # 每个 WebSocket 连接一个实例，连接内重叠的 id 共享通道
    return LiveUpdateFanout(overlay, reconciler)
