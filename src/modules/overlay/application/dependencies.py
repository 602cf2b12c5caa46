"""Overlay module application dependencies.

Provides the overlay client and services without importing infrastructure.
"""

from typing import NoReturn

from fastapi import Depends

from src.modules.overlay.application.client import OverlayStoreClient
from src.modules.overlay.application.promo_service import PromoService
from src.modules.overlay.application.status_service import RestaurantStatusService
from src.modules.overlay.domain.store import OverlayBackend


def _missing_dependency(name: str) -> NoReturn:
    raise RuntimeError(f"Missing dependency override for {name}")


async def get_overlay_backend() -> OverlayBackend:
    _missing_dependency("OverlayBackend")


async def get_overlay_client(
    backend: OverlayBackend = Depends(get_overlay_backend),
) -> OverlayStoreClient:
    return OverlayStoreClient(backend)


async def get_status_service(
    overlay: OverlayStoreClient = Depends(get_overlay_client),
) -> RestaurantStatusService:
    return RestaurantStatusService(overlay)


async def get_promo_service(
    overlay: OverlayStoreClient = Depends(get_overlay_client),
) -> PromoService:
    return PromoService(overlay)
