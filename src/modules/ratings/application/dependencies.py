"""Ratings module application dependencies."""

from typing import NoReturn

from fastapi import Depends

from src.modules.overlay.application.client import OverlayStoreClient
from src.modules.overlay.application.dependencies import get_overlay_client
from src.modules.ratings.application.guest_identity import GuestIdentityProvider
from src.modules.ratings.application.services import RatingAggregateMemo, RatingService


def _missing_dependency(name: str) -> NoReturn:
    raise RuntimeError(f"Missing dependency override for {name}")


async def get_rating_memo() -> RatingAggregateMemo:
    _missing_dependency("RatingAggregateMemo")


async def get_rating_service(
    overlay: OverlayStoreClient = Depends(get_overlay_client),
    memo: RatingAggregateMemo = Depends(get_rating_memo),
) -> RatingService:
    return RatingService(overlay, memo=memo)


async def get_guest_identity() -> GuestIdentityProvider:
    # 每个请求一个实例：服务端不保存任何共享的访客 ID
    return GuestIdentityProvider()
