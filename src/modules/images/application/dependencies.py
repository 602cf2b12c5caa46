"""Images module application dependencies."""

from typing import NoReturn

from fastapi import Depends

from src.core.application.dependencies import get_local_kv_client
from src.core.domain.ports.kv import KVClient
from src.modules.images.application.cache import ImageByteCache, ImageFetcher


def _missing_dependency(name: str) -> NoReturn:
    raise RuntimeError(f"Missing dependency override for {name}")


async def get_image_fetcher() -> ImageFetcher:
    _missing_dependency("ImageFetcher")


async def get_image_cache(
    store: KVClient = Depends(get_local_kv_client),
    fetcher: ImageFetcher = Depends(get_image_fetcher),
) -> ImageByteCache:
    return ImageByteCache(store, fetcher)
