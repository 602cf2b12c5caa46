"""Images module infrastructure dependencies."""

from src.modules.images.infrastructure.fetcher import HttpxImageFetcher


async def get_image_fetcher() -> HttpxImageFetcher:
    return HttpxImageFetcher()
