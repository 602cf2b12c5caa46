"""Overlay module infrastructure dependencies."""

from src.core.infrastructure.redis import get_redis_client
from src.modules.overlay.infrastructure.redis_backend import RedisOverlayBackend


async def get_overlay_backend() -> RedisOverlayBackend:
    return RedisOverlayBackend(get_redis_client())
