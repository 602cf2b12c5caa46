"""Image byte routes (read-through cache) and cache maintenance."""

import mimetypes
from urllib.parse import urlsplit

from fastapi import APIRouter, Depends, Query, Response

from src.core.interfaces.http.response import ApiResponse
from src.modules.images.application.cache import (
    PLACEHOLDER_IMAGE,
    PLACEHOLDER_MEDIA_TYPE,
    ImageByteCache,
    ImageSource,
)
from src.modules.images.application.dependencies import get_image_cache
from src.modules.images.interfaces.schemas import (
    ImageCacheCleanupResponse,
    ImageCacheStatsResponse,
)

IMAGE_SOURCE_HEADER = "X-Image-Source"

router = APIRouter(prefix="/images", tags=["images"])


@router.get(
    "",
    response_class=Response,
    summary="获取图片",
    description=(
        "有效期内命中缓存时不访问网络；否则下载并写入缓存。"
        "下载失败时返回占位图。响应头 X-Image-Source 为 cache / network / unavailable。"
    ),
    responses={200: {"content": {"image/*": {}}}},
)
async def get_image(
    url: str = Query(..., min_length=1, description="远程图片 URL"),
    cache: ImageByteCache = Depends(get_image_cache),
) -> Response:
    result = await cache.resolve(url)
    if not result.available or result.data is None:
        return Response(
            content=PLACEHOLDER_IMAGE,
            media_type=PLACEHOLDER_MEDIA_TYPE,
            headers={IMAGE_SOURCE_HEADER: ImageSource.UNAVAILABLE.value},
        )

    media_type, _ = mimetypes.guess_type(urlsplit(url).path)
    return Response(
        content=result.data,
        media_type=media_type or "application/octet-stream",
        headers={IMAGE_SOURCE_HEADER: result.source.value},
    )


@router.get(
    "/cache",
    response_model=ApiResponse[ImageCacheStatsResponse],
    summary="图片缓存大小",
)
async def get_image_cache_stats(
    cache: ImageByteCache = Depends(get_image_cache),
) -> ApiResponse[ImageCacheStatsResponse]:
    return ApiResponse.success(
        data=ImageCacheStatsResponse(size_bytes=await cache.size_bytes())
    )


@router.post(
    "/cache/cleanup",
    response_model=ApiResponse[ImageCacheCleanupResponse],
    summary="清理过期图片",
    description="删除超过有效期或已损坏的缓存条目。",
)
async def cleanup_image_cache(
    cache: ImageByteCache = Depends(get_image_cache),
) -> ApiResponse[ImageCacheCleanupResponse]:
    removed = await cache.cleanup_expired()
    return ApiResponse.success(
        data=ImageCacheCleanupResponse(removed=removed, size_bytes=await cache.size_bytes())
    )


@router.delete(
    "/cache",
    response_model=ApiResponse[ImageCacheCleanupResponse],
    summary="清空图片缓存",
)
async def clear_image_cache(
    cache: ImageByteCache = Depends(get_image_cache),
) -> ApiResponse[ImageCacheCleanupResponse]:
    removed = await cache.clear()
    return ApiResponse.success(
        data=ImageCacheCleanupResponse(removed=removed, size_bytes=0)
    )
