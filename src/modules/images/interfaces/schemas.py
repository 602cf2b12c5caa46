"""Image cache API schemas."""

from pydantic import BaseModel, Field


class ImageCacheStatsResponse(BaseModel):
    size_bytes: int = Field(..., description="缓存条目总大小（编码后）")


class ImageCacheCleanupResponse(BaseModel):
    removed: int = Field(..., description="删除的条目数")
    size_bytes: int = Field(..., description="清理后的缓存大小")
