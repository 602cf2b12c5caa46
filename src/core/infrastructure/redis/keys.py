"""Redis Key 命名规范。

Redis 作为实时 overlay 存储：
- Document: overlay 文档（JSON）
- Index: 集合查询索引（SET）
- Channel: 文档变更广播（Pub/Sub，载荷为完整快照）
"""

from src.core.config import settings


class RedisKeys:
    """Redis Key 命名空间管理。"""

    # overlay 文档
    # {prefix}:doc:{path}
    DOCUMENT_SEGMENT = "doc"

    # 集合索引
    # {prefix}:index:{path}
    INDEX_SEGMENT = "index"

    # 变更频道
    # {prefix}:changes:{path}
    CHANNEL_SEGMENT = "changes"

    @classmethod
    def document(cls, path: str) -> str:
        """生成 overlay 文档 key。

        Args:
            path: overlay 路径（如 restaurant_status/12）

        Returns:
            格式化的 Redis key
        """
        return f"{settings.OVERLAY_KEY_PREFIX}:{cls.DOCUMENT_SEGMENT}:{path}"

    @classmethod
    def index(cls, path: str) -> str:
        """生成集合索引 key。"""
        return f"{settings.OVERLAY_KEY_PREFIX}:{cls.INDEX_SEGMENT}:{path}"

    @classmethod
    def channel(cls, path: str) -> str:
        """生成变更频道名。"""
        return f"{settings.OVERLAY_KEY_PREFIX}:{cls.CHANNEL_SEGMENT}:{path}"
