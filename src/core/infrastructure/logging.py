"""Logging configuration with structlog integration.

提供两种日志记录方式：
1. loguru: 用于一般调试日志
2. structlog: 用于关键业务事件的结构化日志
"""

import sys
from typing import Any

import structlog
from loguru import logger

from src.core.config import settings


def setup_logging() -> None:
    """Configure application logging with structlog and loguru."""
    _configure_structlog()
    _configure_loguru()

    logger.info(f"Logging configured with level: {settings.LOG_LEVEL}")


def _configure_structlog() -> None:
    """配置 structlog 处理器链。"""
    if settings.ENVIRONMENT == "local":
        # 本地开发使用人类可读格式
        renderer = structlog.dev.ConsoleRenderer(colors=True)
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.CallsiteParameterAdder(
                [
                    structlog.processors.CallsiteParameter.MODULE,
                    structlog.processors.CallsiteParameter.FUNC_NAME,
                    structlog.processors.CallsiteParameter.LINENO,
                ]
            ),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            _get_log_level_number(settings.LOG_LEVEL)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def _configure_loguru() -> None:
    """配置 loguru。"""
    logger.remove()

    logger.add(
        sys.stderr,
        level=settings.LOG_LEVEL,
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
            "<level>{message}</level>"
        ),
        colorize=True,
    )

    if settings.ENVIRONMENT != "local":
        logger.add(
            "logs/mayombe_overlay_{time:YYYY-MM-DD}.log",
            rotation="00:00",
            retention="30 days",
            level="INFO",
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
        )


def _get_log_level_number(level: str) -> int:
    """将日志级别字符串转换为数字。"""
    levels = {
        "DEBUG": 10,
        "INFO": 20,
        "WARNING": 30,
        "ERROR": 40,
        "CRITICAL": 50,
    }
    return levels.get(level.upper(), 20)


# ============================================================================
# 业务事件日志记录器
# ============================================================================


class BusinessEvents:
    """业务事件日志助手类。

    提供统一的业务事件日志记录接口，确保事件格式一致。

    Usage:
        from src.core.infrastructure.logging import BusinessEvents

        BusinessEvents.rating_submitted(item_id="12", item_type="product", rating=4)
        BusinessEvents.overlay_read_degraded(attribute="status", reason="timeout")
    """

    _log = structlog.get_logger("business.events")

    @classmethod
    def rating_submitted(
        cls,
        item_id: str,
        item_type: str,
        rating: int,
        average_rating: float,
        total_ratings: int,
        **extra: Any,
    ) -> None:
        """记录评分提交事件。"""
        cls._log.info(
            "rating_submitted",
            event_type="rating",
            item_id=item_id,
            item_type=item_type,
            rating=rating,
            average_rating=average_rating,
            total_ratings=total_ratings,
            **extra,
        )

    @classmethod
    def restaurant_status_changed(
        cls,
        restaurant_id: str,
        is_open: bool,
        **extra: Any,
    ) -> None:
        """记录餐厅营业状态变更事件。"""
        cls._log.info(
            "restaurant_status_changed",
            event_type="status",
            restaurant_id=restaurant_id,
            is_open=is_open,
            **extra,
        )

    @classmethod
    def promo_updated(
        cls,
        product_id: str,
        promo_price: float | None,
        active: bool,
        **extra: Any,
    ) -> None:
        """记录促销价变更事件。"""
        cls._log.info(
            "promo_updated",
            event_type="promo",
            product_id=product_id,
            promo_price=promo_price,
            active=active,
            **extra,
        )

    @classmethod
    def overlay_read_degraded(
        cls,
        attribute: str,
        reason: str,
        item_id: str | None = None,
        **extra: Any,
    ) -> None:
        """记录 overlay 读取降级事件（使用默认值）。"""
        cls._log.warning(
            "overlay_read_degraded",
            event_type="degradation",
            attribute=attribute,
            item_id=item_id,
            reason=reason,
            **extra,
        )

    @classmethod
    def image_cache_lookup(
        cls,
        key: str,
        outcome: str,
        **extra: Any,
    ) -> None:
        """记录图片缓存命中/未命中/不可用。"""
        level = "warning" if outcome == "unavailable" else "debug"
        getattr(cls._log, level)(
            "image_cache_lookup",
            event_type="image_cache",
            key=key,
            outcome=outcome,
            **extra,
        )

    @classmethod
    def live_update_applied(
        cls,
        item_id: str,
        item_type: str,
        fields: list[str],
        **extra: Any,
    ) -> None:
        """记录实时更新补丁事件。"""
        cls._log.debug(
            "live_update_applied",
            event_type="live_update",
            item_id=item_id,
            item_type=item_type,
            fields=fields,
            **extra,
        )
