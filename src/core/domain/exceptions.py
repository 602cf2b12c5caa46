"""Base domain exceptions.

所有领域异常都应继承自 DomainException，并可以通过定义 http_status_code 和 error_code
类属性来指定 HTTP 响应细节。

Overlay 读取失败和图片下载失败不在此处：它们在本地降级为默认值，不会向上抛出。
"""

from fastapi import status


class DomainException(Exception):
    """Base exception for all domain errors.

    子类可以通过定义以下类属性来自定义 HTTP 响应：
    - http_status_code: HTTP 状态码（默认 400）
    - error_code: 错误代码字符串（默认 "DOMAIN_ERROR"）
    """

    http_status_code: int = status.HTTP_400_BAD_REQUEST
    error_code: str = "DOMAIN_ERROR"

    def __init__(self, message: str = "A domain error occurred"):
        self.message = message
        super().__init__(self.message)


class ValidationError(DomainException):
    """Raised when validation fails."""

    http_status_code = status.HTTP_400_BAD_REQUEST
    error_code = "VALIDATION_ERROR"


class CatalogUnavailableError(DomainException):
    """Raised when the catalog REST API cannot be read.

    调用方（UI）应展示可重试的错误状态。
    """

    http_status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error_code = "CATALOG_UNAVAILABLE"
    retryable = True


class OverlayWriteError(DomainException):
    """Raised when a write to the overlay store fails.

    写入失败必须暴露给调用方，本地缓存不做乐观更新。
    """

    http_status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error_code = "OVERLAY_WRITE_FAILED"
    retryable = True

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to write overlay document '{path}': {reason}")
