"""HTTP exception handlers.

将领域异常转换为标准 HTTP 响应。
各模块的异常类通过定义 http_status_code 和 error_code 类属性来自定义响应；
带 retryable 属性的异常（目录不可用、overlay 写入失败）会在响应中标记可重试。
"""

from fastapi import Request, status
from fastapi.responses import JSONResponse
from loguru import logger

from src.core.domain.exceptions import DomainException
from src.core.interfaces.http.response import ErrorResponse


async def domain_exception_handler(
    _request: Request, exc: DomainException
) -> JSONResponse:
    """Handle domain exceptions."""
    status_code = getattr(exc, "http_status_code", 400)
    error_code = getattr(exc, "error_code", "DOMAIN_ERROR")
    retryable = getattr(exc, "retryable", False)

    if status_code >= 500:
        logger.warning(f"{error_code}: {exc.message}")

    body = ErrorResponse.create(
        code=error_code,
        message=exc.message,
        details={"retryable": True} if retryable else None,
    )
    return JSONResponse(status_code=status_code, content=body.model_dump())


async def global_exception_handler(_request: Request, exc: Exception) -> JSONResponse:
    """Handle all unhandled exceptions."""
    logger.exception(f"Unhandled exception: {exc}")
    body = ErrorResponse.create(
        code="INTERNAL_ERROR", message="An internal error occurred"
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=body.model_dump()
    )
