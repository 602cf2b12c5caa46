"""只读目录 REST API 客户端。

所有接口都返回扁平 JSON 记录数组；任何传输、状态码或 JSON 错误
统一转换为 CatalogUnavailableError（可重试）。
"""

from typing import Any, TypeVar

import httpx
import pydantic
from loguru import logger

from src.core.config import settings
from src.core.domain.exceptions import CatalogUnavailableError
from src.modules.catalog.domain.entities import CatalogRecord, Product, Restaurant

RecordT = TypeVar("RecordT", bound=CatalogRecord)


class CatalogApiClient:
    """Client for the catalog backend."""

    def __init__(
        self,
        *,
        base_url: str | None = None,
        timeout_sec: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.CATALOG_API_BASE_URL).rstrip("/")
        self.timeout_sec = timeout_sec or settings.CATALOG_FETCH_TIMEOUT_SEC
        self.transport = transport

    async def list_restaurants(self, city_id: str | None = None) -> list[Restaurant]:
        if city_id:
            payload = await self._get_json("/resto-by-id-ville", {"id_ville": city_id})
        else:
            payload = await self._get_json("/resto")
        return self._parse_records(payload, Restaurant)

    async def list_products(self, category_id: str | None = None) -> list[Product]:
        if category_id:
            payload = await self._get_json(
                "/products-by-id-category", {"id_category": category_id}
            )
        else:
            payload = await self._get_json("/products-list")
        return self._parse_records(payload, Product)

    async def list_products_by_restaurant(self, restaurant_id: str) -> list[Product]:
        payload = await self._get_json("/products-by-id-resto", {"id_resto": restaurant_id})
        return self._parse_records(payload, Product)

    async def _get_json(self, endpoint: str, params: dict[str, Any] | None = None) -> Any:
        url = f"{self.base_url}{endpoint}"
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_sec,
                follow_redirects=True,
                transport=self.transport,
            ) as client:
                response = await client.get(
                    url,
                    params=params,
                    headers={
                        "User-Agent": settings.HTTP_USER_AGENT,
                        "Accept": "application/json",
                    },
                )
                response.raise_for_status()
                return response.json()
        except httpx.TimeoutException as e:
            logger.warning(f"Catalog fetch timeout for {url}: {e}")
            raise CatalogUnavailableError(f"Catalog request timed out: {endpoint}") from e
        except httpx.HTTPStatusError as e:
            logger.warning(
                f"Catalog fetch HTTP error for {url}: {e.response.status_code}"
            )
            raise CatalogUnavailableError(
                f"Catalog returned HTTP {e.response.status_code}: {endpoint}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Catalog fetch error for {url}: {e}")
            raise CatalogUnavailableError(f"Catalog request failed: {endpoint}") from e

    @staticmethod
    def _parse_records(payload: Any, model: type[RecordT]) -> list[RecordT]:
        # 某些接口把数组包在 {"data": [...]} 中
        if isinstance(payload, dict) and isinstance(payload.get("data"), list):
            payload = payload["data"]
        if not isinstance(payload, list):
            raise CatalogUnavailableError("Catalog payload must be a JSON array")

        records: list[RecordT] = []
        for raw in payload:
            if not isinstance(raw, dict):
                continue
            try:
                records.append(model.model_validate(raw))
            except pydantic.ValidationError as e:
                logger.warning(f"Skipping malformed {model.__name__} record: {e}")
        return records
