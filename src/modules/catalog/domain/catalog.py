"""Catalog source port."""

from typing import Protocol

from src.modules.catalog.domain.entities import Product, Restaurant


class CatalogSource(Protocol):
    """Read-only catalog backend (REST in production)."""

    async def list_restaurants(self, city_id: str | None = None) -> list[Restaurant]: ...

    async def list_products(self, category_id: str | None = None) -> list[Product]: ...

    async def list_products_by_restaurant(self, restaurant_id: str) -> list[Product]: ...
