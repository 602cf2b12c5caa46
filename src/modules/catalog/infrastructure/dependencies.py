"""Catalog module infrastructure dependencies."""

from src.modules.catalog.infrastructure.api_client import CatalogApiClient


async def get_catalog_source() -> CatalogApiClient:
    return CatalogApiClient()
