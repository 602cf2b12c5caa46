"""Tests for the catalog REST client."""

import httpx
import pytest

from src.core.domain.exceptions import CatalogUnavailableError
from src.modules.catalog.infrastructure.api_client import CatalogApiClient

pytestmark = pytest.mark.anyio

BASE_URL = "https://catalog.test/api"


def _client(handler) -> CatalogApiClient:
    return CatalogApiClient(base_url=BASE_URL, transport=httpx.MockTransport(handler))


async def test_list_restaurants_all() -> None:
    seen: list[httpx.URL] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url)
        return httpx.Response(
            200,
            json=[
                {"id": 1, "name": "Chez Gaspard", "ville_id": 3, "altitude": "-4.26"},
                {"id": 2, "name": "Le Mayombe", "telephone": "06 000 00 00"},
            ],
        )

    restaurants = await _client(handler).list_restaurants()

    assert seen[0].path == "/api/resto"
    assert [r.id for r in restaurants] == ["1", "2"]
    assert restaurants[0].city_id == "3"
    assert restaurants[0].latitude == -4.26


async def test_list_restaurants_by_city() -> None:
    seen: list[httpx.URL] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url)
        return httpx.Response(200, json=[])

    assert await _client(handler).list_restaurants(city_id="3") == []
    assert seen[0].path == "/api/resto-by-id-ville"
    assert seen[0].params["id_ville"] == "3"


async def test_products_endpoints_and_field_mapping() -> None:
    seen: list[httpx.URL] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request.url)
        return httpx.Response(
            200,
            json=[
                {
                    "id": 10,
                    "libelle": "Poulet DG",
                    "price": "3 500 FCFA",
                    "resto_id": 1,
                    "id_category": 4,
                }
            ],
        )

    client = _client(handler)
    (product,) = await client.list_products()
    await client.list_products(category_id="4")
    await client.list_products_by_restaurant("1")

    assert [u.path for u in seen] == [
        "/api/products-list",
        "/api/products-by-id-category",
        "/api/products-by-id-resto",
    ]
    assert seen[1].params["id_category"] == "4"
    assert seen[2].params["id_resto"] == "1"
    assert product.name == "Poulet DG"
    assert product.base_price == 3500.0
    assert (product.restaurant_id, product.category_id) == ("1", "4")


async def test_data_wrapper_and_malformed_records() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200, json={"data": [{"id": 1, "name": "ok"}, {"name": "no id"}, "junk"]}
        )

    restaurants = await _client(handler).list_restaurants()
    assert [r.id for r in restaurants] == ["1"]


@pytest.mark.parametrize(
    "handler",
    [
        lambda request: httpx.Response(500, json={"message": "boom"}),
        lambda request: httpx.Response(200, text="<html>maintenance</html>"),
        lambda request: httpx.Response(200, json={"message": "not a list"}),
    ],
    ids=["http-error", "invalid-json", "not-a-list"],
)
async def test_errors_become_catalog_unavailable(handler) -> None:
    with pytest.raises(CatalogUnavailableError) as exc_info:
        await _client(handler).list_products()
    assert exc_info.value.retryable is True


async def test_transport_errors_become_catalog_unavailable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(CatalogUnavailableError):
        await _client(handler).list_restaurants()


async def test_timeout_becomes_catalog_unavailable() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("too slow", request=request)

    with pytest.raises(CatalogUnavailableError, match="timed out"):
        await _client(handler).list_restaurants()
