"""
pytest 配置和共享 fixtures。

测试分层：
- unit/: 单元测试（不依赖外部服务，overlay/本地存储/网络均使用内存替身）

使用方法：
    # 运行所有测试
    uv run pytest

    # 只运行单元测试
    uv run pytest tests/unit/

    # 运行带覆盖率
    uv run pytest --cov=src --cov-report=html
"""

from __future__ import annotations

import asyncio
import copy
from collections import Counter
from collections.abc import AsyncGenerator, AsyncIterator, Generator
from typing import Any

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient

from src.modules.catalog.application.reconciler import AttributeReconciler
from src.modules.catalog.domain.entities import Product, Restaurant
from src.modules.overlay.application.client import OverlayStoreClient
from src.modules.overlay.application.promo_service import PromoService
from src.modules.overlay.application.status_service import RestaurantStatusService
from src.modules.ratings.application.services import RatingAggregateMemo, RatingService

_CLOSED = object()


# ============================================
# 配置 Fixtures
# ============================================


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


# ============================================
# Overlay 存储替身
# ============================================


class InMemoryOverlayChannel:
    """Queue-backed change stream."""

    def __init__(self, backend: "InMemoryOverlayBackend", path: str):
        self.backend = backend
        self.path = path
        self.queue: asyncio.Queue[Any] = asyncio.Queue()
        self.closed = False

    async def __aiter__(self) -> AsyncIterator[Any]:
        while True:
            item = await self.queue.get()
            if item is _CLOSED:
                return
            yield item

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.backend.channels[self.path].remove(self)
        self.queue.put_nowait(_CLOSED)


class InMemoryOverlayBackend:
    """OverlayBackend 内存实现。

    - calls: 各方法调用次数
    - get_paths: 每次 get 的路径（按调用顺序）
    - fail_reads / fail_writes / fail_channels: 路径前缀，命中时抛出 ConnectionError
    - open_gate: 设置后 open_channel 会等待该事件，用于模拟慢速订阅
    """

    def __init__(self) -> None:
        self.documents: dict[str, Any] = {}
        self.indexes: dict[str, set[str]] = {}
        self.channels: dict[str, list[InMemoryOverlayChannel]] = {}
        self.calls: Counter[str] = Counter()
        self.get_paths: list[str] = []
        self.fail_reads: set[str] = set()
        self.fail_writes: set[str] = set()
        self.fail_channels: set[str] = set()
        self.open_gate: asyncio.Event | None = None

    @staticmethod
    def _matches(path: str, prefixes: set[str]) -> bool:
        return any(path.startswith(prefix) for prefix in prefixes)

    def _publish(self, path: str, snapshot: Any) -> None:
        for channel in list(self.channels.get(path, [])):
            channel.queue.put_nowait(copy.deepcopy(snapshot))

    async def get(self, path: str) -> Any | None:
        self.calls["get"] += 1
        self.get_paths.append(path)
        if self._matches(path, self.fail_reads):
            raise ConnectionError(f"read failed: {path}")
        return copy.deepcopy(self.documents.get(path))

    async def set(self, path: str, value: Any) -> None:
        self.calls["set"] += 1
        if self._matches(path, self.fail_writes):
            raise ConnectionError(f"write failed: {path}")
        self.documents[path] = copy.deepcopy(value)
        self._publish(path, value)

    async def delete(self, path: str) -> None:
        self.calls["delete"] += 1
        if self._matches(path, self.fail_writes):
            raise ConnectionError(f"write failed: {path}")
        self.documents.pop(path, None)
        self._publish(path, None)

    async def add_member(self, index_path: str, member: str) -> None:
        self.calls["add_member"] += 1
        if self._matches(index_path, self.fail_writes):
            raise ConnectionError(f"write failed: {index_path}")
        self.indexes.setdefault(index_path, set()).add(member)

    async def members(self, index_path: str) -> set[str]:
        self.calls["members"] += 1
        if self._matches(index_path, self.fail_reads):
            raise ConnectionError(f"read failed: {index_path}")
        return set(self.indexes.get(index_path, set()))

    async def open_channel(self, path: str) -> InMemoryOverlayChannel:
        self.calls["open_channel"] += 1
        if self.open_gate is not None:
            await self.open_gate.wait()
        if self._matches(path, self.fail_channels):
            raise ConnectionError(f"subscribe failed: {path}")
        channel = InMemoryOverlayChannel(self, path)
        self.channels.setdefault(path, []).append(channel)
        return channel

    def open_channel_count(self, path: str | None = None) -> int:
        if path is not None:
            return len(self.channels.get(path, []))
        return sum(len(c) for c in self.channels.values())


class InMemoryKVStore:
    """KVClient 内存实现（本地持久化存储替身）。"""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}
        self.fail_reads = False
        self.fail_writes = False

    async def get(self, key: str) -> str | None:
        if self.fail_reads:
            raise OSError("local store read failed")
        return self.data.get(key)

    async def set(self, key: str, value: str) -> None:
        if self.fail_writes:
            raise OSError("local store full")
        self.data[key] = value

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
        return removed

    async def keys(self, prefix: str = "") -> list[str]:
        return sorted(k for k in self.data if k.startswith(prefix))


class ScriptedImageFetcher:
    """ImageFetcher 替身：按 URL 返回预设字节或抛出预设异常。"""

    def __init__(self, responses: dict[str, bytes | Exception] | None = None):
        self.responses = responses or {}
        self.calls: list[str] = []

    async def fetch(self, url: str) -> bytes:
        self.calls.append(url)
        response = self.responses.get(url)
        if response is None:
            raise ConnectionError(f"no route to {url}")
        if isinstance(response, Exception):
            raise response
        return response


class FakeCatalog:
    """CatalogSource 替身。"""

    def __init__(
        self,
        restaurants: list[Restaurant] | None = None,
        products: list[Product] | None = None,
    ):
        self.restaurants = restaurants or []
        self.products = products or []
        self.error: Exception | None = None

    async def list_restaurants(self, city_id: str | None = None) -> list[Restaurant]:
        if self.error:
            raise self.error
        if city_id is None:
            return list(self.restaurants)
        return [r for r in self.restaurants if r.city_id == city_id]

    async def list_products(self, category_id: str | None = None) -> list[Product]:
        if self.error:
            raise self.error
        if category_id is None:
            return list(self.products)
        return [p for p in self.products if p.category_id == category_id]

    async def list_products_by_restaurant(self, restaurant_id: str) -> list[Product]:
        if self.error:
            raise self.error
        return [p for p in self.products if p.restaurant_id == restaurant_id]


# ============================================
# 服务 Fixtures
# ============================================


@pytest.fixture
def overlay_backend() -> InMemoryOverlayBackend:
    return InMemoryOverlayBackend()


@pytest.fixture
def overlay_client(overlay_backend: InMemoryOverlayBackend) -> OverlayStoreClient:
    return OverlayStoreClient(overlay_backend)


@pytest.fixture
def status_service(overlay_client: OverlayStoreClient) -> RestaurantStatusService:
    return RestaurantStatusService(overlay_client)


@pytest.fixture
def promo_service(overlay_client: OverlayStoreClient) -> PromoService:
    return PromoService(overlay_client)


@pytest.fixture
def rating_memo() -> RatingAggregateMemo:
    return RatingAggregateMemo()


@pytest.fixture
def rating_service(
    overlay_client: OverlayStoreClient, rating_memo: RatingAggregateMemo
) -> RatingService:
    return RatingService(overlay_client, memo=rating_memo)


@pytest.fixture
def reconciler(
    status_service: RestaurantStatusService,
    promo_service: PromoService,
    rating_service: RatingService,
) -> AttributeReconciler:
    return AttributeReconciler(
        status_service,
        promo_service,
        rating_service,
        uploads_base_url="https://uploads.test/admin",
        default_cover="assets/default-cover.jpg",
        default_logo="assets/default-logo.jpg",
    )


@pytest.fixture
def kv_store() -> InMemoryKVStore:
    return InMemoryKVStore()


@pytest.fixture
def image_fetcher() -> ScriptedImageFetcher:
    return ScriptedImageFetcher()


@pytest.fixture
def settle():
    """让订阅任务处理完已排队的快照。"""

    async def _settle(rounds: int = 20) -> None:
        for _ in range(rounds):
            await asyncio.sleep(0)

    return _settle


# ============================================
# 领域对象 Fixtures
# ============================================


@pytest.fixture
def sample_restaurants() -> list[Restaurant]:
    return [
        Restaurant.model_validate(
            {
                "id": 1,
                "name": "Chez Gaspard",
                "adresse": "12 Avenue de la Paix",
                "ville_id": 3,
                "cover": "resto/cover1.jpg",
                "logo": "resto/logo1.png",
                "altitude": "-4.2634",
                "longitude": "15.2429",
            }
        ),
        Restaurant.model_validate(
            {"id": 2, "name": "Le Mayombe", "ville_id": 3, "cover": None, "logo": ""}
        ),
        Restaurant.model_validate({"id": 3, "name": "Mami Wata", "ville_id": 5}),
    ]


@pytest.fixture
def sample_products() -> list[Product]:
    return [
        Product.model_validate(
            {"id": 10, "libelle": "Poulet DG", "price": "3500", "cover": "products/p10.jpg"}
        ),
        Product.model_validate({"id": 11, "name": "Saka-saka", "price": 2000}),
    ]


@pytest.fixture
def fake_catalog(
    sample_restaurants: list[Restaurant], sample_products: list[Product]
) -> FakeCatalog:
    return FakeCatalog(sample_restaurants, sample_products)


# ============================================
# HTTP Client Fixtures
# ============================================


@pytest.fixture
def app_with_fakes(
    overlay_backend: InMemoryOverlayBackend,
    kv_store: InMemoryKVStore,
    fake_catalog: FakeCatalog,
    image_fetcher: ScriptedImageFetcher,
) -> Generator[FastAPI, None, None]:
    """注入内存替身后的应用实例（测试结束后恢复依赖）。"""
    from main import app
    from src.core.application.dependencies import get_local_kv_client
    from src.modules.catalog.application.dependencies import get_catalog_source
    from src.modules.images.application.dependencies import get_image_fetcher
    from src.modules.overlay.application.dependencies import get_overlay_backend
    from src.modules.ratings.application.dependencies import get_rating_memo

    memo = RatingAggregateMemo()

    saved = dict(app.dependency_overrides)
    app.dependency_overrides[get_overlay_backend] = lambda: overlay_backend
    app.dependency_overrides[get_local_kv_client] = lambda: kv_store
    app.dependency_overrides[get_catalog_source] = lambda: fake_catalog
    app.dependency_overrides[get_image_fetcher] = lambda: image_fetcher
    app.dependency_overrides[get_rating_memo] = lambda: memo

    yield app

    app.dependency_overrides.clear()
    app.dependency_overrides.update(saved)


@pytest.fixture
async def async_client(app_with_fakes: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """异步 HTTP 客户端（用于 API 测试）。"""
    async with AsyncClient(
        transport=ASGITransport(app=app_with_fakes),
        base_url="http://test",
    ) as client:
        yield client


@pytest.fixture
def live_client(app_with_fakes: FastAPI) -> Generator[TestClient, None, None]:
    """同步客户端（WebSocket 测试）；HTTP 请求与 WebSocket 共用同一事件循环。"""
    with TestClient(app_with_fakes) as client:
        yield client
