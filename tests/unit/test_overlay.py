"""Tests for the overlay store client, status service and promo service."""

from datetime import UTC, datetime, timedelta
from typing import get_type_hints
from unittest.mock import AsyncMock, MagicMock

import pytest

from src.core.domain.exceptions import OverlayWriteError, ValidationError
from src.modules.overlay.application.client import OverlayStoreClient
from src.modules.overlay.domain.entities import ItemType, PromoPrice
from src.modules.overlay.domain.store import OverlayBackend, OverlayPaths
from src.modules.overlay.infrastructure.redis_backend import (
    RedisOverlayBackend,
    RedisOverlayChannel,
)

pytestmark = pytest.mark.anyio

NOW = datetime(2026, 3, 15, 12, 0, tzinfo=UTC)


# ============================================
# OverlayStoreClient
# ============================================


def test_index_annotations_resolve_to_builtin_set() -> None:
    # 两个模块都定义了名为 set 的方法，注解仍须解析为内置 set
    assert get_type_hints(OverlayBackend.members)["return"] == set[str]
    assert get_type_hints(OverlayStoreClient.index_members)["return"] == set[str]


async def test_batch_get_isolates_failures(overlay_client, overlay_backend) -> None:
    overlay_backend.documents["restaurant_status/1"] = {"isOpen": False}
    overlay_backend.documents["restaurant_status/3"] = {"isOpen": True}
    overlay_backend.fail_reads.add("restaurant_status/2")

    result = await overlay_client.batch_get(
        [f"restaurant_status/{i}" for i in (1, 2, 3, 4)], default={}
    )

    assert result == {
        "restaurant_status/1": {"isOpen": False},
        "restaurant_status/2": {},
        "restaurant_status/3": {"isOpen": True},
        "restaurant_status/4": {},
    }


async def test_batch_get_deduplicates_paths(overlay_client, overlay_backend) -> None:
    await overlay_client.batch_get(["a/1", "a/1", "a/2"])
    assert overlay_backend.get_paths == ["a/1", "a/2"]


async def test_get_propagates_read_errors(overlay_client, overlay_backend) -> None:
    overlay_backend.fail_reads.add("a/")
    with pytest.raises(ConnectionError):
        await overlay_client.get("a/1")


async def test_write_failure_raises_overlay_write_error(
    overlay_client, overlay_backend
) -> None:
    overlay_backend.fail_writes.add("a/")
    with pytest.raises(OverlayWriteError) as exc_info:
        await overlay_client.set("a/1", {"x": 1})
    assert exc_info.value.path == "a/1"
    assert exc_info.value.retryable is True

    with pytest.raises(OverlayWriteError):
        await overlay_client.delete("a/1")
    with pytest.raises(OverlayWriteError):
        await overlay_client.add_to_index("a/index", "m")


async def test_subscribe_delivers_full_snapshots(
    overlay_client, overlay_backend, settle
) -> None:
    received = []
    subscription = await overlay_client.subscribe("doc/1", received.append)

    await overlay_client.set("doc/1", {"v": 1})
    await overlay_client.set("doc/1", {"v": 2, "w": True})
    await overlay_client.delete("doc/1")
    await settle()

    assert received == [{"v": 1}, {"v": 2, "w": True}, None]
    await subscription.close()


async def test_subscribe_isolates_callback_errors(
    overlay_client, overlay_backend, settle
) -> None:
    received = []

    async def on_change(snapshot):
        if snapshot == {"boom": True}:
            raise RuntimeError("handler failed")
        received.append(snapshot)

    async with await overlay_client.subscribe("doc/1", on_change):
        await overlay_client.set("doc/1", {"boom": True})
        await overlay_client.set("doc/1", {"ok": True})
        await settle()

    assert received == [{"ok": True}]
    assert overlay_backend.open_channel_count("doc/1") == 0


async def test_subscription_close_is_idempotent(overlay_client, overlay_backend) -> None:
    subscription = await overlay_client.subscribe("doc/1", lambda _: None)
    assert overlay_backend.open_channel_count("doc/1") == 1

    await subscription.close()
    await subscription.close()

    assert subscription.closed
    assert overlay_backend.open_channel_count("doc/1") == 0


# ============================================
# RestaurantStatusService
# ============================================


async def test_missing_status_defaults_to_open(status_service) -> None:
    status = await status_service.get_status("1")
    assert status.is_open is True


async def test_status_read_error_defaults_to_open(status_service, overlay_backend) -> None:
    overlay_backend.fail_reads.add("restaurant_status/")
    status = await status_service.get_status("1")
    assert status.is_open is True


async def test_set_status_preserves_image_overrides(
    status_service, overlay_backend
) -> None:
    overlay_backend.documents["restaurant_status/1"] = {
        "isOpen": True,
        "cover": "https://cdn.test/c.jpg",
    }

    status = await status_service.set_status("1", False)

    assert status.is_open is False
    assert status.updated_at is not None
    document = overlay_backend.documents["restaurant_status/1"]
    assert document["isOpen"] is False
    assert document["cover"] == "https://cdn.test/c.jpg"


async def test_set_status_write_failure(status_service, overlay_backend) -> None:
    overlay_backend.fail_writes.add("restaurant_status/")
    with pytest.raises(OverlayWriteError):
        await status_service.set_status("1", False)


async def test_set_images_empty_string_removes_override(
    status_service, overlay_backend
) -> None:
    await status_service.set_images(
        "1", ItemType.RESTAURANT, cover_url="gs://b/c.jpg", logo_url="gs://b/l.png"
    )
    images = await status_service.set_images("1", ItemType.RESTAURANT, logo_url="")

    assert images is not None
    assert images.cover_url == "gs://b/c.jpg"
    assert images.logo_url is None
    assert "logo" not in overlay_backend.documents["restaurant_status/1"]


async def test_product_images_use_their_own_path(status_service, overlay_backend) -> None:
    await status_service.set_images("10", ItemType.PRODUCT, cover_url="gs://b/p.jpg")
    assert overlay_backend.documents[OverlayPaths.product_images("10")] == {
        "cover": "gs://b/p.jpg"
    }


async def test_batch_statuses(status_service, overlay_backend) -> None:
    overlay_backend.documents["restaurant_status/1"] = {"isOpen": False}
    overlay_backend.documents["restaurant_status/2"] = {"cover": "gs://b/c.jpg"}
    overlay_backend.fail_reads.add("restaurant_status/3")

    statuses = await status_service.get_batch_statuses(["1", "2", "3"])

    assert statuses["1"] is not None and statuses["1"].is_open is False
    # 只有图片覆盖、没有 isOpen 的文档不算状态记录
    assert statuses["2"] is None
    assert statuses["3"] is None


async def test_subscribe_status_defaults_on_delete(
    status_service, overlay_client, settle
) -> None:
    received = []
    subscription = await status_service.subscribe_status("1", received.append)

    await status_service.set_status("1", False)
    await overlay_client.delete("restaurant_status/1")
    await settle()
    await subscription.close()

    assert [s.is_open for s in received] == [False, True]


# ============================================
# PromoService
# ============================================


async def test_set_promo_computes_discount(promo_service, overlay_backend) -> None:
    promo = await promo_service.set_promo(
        "10",
        promo_price=2500,
        base_price=3500,
        start_date=NOW,
        end_date=NOW + timedelta(days=7),
    )

    assert promo.discount_percentage == 28.6
    document = overlay_backend.documents["product_promos/10"]
    assert document["promoPrice"] == 2500
    assert document["active"] is True
    assert "itemId" not in document


@pytest.mark.parametrize(("promo_price", "base_price"), [(3500, 3500), (4000, 3500), (0, 3500)])
async def test_set_promo_rejects_price_outside_range(
    promo_service, overlay_backend, promo_price, base_price
) -> None:
    with pytest.raises(ValidationError):
        await promo_service.set_promo(
            "10", promo_price, base_price, NOW, NOW + timedelta(days=1)
        )
    assert overlay_backend.calls["set"] == 0


async def test_set_promo_rejects_inverted_window(promo_service) -> None:
    with pytest.raises(ValidationError):
        await promo_service.set_promo("10", 2500, 3500, NOW, NOW - timedelta(days=1))


async def test_deactivate_and_delete_promo(promo_service, overlay_backend) -> None:
    await promo_service.set_promo("10", 2500, 3500, NOW, NOW + timedelta(days=1))

    deactivated = await promo_service.deactivate_promo("10")
    assert deactivated is not None and deactivated.active is False
    assert overlay_backend.documents["product_promos/10"]["active"] is False

    await promo_service.delete_promo("10")
    assert await promo_service.get_promo("10") is None
    assert await promo_service.deactivate_promo("10") is None


async def test_deactivate_promo_read_failure_is_a_write_error(
    promo_service, overlay_backend
) -> None:
    await promo_service.set_promo("10", 2500, 3500, NOW, NOW + timedelta(days=1))
    overlay_backend.fail_reads.add("product_promos/")

    with pytest.raises(OverlayWriteError):
        await promo_service.deactivate_promo("10")
    assert overlay_backend.documents["product_promos/10"]["active"] is True


async def test_promo_document_accepts_is_active(promo_service, overlay_backend) -> None:
    overlay_backend.documents["product_promos/10"] = {
        "promoPrice": 1500,
        "isActive": False,
        "startDate": "2026-03-01T00:00:00Z",
        "endDate": "2026-03-31T00:00:00Z",
    }
    promo = await promo_service.get_promo("10")
    assert promo is not None
    assert promo.active is False


def test_promo_window() -> None:
    promo = PromoPrice(
        item_id="10",
        promo_price=1500,
        start_date=NOW - timedelta(days=1),
        end_date=NOW + timedelta(days=1),
    )
    assert promo.is_effective(NOW)
    assert not promo.is_effective(NOW + timedelta(days=2))
    assert not promo.model_copy(update={"active": False}).is_effective(NOW)
    assert not PromoPrice(item_id="10", promo_price=1500).is_effective(NOW)


# ============================================
# RedisOverlayBackend
# ============================================


def _mock_redis() -> MagicMock:
    redis = MagicMock()
    redis.get_json = AsyncMock(return_value={"isOpen": True})
    redis.set = AsyncMock()
    redis.delete = AsyncMock(return_value=1)
    redis.publish = AsyncMock(return_value=1)
    redis.sadd = AsyncMock(return_value=1)
    redis.smembers = AsyncMock(return_value={"r1"})
    return redis


async def test_redis_backend_publishes_snapshot_on_write() -> None:
    redis = _mock_redis()
    backend = RedisOverlayBackend(redis)

    await backend.set("restaurant_status/1", {"isOpen": False})
    await backend.delete("restaurant_status/1")

    redis.set.assert_awaited_once_with(
        "overlay:doc:restaurant_status/1", '{"isOpen": false}'
    )
    assert [c.args for c in redis.publish.await_args_list] == [
        ("overlay:changes:restaurant_status/1", '{"isOpen": false}'),
        ("overlay:changes:restaurant_status/1", "null"),
    ]


async def test_redis_backend_reads_documents_and_indexes() -> None:
    redis = _mock_redis()
    backend = RedisOverlayBackend(redis)

    assert await backend.get("restaurant_status/1") == {"isOpen": True}
    redis.get_json.assert_awaited_once_with("overlay:doc:restaurant_status/1")

    await backend.add_member("ratings_by_item/product/10", "r1")
    redis.sadd.assert_awaited_once_with("overlay:index:ratings_by_item/product/10", "r1")
    assert await backend.members("ratings_by_item/product/10") == {"r1"}


async def test_redis_channel_skips_malformed_messages() -> None:
    messages = [
        {"type": "subscribe", "data": 1},
        {"type": "message", "data": '{"isOpen": false}'},
        {"type": "message", "data": "{broken"},
        {"type": "message", "data": "null"},
    ]

    async def listen():
        for message in messages:
            yield message

    pubsub = MagicMock()
    pubsub.listen = listen
    pubsub.unsubscribe = AsyncMock()
    pubsub.aclose = AsyncMock()

    channel = RedisOverlayChannel("restaurant_status/1", pubsub)
    received = [snapshot async for snapshot in channel]
    assert received == [{"isOpen": False}, None]

    await channel.close()
    await channel.close()
    pubsub.unsubscribe.assert_awaited_once_with("overlay:changes:restaurant_status/1")
    pubsub.aclose.assert_awaited_once()
