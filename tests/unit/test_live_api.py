"""WebSocket live update endpoint tests (sync TestClient, shared event loop)."""

from datetime import UTC, datetime, timedelta

import pytest
from fastapi import WebSocketDisconnect

from src.core.domain.exceptions import CatalogUnavailableError

API = "/api/v1"


def test_restaurant_stream_sends_snapshot_then_patches(
    live_client, overlay_backend
) -> None:
    with live_client.websocket_connect(f"{API}/restaurants/live?ids=1,2") as ws:
        snapshot = ws.receive_json()
        assert snapshot["type"] == "snapshot"
        assert sorted(item["id"] for item in snapshot["items"]) == ["1", "2"]
        assert overlay_backend.open_channel_count() == 2

        response = live_client.put(
            f"{API}/restaurants/2/status", json={"is_open": False}
        )
        assert response.status_code == 200

        patch = ws.receive_json()
        assert patch["type"] == "patch"
        assert patch["id"] == "2"
        assert patch["fields"] == ["is_open"]
        assert patch["item"]["is_open"] is False

    assert overlay_backend.open_channel_count() == 0


def test_product_stream_pushes_promo_price(live_client) -> None:
    now = datetime.now(UTC)
    with live_client.websocket_connect(f"{API}/products/live?ids=10") as ws:
        snapshot = ws.receive_json()
        assert [item["id"] for item in snapshot["items"]] == ["10"]
        assert snapshot["items"][0]["effective_price"] == 3500

        live_client.put(
            f"{API}/products/10/promo",
            json={
                "promo_price": 2500,
                "base_price": 3500,
                "start_date": (now - timedelta(days=1)).isoformat(),
                "end_date": (now + timedelta(days=1)).isoformat(),
            },
        )

        patch = ws.receive_json()
        assert patch["id"] == "10"
        assert patch["fields"] == ["promo", "effective_price"]
        assert patch["item"]["effective_price"] == 2500
        assert patch["item"]["has_promo"] is True


def test_unknown_ids_yield_empty_snapshot(live_client, overlay_backend) -> None:
    with live_client.websocket_connect(f"{API}/restaurants/live?ids=99") as ws:
        assert ws.receive_json() == {"type": "snapshot", "items": []}
        assert overlay_backend.open_channel_count() == 0


def test_catalog_unavailable_closes_stream(live_client, fake_catalog) -> None:
    fake_catalog.error = CatalogUnavailableError("catalog down")

    with live_client.websocket_connect(f"{API}/restaurants/live?ids=1") as ws:
        with pytest.raises(WebSocketDisconnect) as exc_info:
            ws.receive_json()

    assert exc_info.value.code == 1011
