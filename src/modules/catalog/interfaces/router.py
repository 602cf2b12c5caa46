"""Catalog API routes (catalog records enriched with overlay attributes)."""

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from loguru import logger

from src.core.domain.exceptions import CatalogUnavailableError
from src.core.interfaces.http.response import ApiResponse
from src.modules.catalog.application.dependencies import (
    get_catalog_source,
    get_live_update_fanout,
    get_reconciler,
)
from src.modules.catalog.application.distance import (
    distance_to_record,
    estimated_delivery_range_minutes,
    format_delivery_range,
)
from src.modules.catalog.application.live_updates import LiveUpdateFanout
from src.modules.catalog.application.reconciler import (
    AttributeReconciler,
    sort_by_rating,
)
from src.modules.catalog.domain.catalog import CatalogSource
from src.modules.catalog.domain.entities import EnrichedRecord, Product, Restaurant
from src.modules.catalog.interfaces.schemas import (
    EnrichedListResponse,
    EnrichedRecordResponse,
)
from src.modules.overlay.domain.entities import ItemType

router = APIRouter(tags=["catalog"])


@router.get(
    "/restaurants",
    response_model=ApiResponse[EnrichedListResponse],
    summary="餐厅列表",
    description="目录餐厅 + 营业状态/图片/评分，按评分降序排列。",
)
async def list_restaurants(
    city_id: str | None = Query(None, description="城市 ID"),
    lat: float | None = Query(None, ge=-90, le=90, description="用户纬度"),
    lon: float | None = Query(None, ge=-180, le=180, description="用户经度"),
    catalog: CatalogSource = Depends(get_catalog_source),
    reconciler: AttributeReconciler = Depends(get_reconciler),
) -> ApiResponse[EnrichedListResponse]:
    """List restaurants sorted by rating."""
    restaurants = await catalog.list_restaurants(city_id=city_id)
    enriched = sort_by_rating(await reconciler.enrich(restaurants, ItemType.RESTAURANT))

    items = []
    for record in enriched:
        distance = (
            distance_to_record(lat, lon, record.record)
            if isinstance(record.record, Restaurant)
            else None
        )
        items.append(
            EnrichedRecordResponse.from_record(
                record,
                distance_km=distance,
                delivery_range=format_delivery_range(
                    estimated_delivery_range_minutes(distance)
                ),
            )
        )
    return ApiResponse.success(data=EnrichedListResponse(items=items, total=len(items)))


@router.get(
    "/products",
    response_model=ApiResponse[EnrichedListResponse],
    summary="商品列表",
    description="目录商品 + 图片/评分/促销价，保持目录顺序。",
)
async def list_products(
    category_id: str | None = Query(None, description="分类 ID"),
    restaurant_id: str | None = Query(None, description="餐厅 ID"),
    catalog: CatalogSource = Depends(get_catalog_source),
    reconciler: AttributeReconciler = Depends(get_reconciler),
) -> ApiResponse[EnrichedListResponse]:
    """List products."""
    if restaurant_id:
        products = await catalog.list_products_by_restaurant(restaurant_id)
    else:
        products = await catalog.list_products(category_id=category_id)
    enriched = await reconciler.enrich(products, ItemType.PRODUCT)
    items = [EnrichedRecordResponse.from_record(r) for r in enriched]
    return ApiResponse.success(data=EnrichedListResponse(items=items, total=len(items)))


# ============================================
# 实时更新（WebSocket）
# ============================================


def _parse_ids(ids: str) -> set[str]:
    return {i.strip() for i in ids.split(",") if i.strip()}


def _record_payload(record: EnrichedRecord) -> dict:
    return EnrichedRecordResponse.from_record(record).model_dump(mode="json")


async def _stream_live(
    websocket: WebSocket,
    records: list[EnrichedRecord],
    item_type: ItemType,
    fanout: LiveUpdateFanout,
) -> None:
    """推送初始快照，之后每次 overlay 变更推送被修补的记录，直到客户端断开。

    消息格式：
        {"type": "snapshot", "items": [record, ...]}
        {"type": "patch", "id": str, "fields": [变更字段], "item": record}
    """

    async def _on_patch(record: EnrichedRecord, fields: list[str]) -> None:
        await websocket.send_json(
            {
                "type": "patch",
                "id": record.id,
                "fields": fields,
                "item": _record_payload(record),
            }
        )

    # 先订阅再推送快照，快照之后的变更不会丢失
    handle = await fanout.watch(
        [r.id for r in records], item_type, records, _on_patch
    )
    async with handle:
        await websocket.send_json(
            {"type": "snapshot", "items": [_record_payload(r) for r in records]}
        )
        try:
            # 客户端消息仅用于保活
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            logger.debug(f"Live {item_type.value} watcher disconnected")


async def _load_or_close(
    websocket: WebSocket, load
) -> list[Restaurant | Product] | None:
    try:
        return await load()
    except CatalogUnavailableError as e:
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR, reason=e.message)
        return None


@router.websocket("/restaurants/live")
async def watch_restaurants(
    websocket: WebSocket,
    ids: str = Query(..., description="逗号分隔的餐厅 ID"),
    catalog: CatalogSource = Depends(get_catalog_source),
    fanout: LiveUpdateFanout = Depends(get_live_update_fanout),
) -> None:
    """Stream status and image changes for the given restaurants."""
    await websocket.accept()
    restaurants = await _load_or_close(websocket, catalog.list_restaurants)
    if restaurants is None:
        return
    wanted = _parse_ids(ids)
    records = sort_by_rating(
        await fanout.reconciler.enrich(
            [r for r in restaurants if r.id in wanted], ItemType.RESTAURANT
        )
    )
    await _stream_live(websocket, records, ItemType.RESTAURANT, fanout)


@router.websocket("/products/live")
async def watch_products(
    websocket: WebSocket,
    ids: str = Query(..., description="逗号分隔的商品 ID"),
    catalog: CatalogSource = Depends(get_catalog_source),
    fanout: LiveUpdateFanout = Depends(get_live_update_fanout),
) -> None:
    """Stream promo and image changes for the given products."""
    await websocket.accept()
    products = await _load_or_close(websocket, catalog.list_products)
    if products is None:
        return
    wanted = _parse_ids(ids)
    records = await fanout.reconciler.enrich(
        [p for p in products if p.id in wanted], ItemType.PRODUCT
    )
    await _stream_live(websocket, records, ItemType.PRODUCT, fanout)
