"""Overlay admin routes: restaurant status, image overrides, product promos."""

from fastapi import APIRouter, Depends

from src.core.interfaces.http.response import ApiResponse
from src.modules.overlay.application.dependencies import (
    get_promo_service,
    get_status_service,
)
from src.modules.overlay.application.promo_service import PromoService
from src.modules.overlay.application.status_service import RestaurantStatusService
from src.modules.overlay.domain.entities import ItemType
from src.modules.overlay.interfaces.schemas import (
    ImagesResponse,
    PromoResponse,
    SetPromoRequest,
    StatusResponse,
    UpdateImagesRequest,
    UpdateStatusRequest,
)

router = APIRouter(tags=["overlay"])


@router.get(
    "/restaurants/{restaurant_id}/status",
    response_model=ApiResponse[StatusResponse],
    summary="获取营业状态",
    description="没有状态文档的餐厅视为营业中。",
)
async def get_restaurant_status(
    restaurant_id: str,
    service: RestaurantStatusService = Depends(get_status_service),
) -> ApiResponse[StatusResponse]:
    status = await service.get_status(restaurant_id)
    return ApiResponse.success(data=StatusResponse.from_status(status))


@router.put(
    "/restaurants/{restaurant_id}/status",
    response_model=ApiResponse[StatusResponse],
    summary="切换营业状态",
)
async def update_restaurant_status(
    restaurant_id: str,
    request: UpdateStatusRequest,
    service: RestaurantStatusService = Depends(get_status_service),
) -> ApiResponse[StatusResponse]:
    """Open or close a restaurant."""
    status = await service.set_status(restaurant_id, request.is_open)
    return ApiResponse.success(
        data=StatusResponse.from_status(status),
        message="Restaurant status updated",
    )


@router.put(
    "/restaurants/{restaurant_id}/images",
    response_model=ApiResponse[ImagesResponse],
    summary="设置餐厅图片覆盖",
)
async def update_restaurant_images(
    restaurant_id: str,
    request: UpdateImagesRequest,
    service: RestaurantStatusService = Depends(get_status_service),
) -> ApiResponse[ImagesResponse]:
    images = await service.set_images(
        restaurant_id,
        ItemType.RESTAURANT,
        cover_url=request.cover_url,
        logo_url=request.logo_url,
    )
    return ApiResponse.success(data=ImagesResponse.from_images(restaurant_id, images))


@router.put(
    "/products/{product_id}/images",
    response_model=ApiResponse[ImagesResponse],
    summary="设置商品图片覆盖",
)
async def update_product_images(
    product_id: str,
    request: UpdateImagesRequest,
    service: RestaurantStatusService = Depends(get_status_service),
) -> ApiResponse[ImagesResponse]:
    images = await service.set_images(
        product_id, ItemType.PRODUCT, cover_url=request.cover_url
    )
    return ApiResponse.success(data=ImagesResponse.from_images(product_id, images))


@router.put(
    "/products/{product_id}/promo",
    response_model=ApiResponse[PromoResponse],
    summary="设置促销价",
    description="促销价必须满足 0 < promo_price < base_price，且开始时间不晚于结束时间。",
)
async def set_product_promo(
    product_id: str,
    request: SetPromoRequest,
    service: PromoService = Depends(get_promo_service),
) -> ApiResponse[PromoResponse]:
    promo = await service.set_promo(
        product_id,
        promo_price=request.promo_price,
        base_price=request.base_price,
        start_date=request.start_date,
        end_date=request.end_date,
        discount_percentage=request.discount_percentage,
    )
    return ApiResponse.success(data=PromoResponse.from_promo(promo), message="Promo saved")


@router.post(
    "/products/{product_id}/promo/deactivate",
    response_model=ApiResponse[PromoResponse | None],
    summary="停用促销",
)
async def deactivate_product_promo(
    product_id: str,
    service: PromoService = Depends(get_promo_service),
) -> ApiResponse[PromoResponse | None]:
    promo = await service.deactivate_promo(product_id)
    return ApiResponse.success(
        data=PromoResponse.from_promo(promo) if promo else None,
        message="Promo deactivated" if promo else "No promo to deactivate",
    )


@router.delete(
    "/products/{product_id}/promo",
    response_model=ApiResponse[None],
    summary="删除促销",
)
async def delete_product_promo(
    product_id: str,
    service: PromoService = Depends(get_promo_service),
) -> ApiResponse[None]:
    await service.delete_promo(product_id)
    return ApiResponse.success(message="Promo deleted")
