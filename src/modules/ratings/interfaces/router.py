"""Ratings API routes."""

from fastapi import APIRouter, Depends, status

from src.core.interfaces.http.response import ApiResponse
from src.modules.overlay.domain.entities import ItemType
from src.modules.ratings.application.dependencies import (
    get_guest_identity,
    get_rating_service,
)
from src.modules.ratings.application.guest_identity import GuestIdentityProvider
from src.modules.ratings.application.services import RatingService
from src.modules.ratings.interfaces.schemas import (
    RatingListResponse,
    RatingResponse,
    RatingSummaryResponse,
    SubmitRatingRequest,
    SubmitRatingResponse,
)

router = APIRouter(prefix="/ratings", tags=["ratings"])


@router.post(
    "",
    response_model=ApiResponse[SubmitRatingResponse],
    status_code=status.HTTP_201_CREATED,
    summary="提交评分",
    description=(
        "同一用户对同一 item 重复提交会覆盖之前的评分。返回重新计算后的聚合，"
        "以及评分归属的 user_id（匿名且未携带 guest_id 时为新生成的访客 ID）。"
    ),
)
async def submit_rating(
    request: SubmitRatingRequest,
    service: RatingService = Depends(get_rating_service),
    identity: GuestIdentityProvider = Depends(get_guest_identity),
) -> ApiResponse[SubmitRatingResponse]:
    """Submit a rating."""
    user_id = await identity.resolve_user_id(request.user_id, request.guest_id)
    aggregate = await service.submit_rating(
        item_id=request.item_id,
        item_type=request.item_type,
        rating=request.rating,
        user_id=user_id,
        comment=request.comment,
    )
    return ApiResponse.success(
        data=SubmitRatingResponse.from_submission(aggregate, user_id),
        message="Rating submitted",
        code=status.HTTP_201_CREATED,
    )


@router.get(
    "/{item_type}/{item_id}",
    response_model=ApiResponse[RatingSummaryResponse],
    summary="获取平均评分",
)
async def get_average_rating(
    item_type: ItemType,
    item_id: str,
    service: RatingService = Depends(get_rating_service),
) -> ApiResponse[RatingSummaryResponse]:
    aggregate = await service.get_average_rating(item_id, item_type)
    return ApiResponse.success(data=RatingSummaryResponse.from_aggregate(aggregate))


@router.get(
    "/{item_type}/{item_id}/list",
    response_model=ApiResponse[RatingListResponse],
    summary="评分列表",
)
async def list_ratings(
    item_type: ItemType,
    item_id: str,
    service: RatingService = Depends(get_rating_service),
) -> ApiResponse[RatingListResponse]:
    ratings = await service.get_ratings(item_id, item_type)
    return ApiResponse.success(
        data=RatingListResponse(
            ratings=[RatingResponse.from_rating(r) for r in ratings],
            total=len(ratings),
        )
    )
