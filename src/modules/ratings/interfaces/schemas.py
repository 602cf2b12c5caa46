"""Ratings API schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from src.modules.overlay.domain.entities import ItemType
from src.modules.ratings.application.guest_identity import GUEST_ID_PATTERN
from src.modules.ratings.domain.entities import MAX_RATING, MIN_RATING, Rating, RatingAggregate


class SubmitRatingRequest(BaseModel):
    """Submit (or overwrite) a rating."""

    item_id: str = Field(..., min_length=1, description="商品或餐厅 ID")
    item_type: ItemType = Field(..., description="product / restaurant")
    rating: int = Field(..., ge=MIN_RATING, le=MAX_RATING, description="评分 1-5")
    comment: str = Field(default="", max_length=1000, description="评论")
    user_id: str | None = Field(
        default=None, description="已登录用户 ID"
    )
    guest_id: str | None = Field(
        default=None,
        pattern=GUEST_ID_PATTERN,
        description="匿名访客 ID（客户端保存；不填则生成新的并在响应中返回）",
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "item_id": "42",
                "item_type": "restaurant",
                "rating": 5,
                "comment": "Très bon",
                "guest_id": "guest_1767225600000_k3x9q2m7a",
            }
        }
    )


class RatingSummaryResponse(BaseModel):
    item_id: str = Field(..., description="ID")
    type: ItemType | None = Field(None, description="类型")
    average_rating: float = Field(..., description="平均分（一位小数）")
    total_ratings: int = Field(..., description="评分数")

    @classmethod
    def from_aggregate(cls, aggregate: RatingAggregate) -> "RatingSummaryResponse":
        return cls(
            item_id=aggregate.item_id,
            type=aggregate.type,
            average_rating=aggregate.average_rating,
            total_ratings=aggregate.total_ratings,
        )


class SubmitRatingResponse(RatingSummaryResponse):
    user_id: str = Field(
        ..., description="评分归属的用户 ID（匿名时为访客 ID，客户端应保存）"
    )

    @classmethod
    def from_submission(
        cls, aggregate: RatingAggregate, user_id: str
    ) -> "SubmitRatingResponse":
        return cls(
            item_id=aggregate.item_id,
            type=aggregate.type,
            average_rating=aggregate.average_rating,
            total_ratings=aggregate.total_ratings,
            user_id=user_id,
        )


class RatingResponse(BaseModel):
    id: str = Field(..., description="评分 ID")
    rating: int = Field(..., description="评分")
    user_id: str = Field(..., description="用户 ID")
    comment: str = Field(..., description="评论")
    created_at: datetime = Field(..., description="创建时间")
    updated_at: datetime = Field(..., description="更新时间")

    @classmethod
    def from_rating(cls, rating: Rating) -> "RatingResponse":
        return cls(
            id=rating.id,
            rating=rating.rating,
            user_id=rating.user_id,
            comment=rating.comment,
            created_at=rating.created_at,
            updated_at=rating.updated_at,
        )


class RatingListResponse(BaseModel):
    ratings: list[RatingResponse] = Field(..., description="评分列表（最新在前）")
    total: int = Field(..., description="总数")
