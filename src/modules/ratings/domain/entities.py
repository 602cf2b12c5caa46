"""Rating domain entities."""

import hashlib
import math
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.modules.overlay.domain.entities import ItemType, parse_timestamp

MIN_RATING = 1
MAX_RATING = 5


def _utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(UTC)


def round_half_up(value: float) -> float:
    """Round to one decimal with halves going up (4.25 -> 4.3)."""
    return math.floor(value * 10 + 0.5) / 10


def rating_id(user_id: str, item_id: str, item_type: ItemType) -> str:
    """Deterministic rating id: one rating per (user, item, type)."""
    raw = f"{user_id}:{item_id}:{ItemType(item_type).value}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:32]


class Rating(BaseModel):
    """单条评分 - ratings/{rating_id}。"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(..., description="rating_id(user, item, type)")
    item_id: str = Field(..., alias="itemId")
    type: ItemType
    rating: int = Field(..., ge=MIN_RATING, le=MAX_RATING)
    user_id: str = Field(..., alias="userId")
    comment: str = Field(default="")
    created_at: datetime = Field(default_factory=_utc_now, alias="createdAt")
    updated_at: datetime = Field(default_factory=_utc_now, alias="updatedAt")

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def _parse_dates(cls, value: Any) -> datetime:
        return parse_timestamp(value) or _utc_now()

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude={"id"})


class RatingAggregate(BaseModel):
    """评分聚合 - {type}s_metadata/{item_id}。

    派生数据：可随时丢弃并由全部 Rating 重新计算。
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    item_id: str = Field(..., alias="itemId")
    type: ItemType | None = None
    average_rating: float = Field(default=0.0, alias="averageRating")
    total_ratings: int = Field(default=0, alias="totalRatings")
    last_updated: datetime | None = Field(default=None, alias="lastUpdated")

    @field_validator("last_updated", mode="before")
    @classmethod
    def _parse_last_updated(cls, value: Any) -> datetime | None:
        return parse_timestamp(value)

    @classmethod
    def empty(cls, item_id: str, item_type: ItemType | None = None) -> "RatingAggregate":
        return cls(item_id=item_id, type=item_type)

    @classmethod
    def from_ratings(
        cls, item_id: str, item_type: ItemType, ratings: list[Rating]
    ) -> "RatingAggregate":
        """average = round(mean, 1), total = count; empty -> 0/0."""
        if not ratings:
            return cls(item_id=item_id, type=item_type, last_updated=_utc_now())
        total = len(ratings)
        average = round_half_up(sum(r.rating for r in ratings) / total)
        return cls(
            item_id=item_id,
            type=item_type,
            average_rating=average,
            total_ratings=total,
            last_updated=_utc_now(),
        )

    def summary(self) -> dict[str, float | int]:
        return {
            "averageRating": self.average_rating,
            "totalRatings": self.total_ratings,
        }

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
