"""Overlay domain entities.

Overlay 是与只读目录（catalog）并行的可变实时存储，
保存营业状态、图片覆盖、促销价与评分。
文档字段名与实时库中的 JSON 一致（camelCase），通过 alias 映射。
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(UTC)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an overlay timestamp (ISO string or epoch milliseconds)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if isinstance(value, int | float):
        return datetime.fromtimestamp(value / 1000, tz=UTC)
    if isinstance(value, str):
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    raise ValueError(f"Unsupported timestamp: {value!r}")


class ItemType(str, Enum):
    """Catalog item type."""

    PRODUCT = "product"
    RESTAURANT = "restaurant"


class OverlayDocument(BaseModel):
    """Base class for overlay documents."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class OverlayStatus(OverlayDocument):
    """餐厅营业状态 - restaurant_status/{id}。"""

    item_id: str = Field(..., alias="itemId")
    is_open: bool = Field(..., alias="isOpen")
    updated_at: datetime | None = Field(default=None, alias="updatedAt")

    @field_validator("updated_at", mode="before")
    @classmethod
    def _parse_updated_at(cls, value: Any) -> datetime | None:
        return parse_timestamp(value)


class OverlayImages(OverlayDocument):
    """图片覆盖（稀疏：缺省字段表示不覆盖）。"""

    item_id: str = Field(..., alias="itemId")
    cover_url: str | None = Field(default=None, alias="cover")
    logo_url: str | None = Field(default=None, alias="logo")


class PromoPrice(OverlayDocument):
    """商品促销价 - product_promos/{id}。

    不变量 0 < promo_price < base_price 在写入时校验（见 PromoService）。
    """

    item_id: str = Field(..., alias="itemId")
    promo_price: float = Field(..., alias="promoPrice")
    discount_percentage: float | None = Field(default=None, alias="discountPercentage")
    active: bool = Field(default=True)
    start_date: datetime | None = Field(default=None, alias="startDate")
    end_date: datetime | None = Field(default=None, alias="endDate")

    @field_validator("start_date", "end_date", mode="before")
    @classmethod
    def _parse_dates(cls, value: Any) -> datetime | None:
        return parse_timestamp(value)

    @classmethod
    def from_document(cls, item_id: str, data: dict[str, Any]) -> "PromoPrice":
        """Build from a raw document; the admin panel writes ``isActive``."""
        payload = dict(data)
        if "active" not in payload and "isActive" in payload:
            payload["active"] = payload["isActive"]
        payload["itemId"] = item_id
        return cls.model_validate(payload)

    def is_effective(self, now: datetime | None = None) -> bool:
        """Promo applies only when active and ``now`` is inside the window."""
        # 缺少时间窗口的文档视为无折扣
        if not self.active or self.start_date is None or self.end_date is None:
            return False
        now = now or _utc_now()
        return self.start_date <= now <= self.end_date
