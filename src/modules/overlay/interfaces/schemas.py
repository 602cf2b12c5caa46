"""Overlay admin API schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from src.modules.overlay.domain.entities import OverlayImages, OverlayStatus, PromoPrice


class UpdateStatusRequest(BaseModel):
    """Toggle restaurant open/closed."""

    is_open: bool = Field(..., description="是否营业")


class UpdateImagesRequest(BaseModel):
    """Image overrides; an empty string removes the override."""

    cover_url: str | None = Field(None, description="封面图 URL（空字符串表示移除）")
    logo_url: str | None = Field(None, description="Logo URL（空字符串表示移除）")


class SetPromoRequest(BaseModel):
    """Create or replace a product promo."""

    promo_price: float = Field(..., gt=0, description="促销价")
    base_price: float = Field(..., gt=0, description="目录基础价")
    start_date: datetime = Field(..., description="开始时间")
    end_date: datetime = Field(..., description="结束时间")
    discount_percentage: float | None = Field(
        None, ge=0, le=100, description="折扣百分比（不填则自动计算）"
    )

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "promo_price": 2500,
                "base_price": 3500,
                "start_date": "2026-01-01T00:00:00Z",
                "end_date": "2026-01-31T23:59:59Z",
            }
        }
    )


class StatusResponse(BaseModel):
    restaurant_id: str = Field(..., description="餐厅 ID")
    is_open: bool = Field(..., description="是否营业")
    updated_at: datetime | None = Field(None, description="更新时间")

    @classmethod
    def from_status(cls, status: OverlayStatus) -> "StatusResponse":
        return cls(
            restaurant_id=status.item_id,
            is_open=status.is_open,
            updated_at=status.updated_at,
        )


class ImagesResponse(BaseModel):
    item_id: str = Field(..., description="ID")
    cover_url: str | None = Field(None, description="封面图覆盖")
    logo_url: str | None = Field(None, description="Logo 覆盖")

    @classmethod
    def from_images(cls, item_id: str, images: OverlayImages | None) -> "ImagesResponse":
        if images is None:
            return cls(item_id=item_id)
        return cls(item_id=item_id, cover_url=images.cover_url, logo_url=images.logo_url)


class PromoResponse(BaseModel):
    product_id: str = Field(..., description="商品 ID")
    promo_price: float = Field(..., description="促销价")
    discount_percentage: float | None = Field(None, description="折扣百分比")
    active: bool = Field(..., description="是否启用")
    start_date: datetime | None = Field(None, description="开始时间")
    end_date: datetime | None = Field(None, description="结束时间")

    @classmethod
    def from_promo(cls, promo: PromoPrice) -> "PromoResponse":
        return cls(
            product_id=promo.item_id,
            promo_price=promo.promo_price,
            discount_percentage=promo.discount_percentage,
            active=promo.active,
            start_date=promo.start_date,
            end_date=promo.end_date,
        )
