"""Catalog API schemas."""

from pydantic import BaseModel, Field

from src.modules.catalog.domain.entities import EnrichedRecord, Restaurant
from src.modules.overlay.domain.entities import ItemType


class EnrichedRecordResponse(BaseModel):
    """Catalog record merged with overlay attributes."""

    id: str = Field(..., description="目录 ID")
    type: ItemType = Field(..., description="product / restaurant")
    name: str = Field(..., description="名称")
    address: str | None = Field(None, description="地址（餐厅）")
    description: str | None = Field(None, description="描述（商品）")
    cover_url: str = Field(..., description="封面图")
    logo_url: str | None = Field(None, description="Logo（餐厅）")
    is_open: bool = Field(..., description="是否营业")
    average_rating: float = Field(..., description="平均评分")
    total_ratings: int = Field(..., description="评分数")
    base_price: float | None = Field(None, description="基础价（商品）")
    effective_price: float | None = Field(None, description="实际价格（商品）")
    has_promo: bool = Field(False, description="是否有生效中的促销")
    distance_km: float | None = Field(None, description="距用户距离（公里）")
    delivery_range: str | None = Field(None, description="预计配送时间")

    @classmethod
    def from_record(
        cls,
        record: EnrichedRecord,
        distance_km: float | None = None,
        delivery_range: str | None = None,
    ) -> "EnrichedRecordResponse":
        source = record.record
        return cls(
            id=record.id,
            type=record.item_type,
            name=record.name,
            address=source.address if isinstance(source, Restaurant) else None,
            description=getattr(source, "description", None),
            cover_url=record.cover_url,
            logo_url=record.logo_url,
            is_open=record.is_open,
            average_rating=record.average_rating,
            total_ratings=record.total_ratings,
            base_price=record.base_price,
            effective_price=record.effective_price,
            has_promo=record.has_promo,
            distance_km=round(distance_km, 2) if distance_km is not None else None,
            delivery_range=delivery_range,
        )


class EnrichedListResponse(BaseModel):
    """Enriched catalog list."""

    items: list[EnrichedRecordResponse] = Field(..., description="记录列表")
    total: int = Field(..., description="总数")
