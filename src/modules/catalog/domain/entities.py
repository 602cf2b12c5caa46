"""Catalog domain entities.

CatalogRecord 来自外部 REST 目录，会话期间只读、不可变。
EnrichedRecord 是每个界面的视图模型：目录数据 ⊕ overlay 属性，
从不持久化，由 enrich 重建、由实时更新原地修补。
"""

import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from src.modules.overlay.domain.entities import ItemType, PromoPrice

_PRICE_CLEANUP = re.compile(r"[^\d.\-]")


def _coerce_id(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def _coerce_float(value: Any) -> float | None:
    """Lenient numeric parsing for catalog fields (``"2 500 FCFA"`` -> 2500.0)."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return float(value)
    if isinstance(value, str):
        cleaned = _PRICE_CLEANUP.sub("", value)
        try:
            return float(cleaned)
        except ValueError:
            return None
    return None


class CatalogRecord(BaseModel):
    """Base class for read-only catalog records."""

    model_config = ConfigDict(frozen=True, extra="allow", populate_by_name=True)

    item_type: ItemType  # set by subclasses
    id: str
    name: str = ""
    cover_path: str | None = Field(default=None, alias="cover")

    @field_validator("id", mode="before")
    @classmethod
    def _id_to_str(cls, value: Any) -> str:
        coerced = _coerce_id(value)
        if coerced is None:
            raise ValueError("catalog record requires an id")
        return coerced

    @field_validator("cover_path", mode="before")
    @classmethod
    def _blank_path_is_none(cls, value: Any) -> str | None:
        if isinstance(value, str) and value.strip():
            return value.strip()
        return None


class Restaurant(CatalogRecord):
    """餐厅目录记录（/resto）。

    注意：目录中的 ``altitude`` 字段实际保存的是纬度。
    """

    item_type: ItemType = ItemType.RESTAURANT
    address: str | None = Field(default=None, alias="adresse")
    phone: str | None = None
    website: str | None = None
    city_id: str | None = Field(default=None, alias="ville_id")
    logo_path: str | None = Field(default=None, alias="logo")
    latitude: float | None = Field(default=None, alias="altitude")
    longitude: float | None = None

    @field_validator("city_id", "phone", mode="before")
    @classmethod
    def _to_str(cls, value: Any) -> str | None:
        return _coerce_id(value)

    @field_validator("logo_path", mode="before")
    @classmethod
    def _blank_logo_is_none(cls, value: Any) -> str | None:
        if isinstance(value, str) and value.strip():
            return value.strip()
        return None

    @field_validator("latitude", "longitude", mode="before")
    @classmethod
    def _parse_coordinate(cls, value: Any) -> float | None:
        return _coerce_float(value)


class Product(CatalogRecord):
    """商品目录记录（/products-list 等）。"""

    item_type: ItemType = ItemType.PRODUCT
    description: str | None = None
    base_price: float = Field(default=0.0, alias="price")
    restaurant_id: str | None = Field(default=None, alias="id_resto")
    category_id: str | None = Field(default=None, alias="id_category")

    @model_validator(mode="before")
    @classmethod
    def _normalize_aliases(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if not data.get("name") and data.get("libelle"):
            data["name"] = data["libelle"]
        if "id_resto" not in data and "resto_id" in data:
            data["id_resto"] = data["resto_id"]
        if "id_category" not in data and "category_id" in data:
            data["id_category"] = data["category_id"]
        return data

    @field_validator("base_price", mode="before")
    @classmethod
    def _parse_price(cls, value: Any) -> float:
        return _coerce_float(value) or 0.0

    @field_validator("restaurant_id", "category_id", mode="before")
    @classmethod
    def _to_str(cls, value: Any) -> str | None:
        return _coerce_id(value)


class EnrichedRecord(BaseModel):
    """界面视图模型（每次 enrich 重建，实时更新时按字段整体替换）。"""

    model_config = ConfigDict(validate_assignment=True)

    id: str
    item_type: ItemType
    name: str
    record: Restaurant | Product = Field(..., description="原始目录记录")

    cover_url: str = Field(..., description="解析后的封面图")
    logo_url: str | None = Field(default=None, description="解析后的 logo（仅餐厅）")
    is_open: bool = True
    average_rating: float = 0.0
    total_ratings: int = 0

    base_price: float | None = None
    effective_price: float | None = None
    promo: PromoPrice | None = None

    @property
    def has_promo(self) -> bool:
        return (
            self.base_price is not None
            and self.effective_price is not None
            and self.effective_price < self.base_price
        )
