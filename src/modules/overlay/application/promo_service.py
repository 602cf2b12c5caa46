"""商品促销价服务。

product_promos/{id} 文档结构：
    {"promoPrice": float, "discountPercentage": float?, "active": bool,
     "startDate": iso8601, "endDate": iso8601, "updatedAt": iso8601}
"""

from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

import pydantic
from loguru import logger

from src.core.domain.exceptions import OverlayWriteError, ValidationError
from src.core.infrastructure.logging import BusinessEvents
from src.modules.overlay.application.client import OverlayStoreClient
from src.modules.overlay.domain.entities import PromoPrice
from src.modules.overlay.domain.store import OverlayPaths


def parse_promo(item_id: str, document: Any) -> PromoPrice | None:
    """Parse a promo document; ``None`` when absent or malformed."""
    if not isinstance(document, dict) or "promoPrice" not in document:
        return None
    try:
        return PromoPrice.from_document(item_id, document)
    except (pydantic.ValidationError, ValueError) as e:
        logger.warning(f"Malformed promo document for {item_id}: {e}")
        return None


class PromoService:
    """Service for product promotional prices."""

    def __init__(self, overlay: OverlayStoreClient):
        self.overlay = overlay

    async def get_promo(self, product_id: str) -> PromoPrice | None:
        """获取单个商品促销，读取失败视为无促销。"""
        try:
            document = await self.overlay.get(OverlayPaths.product_promo(product_id))
        except Exception as e:
            logger.warning(f"Promo read failed for {product_id}: {e}")
            BusinessEvents.overlay_read_degraded(
                attribute="promo", item_id=product_id, reason=str(e)
            )
            return None
        return parse_promo(product_id, document)

    async def get_batch_promos(
        self, product_ids: Iterable[str]
    ) -> dict[str, PromoPrice | None]:
        """批量获取促销（一次 batch_get）。"""
        ids = [str(i) for i in product_ids]
        documents = await self.overlay.batch_get(
            OverlayPaths.product_promo(i) for i in ids
        )
        return {
            i: parse_promo(i, documents.get(OverlayPaths.product_promo(i))) for i in ids
        }

    async def set_promo(
        self,
        product_id: str,
        promo_price: float,
        base_price: float,
        start_date: datetime,
        end_date: datetime,
        discount_percentage: float | None = None,
    ) -> PromoPrice:
        """创建或覆盖促销。

        Raises:
            ValidationError: 促销价不在 (0, base_price) 区间，或时间窗口无效
            OverlayWriteError: 写入失败
        """
        if not 0 < promo_price < base_price:
            raise ValidationError(
                f"Promo price must be between 0 and base price {base_price} "
                f"(got {promo_price})"
            )
        if discount_percentage is None:
            discount_percentage = round((1 - promo_price / base_price) * 100, 1)

        promo = PromoPrice(
            item_id=product_id,
            promo_price=promo_price,
            discount_percentage=discount_percentage,
            active=True,
            start_date=start_date,
            end_date=end_date,
        )
        if promo.start_date > promo.end_date:
            raise ValidationError("Promo start date must not be after end date")

        document = promo.to_document()
        document.pop("itemId", None)
        document["updatedAt"] = datetime.now(UTC).isoformat()

        await self.overlay.set(OverlayPaths.product_promo(product_id), document)
        BusinessEvents.promo_updated(
            product_id=product_id, promo_price=promo_price, active=True
        )
        return promo

    async def deactivate_promo(self, product_id: str) -> PromoPrice | None:
        """停用促销但保留文档；不存在时返回 None。

        Raises:
            OverlayWriteError: 读取当前文档或写入失败
        """
        path = OverlayPaths.product_promo(product_id)
        try:
            current = await self.overlay.get(path)
        except Exception as e:
            raise OverlayWriteError(path, f"read before write failed: {e}") from e
        promo = parse_promo(product_id, current)
        if promo is None:
            return None
        document = promo.to_document()
        document.pop("itemId", None)
        document["active"] = False
        document["updatedAt"] = datetime.now(UTC).isoformat()
        await self.overlay.set(path, document)
        BusinessEvents.promo_updated(
            product_id=product_id, promo_price=promo.promo_price, active=False
        )
        return promo.model_copy(update={"active": False})

    async def delete_promo(self, product_id: str) -> None:
        await self.overlay.delete(OverlayPaths.product_promo(product_id))
        BusinessEvents.promo_updated(product_id=product_id, promo_price=None, active=False)
