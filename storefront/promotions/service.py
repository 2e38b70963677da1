from storefront.db import supabase_client
from storefront.logging_config import get_logger
from .catalog import get_promotion
from .schemas import PromotionStatus

logger = get_logger(__name__)


async def count_used_slots(promotion_id: str) -> int:
    """Сколько оплат по акции уже завершено."""
    return await supabase_client.count(
        "payments",
        {
            "status": "eq.completed",
            "type": "eq.promotion",
            "promotion_id": f"eq.{promotion_id}",
        },
    )


async def get_promotion_status(promotion_id: str) -> PromotionStatus:
    """
    Текущая доступность акции.

    Raises:
        UnknownPromotionError: акция не описана в PROMOTIONS
    """
    promotion = get_promotion(promotion_id)

    if promotion.total_slots is None:
        return PromotionStatus(promotion_id=promotion.id, available=True)

    used = await count_used_slots(promotion.id)
    remaining = promotion.total_slots - used
    if remaining <= 0:
        logger.info(f"Promotion {promotion.id} is sold out ({used}/{promotion.total_slots})")

    return PromotionStatus(
        promotion_id=promotion.id,
        available=remaining > 0,
        used_slots=used,
        total_slots=promotion.total_slots,
        available_slots=max(0, remaining),
    )
