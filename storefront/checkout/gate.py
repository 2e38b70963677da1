from storefront.logging_config import get_logger
from storefront.promotions.schemas import PromotionStatus
from .client import StorefrontClient
from .errors import CheckoutError

logger = get_logger(__name__)


class PromotionGate:
    """
    Доступность акции с ограниченным числом мест.

    Акция считается доступной, только пока последний успешный ответ
    сервера явно это подтверждает. До первого ответа и после ошибки
    запроса - недоступна (чтобы не продать лишние места).
    """

    def __init__(self, client: StorefrontClient, promotion_id: str) -> None:
        self.client = client
        self.promotion_id = promotion_id
        self.status: PromotionStatus | None = None
        self.error: CheckoutError | None = None

    @property
    def available(self) -> bool:
        return self.status is not None and self.status.available

    async def refresh(self) -> PromotionStatus | None:
        """Перезапросить состояние акции."""
        try:
            self.status = await self.client.check_promotion(self.promotion_id)
            self.error = None
        except CheckoutError as e:
            logger.warning(f"Promotion {self.promotion_id} check failed: {e.message}")
            self.status = None
            self.error = e
        return self.status
