import httpx

from storefront.config import get_settings
from storefront.logging_config import get_logger

logger = get_logger(__name__)
settings = get_settings()

TIMEOUT_CONFIG = httpx.Timeout(
    connect=10.0,
    read=30.0,
    write=10.0,
    pool=15.0
)

# Наши способы оплаты -> payment_method_data.type в ЮКассе
PAYMENT_METHOD_TYPES = {
    "sbp": "sbp",
    "card": "bank_card",
    "sber_pay": "sberbank",
    "tinkoff_pay": "tinkoff_bank",
    "yoomoney": "yoo_money",
}


class YooKassaNotConfiguredError(Exception):
    pass


class YooKassaError(Exception):
    """ЮКасса отклонила запрос. description - текст из ответа ЮКассы."""

    def __init__(self, status_code: int, description: str) -> None:
        super().__init__(f"{status_code}: {description}")
        self.status_code = status_code
        self.description = description


class YooKassaClient:
    """
    Клиент API ЮКассы (только создание платежа).
    """

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.api_url = settings.yookassa_api_url
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @property
    def is_configured(self) -> bool:
        return bool(settings.yookassa_shop_id and settings.yookassa_secret_key)

    async def _get_client(self) -> httpx.AsyncClient:
        if not self.is_configured:
            raise YooKassaNotConfiguredError()
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.api_url,
                auth=(settings.yookassa_shop_id, settings.yookassa_secret_key),
                timeout=TIMEOUT_CONFIG,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def create_payment(self, payload: dict, idempotence_key: str) -> dict:
        """
        Создать платеж.

        Args:
            payload: Тело запроса /payments
            idempotence_key: Уникальный ключ попытки оплаты

        Returns:
            Объект платежа ЮКассы

        Raises:
            YooKassaNotConfiguredError: нет shop id / секретного ключа
            YooKassaError: ЮКасса ответила ошибкой
            httpx.RequestError: сеть недоступна
        """
        client = await self._get_client()
        try:
            resp = await client.post(
                "/payments",
                json=payload,
                headers={"Idempotence-Key": idempotence_key},
            )
        except httpx.RequestError as e:
            logger.error(f"YooKassa request error: {e}")
            raise

        if resp.is_success:
            return resp.json()

        try:
            description = resp.json().get("description") or "Ошибка создания платежа"
        except ValueError:
            description = "Ошибка создания платежа"
        logger.error(f"YooKassa error: {resp.status_code} - {resp.text}")
        raise YooKassaError(resp.status_code, description)


yookassa_client = YooKassaClient()
