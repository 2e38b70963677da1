import httpx
from pydantic import ValidationError as SchemaError

from storefront.logging_config import get_logger
from storefront.payments.schemas import AppliedPromo, CreatePaymentRequest, CreatePaymentResponse
from storefront.promocodes.schemas import PromoValidateResponse, UserPromoCodesResponse, UserPromoCode
from storefront.promotions.schemas import PromotionStatus
from .errors import RejectedByServer, TransportError

logger = get_logger(__name__)

TIMEOUT_CONFIG = httpx.Timeout(
    connect=10.0,
    read=30.0,
    write=10.0,
    pool=10.0
)

DEFAULT_ERROR_MESSAGE = "Произошла ошибка. Попробуйте позже."


class StorefrontClient:
    """
    HTTP клиент API магазина для страницы оплаты.

    Ошибки приводятся к RejectedByServer (ответ с {"error"}) и
    TransportError (сеть, не-JSON). Повторов нет: каждый вызов - одно
    действие пользователя.
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.token = token
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            headers = {"Accept": "application/json"}
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=TIMEOUT_CONFIG,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "StorefrontClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _request(self, method: str, path: str, **kwargs) -> dict:
        client = await self._get_client()
        try:
            resp = await client.request(method, path, **kwargs)
        except httpx.RequestError as e:
            logger.warning(f"{method} {path} failed: {e}")
            raise TransportError() from e

        try:
            data = resp.json()
        except ValueError as e:
            logger.warning(f"{method} {path}: non-JSON response ({resp.status_code})")
            raise TransportError() from e

        if not resp.is_success:
            message = None
            if isinstance(data, dict):
                message = data.get("error") or data.get("detail")
            if not isinstance(message, str):
                message = DEFAULT_ERROR_MESSAGE
            raise RejectedByServer(message, resp.status_code)

        if not isinstance(data, dict):
            raise TransportError()
        return data

    async def validate_promocode(self, code: str, course_id: str | None) -> AppliedPromo:
        data = await self._request(
            "POST",
            "/api/promocodes/validate",
            json={"code": code, "courseId": course_id},
        )
        try:
            promo = PromoValidateResponse.model_validate(data).promocode
        except SchemaError as e:
            raise TransportError() from e
        return AppliedPromo(
            id=promo.id,
            code=promo.code,
            discount_percent=promo.discount_percent,
            discount_amount=promo.discount_amount,
        )

    async def list_user_promocodes(self) -> list[UserPromoCode]:
        data = await self._request("GET", "/api/promocodes/user")
        try:
            return UserPromoCodesResponse.model_validate(data).promocodes
        except SchemaError as e:
            raise TransportError() from e

    async def check_promotion(self, promotion_id: str) -> PromotionStatus:
        data = await self._request("GET", "/api/promotions/check", params={"id": promotion_id})
        try:
            return PromotionStatus.model_validate(data)
        except SchemaError as e:
            raise TransportError() from e

    async def create_payment(self, request: CreatePaymentRequest) -> CreatePaymentResponse:
        data = await self._request(
            "POST",
            "/api/payments/create",
            json=request.model_dump(by_alias=True, exclude_none=True),
        )
        try:
            return CreatePaymentResponse.model_validate(data)
        except SchemaError as e:
            raise TransportError("Не получена ссылка на оплату") from e
