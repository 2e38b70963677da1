"""
Сценарий оформления оплаты на одной странице (одна вкладка).

IDLE -> PROMO_VALIDATING -> PROMO_APPLIED | PROMO_REJECTED -> IDLE (без скидки)
     -> SUBMITTING -> REDIRECTED | FAILED -> повтор из IDLE / PROMO_APPLIED
"""
import asyncio
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import get_args

from storefront.logging_config import get_logger
from storefront.payments.schemas import (
    AppliedPromo,
    CreatePaymentRequest,
    PaymentMethod,
    PaymentType,
    ReceiptContact,
)
from storefront.phone import normalize_phone
from storefront.pricing import calculate_final_amount, format_discount
from storefront.promocodes.schemas import UserPromoCode
from storefront.promotions.catalog import PROMOTIONS
from .client import StorefrontClient
from .errors import CheckoutError, ValidationError
from .gate import PromotionGate
from .storage import KeyValueStore, MemoryStore

logger = get_logger(__name__)

DEFAULT_COURSE_PRICE = 1499  # рубли
PENDING_REFERRAL_KEY = "pending_referral"
REFERRAL_TTL = 24 * 60 * 60


class CheckoutState(str, Enum):
    IDLE = "idle"
    PROMO_VALIDATING = "promo_validating"
    PROMO_APPLIED = "promo_applied"
    PROMO_REJECTED = "promo_rejected"
    SUBMITTING = "submitting"
    REDIRECTED = "redirected"
    FAILED = "failed"


BUSY_STATES = (CheckoutState.PROMO_VALIDATING, CheckoutState.SUBMITTING, CheckoutState.REDIRECTED)


@dataclass
class Contact:
    """Контакт для чека: нужен email или телефон."""

    email: str = ""
    phone: str = ""

    def is_empty(self) -> bool:
        return not self.email.strip() and not normalize_phone(self.phone)

    def to_receipt(self) -> ReceiptContact:
        return ReceiptContact(
            email=self.email.strip() or None,
            phone=normalize_phone(self.phone) or None,
        )


def _parse_rubles(value: str | None, default: int) -> int:
    if not value:
        return default
    try:
        rubles = int(value)
    except ValueError:
        raise ValidationError("Некорректная сумма") from None
    if rubles < 0:
        raise ValidationError("Некорректная сумма")
    return rubles


class CheckoutSession:
    """
    Контроллер страницы оплаты.

    Все суммы в копейках. Ошибки поднимаются как CheckoutError после
    того, как состояние сессии приведено в порядок; повторная попытка -
    это повторный вызов того же метода.
    on_state_change получает каждый переход, включая промежуточные
    (PROMO_REJECTED сразу сменяется на IDLE).
    """

    def __init__(
        self,
        client: StorefrontClient,
        base_amount: int,
        *,
        course_id: str | None = None,
        payment_type: str = "course_purchase",
        promotion_id: str | None = None,
        store: KeyValueStore | None = None,
        on_state_change: Callable[[CheckoutState], None] | None = None,
    ) -> None:
        self.client = client
        self.base_amount = base_amount
        self.course_id = course_id
        self.payment_type = payment_type
        self.promotion_id = promotion_id
        self.store = store if store is not None else MemoryStore()
        self.gate = PromotionGate(client, promotion_id) if promotion_id else None

        self.on_state_change = on_state_change
        self.state = CheckoutState.IDLE
        self.applied_promo: AppliedPromo | None = None
        self.user_promocodes: list[UserPromoCode] = []
        self.error: str | None = None
        self.confirmation_url: str | None = None

    @classmethod
    def from_query(
        cls,
        client: StorefrontClient,
        query: Mapping[str, str],
        store: KeyValueStore | None = None,
    ) -> "CheckoutSession":
        """
        Собрать сессию из параметров страницы оплаты.

        course, price (рубли, по умолчанию 1499), amount (рубли, важнее
        price), type, promotion. Цена акции берётся из её описания, если
        amount не передан явно.
        """
        payment_type = query.get("type") or "course_purchase"
        if payment_type not in get_args(PaymentType):
            raise ValidationError("Неизвестный тип оплаты")
        promotion_id = query.get("promotion") or None

        rubles = _parse_rubles(query.get("price"), DEFAULT_COURSE_PRICE)
        rubles = _parse_rubles(query.get("amount"), rubles)
        base_amount = rubles * 100
        if promotion_id in PROMOTIONS and not query.get("amount"):
            base_amount = PROMOTIONS[promotion_id].price

        course_id = query.get("course") or None
        if payment_type == "balance_topup":
            course_id = None

        session = cls(
            client,
            base_amount,
            course_id=course_id,
            payment_type=payment_type,
            promotion_id=promotion_id,
            store=store,
        )
        referral = query.get("ref")
        if referral:
            session.remember_referral(referral)
        return session

    @property
    def final_amount(self) -> int:
        return calculate_final_amount(self.base_amount, self.applied_promo)

    @property
    def discount(self) -> int:
        return self.base_amount - self.final_amount

    @property
    def discount_label(self) -> str | None:
        """Подпись применённой скидки: -15% или -500 ₽."""
        if self.applied_promo is None:
            return None
        return format_discount(self.applied_promo)

    @property
    def can_submit(self) -> bool:
        if self.state in BUSY_STATES:
            return False
        if self.gate is not None and not self.gate.available:
            return False
        return True

    def remember_referral(self, code: str) -> None:
        """Сохранить реферальный код из ссылки, если другого ещё нет."""
        if self.store.get(PENDING_REFERRAL_KEY) is None:
            self.store.set(PENDING_REFERRAL_KEY, code.strip(), ttl=REFERRAL_TTL)

    def _set_state(self, state: CheckoutState) -> None:
        self.state = state
        if self.on_state_change is not None:
            self.on_state_change(state)

    def _resting_state(self) -> CheckoutState:
        return CheckoutState.PROMO_APPLIED if self.applied_promo else CheckoutState.IDLE

    def _ensure_not_busy(self) -> None:
        if self.state in BUSY_STATES:
            raise ValidationError("Дождитесь завершения текущей операции")

    async def start(self) -> None:
        """Загрузка при открытии страницы: промокоды пользователя и состояние акции."""
        tasks = [self.load_user_promocodes()]
        if self.gate is not None:
            tasks.append(self.gate.refresh())
        await asyncio.gather(*tasks)

    async def load_user_promocodes(self) -> list[UserPromoCode]:
        try:
            self.user_promocodes = await self.client.list_user_promocodes()
        except CheckoutError as e:
            # Список необязателен: код всё равно можно ввести вручную
            logger.warning(f"Could not load user promocodes: {e.message}")
            self.user_promocodes = []
        return self.user_promocodes

    async def apply_code(self, code: str) -> AppliedPromo:
        """
        Проверить введённый промокод на сервере и применить скидку.

        Raises:
            ValidationError: пустой код (запрос не отправляется)
            RejectedByServer: промокод недействителен
            TransportError: сеть недоступна
        """
        self._ensure_not_busy()
        code = code.strip()
        if not code:
            self.error = "Введите промокод"
            raise ValidationError(self.error)

        self._set_state(CheckoutState.PROMO_VALIDATING)
        self.error = None
        try:
            promo = await self.client.validate_promocode(code, self.course_id)
        except CheckoutError as e:
            logger.info(f"Promo code {code} rejected: {e.message}")
            self.applied_promo = None
            self.error = e.message
            self._set_state(CheckoutState.PROMO_REJECTED)
            self._set_state(CheckoutState.IDLE)
            raise

        self.applied_promo = promo
        self._set_state(CheckoutState.PROMO_APPLIED)
        return promo

    def choose_promocode(self, promo: UserPromoCode) -> AppliedPromo:
        """Применить ранее полученный промокод без повторной проверки."""
        self._ensure_not_busy()
        if promo.course_id and self.course_id and promo.course_id != self.course_id:
            self.error = "Этот промокод не применим к данному курсу"
            raise ValidationError(self.error)

        self.applied_promo = AppliedPromo(
            id=promo.promocode_id,
            code=promo.code,
            discount_percent=promo.discount_percent,
            discount_amount=promo.discount_amount,
        )
        self.error = None
        self._set_state(CheckoutState.PROMO_APPLIED)
        return self.applied_promo

    def remove_promo(self) -> None:
        self._ensure_not_busy()
        self.applied_promo = None
        self.error = None
        self._set_state(CheckoutState.IDLE)

    def dismiss_error(self) -> None:
        """Закрыть сообщение об ошибке и вернуться к форме."""
        if self.state is CheckoutState.FAILED:
            self._set_state(self._resting_state())
        self.error = None

    def build_payment_request(
        self,
        contact: Contact,
        payment_method: PaymentMethod,
        return_url: str | None,
    ) -> CreatePaymentRequest:
        if payment_method not in get_args(PaymentMethod):
            raise ValidationError("Неизвестный способ оплаты")
        return CreatePaymentRequest(
            course_id=self.course_id,
            payment_method=payment_method,
            amount=self.final_amount,
            type=self.payment_type,
            return_url=return_url,
            receipt=contact.to_receipt(),
            promocode=self.applied_promo,
            original_amount=self.base_amount if self.applied_promo else None,
            promotion_id=self.promotion_id,
            referral_code=self.store.get(PENDING_REFERRAL_KEY),
        )

    async def submit(
        self,
        contact: Contact,
        payment_method: PaymentMethod = "card",
        return_url: str | None = None,
    ) -> str:
        """
        Создать платеж и получить ссылку на оплату.

        Returns:
            confirmation URL платёжной системы

        Raises:
            ValidationError: нет контакта, акция недоступна, нулевая сумма
            RejectedByServer: сервер отклонил платеж
            TransportError: сеть недоступна
        """
        if self.state in BUSY_STATES:
            raise ValidationError("Оплата уже выполняется")
        if self.gate is not None and not self.gate.available:
            self.error = "Акция недоступна"
            raise ValidationError(self.error)
        if contact.is_empty():
            self.error = "Укажите email или телефон для получения чека"
            raise ValidationError(self.error)
        if self.final_amount <= 0:
            self.error = "Сумма к оплате должна быть больше нуля"
            raise ValidationError(self.error)

        request = self.build_payment_request(contact, payment_method, return_url)
        self._set_state(CheckoutState.SUBMITTING)
        self.error = None
        try:
            response = await self.client.create_payment(request)
        except CheckoutError as e:
            self._set_state(CheckoutState.FAILED)
            self.error = e.message
            logger.info(f"Payment creation failed: {e.message}")
            raise
        finally:
            if self.gate is not None:
                await self.gate.refresh()

        self.confirmation_url = response.confirmation_url
        self._set_state(CheckoutState.REDIRECTED)
        referral = self.store.take(PENDING_REFERRAL_KEY)
        if referral:
            logger.info(f"Referral code {referral} sent with payment {response.payment_id}")
        logger.info(f"Payment {response.payment_id} created, redirecting")
        return response.confirmation_url

    async def cancel(self) -> None:
        """Пользователь вернулся с платёжной страницы без оплаты."""
        if self.state is CheckoutState.REDIRECTED:
            self.confirmation_url = None
        self._set_state(self._resting_state())
        self.error = None
        if self.gate is not None:
            await self.gate.refresh()
