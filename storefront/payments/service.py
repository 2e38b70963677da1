import uuid
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP

import httpx

from storefront.config import get_settings
from storefront.db import supabase_client
from storefront.logging_config import get_logger
from storefront.phone import normalize_phone
from storefront.pricing import calculate_discount, calculate_final_amount, to_yookassa_value
from storefront.promocodes import service as promocodes_service
from storefront.promotions import service as promotions_service
from storefront.promotions.catalog import FIRST_100, TWO_COURSES, UnknownPromotionError
from .schemas import CreatePaymentRequest, AppliedPromo, YooKassaPaymentObject
from .yookassa import yookassa_client, PAYMENT_METHOD_TYPES

logger = get_logger(__name__)
settings = get_settings()

PAYMENTS_TABLE = "payments"
BALANCE_TABLE = "user_balance"
CURRENCY = "RUB"
COURSE_TYPES = ("course_purchase", "final_modules")


class PaymentError(Exception):
    """Платёж не может быть создан. Сообщение показывается пользователю."""

    def __init__(self, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def to_kopecks(value: str) -> int:
    """Рубли строкой ("1099.00") -> копейки."""
    return int((Decimal(value) * 100).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def item_description(payment_type: str, promotion_id: str | None) -> str:
    if payment_type == "balance_topup":
        return "Пополнение баланса"
    if payment_type == "promotion" and promotion_id == TWO_COURSES:
        return "Оплата 2 курсов по акции"
    if payment_type == "promotion" and promotion_id == FIRST_100:
        return 'Оплата курса по акции "Первым 100 студентам"'
    if payment_type == "final_modules":
        return "Оплата финальных модулей курса"
    return "Образовательная услуга: онлайн-курс"


def default_return_url(body: CreatePaymentRequest) -> str:
    if body.type == "balance_topup":
        return f"{settings.app_url}/payment/success?type=balance_topup"
    return f"{settings.app_url}/payment/success?course={body.course_id or ''}"


def build_receipt(body: CreatePaymentRequest) -> dict:
    customer: dict[str, str] = {}
    if body.receipt.email and body.receipt.email.strip():
        customer["email"] = body.receipt.email.strip()
    if body.receipt.phone:
        phone = normalize_phone(body.receipt.phone)
        if phone:
            customer["phone"] = phone

    return {
        "customer": customer,
        "items": [
            {
                "description": item_description(body.type, body.promotion_id),
                "quantity": "1.00",
                "amount": {"value": to_yookassa_value(body.amount), "currency": CURRENCY},
                "vat_code": 1,
                "payment_mode": "full_prepayment",
                "payment_subject": "payment" if body.type == "balance_topup" else "educational_services",
            }
        ],
    }


def build_metadata(user_id: str, body: CreatePaymentRequest) -> dict[str, str]:
    """Метаданные платежа ЮКассы (только строки, вернутся в webhook)."""
    metadata = {
        "user_id": user_id,
        "payment_method": body.payment_method,
        "type": body.type,
    }
    if body.course_id:
        metadata["course_id"] = body.course_id
    if body.promotion_id:
        metadata["promotion_id"] = body.promotion_id
    if body.promocode:
        promo = body.promocode
        metadata["promocode_id"] = promo.id
        metadata["promocode_code"] = promo.code
        metadata["promocode_discount_percent"] = str(promo.discount_percent or 0)
        metadata["promocode_discount_amount"] = str(promo.discount_amount or 0)
        metadata["promocode_discount_applied"] = str(
            calculate_discount(body.original_amount, promo)
        )
    if body.referral_code:
        metadata["referral_code"] = body.referral_code
    return metadata


def build_payment_payload(user_id: str, body: CreatePaymentRequest) -> dict:
    return {
        "amount": {"value": to_yookassa_value(body.amount), "currency": CURRENCY},
        "capture": True,
        "confirmation": {
            "type": "redirect",
            "return_url": body.return_url or default_return_url(body),
        },
        "description": item_description(body.type, body.promotion_id),
        "metadata": build_metadata(user_id, body),
        "payment_method_data": {"type": PAYMENT_METHOD_TYPES[body.payment_method]},
        "receipt": build_receipt(body),
    }


async def verify_promocode(user_id: str, body: CreatePaymentRequest) -> AppliedPromo:
    """
    Сверка промокода и суммы с записью в БД.

    Скидка пересчитывается по полям промокода из БД, значения из запроса
    используются только как идентификатор.

    Raises:
        PaymentError: промокод не применим или сумма не совпадает
    """
    row = await promocodes_service.get_promo_code_by_id(body.promocode.id)
    if not row:
        raise PaymentError("Промокод не найден или недействителен")
    try:
        await promocodes_service.check_for_user(user_id, row, body.course_id)
    except promocodes_service.PromoCodeError as e:
        raise PaymentError(e.message)
    if row.get("promo_type") == "referral_access":
        raise PaymentError("Этот промокод не применим к оплате")

    if body.original_amount is None:
        raise PaymentError("Не указана сумма без скидки")

    promo = AppliedPromo(
        id=row["id"],
        code=row["code"],
        discount_percent=row.get("discount_percent") or 0,
        discount_amount=row.get("discount_amount") or 0,
    )
    expected = calculate_final_amount(body.original_amount, promo)
    if expected != body.amount:
        logger.warning(f"Amount mismatch for promo {promo.code}: got {body.amount}, expected {expected}")
        raise PaymentError("Сумма не совпадает с расчётом скидки")
    return promo


async def check_request(user_id: str, body: CreatePaymentRequest) -> AppliedPromo | None:
    """
    Проверки до обращения к ЮКассе.

    Raises:
        PaymentError: запрос некорректен или акция недоступна

    Returns:
        Промокод с параметрами скидки из БД или None
    """
    if body.receipt.is_empty():
        raise PaymentError("Укажите email или телефон для получения чека")

    if body.type in COURSE_TYPES and not body.course_id:
        raise PaymentError("Не указан курс или сумма")

    if body.type == "promotion":
        if not body.promotion_id:
            raise PaymentError("Не указана акция")
        try:
            status = await promotions_service.get_promotion_status(body.promotion_id)
        except UnknownPromotionError:
            raise PaymentError("Неизвестная акция")
        if not status.available:
            raise PaymentError("Акция завершена: все места заняты")

    if body.promocode:
        return await verify_promocode(user_id, body)
    return None


async def create_payment(user: dict, body: CreatePaymentRequest) -> dict:
    """
    Создает платеж в ЮКассе и сохраняет его как pending.

    Returns:
        Объект платежа ЮКассы
    """
    promo = await check_request(user["id"], body)
    if promo:
        body = body.model_copy(update={"promocode": promo})

    payload = build_payment_payload(user["id"], body)
    idempotence_key = str(uuid.uuid4())
    payment = await yookassa_client.create_payment(payload, idempotence_key)

    # Если запись не сохранилась, webhook создаст её сам
    try:
        await supabase_client.insert(
            PAYMENTS_TABLE,
            {
                "user_id": user["id"],
                "course_id": body.course_id,
                "amount": body.amount,
                "currency": CURRENCY,
                "payment_method": body.payment_method,
                "status": "pending",
                "type": body.type,
                "promotion_id": body.promotion_id,
                "metadata": {
                    "yookassa_payment_id": payment["id"],
                    "confirmation_url": payment.get("confirmation", {}).get("confirmation_url"),
                    **payload["metadata"],
                },
            },
        )
    except httpx.HTTPError as e:
        logger.error(f"Failed to store pending payment {payment['id']}: {e}")

    logger.info(f"Payment {payment['id']} created for user {user['id']}: {body.amount} kopecks, type {body.type}")
    return payment


async def _find_payment_record(yookassa_payment_id: str) -> dict | None:
    return await supabase_client.get_one(
        PAYMENTS_TABLE,
        {"metadata->>yookassa_payment_id": f"eq.{yookassa_payment_id}"},
    )


async def find_user_payment(
    user_id: str,
    payment_id: str | None = None,
    course_id: str | None = None,
) -> dict | None:
    """
    Последний платёж пользователя по id ЮКассы или по курсу.

    Если передан payment_id, course_id не учитывается.
    """
    params = {
        "user_id": f"eq.{user_id}",
        "select": "id,status,course_id,amount,metadata,created_at,completed_at",
        "order": "created_at.desc",
    }
    if payment_id:
        params["metadata->>yookassa_payment_id"] = f"eq.{payment_id}"
    else:
        params["course_id"] = f"eq.{course_id}"
    return await supabase_client.get_one(PAYMENTS_TABLE, params)


async def _complete_payment_record(payment: YooKassaPaymentObject, amount: int) -> tuple[str | None, bool]:
    """
    Найти платёж и пометить completed; если его нет - создать.

    Returns:
        id записи и признак того, что платёж завершён этим вызовом
        (False для повторного уведомления об уже завершённом платеже)
    """
    metadata = payment.metadata
    now = datetime.now(timezone.utc).isoformat()
    existing = await _find_payment_record(payment.id)

    if existing:
        if existing.get("status") == "completed":
            return existing["id"], False
        await supabase_client.update(
            PAYMENTS_TABLE,
            {"id": f"eq.{existing['id']}"},
            {"status": "completed", "completed_at": now},
        )
        return existing["id"], True

    rows = await supabase_client.insert(
        PAYMENTS_TABLE,
        {
            "user_id": metadata["user_id"],
            "course_id": metadata.get("course_id"),
            "amount": amount,
            "currency": CURRENCY,
            "payment_method": metadata.get("payment_method", "card"),
            "status": "completed",
            "completed_at": now,
            "type": metadata.get("type", "course_purchase"),
            "promotion_id": metadata.get("promotion_id"),
            "metadata": {"yookassa_payment_id": payment.id, "paid": payment.paid},
        },
    )
    logger.info(f"Payment {payment.id} was missing, created on webhook")
    return (rows[0]["id"] if rows else None), True


async def _credit_balance(user_id: str, amount: int) -> None:
    """Зачисление пополнения на внутренний баланс пользователя."""
    balance = await supabase_client.get_one(
        BALANCE_TABLE,
        {"user_id": f"eq.{user_id}", "select": "balance,total_earned"},
    )
    if balance:
        await supabase_client.update(
            BALANCE_TABLE,
            {"user_id": f"eq.{user_id}"},
            {
                "balance": (balance.get("balance") or 0) + amount,
                "total_earned": (balance.get("total_earned") or 0) + amount,
            },
        )
    else:
        await supabase_client.insert(
            BALANCE_TABLE,
            {"user_id": user_id, "balance": amount, "total_earned": amount, "total_withdrawn": 0},
        )
    logger.info(f"Balance of user {user_id} topped up by {amount} kopecks")


async def _enroll(user_id: str, course_id: str) -> None:
    existing = await supabase_client.get_one(
        "enrollments",
        {"user_id": f"eq.{user_id}", "course_id": f"eq.{course_id}", "select": "id"},
    )
    if existing:
        return
    await supabase_client.insert(
        "enrollments",
        {"user_id": user_id, "course_id": course_id, "progress": 0},
    )
    logger.info(f"User {user_id} enrolled to course {course_id}")


def courses_to_open(payment_type: str, course_id: str | None, promotion_id: str | None) -> list[str]:
    """Курсы, к которым открывается доступ после оплаты."""
    if payment_type == "promotion" and promotion_id == TWO_COURSES:
        return list(settings.two_courses_course_ids)
    if not course_id:
        return []
    if payment_type == "course_purchase":
        return [course_id]
    if payment_type == "promotion" and promotion_id == FIRST_100:
        return [course_id]
    return []


async def _attach_referral(user_id: str, referral_code: str) -> None:
    owner = await supabase_client.get_one(
        "user_referral_codes",
        {"referral_code": f"eq.{referral_code}", "is_active": "eq.true"},
    )
    if not owner or owner["user_id"] == user_id:
        return
    if await supabase_client.get_one("referrals", {"referred_id": f"eq.{user_id}", "select": "id"}):
        return
    await supabase_client.insert(
        "referrals",
        {"referrer_id": owner["user_id"], "referred_id": user_id},
    )
    logger.info(f"User {user_id} attached to referrer {owner['user_id']}")


async def handle_payment_succeeded(payment: YooKassaPaymentObject) -> None:
    metadata = payment.metadata
    user_id = metadata.get("user_id")
    if not user_id:
        logger.error(f"Payment {payment.id} has no user_id in metadata")
        return

    amount = to_kopecks(payment.amount.value) if payment.amount else 0
    payment_type = metadata.get("type") or "course_purchase"
    promotion_id = metadata.get("promotion_id")

    record_id, newly_completed = await _complete_payment_record(payment, amount)

    if payment_type == "balance_topup" and newly_completed:
        await _credit_balance(user_id, amount)

    for course_id in courses_to_open(payment_type, metadata.get("course_id"), promotion_id):
        await _enroll(user_id, course_id)

    promocode_id = metadata.get("promocode_id")
    if promocode_id and payment_type == "course_purchase":
        try:
            await promocodes_service.record_usage(
                user_id,
                promocode_id,
                int(metadata.get("promocode_discount_applied") or 0),
                record_id,
            )
        except httpx.HTTPError as e:
            logger.error(f"Failed to record promo usage for payment {payment.id}: {e}")

    referral_code = metadata.get("referral_code")
    if referral_code:
        try:
            await _attach_referral(user_id, referral_code)
        except httpx.HTTPError as e:
            logger.error(f"Failed to attach referral for payment {payment.id}: {e}")

    logger.info(f"Payment {payment.id} processed: {amount} kopecks, type {payment_type}")


async def handle_payment_canceled(payment: YooKassaPaymentObject) -> None:
    if not payment.metadata.get("user_id"):
        return
    await supabase_client.update(
        PAYMENTS_TABLE,
        {"metadata->>yookassa_payment_id": f"eq.{payment.id}"},
        {"status": "failed"},
    )
    logger.info(f"Payment {payment.id} canceled")


async def handle_event(event: str, payment: YooKassaPaymentObject) -> None:
    if event == "payment.succeeded":
        await handle_payment_succeeded(payment)
    elif event == "payment.canceled":
        await handle_payment_canceled(payment)
    elif event == "payment.waiting_for_capture":
        logger.info(f"Payment {payment.id} waiting for capture")
    else:
        logger.warning(f"Unknown YooKassa event: {event}")
