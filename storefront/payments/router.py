import httpx
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from storefront.dependencies import get_current_user
from storefront.logging_config import get_logger
from storefront.rate_limit import limiter, get_payment_rate_limit
from .schemas import (
    CreatePaymentRequest,
    CreatePaymentResponse,
    PaymentVerification,
    YooKassaEvent,
    WebhookAck,
)
from .yookassa import YooKassaError, YooKassaNotConfiguredError
from . import service

logger = get_logger(__name__)

router = APIRouter(prefix="/api/payments", tags=["payments"])

VERIFY_MESSAGES = {
    "completed": "Платеж успешно обработан",
    "pending": "Платеж обрабатывается",
}


@router.post("/create", response_model=CreatePaymentResponse)
@limiter.limit(get_payment_rate_limit())
async def create_payment(
    request: Request,
    body: CreatePaymentRequest,
    user: dict = Depends(get_current_user),
):
    """Создание платежа в ЮКассе. Возвращает ссылку для подтверждения оплаты."""
    try:
        payment = await service.create_payment(user, body)
    except service.PaymentError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except YooKassaNotConfiguredError:
        logger.error("YooKassa is not configured: YOOKASSA_SHOP_ID / YOOKASSA_SECRET_KEY missing")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Платежная система не настроена",
        )
    except YooKassaError as e:
        raise HTTPException(status_code=e.status_code, detail=e.description)
    except httpx.HTTPError:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Ошибка создания платежа",
        )

    confirmation_url = payment.get("confirmation", {}).get("confirmation_url")
    if not confirmation_url:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Не получена ссылка на оплату",
        )

    return CreatePaymentResponse(
        payment_id=payment["id"],
        confirmation_url=confirmation_url,
        status=payment.get("status", "pending"),
    )


@router.get("/verify", response_model=PaymentVerification, response_model_exclude_none=True)
async def verify_payment(
    payment_id: str | None = Query(None),
    course_id: str | None = Query(None),
    user: dict = Depends(get_current_user),
):
    """Статус платежа пользователя для страницы возврата после оплаты."""
    if not payment_id and not course_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Payment ID or Course ID required",
        )

    try:
        payment = await service.find_user_payment(user["id"], payment_id, course_id)
    except httpx.HTTPError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Database error",
        )

    if not payment:
        return PaymentVerification(verified=False, status="not_found", message="Платеж не найден")

    payment_status = payment.get("status") or "pending"
    return PaymentVerification(
        verified=payment_status == "completed",
        status=payment_status,
        payment_id=payment["id"],
        course_id=payment.get("course_id"),
        amount=payment.get("amount"),
        completed_at=payment.get("completed_at"),
        message=VERIFY_MESSAGES.get(payment_status, "Платеж не прошел"),
    )


@router.post("/webhook", response_model=WebhookAck)
async def yookassa_webhook(event: YooKassaEvent):
    """Уведомления ЮКассы о смене статуса платежа."""
    if not event.payment or not event.payment.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid webhook data")

    logger.info(f"YooKassa webhook {event.event} for payment {event.payment.id}")
    try:
        await service.handle_event(event.event, event.payment)
    except httpx.HTTPError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook processing error",
        )
    return WebhookAck()
