import httpx
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from storefront.dependencies import get_current_user, get_current_admin_user
from storefront.logging_config import get_logger
from storefront.rate_limit import limiter, get_promo_rate_limit
from .schemas import (
    PromoValidateRequest,
    PromoValidateResponse,
    PromoApplyResponse,
    AppliedPromoCodeInfo,
    PromoCodeInfo,
    UserPromoCode,
    UserPromoCodesResponse,
    PromoConfirmRequest,
    MessageResponse,
    PromoCodeCreate,
    PromoCodeUpdate,
    PromoCodeAdmin,
    PromoCodeAdminResponse,
    PromoCodeListResponse,
)
from . import service

logger = get_logger(__name__)

router = APIRouter(prefix="/api/promocodes", tags=["promocodes"])


def _build_admin_row(row: dict) -> PromoCodeAdmin:
    return PromoCodeAdmin(
        id=row["id"],
        code=row["code"],
        discount_percent=row.get("discount_percent") or 0,
        discount_amount=row.get("discount_amount") or 0,
        max_activations=row.get("max_activations") or 0,
        current_activations=row.get("current_activations") or 0,
        description=row.get("description"),
        course_id=row.get("course_id"),
        valid_from=row.get("valid_from"),
        valid_until=row.get("valid_until"),
        is_active=row.get("is_active", True),
        promo_type=row.get("promo_type") or "discount",
        created_at=row.get("created_at"),
    )


def _server_error(message: str) -> HTTPException:
    logger.error(f"Promo code API error: {message}")
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=message)


@router.post("/validate", response_model=PromoValidateResponse)
@limiter.limit(get_promo_rate_limit())
async def validate_promocode(
    request: Request,
    body: PromoValidateRequest,
    user: dict = Depends(get_current_user),
):
    """Проверка промокода перед оплатой, без фиксации использования."""
    try:
        promo = await service.validate_for_user(user["id"], body.code, body.course_id)
    except service.PromoCodeError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except httpx.HTTPError:
        raise _server_error("Ошибка при проверке промокода")

    return PromoValidateResponse(
        promocode=PromoCodeInfo(
            id=promo["id"],
            code=promo["code"],
            discount_percent=promo.get("discount_percent") or 0,
            discount_amount=promo.get("discount_amount") or 0,
            description=promo.get("description"),
            promo_type=promo.get("promo_type") or "discount",
            course_id=promo.get("course_id"),
        )
    )


@router.post("/apply", response_model=PromoApplyResponse, response_model_exclude_none=True)
@limiter.limit(get_promo_rate_limit())
async def apply_promocode(
    request: Request,
    body: PromoValidateRequest,
    user: dict = Depends(get_current_user),
):
    """Применение промокода. Промокод referral_access активируется сразу."""
    try:
        promo = await service.apply_for_user(user["id"], body.code, body.course_id)
    except service.PromoCodeError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except service.ReferralActivationError:
        raise _server_error("Ошибка при активации реферальной системы")
    except httpx.HTTPError:
        raise _server_error("Ошибка при применении промокода")

    promo_type = promo.get("promo_type") or "discount"
    if promo_type == "referral_access":
        commission = promo["referral_commission"]
        return PromoApplyResponse(
            message=f"🎉 Реферальная система активирована! Ваша комиссия: {commission}%",
            promo_type=promo_type,
            promocode=AppliedPromoCodeInfo(
                id=promo["id"],
                code=promo["code"],
                promo_type=promo_type,
                referral_commission=commission,
            ),
        )

    return PromoApplyResponse(
        message="Промокод применён!",
        promo_type=promo_type,
        promocode=AppliedPromoCodeInfo(
            id=promo["id"],
            code=promo["code"],
            promo_type=promo_type,
            discount_percent=promo.get("discount_percent") or 0,
            discount_amount=promo.get("discount_amount") or 0,
            description=promo.get("description"),
        ),
    )


@router.get("/user", response_model=UserPromoCodesResponse)
async def list_user_promocodes(user: dict = Depends(get_current_user)):
    """Скидочные промокоды, уже привязанные к пользователю."""
    try:
        entries = await service.list_user_promo_codes(user["id"])
    except httpx.HTTPError:
        raise _server_error("Ошибка при получении промокодов")

    items = []
    for entry in entries:
        usage, promo = entry["usage"], entry["promocode"]
        items.append(
            UserPromoCode(
                id=usage["id"],
                promocode_id=promo["id"],
                code=promo["code"],
                discount_percent=promo.get("discount_percent") or 0,
                discount_amount=promo.get("discount_amount") or 0,
                promo_type=promo.get("promo_type") or "discount",
                description=promo.get("description"),
                course_id=promo.get("course_id"),
                valid_until=promo.get("valid_until"),
                discount_applied=usage.get("discount_applied") or 0,
                created_at=usage.get("created_at"),
            )
        )
    return UserPromoCodesResponse(promocodes=items)


@router.post("/confirm", response_model=MessageResponse)
async def confirm_promocode(
    body: PromoConfirmRequest,
    user: dict = Depends(get_current_user),
):
    """Фиксация использования промокода после оплаты."""
    try:
        recorded = await service.record_usage(
            user["id"], body.promocode_id, body.discount_applied, body.order_id
        )
    except httpx.HTTPError:
        raise _server_error("Ошибка при фиксации промокода")

    if not recorded:
        return MessageResponse(message="Промокод уже был использован")
    return MessageResponse(message="Использование промокода зафиксировано")


@router.get("/admin", response_model=PromoCodeListResponse)
async def admin_list_promocodes(user: dict = Depends(get_current_admin_user)):
    """Список всех промокодов (только админ)."""
    try:
        rows = await service.list_promo_codes()
    except httpx.HTTPError:
        raise _server_error("Ошибка при загрузке промокодов")
    return PromoCodeListResponse(promocodes=[_build_admin_row(r) for r in rows])


@router.post("/admin", response_model=PromoCodeAdminResponse)
async def admin_create_promocode(
    body: PromoCodeCreate,
    user: dict = Depends(get_current_admin_user),
):
    """Создание нового промокода (только админ)."""
    if not body.code.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Код промокода обязателен")

    try:
        row = await service.create_promo_code(body.model_dump())
    except service.DuplicatePromoCodeError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Промокод с таким кодом уже существует",
        )
    except httpx.HTTPError:
        raise _server_error("Ошибка при создании промокода")
    return PromoCodeAdminResponse(promocode=_build_admin_row(row))


@router.patch("/admin", response_model=PromoCodeAdminResponse)
async def admin_update_promocode(
    body: PromoCodeUpdate,
    user: dict = Depends(get_current_admin_user),
):
    """Обновление промокода (только админ)."""
    if not body.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="ID промокода обязателен")

    changes = body.model_dump(exclude_unset=True, exclude={"id"})
    try:
        row = await service.update_promo_code(body.id, changes)
    except service.DuplicatePromoCodeError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Промокод с таким кодом уже существует",
        )
    except httpx.HTTPError:
        raise _server_error("Ошибка при обновлении промокода")

    if not row:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Промокод не найден")
    return PromoCodeAdminResponse(promocode=_build_admin_row(row))


@router.delete("/admin", response_model=MessageResponse)
async def admin_delete_promocode(
    id: str | None = Query(None),
    user: dict = Depends(get_current_admin_user),
):
    """Удаление промокода (только админ)."""
    if not id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="ID промокода обязателен")

    try:
        deleted = await service.delete_promo_code(id)
    except httpx.HTTPError:
        raise _server_error("Ошибка при удалении промокода")

    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Промокод не найден")
    return MessageResponse(message="Промокод удалён")
