from datetime import datetime, timezone

import httpx

from storefront.db import supabase_client, is_conflict
from storefront.logging_config import get_logger

logger = get_logger(__name__)

PROMOCODES_TABLE = "promocodes"
USAGE_TABLE = "user_promocodes"
DEFAULT_REFERRAL_COMMISSION = 15


class PromoCodeError(Exception):
    """Промокод не может быть применён. Сообщение показывается пользователю."""

    def __init__(self, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class DuplicatePromoCodeError(Exception):
    """Промокод с таким кодом уже существует."""


class ReferralActivationError(Exception):
    """Не удалось выдать пользователю статус реферального партнёра."""


def normalize_code(code: str) -> str:
    """Коды хранятся в верхнем регистре, поиск без учёта регистра."""
    return code.strip().upper()


def parse_timestamp(value: str | datetime | None) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def validation_error(
    promo: dict,
    course_id: str | None,
    now: datetime | None = None,
) -> str | None:
    """
    Проверки промокода, не зависящие от пользователя.

    Порядок: срок начала, срок окончания, лимит активаций, курс.

    Returns:
        Текст ошибки или None, если промокод можно применить
    """
    now = now or datetime.now(timezone.utc)

    valid_from = parse_timestamp(promo.get("valid_from"))
    if valid_from and valid_from > now:
        return "Промокод ещё не активен"

    valid_until = parse_timestamp(promo.get("valid_until"))
    if valid_until and valid_until < now:
        return "Срок действия промокода истёк"

    if (promo.get("current_activations") or 0) >= (promo.get("max_activations") or 0):
        return "Лимит активаций промокода исчерпан"

    promo_course = promo.get("course_id")
    if promo_course and course_id and promo_course != course_id:
        return "Этот промокод не применим к данному курсу"

    return None


async def get_promo_code_by_code(code: str) -> dict | None:
    """Ищет активный промокод по строковому значению."""
    return await supabase_client.get_one(
        PROMOCODES_TABLE,
        {"code": f"eq.{normalize_code(code)}", "is_active": "eq.true"},
    )


async def get_promo_code_by_id(promocode_id: str) -> dict | None:
    return await supabase_client.get_one(
        PROMOCODES_TABLE,
        {"id": f"eq.{promocode_id}", "is_active": "eq.true"},
    )


async def has_used_promo_code(user_id: str, promocode_id: str) -> bool:
    usage = await supabase_client.get_one(
        USAGE_TABLE,
        {"user_id": f"eq.{user_id}", "promocode_id": f"eq.{promocode_id}", "select": "id"},
    )
    return usage is not None


async def check_for_user(user_id: str, promo: dict, course_id: str | None) -> None:
    """Сроки, лимит, курс и повторное использование тем же пользователем."""
    error = validation_error(promo, course_id)
    if error:
        raise PromoCodeError(error)

    if await has_used_promo_code(user_id, promo["id"]):
        raise PromoCodeError("Вы уже использовали этот промокод")


async def validate_for_user(user_id: str, code: str, course_id: str | None) -> dict:
    """
    Полная проверка промокода перед оплатой.

    Raises:
        PromoCodeError: промокод не найден или не применим

    Returns:
        Запись промокода из БД
    """
    if not code or not code.strip():
        raise PromoCodeError("Промокод не указан")

    promo = await get_promo_code_by_code(code)
    if not promo:
        raise PromoCodeError("Промокод не найден или недействителен", status_code=404)

    await check_for_user(user_id, promo, course_id)

    if promo.get("promo_type") == "referral_access":
        raise PromoCodeError("Этот промокод не применим к оплате")

    logger.info(f"Promo code {promo['code']} validated for user {user_id}")
    return promo


async def apply_for_user(user_id: str, code: str, course_id: str | None) -> dict:
    """
    Применение промокода из личного кабинета.

    Скидочный промокод только проверяется: использование фиксируется
    при оплате. Промокод referral_access активируется сразу: пользователь
    становится реферальным партнёром с комиссией из metadata промокода.

    Raises:
        PromoCodeError: промокод не найден или не применим
        ReferralActivationError: не удалось обновить пользователя

    Returns:
        Запись промокода; для referral_access с ключом referral_commission
    """
    if not code or not code.strip():
        raise PromoCodeError("Промокод не указан")

    promo = await get_promo_code_by_code(code)
    if not promo:
        raise PromoCodeError("Промокод не найден или недействителен", status_code=404)

    await check_for_user(user_id, promo, course_id)

    if promo.get("promo_type") != "referral_access":
        logger.info(f"Promo code {promo['code']} applied by user {user_id}")
        return promo

    commission = (promo.get("metadata") or {}).get("referral_commission") or DEFAULT_REFERRAL_COMMISSION
    try:
        await supabase_client.update(
            "users",
            {"id": f"eq.{user_id}"},
            {"is_referral_partner": True, "referral_commission_percent": commission},
        )
    except httpx.HTTPError as e:
        raise ReferralActivationError(user_id) from e

    await record_usage(user_id, promo["id"])
    logger.info(f"Referral access activated for user {user_id}, commission {commission}%")
    return {**promo, "referral_commission": commission}


async def list_user_promo_codes(user_id: str) -> list[dict]:
    """
    Промокоды, уже привязанные к пользователю (только скидочные).

    Returns:
        Пары usage + promocode, новые первыми
    """
    usages = await supabase_client.get(
        USAGE_TABLE,
        {"user_id": f"eq.{user_id}", "order": "created_at.desc"},
    )
    if not usages:
        return []

    ids = ",".join(sorted({u["promocode_id"] for u in usages}))
    promos = await supabase_client.get(PROMOCODES_TABLE, {"id": f"in.({ids})"})
    by_id = {p["id"]: p for p in promos}

    result: list[dict] = []
    for usage in usages:
        promo = by_id.get(usage["promocode_id"])
        if not promo or promo.get("promo_type") == "referral_access":
            continue
        result.append({"usage": usage, "promocode": promo})
    return result


async def record_usage(
    user_id: str,
    promocode_id: str,
    discount_applied: int = 0,
    order_id: str | None = None,
) -> bool:
    """
    Фиксирует использование промокода и увеличивает счётчик активаций.

    Returns:
        False, если пользователь уже использовал этот промокод
    """
    try:
        await supabase_client.insert(
            USAGE_TABLE,
            {
                "user_id": user_id,
                "promocode_id": promocode_id,
                "discount_applied": discount_applied,
                "order_id": order_id,
            },
        )
    except httpx.HTTPStatusError as e:
        if is_conflict(e):
            return False
        raise

    await _increment_activations(promocode_id)
    logger.info(f"Promo code {promocode_id} used by {user_id}, discount {discount_applied}")
    return True


async def _increment_activations(promocode_id: str) -> None:
    promo = await supabase_client.get_one(
        PROMOCODES_TABLE,
        {"id": f"eq.{promocode_id}", "select": "id,current_activations"},
    )
    if not promo:
        logger.warning(f"Promo code {promocode_id} disappeared before activation count")
        return
    await supabase_client.update(
        PROMOCODES_TABLE,
        {"id": f"eq.{promocode_id}"},
        {"current_activations": (promo.get("current_activations") or 0) + 1},
    )


async def list_promo_codes() -> list[dict]:
    """Возвращает все промокоды."""
    return await supabase_client.get(
        PROMOCODES_TABLE,
        {"order": "created_at.desc"},
    )


async def create_promo_code(data: dict) -> dict:
    """
    Создаёт новый промокод.

    Raises:
        DuplicatePromoCodeError: код уже занят
    """
    row = {
        "code": normalize_code(data["code"]),
        "discount_percent": data.get("discount_percent") or 0,
        "discount_amount": data.get("discount_amount") or 0,
        "max_activations": data.get("max_activations") or 20,
        "current_activations": 0,
        "description": data.get("description") or None,
        "course_id": data.get("course_id") or None,
        "valid_from": (data.get("valid_from") or datetime.now(timezone.utc)).isoformat(),
        "valid_until": data["valid_until"].isoformat() if data.get("valid_until") else None,
        "is_active": data.get("is_active", True) is not False,
        "promo_type": data.get("promo_type") or "discount",
    }
    try:
        rows = await supabase_client.insert(PROMOCODES_TABLE, row)
    except httpx.HTTPStatusError as e:
        if is_conflict(e):
            raise DuplicatePromoCodeError(row["code"]) from e
        raise
    logger.info(f"Promo code {row['code']} created")
    return rows[0]


async def update_promo_code(promocode_id: str, changes: dict) -> dict | None:
    """
    Обновляет только переданные поля.

    Returns:
        Обновлённая запись или None, если промокод не найден
    """
    data: dict = {}
    for key, value in changes.items():
        if key == "code" and value is not None:
            data["code"] = normalize_code(value)
        elif key == "course_id":
            data["course_id"] = value or None
        elif isinstance(value, datetime):
            data[key] = value.isoformat()
        else:
            data[key] = value

    if not data:
        return await supabase_client.get_one(PROMOCODES_TABLE, {"id": f"eq.{promocode_id}"})

    try:
        rows = await supabase_client.update(PROMOCODES_TABLE, {"id": f"eq.{promocode_id}"}, data)
    except httpx.HTTPStatusError as e:
        if is_conflict(e):
            raise DuplicatePromoCodeError(data.get("code", "")) from e
        raise
    return rows[0] if rows else None


async def delete_promo_code(promocode_id: str) -> bool:
    rows = await supabase_client.delete(PROMOCODES_TABLE, {"id": f"eq.{promocode_id}"})
    if rows:
        logger.info(f"Promo code {promocode_id} deleted")
    return bool(rows)
