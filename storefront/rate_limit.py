from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from fastapi import Request
from fastapi.responses import JSONResponse

from storefront.config import get_settings

settings = get_settings()


def get_user_identifier(request: Request) -> str:
    """
    Идентификатор для rate limiting: user_id из токена, иначе IP.
    """
    user_id = getattr(request.state, "user_id", None)
    if user_id:
        return f"user:{user_id}"

    return get_remote_address(request)


limiter = Limiter(
    key_func=get_user_identifier,
    default_limits=[f"{settings.rate_limit_per_minute}/minute"],
    storage_uri=settings.redis_url if settings.redis_url else "memory://",
    strategy="fixed-window"
)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Обработчик превышения лимита запросов."""
    return JSONResponse(
        status_code=429,
        content={
            "error": "Слишком много запросов. Пожалуйста, подождите.",
            "retry_after": exc.detail
        }
    )


def get_promo_rate_limit() -> str:
    """Лимит на проверку промокодов (защита от перебора)."""
    return f"{settings.rate_limit_promo_per_minute}/minute"


def get_payment_rate_limit() -> str:
    """Лимит на создание платежей."""
    return f"{settings.rate_limit_payment_per_minute}/minute"
