from datetime import datetime, timezone, timedelta

import jwt
from pydantic import ValidationError

from storefront.config import get_settings
from storefront.logging_config import get_logger
from .schemas import LoginMethod, TokenPayload

logger = get_logger(__name__)
settings = get_settings()

TOKEN_EXPIRE_MINUTES = 10080  # 7 дней


def create_access_token(
    user_id: str,
    login: LoginMethod,
    expire_minutes: int = TOKEN_EXPIRE_MINUTES,
) -> str:
    """
    Создает JWT токен для пользователя.

    Токены выпускает сервис авторизации (Telegram, VK, логин/пароль);
    здесь функция нужна для служебных клиентов и тестов.

    Args:
        user_id: ID пользователя в базе данных
        login: Способ входа
        expire_minutes: Время жизни токена

    Returns:
        JWT токен
    """
    expire = datetime.now(timezone.utc) + timedelta(minutes=expire_minutes)
    payload = {
        "sub": user_id,
        "user_id": user_id,
        "login": login.model_dump(),
        "exp": expire
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> TokenPayload | None:
    """
    Декодирует JWT токен.

    Args:
        token: JWT токен

    Returns:
        Payload токена или None если токен невалидный
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm]
        )
    except jwt.ExpiredSignatureError:
        logger.debug("Token expired")
        return None
    except jwt.InvalidTokenError as e:
        logger.debug(f"Invalid token: {e}")
        return None

    try:
        return TokenPayload.model_validate(payload)
    except ValidationError as e:
        logger.debug(f"Invalid token payload: {e}")
        return None


__all__ = [
    "create_access_token",
    "decode_access_token",
]
