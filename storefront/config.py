from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Supabase
    supabase_url: str
    supabase_key: str

    # JWT (токены выпускает сервис авторизации)
    jwt_secret_key: str
    jwt_algorithm: str = "HS256"

    # ЮКасса (optional: без них создание платежа отключено)
    yookassa_shop_id: str | None = None
    yookassa_secret_key: str | None = None
    yookassa_api_url: str = "https://api.yookassa.ru/v3"

    # Публичный адрес сайта для return_url
    app_url: str = "http://localhost:3000"

    # Курсы, которые открывает акция "2 курса"
    two_courses_course_ids: list[str] = []

    # Redis (optional)
    redis_url: str | None = None

    # App settings
    debug: bool = False
    log_level: str = "INFO"
    log_json: bool = False

    # Rate limiting
    rate_limit_per_minute: int = 60
    rate_limit_promo_per_minute: int = 10
    rate_limit_payment_per_minute: int = 5

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    return Settings()
