import httpx

from storefront.config import get_settings
from storefront.logging_config import get_logger

logger = get_logger(__name__)
settings = get_settings()

TIMEOUT_CONFIG = httpx.Timeout(
    connect=10.0,
    read=15.0,
    write=10.0,
    pool=15.0
)

LIMITS_CONFIG = httpx.Limits(
    max_keepalive_connections=20,
    max_connections=100,
    keepalive_expiry=30.0
)

# PostgREST отвечает 409 на нарушение UNIQUE
CONFLICT_STATUS = 409


def get_supabase_headers(api_key: str) -> dict[str, str]:
    return {
        "apikey": api_key,
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
        "Prefer": "return=representation"
    }


def is_conflict(error: httpx.HTTPStatusError) -> bool:
    """Ошибка вызвана дубликатом записи (unique violation)."""
    return error.response.status_code == CONFLICT_STATUS


def parse_content_range(value: str) -> int:
    """Общее количество из content-range ("0-24/3573", "*/0")."""
    _, _, total = value.partition("/")
    try:
        return int(total)
    except ValueError:
        return 0


class SupabaseClient:
    """
    Клиент PostgREST API Supabase с ключом service role.

    Фильтры передаются как есть: {"code": "eq.SPRING15"},
    {"id": "in.(a,b)"}, {"metadata->>yookassa_payment_id": "eq.2f9..."}.
    Ошибки HTTP логируются и пробрасываются вызывающему коду.
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_url = f"{base_url or settings.supabase_url}/rest/v1"
        self.headers = get_supabase_headers(api_key or settings.supabase_key)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=TIMEOUT_CONFIG,
                limits=LIMITS_CONFIG,
                http2=True,
                transport=self._transport,
            )
            logger.debug("Created new HTTP client for Supabase")
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
            logger.info("Supabase HTTP client closed")

    async def _send(
        self,
        method: str,
        table: str,
        *,
        params: dict[str, str] | None = None,
        json: list | dict | None = None,
        prefer: str | None = None,
    ) -> httpx.Response:
        client = await self._get_client()
        headers = self.headers if prefer is None else {**self.headers, "Prefer": prefer}
        try:
            resp = await client.request(
                method,
                f"{self.api_url}/{table}",
                params=params or {},
                headers=headers,
                json=json,
            )
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            if is_conflict(e):
                logger.info(f"Supabase {method} {table}: duplicate row")
            else:
                logger.error(f"Supabase {method} {table} error: {e.response.status_code} - {e.response.text}")
            raise
        except httpx.RequestError as e:
            logger.error(f"Supabase {method} {table} request error: {e}")
            raise
        return resp

    async def get(
        self,
        table: str,
        params: dict[str, str] | None = None
    ) -> list[dict]:
        """
        Получить записи из таблицы.

        Args:
            table: Имя таблицы
            params: Фильтры, select, order, limit

        Returns:
            Список записей
        """
        resp = await self._send("GET", table, params=params)
        return resp.json()

    async def get_one(
        self,
        table: str,
        params: dict[str, str]
    ) -> dict | None:
        """Первая запись по фильтру или None."""
        rows = await self.get(table, {**params, "limit": "1"})
        return rows[0] if rows else None

    async def count(
        self,
        table: str,
        params: dict[str, str] | None = None
    ) -> int:
        """Точное количество записей по фильтру (HEAD, без тела ответа)."""
        resp = await self._send("HEAD", table, params=params, prefer="count=exact")
        return parse_content_range(resp.headers.get("content-range", ""))

    async def insert(
        self,
        table: str,
        data: dict | list[dict]
    ) -> list[dict]:
        """
        Вставить одну или несколько записей.

        Raises:
            httpx.HTTPStatusError: 409 при нарушении уникальности
        """
        payload = data if isinstance(data, list) else [data]
        resp = await self._send("POST", table, json=payload)
        return resp.json()

    async def update(
        self,
        table: str,
        params: dict[str, str],
        data: dict
    ) -> list[dict]:
        """Обновить записи по фильтру. Возвращает обновлённые строки."""
        resp = await self._send("PATCH", table, params=params, json=data)
        return resp.json()

    async def delete(
        self,
        table: str,
        params: dict[str, str]
    ) -> list[dict]:
        """
        Удалить записи по фильтру.

        Returns:
            Удалённые записи (пусто, если фильтр ничего не нашёл)
        """
        resp = await self._send("DELETE", table, params=params)
        return resp.json() if resp.content else []


supabase_client = SupabaseClient()
