import itertools
import os
from collections import defaultdict
from datetime import datetime, timedelta, timezone

os.environ.setdefault("SUPABASE_URL", "http://supabase.test")
os.environ.setdefault("SUPABASE_KEY", "service-role-test-key")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-that-is-long-enough-for-hs256")
os.environ.setdefault("YOOKASSA_SHOP_ID", "123456")
os.environ.setdefault("YOOKASSA_SECRET_KEY", "test_yookassa_secret")

import httpx  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from storefront.auth.schemas import TelegramLogin  # noqa: E402
from storefront.auth.service import create_access_token  # noqa: E402
from storefront.db import supabase_client  # noqa: E402
from storefront.payments.yookassa import yookassa_client  # noqa: E402
from storefront.rate_limit import limiter  # noqa: E402


def _conflict(table: str) -> httpx.HTTPStatusError:
    request = httpx.Request("POST", f"http://supabase.test/rest/v1/{table}")
    response = httpx.Response(409, request=request, json={"code": "23505"})
    return httpx.HTTPStatusError("duplicate key value", request=request, response=response)


class FakeSupabase:
    """
    Таблицы в памяти с подмножеством фильтров PostgREST:
    eq., in.(...), order=<col>.<asc|desc>, limit, metadata->>key.
    """

    UNIQUE = {
        "promocodes": [("code",)],
        "user_promocodes": [("user_id", "promocode_id")],
    }

    def __init__(self) -> None:
        self.tables: dict[str, list[dict]] = defaultdict(list)
        self._ids = itertools.count(1)
        self._clock = datetime(2025, 1, 1, tzinfo=timezone.utc)

    def add(self, table: str, **row) -> dict:
        row.setdefault("id", f"{table}-{next(self._ids)}")
        self._clock += timedelta(seconds=1)
        row.setdefault("created_at", self._clock.isoformat())
        self.tables[table].append(row)
        return row

    def rows(self, table: str, **filters) -> list[dict]:
        return [
            r for r in self.tables[table]
            if all(r.get(k) == v for k, v in filters.items())
        ]

    @staticmethod
    def _field(row: dict, key: str):
        if "->>" in key:
            column, field = key.split("->>", 1)
            return (row.get(column) or {}).get(field)
        return row.get(key)

    @staticmethod
    def _as_text(value) -> str:
        if value is True:
            return "true"
        if value is False:
            return "false"
        if value is None:
            return "null"
        return str(value)

    def _matches(self, row: dict, params: dict[str, str]) -> bool:
        for key, expr in params.items():
            if key in ("select", "order", "limit"):
                continue
            op, _, arg = expr.partition(".")
            value = self._as_text(self._field(row, key))
            if op == "eq" and value != arg:
                return False
            if op == "in" and value not in arg.strip("()").split(","):
                return False
        return True

    def _select(self, table: str, params: dict[str, str] | None) -> list[dict]:
        params = params or {}
        rows = [r for r in self.tables[table] if self._matches(r, params)]
        order = params.get("order")
        if order:
            column, _, direction = order.partition(".")
            rows.sort(key=lambda r: r.get(column) or "", reverse=direction == "desc")
        if "limit" in params:
            rows = rows[: int(params["limit"])]
        return rows

    def _check_unique(self, table: str, row: dict, ignore: dict | None = None) -> None:
        for columns in self.UNIQUE.get(table, []):
            for existing in self.tables[table]:
                if existing is ignore:
                    continue
                if all(existing.get(c) == row.get(c) for c in columns):
                    raise _conflict(table)

    async def get(self, table: str, params: dict[str, str] | None = None) -> list[dict]:
        return [dict(r) for r in self._select(table, params)]

    async def get_one(self, table: str, params: dict[str, str]) -> dict | None:
        rows = await self.get(table, {**params, "limit": "1"})
        return rows[0] if rows else None

    async def count(self, table: str, params: dict[str, str] | None = None) -> int:
        return len(self._select(table, params))

    async def insert(self, table: str, data: dict | list[dict]) -> list[dict]:
        payload = data if isinstance(data, list) else [data]
        for row in payload:
            self._check_unique(table, row)
        return [dict(self.add(table, **dict(row))) for row in payload]

    async def update(self, table: str, params: dict[str, str], data: dict) -> list[dict]:
        rows = self._select(table, params)
        for row in rows:
            self._check_unique(table, {**row, **data}, ignore=row)
            row.update(data)
        return [dict(r) for r in rows]

    async def delete(self, table: str, params: dict[str, str]) -> list[dict]:
        rows = self._select(table, params)
        self.tables[table] = [
            r for r in self.tables[table] if all(r is not d for d in rows)
        ]
        return [dict(r) for r in rows]


@pytest.fixture
def db(monkeypatch) -> FakeSupabase:
    fake = FakeSupabase()
    for name in ("get", "get_one", "count", "insert", "update", "delete"):
        monkeypatch.setattr(supabase_client, name, getattr(fake, name))
    return fake


@pytest.fixture
def app(db):
    from storefront.main import app as fastapi_app

    limiter.reset()
    return fastapi_app


@pytest.fixture
def api(app) -> TestClient:
    return TestClient(app)


def make_headers(user_id: str) -> dict[str, str]:
    token = create_access_token(user_id, TelegramLogin(telegram_id=100500))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def user(db) -> dict:
    return db.add("users", id="user-1", is_admin=False)


@pytest.fixture
def admin(db) -> dict:
    return db.add("users", id="admin-1", is_admin=True)


@pytest.fixture
def user_headers(user) -> dict[str, str]:
    return make_headers(user["id"])


@pytest.fixture
def admin_headers(admin) -> dict[str, str]:
    return make_headers(admin["id"])


@pytest.fixture
def yookassa(monkeypatch) -> list[dict]:
    """Подменяет ЮКассу; возвращает список отправленных платежей."""
    calls: list[dict] = []

    async def create_payment(payload: dict, idempotence_key: str) -> dict:
        calls.append({"payload": payload, "idempotence_key": idempotence_key})
        number = len(calls)
        return {
            "id": f"yk-{number}",
            "status": "pending",
            "confirmation": {
                "type": "redirect",
                "confirmation_url": f"https://yoomoney.test/checkout/{number}",
            },
        }

    monkeypatch.setattr(yookassa_client, "create_payment", create_payment)
    return calls


def add_promocode(db: FakeSupabase, **overrides) -> dict:
    row = {
        "code": "SPRING15",
        "discount_percent": 15,
        "discount_amount": 0,
        "max_activations": 10,
        "current_activations": 0,
        "is_active": True,
        "promo_type": "discount",
        "course_id": None,
        "valid_from": None,
        "valid_until": None,
        "description": "Весенняя скидка",
    }
    row.update(overrides)
    return db.add("promocodes", **row)
