"""Integration-test fixtures.

All integration tests share a single event-loop so that the module-level
SQLAlchemy async engine pool and Redis pool (both created at import time)
remain valid across the entire test session.

Budgets have no public open endpoint, so `open_budget` inserts the
user_budgets row directly and funds it through the internal credit route.
"""

from collections.abc import Awaitable, Callable

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import text

from config.settings import settings
from src.bp_common.database import async_session_factory
from src.main import app

_INSERT_BUDGET_SQL = text("""
    INSERT INTO user_budgets (user_id) VALUES (:user_id)
    ON CONFLICT (user_id) DO NOTHING
""")


@pytest_asyncio.fixture(loop_scope="session", scope="session")
async def client() -> AsyncClient:  # type: ignore[override]
    """Session-scoped async HTTP client: keeps the engine pool alive."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def internal_headers() -> Callable[[str | None], dict[str, str]]:
    """Service-token headers; pass a key for mutating budget calls."""

    def _headers(idempotency_key: str | None = None) -> dict[str, str]:
        headers = {"Authorization": f"Bearer {settings.INTERNAL_SERVICE_TOKEN}"}
        if idempotency_key is not None:
            headers["Idempotency-Key"] = idempotency_key
        return headers

    return _headers


@pytest_asyncio.fixture(loop_scope="session")
async def open_budget(
    client: AsyncClient,
) -> Callable[[str, str], Awaitable[None]]:
    async def _open(user_id: str, amount: str = "50000.00") -> None:
        async with async_session_factory() as session:
            await session.execute(_INSERT_BUDGET_SQL, {"user_id": user_id})
            await session.commit()
        resp = await client.post(
            "/internal/v1/budget/credit",
            json={"user_id": user_id, "amount": amount, "operation_type": "ADJUSTMENT"},
            headers={
                "Authorization": f"Bearer {settings.INTERNAL_SERVICE_TOKEN}",
                "Idempotency-Key": f"seed-{user_id}",
            },
        )
        assert resp.status_code == 200, resp.text

    return _open
