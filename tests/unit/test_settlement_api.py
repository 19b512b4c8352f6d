"""HTTP-level tests for the settlement and star routes (services mocked)."""

from datetime import UTC, datetime
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import AsyncClient

from config.settings import settings
from src.bp_common.database import get_db_session
from src.bp_common.errors import RoomNotSettleableError
from src.bp_gateway.auth.jwt_handler import create_access_token
from src.bp_settlement.api import internal_router, router
from src.bp_settlement.domain.models import Payout, SettlementResult, StarEvent
from src.main import app

INTERNAL = {"Authorization": f"Bearer {settings.INTERNAL_SERVICE_TOKEN}"}


@pytest.fixture(autouse=True)
def no_db():
    async def _fake_session():
        yield MagicMock()

    app.dependency_overrides[get_db_session] = _fake_session
    yield
    app.dependency_overrides.pop(get_db_session, None)


def _user_headers(user_id: str = "alice") -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


class TestSettleRoute:
    async def test_settles(self, client: AsyncClient, monkeypatch: pytest.MonkeyPatch) -> None:
        result = SettlementResult(
            success=True,
            settled_count=2,
            correlation_id="room-7-settlement-x",
            pool=Decimal("20000.00"),
            payouts=[Payout("alice", 1, Decimal("20000.00")), Payout("bob", 2, Decimal("0"))],
        )
        settle = AsyncMock(return_value=result)
        monkeypatch.setattr(internal_router._settlement, "settle_room", settle)

        resp = await client.post("/internal/v1/settlement/rooms/7", headers=INTERNAL)

        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["success"] is True
        assert data["settled_count"] == 2
        assert data["pool"] == 20000.0
        assert data["payouts"][0] == {"user_id": "alice", "rank": 1, "amount": 20000.0}
        assert settle.await_args.args[1] == 7

    async def test_hard_failure_is_reported_in_body(
        self, client: AsyncClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        settle = AsyncMock(return_value=SettlementResult(success=False, error="boom"))
        monkeypatch.setattr(internal_router._settlement, "settle_room", settle)

        resp = await client.post("/internal/v1/settlement/rooms/7", headers=INTERNAL)

        assert resp.status_code == 200
        assert resp.json()["data"]["success"] is False
        assert resp.json()["data"]["error"] == "boom"

    async def test_not_settleable(
        self, client: AsyncClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        settle = AsyncMock(side_effect=RoomNotSettleableError(7, "draft"))
        monkeypatch.setattr(internal_router._settlement, "settle_room", settle)

        resp = await client.post("/internal/v1/settlement/rooms/7", headers=INTERNAL)

        assert resp.status_code == 422
        assert resp.json()["data"]["reason"] == "ROOM_NOT_SETTLEABLE"

    async def test_requires_service_token(self, client: AsyncClient) -> None:
        resp = await client.post("/internal/v1/settlement/rooms/7", headers=_user_headers())
        assert resp.status_code == 403


class TestStarsRoute:
    async def test_lifetime_stars(
        self, client: AsyncClient, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(
            router._achievements, "get_aggregated_stars", AsyncMock(return_value=110)
        )
        event = StarEvent(
            id=1, user_id="alice", reason_code="room_first_place", stars=100, bull_pen_id=7,
            meta={"settled_room": 7}, created_at=datetime.now(UTC),
        )
        monkeypatch.setattr(
            router._achievements, "list_star_events", AsyncMock(return_value=[event])
        )

        resp = await client.get("/api/users/me/stars", headers=_user_headers())

        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["user_id"] == "alice"
        assert data["total_stars"] == 110
        assert data["events"][0]["reason_code"] == "room_first_place"

    async def test_room_scope_without_room_is_rejected(self, client: AsyncClient) -> None:
        resp = await client.get("/api/users/me/stars?scope=room", headers=_user_headers())
        assert resp.status_code == 400
        assert resp.json()["data"]["reason"] == "VALIDATION_ERROR"

    async def test_requires_login(self, client: AsyncClient) -> None:
        resp = await client.get("/api/users/me/stars")
        assert resp.status_code == 401
