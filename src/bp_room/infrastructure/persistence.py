"""RoomRepository: raw text() SQL over bull_pens and bull_pen_memberships.

asyncpg NULL parameter pattern: CAST(:param AS TYPE) IS NULL required for None values.
Row locks (FOR UPDATE) are held until the caller's transaction ends.
"""

from collections.abc import Sequence
from datetime import datetime
from decimal import Decimal

from sqlalchemy import bindparam, text
from sqlalchemy.ext.asyncio import AsyncSession

from src.bp_common.enums import MembershipRole, MembershipStatus, RoomState
from src.bp_common.errors import InternalError, RoomNotFoundError
from src.bp_room.domain.models import BullPen, Membership

# ---------------------------------------------------------------------------
# SQL: bull_pens
# ---------------------------------------------------------------------------

_ROOM_COLUMNS = """
    id, name, description, host_user_id, state, starting_cash, duration_sec,
    start_time, max_players, allow_fractional, approval_required, season_id,
    cancelled_at, settled_at, created_at, updated_at
"""

_GET_ROOM_SQL = text(f"SELECT {_ROOM_COLUMNS} FROM bull_pens WHERE id = :id")

_GET_ROOM_FOR_UPDATE_SQL = text(f"SELECT {_ROOM_COLUMNS} FROM bull_pens WHERE id = :id FOR UPDATE")

_INSERT_ROOM_SQL = text(f"""
    INSERT INTO bull_pens
        (name, description, host_user_id, state, starting_cash, duration_sec,
         start_time, max_players, allow_fractional, approval_required, season_id)
    VALUES
        (:name, :description, :host_user_id, :state, :starting_cash, :duration_sec,
         :start_time, :max_players, :allow_fractional, :approval_required, :season_id)
    RETURNING {_ROOM_COLUMNS}
""")

_UPDATE_ROOM_SQL = text(f"""
    UPDATE bull_pens
    SET name              = COALESCE(CAST(:name AS TEXT), name),
        description       = COALESCE(CAST(:description AS TEXT), description),
        starting_cash     = COALESCE(CAST(:starting_cash AS NUMERIC), starting_cash),
        duration_sec      = COALESCE(CAST(:duration_sec AS INTEGER), duration_sec),
        start_time        = COALESCE(CAST(:start_time AS TIMESTAMPTZ), start_time),
        max_players       = COALESCE(CAST(:max_players AS INTEGER), max_players),
        allow_fractional  = COALESCE(CAST(:allow_fractional AS BOOLEAN), allow_fractional),
        approval_required = COALESCE(CAST(:approval_required AS BOOLEAN), approval_required),
        updated_at = NOW()
    WHERE id = :id
    RETURNING {_ROOM_COLUMNS}
""")

_UPDATE_STATE_SQL = text("""
    UPDATE bull_pens SET state = :state, updated_at = NOW() WHERE id = :id
""")

_MARK_CANCELLED_SQL = text("""
    UPDATE bull_pens SET cancelled_at = NOW(), updated_at = NOW() WHERE id = :id
""")

# memberships/positions/orders cascade via FK ON DELETE CASCADE
_DELETE_ROOM_SQL = text("DELETE FROM bull_pens WHERE id = :id")

_LIST_ROOMS_FOR_USER_SQL = text(f"""
    SELECT {", ".join("bp." + c.strip() for c in _ROOM_COLUMNS.split(","))}
    FROM bull_pens bp
    JOIN bull_pen_memberships m ON m.bull_pen_id = bp.id
    WHERE m.user_id = :user_id
      AND m.status IN ('{MembershipStatus.PENDING.value}', '{MembershipStatus.ACTIVE.value}')
    ORDER BY bp.created_at DESC, bp.id DESC
""")

# ---------------------------------------------------------------------------
# SQL: bull_pen_memberships
# ---------------------------------------------------------------------------

_MEMBERSHIP_COLUMNS = "id, bull_pen_id, user_id, role, status, cash, joined_at, updated_at"

_GET_MEMBERSHIP_SQL = text(f"""
    SELECT {_MEMBERSHIP_COLUMNS}
    FROM bull_pen_memberships
    WHERE bull_pen_id = :bull_pen_id AND user_id = :user_id
""")

_GET_MEMBERSHIP_FOR_UPDATE_SQL = text(f"""
    SELECT {_MEMBERSHIP_COLUMNS}
    FROM bull_pen_memberships
    WHERE bull_pen_id = :bull_pen_id AND user_id = :user_id
    FOR UPDATE
""")

_INSERT_MEMBERSHIP_SQL = text(f"""
    INSERT INTO bull_pen_memberships (bull_pen_id, user_id, role, status, cash)
    VALUES (:bull_pen_id, :user_id, :role, :status, :cash)
    RETURNING {_MEMBERSHIP_COLUMNS}
""")

_UPDATE_MEMBERSHIP_STATUS_SQL = text("""
    UPDATE bull_pen_memberships SET status = :status, updated_at = NOW() WHERE id = :id
""")

_RESET_HOST_CASH_SQL = text(f"""
    UPDATE bull_pen_memberships
    SET cash = :cash, updated_at = NOW()
    WHERE bull_pen_id = :bull_pen_id AND role = '{MembershipRole.HOST.value}'
""")

_SET_ALL_STATUS_SQL = text("""
    UPDATE bull_pen_memberships
    SET status = :status, updated_at = NOW()
    WHERE bull_pen_id = :bull_pen_id AND status IN :from_statuses
""").bindparams(bindparam("from_statuses", expanding=True))

_COUNT_MEMBERS_SQL = text("""
    SELECT COUNT(*) FROM bull_pen_memberships
    WHERE bull_pen_id = :bull_pen_id AND status IN :statuses
""").bindparams(bindparam("statuses", expanding=True))

_LIST_MEMBERS_SQL = text(f"""
    SELECT {_MEMBERSHIP_COLUMNS}
    FROM bull_pen_memberships
    WHERE bull_pen_id = :bull_pen_id
    ORDER BY joined_at ASC, id ASC
""")


def _row_to_room(row: object) -> BullPen:
    return BullPen(
        id=row.id,  # type: ignore[attr-defined]
        name=row.name,  # type: ignore[attr-defined]
        description=row.description,  # type: ignore[attr-defined]
        host_user_id=row.host_user_id,  # type: ignore[attr-defined]
        state=row.state,  # type: ignore[attr-defined]
        starting_cash=Decimal(row.starting_cash),  # type: ignore[attr-defined]
        duration_sec=row.duration_sec,  # type: ignore[attr-defined]
        start_time=row.start_time,  # type: ignore[attr-defined]
        max_players=row.max_players,  # type: ignore[attr-defined]
        allow_fractional=row.allow_fractional,  # type: ignore[attr-defined]
        approval_required=row.approval_required,  # type: ignore[attr-defined]
        season_id=row.season_id,  # type: ignore[attr-defined]
        cancelled_at=row.cancelled_at,  # type: ignore[attr-defined]
        settled_at=row.settled_at,  # type: ignore[attr-defined]
        created_at=row.created_at,  # type: ignore[attr-defined]
        updated_at=row.updated_at,  # type: ignore[attr-defined]
    )


def _row_to_membership(row: object) -> Membership:
    return Membership(
        id=row.id,  # type: ignore[attr-defined]
        bull_pen_id=row.bull_pen_id,  # type: ignore[attr-defined]
        user_id=row.user_id,  # type: ignore[attr-defined]
        role=row.role,  # type: ignore[attr-defined]
        status=row.status,  # type: ignore[attr-defined]
        cash=Decimal(row.cash),  # type: ignore[attr-defined]
        joined_at=row.joined_at,  # type: ignore[attr-defined]
        updated_at=row.updated_at,  # type: ignore[attr-defined]
    )


class RoomRepository:
    async def get_room(self, db: AsyncSession, bull_pen_id: int) -> BullPen | None:
        row = (await db.execute(_GET_ROOM_SQL, {"id": bull_pen_id})).fetchone()
        return _row_to_room(row) if row else None

    async def get_room_for_update(self, db: AsyncSession, bull_pen_id: int) -> BullPen | None:
        row = (await db.execute(_GET_ROOM_FOR_UPDATE_SQL, {"id": bull_pen_id})).fetchone()
        return _row_to_room(row) if row else None

    async def insert_room(
        self,
        db: AsyncSession,
        *,
        name: str,
        description: str | None,
        host_user_id: str,
        starting_cash: Decimal,
        duration_sec: int,
        start_time: datetime | None,
        max_players: int,
        allow_fractional: bool,
        approval_required: bool,
        season_id: int | None,
    ) -> BullPen:
        result = await db.execute(
            _INSERT_ROOM_SQL,
            {
                "name": name,
                "description": description,
                "host_user_id": host_user_id,
                "state": RoomState.DRAFT.value,
                "starting_cash": starting_cash,
                "duration_sec": duration_sec,
                "start_time": start_time,
                "max_players": max_players,
                "allow_fractional": allow_fractional,
                "approval_required": approval_required,
                "season_id": season_id,
            },
        )
        row = result.fetchone()
        if row is None:
            raise InternalError("bull_pens insert returned no rows")
        return _row_to_room(row)

    async def update_room(
        self,
        db: AsyncSession,
        bull_pen_id: int,
        *,
        name: str | None,
        description: str | None,
        starting_cash: Decimal | None,
        duration_sec: int | None,
        start_time: datetime | None,
        max_players: int | None,
        allow_fractional: bool | None,
        approval_required: bool | None,
    ) -> BullPen:
        result = await db.execute(
            _UPDATE_ROOM_SQL,
            {
                "id": bull_pen_id,
                "name": name,
                "description": description,
                "starting_cash": starting_cash,
                "duration_sec": duration_sec,
                "start_time": start_time,
                "max_players": max_players,
                "allow_fractional": allow_fractional,
                "approval_required": approval_required,
            },
        )
        row = result.fetchone()
        if row is None:
            raise RoomNotFoundError(bull_pen_id)
        return _row_to_room(row)

    async def update_state(self, db: AsyncSession, bull_pen_id: int, state: str) -> None:
        await db.execute(_UPDATE_STATE_SQL, {"id": bull_pen_id, "state": state})

    async def mark_cancelled(self, db: AsyncSession, bull_pen_id: int) -> None:
        await db.execute(_MARK_CANCELLED_SQL, {"id": bull_pen_id})

    async def delete_room(self, db: AsyncSession, bull_pen_id: int) -> None:
        await db.execute(_DELETE_ROOM_SQL, {"id": bull_pen_id})

    async def get_membership(
        self, db: AsyncSession, bull_pen_id: int, user_id: str
    ) -> Membership | None:
        row = (
            await db.execute(_GET_MEMBERSHIP_SQL, {"bull_pen_id": bull_pen_id, "user_id": user_id})
        ).fetchone()
        return _row_to_membership(row) if row else None

    async def get_membership_for_update(
        self, db: AsyncSession, bull_pen_id: int, user_id: str
    ) -> Membership | None:
        row = (
            await db.execute(
                _GET_MEMBERSHIP_FOR_UPDATE_SQL, {"bull_pen_id": bull_pen_id, "user_id": user_id}
            )
        ).fetchone()
        return _row_to_membership(row) if row else None

    async def insert_membership(
        self,
        db: AsyncSession,
        bull_pen_id: int,
        user_id: str,
        role: str,
        status: str,
        cash: Decimal,
    ) -> Membership:
        result = await db.execute(
            _INSERT_MEMBERSHIP_SQL,
            {
                "bull_pen_id": bull_pen_id,
                "user_id": user_id,
                "role": role,
                "status": status,
                "cash": cash,
            },
        )
        row = result.fetchone()
        if row is None:
            raise InternalError("bull_pen_memberships insert returned no rows")
        return _row_to_membership(row)

    async def update_membership_status(
        self, db: AsyncSession, membership_id: int, status: str
    ) -> None:
        await db.execute(_UPDATE_MEMBERSHIP_STATUS_SQL, {"id": membership_id, "status": status})

    async def reset_host_cash(self, db: AsyncSession, bull_pen_id: int, cash: Decimal) -> None:
        await db.execute(_RESET_HOST_CASH_SQL, {"bull_pen_id": bull_pen_id, "cash": cash})

    async def set_all_membership_status(
        self, db: AsyncSession, bull_pen_id: int, from_statuses: Sequence[str], status: str
    ) -> None:
        await db.execute(
            _SET_ALL_STATUS_SQL,
            {"bull_pen_id": bull_pen_id, "from_statuses": list(from_statuses), "status": status},
        )

    async def count_members(
        self, db: AsyncSession, bull_pen_id: int, statuses: Sequence[str]
    ) -> int:
        result = await db.execute(
            _COUNT_MEMBERS_SQL, {"bull_pen_id": bull_pen_id, "statuses": list(statuses)}
        )
        return int(result.scalar_one())

    async def list_members(self, db: AsyncSession, bull_pen_id: int) -> list[Membership]:
        result = await db.execute(_LIST_MEMBERS_SQL, {"bull_pen_id": bull_pen_id})
        return [_row_to_membership(row) for row in result.fetchall()]

    async def list_rooms_for_user(self, db: AsyncSession, user_id: str) -> list[BullPen]:
        result = await db.execute(_LIST_ROOMS_FOR_USER_SQL, {"user_id": user_id})
        return [_row_to_room(row) for row in result.fetchall()]
