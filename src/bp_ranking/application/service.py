"""RankingService: gathers member metrics for a room and ranks them.

Used by the live leaderboard endpoint and by the settlement pipeline, so both
produce identical orderings for identical inputs.
"""

import logging
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from src.bp_common.datetime_utils import utc_now
from src.bp_common.enums import MembershipStatus
from src.bp_common.errors import PriceUnavailableError, RoomNotFoundError
from src.bp_order.application.price_resolver import PriceResolver
from src.bp_order.domain.repository import OrderRepositoryProtocol
from src.bp_order.infrastructure.persistence import OrderRepository
from src.bp_ranking.application.schemas import LeaderboardRow, LiveLeaderboardResponse
from src.bp_ranking.domain.repository import RankingRepositoryProtocol
from src.bp_ranking.domain.scoring import (
    MemberMetrics,
    RankingEntry,
    RankingWeights,
    rank_entries,
)
from src.bp_ranking.domain.valuation import build_member_metrics
from src.bp_ranking.infrastructure.persistence import RankingRepository
from src.bp_room.domain.models import BullPen
from src.bp_room.domain.repository import RoomRepositoryProtocol
from src.bp_room.infrastructure.persistence import RoomRepository

logger = logging.getLogger(__name__)


class RankingService:
    def __init__(
        self,
        repo: RankingRepositoryProtocol | None = None,
        room_repo: RoomRepositoryProtocol | None = None,
        order_repo: OrderRepositoryProtocol | None = None,
        prices: PriceResolver | None = None,
        weights: RankingWeights | None = None,
    ) -> None:
        self._repo: RankingRepositoryProtocol = repo or RankingRepository()
        self._rooms: RoomRepositoryProtocol = room_repo or RoomRepository()
        self._orders: OrderRepositoryProtocol = order_repo or OrderRepository()
        self._prices = prices or PriceResolver()
        self._weights = (weights or RankingWeights.from_settings()).validate()

    @property
    def weights(self) -> RankingWeights:
        return self._weights

    async def quote_room(self, db: AsyncSession, bull_pen_id: int) -> dict[str, Decimal]:
        """Latest prices for every open position in the room, taken without row locks."""
        positions = await self._orders.list_positions(db, bull_pen_id)
        return await self._resolve_prices(sorted({p.symbol for p in positions if p.qty > 0}))

    async def collect_metrics(
        self, db: AsyncSession, room: BullPen, prices: dict[str, Decimal] | None = None
    ) -> list[MemberMetrics]:
        members = [
            m
            for m in await self._rooms.list_members(db, room.id)
            if m.status == MembershipStatus.ACTIVE.value
        ]
        if not members:
            return []
        positions = await self._orders.list_positions(db, room.id)
        open_symbols = sorted({p.symbol for p in positions if p.qty > 0})
        if prices is None:
            prices = await self._resolve_prices(open_symbols)
        else:
            unquoted = [s for s in open_symbols if s not in prices]
            if unquoted:
                logger.info("Room %d: no pre-fetched quote for %s", room.id, unquoted)
        user_ids = [m.user_id for m in members]
        return build_member_metrics(
            members,
            positions,
            prices,
            room.starting_cash,
            room_stars=await self._repo.room_stars(db, room.id),
            trade_counts=await self._orders.count_filled_orders(db, room.id),
            account_created=await self._repo.account_created(db, user_ids),
            now=utc_now(),
        )

    def rank(self, metrics: list[MemberMetrics]) -> list[RankingEntry]:
        return rank_entries(metrics, self._weights)

    async def live_leaderboard(
        self, db: AsyncSession, bull_pen_id: int
    ) -> LiveLeaderboardResponse:
        room = await self._rooms.get_room(db, bull_pen_id)
        if room is None:
            raise RoomNotFoundError(bull_pen_id)
        entries = self.rank(await self.collect_metrics(db, room))
        return LiveLeaderboardResponse(
            bull_pen_id=bull_pen_id,
            state=room.state,
            entries=[LeaderboardRow.from_entry(e) for e in entries],
        )

    async def _resolve_prices(self, symbols: list[str]) -> dict[str, Decimal]:
        prices: dict[str, Decimal] = {}
        for symbol in symbols:
            try:
                prices[symbol] = (await self._prices.resolve(symbol)).price
            except PriceUnavailableError as e:
                logger.warning("Valuing %s at average cost: %s", symbol, e.message)
        return prices
