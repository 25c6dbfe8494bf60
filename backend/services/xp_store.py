"""SQL-backed collaborators for the weekly XP job.

``SqlXpStore`` reads swaps from ``swap_activities`` and upserts weekly
records into ``xp_distributions``. It implements ``TradeSource``,
``HistoricalPairLookup`` and ``WeeklyRecordStore``.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Callable, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_upsert
from sqlalchemy.dialects.sqlite import insert as sqlite_upsert

from config import settings
from models import database
from models.database import SwapActivity, XpDistribution
from models.xp import League, WeeklyXPRecord
from services.xp.pairs import normalize_pair
from utils.logger import store_logger as logger
from utils.retry import RetryConfig, with_retry
from utils.utcnow import utcnow

_UPSERT_COLUMNS = (
    "user_id",
    "week_end",
    "league",
    "swap_xp_raw",
    "swap_xp_decayed",
    "pair_bonus_xp",
    "total_xp",
    "eligible_volume",
    "total_fees",
    "unique_pairs_count",
    "new_pairs_count",
    "total_swaps",
    "metadata",
)

_persist_retry = RetryConfig(max_attempts=settings.XP_PERSIST_MAX_ATTEMPTS, base_delay=0.5)


def _swap_row(swap: SwapActivity) -> dict[str, Any]:
    return {
        "id": swap.id,
        "user_id": swap.user_id,
        "wallet_address": swap.wallet_address,
        "token_from_address": swap.token_from_address,
        "token_to_address": swap.token_to_address,
        "usd_volume": swap.usd_volume,
        "fees_usd": swap.fees_usd,
        "timestamp": swap.timestamp,
        "status": swap.status,
        "swap_type": swap.swap_type,
        "price_impact": swap.price_impact,
        "order_id": swap.order_id,
    }


class SqlXpStore:
    """Trade source, historical pair lookup and weekly record store over SQLAlchemy."""

    def __init__(
        self,
        session_factory: Optional[Callable[[], Any]] = None,
        swap_types: Optional[Sequence[str]] = None,
        min_fill_size_usd: Optional[float] = None,
    ):
        self._session_factory = session_factory
        self.swap_types = tuple(swap_types or settings.XP_SWAP_TYPES)
        self._min_fill_size_usd = min_fill_size_usd

    @property
    def min_fill_size_usd(self) -> float:
        if self._min_fill_size_usd is None:
            return settings.XP_MIN_FILL_SIZE_USD
        return self._min_fill_size_usd

    def _session(self):
        factory = self._session_factory or database.AsyncSessionLocal
        return factory()

    async def fetch_trades(
        self,
        week_start: datetime,
        week_end: datetime,
        wallet_address: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        query = (
            select(SwapActivity)
            .where(
                SwapActivity.timestamp >= week_start,
                SwapActivity.timestamp < week_end,
                SwapActivity.status == "success",
                SwapActivity.swap_type.in_(self.swap_types),
            )
            .order_by(SwapActivity.timestamp, SwapActivity.id)
        )
        if wallet_address:
            query = query.where(
                func.lower(SwapActivity.wallet_address) == wallet_address.strip().lower()
            )

        async with self._session() as session:
            result = await session.execute(query)
            rows = [_swap_row(swap) for swap in result.scalars().all()]

        logger.info(
            "Fetched swaps",
            week_start=week_start.isoformat(),
            week_end=week_end.isoformat(),
            wallet=wallet_address,
            count=len(rows),
        )
        return rows

    async def get_historical_pairs(self, wallet_address: str, before: datetime) -> set[str]:
        """Pairs of past swaps that would have counted toward XP.

        Dust fills and swap types outside ``swap_types`` never make a pair
        historical, the same swaps the weekly pipeline ignores.
        """
        query = (
            select(SwapActivity.token_from_address, SwapActivity.token_to_address)
            .where(
                func.lower(SwapActivity.wallet_address) == wallet_address.strip().lower(),
                SwapActivity.status == "success",
                SwapActivity.timestamp < before,
                SwapActivity.swap_type.in_(self.swap_types),
                SwapActivity.usd_volume >= self.min_fill_size_usd,
            )
            .distinct()
        )
        async with self._session() as session:
            result = await session.execute(query)
            return {normalize_pair(token_from, token_to) for token_from, token_to in result.all()}

    @with_retry(_persist_retry)
    async def upsert_weekly_record(self, record: WeeklyXPRecord) -> None:
        """Insert or update the row for ``(wallet_address, week_start)``."""
        now = utcnow()
        values = record.to_row()
        values["id"] = uuid.uuid4().hex
        values["calculated_at"] = now
        values["updated_at"] = now

        table = XpDistribution.__table__
        columns = {col.name: col for col in table.columns}
        async with self._session() as session:
            dialect = session.bind.dialect.name if session.bind is not None else "sqlite"
            insert = pg_upsert if dialect == "postgresql" else sqlite_upsert
            stmt = insert(table).values({columns[name]: value for name, value in values.items()})
            set_ = {columns[name]: stmt.excluded[columns[name].key] for name in _UPSERT_COLUMNS}
            set_[table.c.calculated_at] = now
            set_[table.c.updated_at] = now
            stmt = stmt.on_conflict_do_update(
                index_elements=[table.c.wallet_address, table.c.week_start],
                set_=set_,
            )
            await session.execute(stmt)
            await session.commit()

        logger.debug(
            "Upserted weekly XP",
            wallet=record.wallet_address,
            week_start=record.week_start.isoformat(),
            total_xp=record.total_xp,
        )

    async def get_weekly_record(
        self, wallet_address: str, week_start: datetime
    ) -> Optional[WeeklyXPRecord]:
        async with self._session() as session:
            result = await session.execute(
                select(XpDistribution).where(
                    XpDistribution.wallet_address == wallet_address.strip().lower(),
                    XpDistribution.week_start == week_start,
                )
            )
            row = result.scalar_one_or_none()

        if row is None:
            return None
        return WeeklyXPRecord(
            wallet_address=row.wallet_address,
            user_id=row.user_id,
            week_start=row.week_start,
            week_end=row.week_end,
            league=League.from_db_value(row.league),
            swap_xp_raw=row.swap_xp_raw,
            swap_xp_decayed=row.swap_xp_decayed,
            pair_bonus_xp=row.pair_bonus_xp,
            total_xp=row.total_xp,
            eligible_volume=row.eligible_volume,
            total_fees=row.total_fees,
            unique_pairs_count=row.unique_pairs_count,
            new_pairs_count=row.new_pairs_count,
            total_swaps=row.total_swaps,
            metadata=row.details or {},
        )
