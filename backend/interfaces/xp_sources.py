"""XP distribution collaborator contracts.

These protocols define the I/O the weekly XP job depends on, decoupling the
deterministic XP engine from concrete stores and order-management clients.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping, Optional, Protocol, Sequence, Union

from models.xp import FeeUpdateSummary, Trade, WeeklyXPRecord

RawTrade = Union[Trade, Mapping[str, Any]]


class TradeSource(Protocol):
    """Read-only access to executed swaps."""

    async def fetch_trades(
        self,
        week_start: datetime,
        week_end: datetime,
        wallet_address: Optional[str] = None,
    ) -> Sequence[RawTrade]:
        """Fetch successful swaps in ``[week_start, week_end)``, optionally for one wallet."""


class HistoricalPairLookup(Protocol):
    async def get_historical_pairs(self, wallet_address: str, before: datetime) -> set[str]:
        """Return normalized pair keys the wallet traded strictly before ``before``."""


class WeeklyRecordStore(Protocol):
    """Idempotent persistence keyed by ``(wallet_address, week_start)``."""

    async def upsert_weekly_record(self, record: WeeklyXPRecord) -> None:
        """Insert the record, or replace the existing one for the same wallet and week."""


class FeeEnricher(Protocol):
    async def __call__(self, week_start: datetime, week_end: datetime) -> FeeUpdateSummary:
        """Backfill trade fees for the window before XP is computed."""
