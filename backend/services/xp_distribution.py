"""Weekly XP distribution job.

Fetches one week of swaps, groups them by wallet and computes and persists
each wallet's record concurrently. A wallet that fails never stops the
batch; its outcome is reported in the ``DistributionSummary``.

Usage:
    job = build_sql_job()
    summary = await job.run()                       # current week, all wallets
    summary = await job.run(week_range_for("2026-10-05"), wallet_address="0xabc")
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Optional

from config import settings
from interfaces.xp_sources import FeeEnricher, HistoricalPairLookup, TradeSource, WeeklyRecordStore
from models.xp import FeeUpdateSummary, Trade, WeeklyXPRecord
from services.xp.calculator import calculate_wallet_xp
from services.xp.errors import HistoricalPairLookupError, PersistenceError
from services.xp.trades import parse_trades
from services.xp.week import WeekRange, get_current_week_range, get_previous_week_range
from utils.logger import job_logger as logger

STATUS_SAVED = "saved"
STATUS_UNSETTLED = "unsettled"
STATUS_FAILED = "failed"


@dataclass
class WalletOutcome:
    wallet_address: str
    status: str
    record: Optional[WeeklyXPRecord] = None
    error: Optional[str] = None
    # The record lacks the pair bonus because the history lookup failed.
    partial: bool = False

    @property
    def settled(self) -> bool:
        return self.status == STATUS_SAVED


@dataclass
class DistributionSummary:
    week: WeekRange
    outcomes: list[WalletOutcome] = field(default_factory=list)
    rejected_trades: int = 0
    fee_summary: Optional[FeeUpdateSummary] = None

    def _count(self, status: str) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == status)

    @property
    def wallets_processed(self) -> int:
        return len(self.outcomes)

    @property
    def saved(self) -> int:
        return self._count(STATUS_SAVED)

    @property
    def unsettled(self) -> int:
        return self._count(STATUS_UNSETTLED)

    @property
    def failed(self) -> int:
        return self._count(STATUS_FAILED)

    @property
    def has_failures(self) -> bool:
        return self.failed > 0 or self.unsettled > 0

    @property
    def total_xp(self) -> float:
        return sum(o.record.total_xp for o in self.outcomes if o.record is not None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "week_start": self.week.start.isoformat(),
            "week_end": self.week.end.isoformat(),
            "wallets_processed": self.wallets_processed,
            "saved": self.saved,
            "unsettled": self.unsettled,
            "failed": self.failed,
            "rejected_trades": self.rejected_trades,
            "total_xp": round(self.total_xp, 4),
        }


def group_trades_by_wallet(trades: list[Trade]) -> dict[str, list[Trade]]:
    grouped: dict[str, list[Trade]] = defaultdict(list)
    for trade in trades:
        grouped[trade.wallet_address].append(trade)
    return dict(sorted(grouped.items()))


class XpDistributionJob:
    """Computes and settles weekly XP for every active wallet in a window."""

    def __init__(
        self,
        trade_source: TradeSource,
        history_lookup: HistoricalPairLookup,
        store: WeeklyRecordStore,
        fee_enricher: Optional[FeeEnricher] = None,
        max_concurrency: Optional[int] = None,
    ):
        self.trade_source = trade_source
        self.history_lookup = history_lookup
        self.store = store
        self.fee_enricher = fee_enricher
        self.max_concurrency = max(1, max_concurrency or settings.XP_JOB_MAX_CONCURRENCY)

    async def _enrich_fees(self, week: WeekRange) -> Optional[FeeUpdateSummary]:
        if self.fee_enricher is None:
            return None
        try:
            summary = await self.fee_enricher(week.start, week.end)
        except Exception as exc:
            # Stale fees only lower the fee ceiling; the week still settles.
            logger.error("Fee enrichment failed, continuing", error=str(exc))
            return None
        logger.info(
            "Fee enrichment complete",
            orders=summary.total_orders,
            fees_updated=summary.fees_updated,
            not_found=summary.orders_not_found,
            errors=len(summary.errors),
        )
        return summary

    async def _load_trades(
        self, week: WeekRange, wallet_address: Optional[str]
    ) -> tuple[list[Trade], int]:
        rows = await self.trade_source.fetch_trades(week.start, week.end, wallet_address)
        parsed = parse_trades(rows)
        for rejected in parsed.rejected:
            logger.warning("Rejected trade row", trade_id=rejected.trade_id, reason=rejected.reason)
        return list(parsed.trades), len(parsed.rejected)

    async def _process_wallet(
        self,
        wallet_address: str,
        trades: list[Trade],
        week: WeekRange,
        extra_metadata: Optional[dict[str, Any]],
        semaphore: asyncio.Semaphore,
    ) -> WalletOutcome:
        async with semaphore:
            try:
                record = await calculate_wallet_xp(
                    wallet_address,
                    trades,
                    week.start,
                    week.end,
                    history_lookup=self.history_lookup,
                    extra_metadata=extra_metadata,
                )
            except HistoricalPairLookupError as exc:
                partial = exc.partial_record
                logger.error(
                    "Pair bonus unavailable, weekly XP not persisted",
                    wallet=wallet_address,
                    league=partial.league.value if partial else None,
                    swap_xp_decayed=partial.swap_xp_decayed if partial else None,
                    total_xp_without_bonus=partial.total_xp if partial else None,
                    error=str(exc),
                )
                return WalletOutcome(
                    wallet_address, STATUS_UNSETTLED, record=partial, error=str(exc), partial=True
                )
            except Exception as exc:
                logger.exception(
                    "Wallet XP calculation failed", wallet=wallet_address, error=str(exc)
                )
                return WalletOutcome(wallet_address, STATUS_FAILED, error=str(exc))

            try:
                await self.store.upsert_weekly_record(record)
            except Exception as exc:
                error = PersistenceError(wallet_address, exc)
                logger.error(
                    "Weekly XP not persisted",
                    wallet=wallet_address,
                    total_xp=record.total_xp,
                    league=record.league.value,
                    error=str(error),
                )
                return WalletOutcome(wallet_address, STATUS_UNSETTLED, record=record, error=str(error))

            return WalletOutcome(wallet_address, STATUS_SAVED, record=record)

    async def run(
        self,
        week_range: Optional[WeekRange] = None,
        wallet_address: Optional[str] = None,
    ) -> DistributionSummary:
        """Settle one week. With ``wallet_address`` only that wallet is processed."""
        week = week_range or get_current_week_range()
        wallet_filter = wallet_address.strip().lower() if wallet_address else None
        logger.info("XP distribution started", week=week.label(), wallet=wallet_filter)

        fee_summary = await self._enrich_fees(week)
        trades, rejected = await self._load_trades(week, wallet_filter)
        by_wallet = group_trades_by_wallet(trades)
        if wallet_filter and wallet_filter not in by_wallet:
            by_wallet[wallet_filter] = []

        extra_metadata = (
            {"fee_update_summary": fee_summary.to_metadata()} if fee_summary else None
        )
        semaphore = asyncio.Semaphore(self.max_concurrency)
        outcomes = await asyncio.gather(
            *(
                self._process_wallet(wallet, wallet_trades, week, extra_metadata, semaphore)
                for wallet, wallet_trades in by_wallet.items()
            )
        )

        summary = DistributionSummary(
            week=week,
            outcomes=list(outcomes),
            rejected_trades=rejected,
            fee_summary=fee_summary,
        )
        logger.info("XP distribution complete", **summary.to_dict())
        return summary

    async def run_current_and_last_week(
        self, wallet_address: Optional[str] = None
    ) -> list[DistributionSummary]:
        """Re-settle last week, then settle the current week."""
        current = get_current_week_range()
        summaries = []
        for week in (get_previous_week_range(current), current):
            summaries.append(await self.run(week, wallet_address=wallet_address))
        return summaries

    async def preview(
        self, wallet_address: str, week_range: Optional[WeekRange] = None
    ) -> WeeklyXPRecord:
        """Compute a wallet's record for the week so far without persisting it."""
        week = week_range or get_current_week_range()
        wallet = wallet_address.strip().lower()
        trades, _ = await self._load_trades(week, wallet)
        return await calculate_wallet_xp(
            wallet, trades, week.start, week.end, history_lookup=self.history_lookup
        )


def build_sql_job(fee_enricher: Optional[FeeEnricher] = None) -> XpDistributionJob:
    """Job wired to the SQL store for trades, history and persistence."""
    from services.xp_store import SqlXpStore

    store = SqlXpStore()
    return XpDistributionJob(
        trade_source=store,
        history_lookup=store,
        store=store,
        fee_enricher=fee_enricher,
    )
