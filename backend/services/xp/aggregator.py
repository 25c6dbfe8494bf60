"""Assemble the weekly XP record from the pipeline's results."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Mapping, Optional

from models.xp import (
    League,
    SwapType,
    SwapTypeBreakdown,
    Trade,
    UniquePairBonusResult,
    WeeklyXPRecord,
)
from services.xp.band_decay import BandDecayResult
from services.xp.eligible_volume import EligibleVolumeResult


def summarize_swap_types(trades: Iterable[Trade]) -> SwapTypeBreakdown:
    classic = limit = 0
    classic_volume = limit_volume = 0.0
    total = 0
    for trade in trades:
        total += 1
        if trade.swap_type == SwapType.LIMIT_ORDER.value:
            limit += 1
            limit_volume += trade.usd_volume
        elif trade.swap_type == SwapType.CLASSIC.value:
            classic += 1
            classic_volume += trade.usd_volume
    return SwapTypeBreakdown(
        classic=classic,
        limit_order=limit,
        total=total,
        classic_volume=classic_volume,
        limit_order_volume=limit_volume,
    )


def build_weekly_record(
    wallet_address: str,
    week_start: datetime,
    week_end: datetime,
    *,
    league: League,
    eligible: EligibleVolumeResult,
    decay: BandDecayResult,
    bonus: UniquePairBonusResult,
    total_swaps: int,
    swap_types: Optional[SwapTypeBreakdown] = None,
    user_id: Optional[int] = None,
    extra_metadata: Optional[Mapping[str, Any]] = None,
) -> WeeklyXPRecord:
    """Combine decayed swap XP and the pair bonus into one record.

    The metadata blob carries the per-pair breakdown and the new pair list
    so every total on the record can be re-derived from it.
    """
    metadata: dict[str, Any] = {
        "per_pair_results": [result.to_metadata() for result in decay.per_pair_results],
        "new_pairs": list(bonus.new_pairs),
        "swap_type_breakdown": (swap_types or SwapTypeBreakdown()).to_metadata(),
        "filter_stats": eligible.stats.to_metadata(),
        "round_trip_excluded_ids": sorted(eligible.excluded_trade_ids),
    }
    if extra_metadata:
        metadata.update(extra_metadata)

    return WeeklyXPRecord(
        wallet_address=wallet_address,
        user_id=user_id,
        week_start=week_start,
        week_end=week_end,
        league=league,
        swap_xp_raw=decay.total_xp_raw,
        swap_xp_decayed=decay.total_xp,
        pair_bonus_xp=bonus.xp_pair_bonus,
        total_xp=decay.total_xp + bonus.xp_pair_bonus,
        eligible_volume=eligible.total_eligible_volume,
        total_fees=eligible.total_fees,
        unique_pairs_count=len(eligible.per_pair_data),
        new_pairs_count=bonus.count_of_new_pairs,
        total_swaps=total_swaps,
        metadata=metadata,
    )


def zero_weekly_record(
    wallet_address: str,
    week_start: datetime,
    week_end: datetime,
    *,
    user_id: Optional[int] = None,
    extra_metadata: Optional[Mapping[str, Any]] = None,
) -> WeeklyXPRecord:
    """A Bronze record with no XP, for wallets with nothing eligible."""
    return build_weekly_record(
        wallet_address,
        week_start,
        week_end,
        league=League.BRONZE,
        eligible=EligibleVolumeResult(),
        decay=BandDecayResult(),
        bonus=UniquePairBonusResult(),
        total_swaps=0,
        user_id=user_id,
        extra_metadata=extra_metadata,
    )
