"""Per-wallet XP calculation with logging around the pure pipeline."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Mapping, Optional

from interfaces.xp_sources import HistoricalPairLookup
from models.xp import Trade, UniquePairBonusResult, WeeklyXPRecord
from services.xp.aggregator import build_weekly_record, summarize_swap_types, zero_weekly_record
from services.xp.band_decay import apply_band_decay_by_pair
from services.xp.eligible_volume import EligibleVolumeCalculator
from services.xp.errors import HistoricalPairLookupError
from services.xp.leagues import LeagueThresholds, determine_league
from services.xp.pairs import short_pair_label
from services.xp.unique_pair_bonus import calculate_unique_pair_bonus
from utils.logger import xp_logger


def select_wallet_trades(
    wallet_address: str, trades: Iterable[Trade], week_start: datetime, week_end: datetime
) -> list[Trade]:
    """Successful swaps of this wallet inside ``[week_start, week_end)``, oldest first."""
    wallet = wallet_address.strip().lower()
    selected = [
        t
        for t in trades
        if t.wallet_address == wallet and t.is_success and week_start <= t.timestamp < week_end
    ]
    return sorted(selected, key=lambda t: (t.timestamp, t.id))


async def calculate_wallet_xp(
    wallet_address: str,
    trades: Iterable[Trade],
    week_start: datetime,
    week_end: datetime,
    *,
    history_lookup: Optional[HistoricalPairLookup],
    user_id: Optional[int] = None,
    extra_metadata: Optional[Mapping[str, Any]] = None,
    volume_calculator: Optional[EligibleVolumeCalculator] = None,
    league_thresholds: Optional[LeagueThresholds] = None,
) -> WeeklyXPRecord:
    """Compute one wallet's complete weekly record.

    Returns a full record or raises; a partially computed wallet is never
    returned. When the historical pair lookup fails, the raised
    ``HistoricalPairLookupError`` carries the record without the pair bonus
    as ``partial_record``. Zero eligible activity yields a Bronze record
    with 0 XP.
    """
    wallet = wallet_address.strip().lower()
    log = xp_logger.with_context(wallet=wallet, week_start=week_start.isoformat())

    wallet_trades = select_wallet_trades(wallet, trades, week_start, week_end)
    if user_id is None:
        user_id = next((t.user_id for t in wallet_trades if t.user_id is not None), None)

    swap_types = summarize_swap_types(wallet_trades)
    if not wallet_trades:
        log.info("No swaps in window, recording zero XP")
        return zero_weekly_record(
            wallet, week_start, week_end, user_id=user_id, extra_metadata=extra_metadata
        )

    eligible = (volume_calculator or EligibleVolumeCalculator()).get_eligible_volume_and_fees(
        wallet_trades
    )
    stats = eligible.stats
    for match in eligible.round_trips:
        log.debug(
            "Round-trip excluded",
            first_id=match.first_id,
            second_id=match.second_id,
            excluded_id=match.excluded_id,
            excluded_volume=match.excluded_volume,
            kept_volume=match.kept_volume,
            seconds_apart=match.seconds_apart,
        )
    log.info(
        "Eligible volume computed",
        swaps=stats.input_trades,
        dust_filtered=stats.dust_filtered,
        impact_filtered=stats.impact_filtered,
        round_trips=stats.round_trip_excluded,
        raw_volume=round(stats.input_volume, 2),
        eligible_volume=round(eligible.total_eligible_volume, 2),
        total_fees=round(eligible.total_fees, 4),
        reduction_pct=round(stats.reduction_pct, 2),
        pairs=len(eligible.per_pair_data),
    )

    league = determine_league(eligible.total_eligible_volume, league_thresholds)
    decay = apply_band_decay_by_pair(eligible.per_pair_data, league)
    for result in decay.per_pair_results:
        log.debug(
            "Pair XP",
            pair=short_pair_label(result.pair),
            eligible_volume=round(result.eligible_volume, 2),
            xp_raw=round(result.xp_swap_raw, 4),
            xp_decayed=round(result.xp_swap_decayed, 4),
            decay_fraction=round(result.decay_fraction, 4),
            limited_by=result.limited_by,
        )

    def _record(bonus: UniquePairBonusResult) -> WeeklyXPRecord:
        return build_weekly_record(
            wallet,
            week_start,
            week_end,
            league=league,
            eligible=eligible,
            decay=decay,
            bonus=bonus,
            total_swaps=len(wallet_trades),
            swap_types=swap_types,
            user_id=user_id,
            extra_metadata=extra_metadata,
        )

    try:
        bonus = await calculate_unique_pair_bonus(
            wallet, eligible.per_pair_data, week_start, history_lookup=history_lookup
        )
    except HistoricalPairLookupError as exc:
        exc.partial_record = _record(UniquePairBonusResult())
        log.error(
            "Historical pair lookup failed, pair bonus not computed",
            league=league.value,
            swap_xp_raw=round(exc.partial_record.swap_xp_raw, 4),
            swap_xp_decayed=round(exc.partial_record.swap_xp_decayed, 4),
            error=str(exc),
        )
        raise

    record = _record(bonus)
    log.info(
        "Weekly XP calculated",
        league=league.value,
        swap_xp_raw=round(record.swap_xp_raw, 4),
        swap_xp_decayed=round(record.swap_xp_decayed, 4),
        new_pairs=bonus.count_of_new_pairs,
        pair_bonus_xp=record.pair_bonus_xp,
        total_xp=round(record.total_xp, 4),
    )
    return record
