"""Eligible volume: the anti-farming filter in front of XP.

Turns one wallet's successful swaps for a week into per-pair eligible
volume and fees. Stages run in a fixed order, each on the previous
stage's output:

1. Pre-filters (minimum fill size, then the optional price-impact floor).
2. Round-trip detection: a swap reversed by another within the window
   loses its smaller leg.
3. Directional netting per (wallet, pair) over the whole window.
4. Per-pair aggregation of ``abs(net)`` and fees.

Everything here is pure and synchronous. Observability lives in the
calculator, which logs the ``FilterStats`` and ``RoundTripMatch`` values
returned on the result.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field, replace
from datetime import timedelta
from typing import Any, Callable, Iterable, Optional, Sequence

from config import settings
from models.xp import PairEligibleVolume, Trade
from services.xp.pairs import normalize_pair, split_pair

# A pre-filter stage takes the working set and returns the trades it keeps.
TradeFilter = Callable[[Sequence[Trade]], list[Trade]]


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RoundTripMatch:
    """One detected reversal and which leg lost eligibility."""

    first_id: str
    second_id: str
    excluded_id: str
    excluded_volume: float
    kept_volume: float
    seconds_apart: float

    @property
    def net_preserved(self) -> float:
        return abs(self.kept_volume - self.excluded_volume)


@dataclass(frozen=True)
class NetFlow:
    """Signed directional flow of one wallet in one pair."""

    wallet_address: str
    pair: str
    buy_volume_usd: float
    sell_volume_usd: float
    total_fees: float
    trade_ids: tuple[str, ...]

    @property
    def net_usd(self) -> float:
        return self.buy_volume_usd - self.sell_volume_usd


@dataclass(frozen=True)
class FilterStats:
    input_trades: int = 0
    input_volume: float = 0.0
    after_min_fill: int = 0
    after_price_impact: int = 0
    round_trips_detected: int = 0
    round_trip_excluded: int = 0
    round_trip_excluded_volume: float = 0.0
    netting_groups: int = 0
    eligible_volume: float = 0.0

    @property
    def dust_filtered(self) -> int:
        return self.input_trades - self.after_min_fill

    @property
    def impact_filtered(self) -> int:
        return self.after_min_fill - self.after_price_impact

    @property
    def reduction_pct(self) -> float:
        """Share of raw volume removed by the filters, in percent."""
        if self.input_volume <= 0:
            return 0.0
        return (1.0 - self.eligible_volume / self.input_volume) * 100.0

    def to_metadata(self) -> dict[str, Any]:
        return {
            "input_trades": self.input_trades,
            "dust_filtered": self.dust_filtered,
            "impact_filtered": self.impact_filtered,
            "round_trip_excluded": self.round_trip_excluded,
            "netting_groups": self.netting_groups,
        }


@dataclass(frozen=True)
class EligibleVolumeResult:
    per_pair_data: tuple[PairEligibleVolume, ...] = ()
    total_eligible_volume: float = 0.0
    total_fees: float = 0.0
    stats: FilterStats = field(default_factory=FilterStats)
    round_trips: tuple[RoundTripMatch, ...] = ()

    @property
    def excluded_trade_ids(self) -> tuple[str, ...]:
        return tuple(match.excluded_id for match in self.round_trips)


# ---------------------------------------------------------------------------
# Pre-filter stages
# ---------------------------------------------------------------------------


class MinFillSizeFilter:
    """Drop dust swaps below a USD floor."""

    def __init__(self, min_usd: float):
        self.min_usd = min_usd

    def __call__(self, trades: Sequence[Trade]) -> list[Trade]:
        return [t for t in trades if t.usd_volume >= self.min_usd]


class PriceImpactFilter:
    """Drop swaps whose price impact is below a floor.

    Impact is a fraction (0.0001 == 1bp). A swap without a recorded impact
    counts as zero impact. When disabled the stage passes trades through.
    """

    def __init__(self, min_impact: float, enabled: bool = False):
        self.min_impact = min_impact
        self.enabled = enabled

    def __call__(self, trades: Sequence[Trade]) -> list[Trade]:
        if not self.enabled:
            return list(trades)
        return [t for t in trades if abs(t.price_impact or 0.0) >= self.min_impact]


# ---------------------------------------------------------------------------
# Core stages
# ---------------------------------------------------------------------------


def _chronological(trades: Iterable[Trade]) -> list[Trade]:
    # id breaks timestamp ties so reruns see the same order
    return sorted(trades, key=lambda t: (t.timestamp, t.id))


def _is_reversal(first: Trade, second: Trade) -> bool:
    return (
        first.wallet_address == second.wallet_address
        and first.token_from_address == second.token_to_address
        and first.token_to_address == second.token_from_address
    )


def detect_round_trips(
    trades: Sequence[Trade], window: timedelta = timedelta(minutes=5)
) -> list[RoundTripMatch]:
    """Find reversing swaps within ``window`` and pick the leg to exclude.

    The smaller leg by USD volume is excluded; on a tie the later one is. An
    excluded swap takes no further part in matching, but a kept swap keeps
    scanning and may knock out several later reversals.
    """
    ordered = _chronological(trades)
    excluded: set[str] = set()
    matches: list[RoundTripMatch] = []

    for i, first in enumerate(ordered):
        if first.id in excluded:
            continue
        for second in ordered[i + 1:]:
            if second.timestamp - first.timestamp > window:
                break
            if second.id in excluded or not _is_reversal(first, second):
                continue

            if first.usd_volume < second.usd_volume:
                loser, winner = first, second
            else:
                loser, winner = second, first
            excluded.add(loser.id)
            matches.append(
                RoundTripMatch(
                    first_id=first.id,
                    second_id=second.id,
                    excluded_id=loser.id,
                    excluded_volume=loser.usd_volume,
                    kept_volume=winner.usd_volume,
                    seconds_apart=(second.timestamp - first.timestamp).total_seconds(),
                )
            )
            # An excluded leg can no longer match, so stop scanning for it.
            if loser is first:
                break

    return matches


def net_directional_flows(trades: Iterable[Trade]) -> list[NetFlow]:
    """Collapse swaps into signed flows per (wallet, pair).

    A swap into the pair's first token (in key order) is a BUY, a swap out
    of it is a SELL.
    """
    groups: dict[tuple[str, str], dict[str, Any]] = {}
    for trade in _chronological(trades):
        pair = normalize_pair(trade.token_from_address, trade.token_to_address)
        key = (trade.wallet_address, pair)
        group = groups.get(key)
        if group is None:
            group = groups[key] = {"buy": 0.0, "sell": 0.0, "fees": 0.0, "ids": []}

        base_token, _ = split_pair(pair)
        if trade.token_to_address == base_token:
            group["buy"] += trade.usd_volume
        elif trade.token_from_address == base_token:
            group["sell"] += trade.usd_volume
        group["fees"] += trade.fees_usd
        group["ids"].append(trade.id)

    return [
        NetFlow(
            wallet_address=wallet,
            pair=pair,
            buy_volume_usd=group["buy"],
            sell_volume_usd=group["sell"],
            total_fees=group["fees"],
            trade_ids=tuple(group["ids"]),
        )
        for (wallet, pair), group in sorted(groups.items())
    ]


def aggregate_by_pair(flows: Iterable[NetFlow]) -> list[PairEligibleVolume]:
    """Sum ``abs(net)`` and fees per pair, sorted by pair key."""
    volume: dict[str, float] = defaultdict(float)
    fees: dict[str, float] = defaultdict(float)
    for flow in flows:
        volume[flow.pair] += abs(flow.net_usd)
        fees[flow.pair] += flow.total_fees
    return [
        PairEligibleVolume(pair=pair, eligible_volume=volume[pair], total_fees=fees[pair])
        for pair in sorted(volume)
    ]


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class EligibleVolumeCalculator:
    """Runs the eligible volume pipeline with a fixed set of parameters.

    Defaults come from ``config.settings``. Extra pre-filter stages can be
    appended with ``extra_filters``; they run after the built-in ones and
    before round-trip detection.
    """

    def __init__(
        self,
        min_fill_size_usd: Optional[float] = None,
        round_trip_window_seconds: Optional[float] = None,
        price_impact_filter_enabled: Optional[bool] = None,
        min_price_impact: Optional[float] = None,
        extra_filters: Sequence[TradeFilter] = (),
    ):
        self.min_fill_size_usd = (
            settings.XP_MIN_FILL_SIZE_USD if min_fill_size_usd is None else min_fill_size_usd
        )
        self.round_trip_window = timedelta(
            seconds=settings.XP_ROUND_TRIP_WINDOW_SECONDS
            if round_trip_window_seconds is None
            else round_trip_window_seconds
        )
        self.min_fill_filter = MinFillSizeFilter(self.min_fill_size_usd)
        self.price_impact_filter = PriceImpactFilter(
            settings.XP_MIN_PRICE_IMPACT if min_price_impact is None else min_price_impact,
            enabled=(
                settings.XP_PRICE_IMPACT_FILTER_ENABLED
                if price_impact_filter_enabled is None
                else price_impact_filter_enabled
            ),
        )
        self.extra_filters = tuple(extra_filters)

    def get_eligible_volume_and_fees(self, trades: Sequence[Trade]) -> EligibleVolumeResult:
        input_volume = sum(t.usd_volume for t in trades)

        working = self.min_fill_filter(trades)
        after_min_fill = len(working)
        if not working:
            return EligibleVolumeResult(
                stats=FilterStats(input_trades=len(trades), input_volume=input_volume)
            )

        working = self.price_impact_filter(working)
        for stage in self.extra_filters:
            working = stage(working)
        after_price_impact = len(working)

        round_trips = detect_round_trips(working, self.round_trip_window)
        excluded = {match.excluded_id for match in round_trips}
        working = [t for t in working if t.id not in excluded]

        stats = FilterStats(
            input_trades=len(trades),
            input_volume=input_volume,
            after_min_fill=after_min_fill,
            after_price_impact=after_price_impact,
            round_trips_detected=len(round_trips),
            round_trip_excluded=len(excluded),
            round_trip_excluded_volume=sum(m.excluded_volume for m in round_trips),
        )
        if not working:
            return EligibleVolumeResult(stats=stats, round_trips=tuple(round_trips))

        flows = net_directional_flows(working)
        per_pair = aggregate_by_pair(flows)
        total_volume = sum(p.eligible_volume for p in per_pair)
        total_fees = sum(p.total_fees for p in per_pair)

        return EligibleVolumeResult(
            per_pair_data=tuple(per_pair),
            total_eligible_volume=total_volume,
            total_fees=total_fees,
            stats=replace(stats, netting_groups=len(flows), eligible_volume=total_volume),
            round_trips=tuple(round_trips),
        )


def get_eligible_volume_and_fees(trades: Sequence[Trade]) -> EligibleVolumeResult:
    """Run the pipeline with the configured defaults."""
    return EligibleVolumeCalculator().get_eligible_volume_and_fees(trades)
