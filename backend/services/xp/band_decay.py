"""Band decay: fee-capped, league-tiered XP per pair.

Each league owns an ordered table of volume bands covering ``[0, inf)``.
A pair's eligible volume is consumed band by band, left to right, and each
band contributes ``volume_in_band * multiplier``. The resulting weighted
share discounts further volume in one pair, less steeply in higher leagues.

Tables are data. ``validate_band_table`` enforces their shape and the
module-level ``BAND_DECAY_CONFIG`` is checked on import.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

from config import settings
from models.xp import League, PairEligibleVolume, PairXPResult
from services.xp.errors import BandConfigError


@dataclass(frozen=True)
class BandMultiplier:
    min_ev: float  # inclusive
    max_ev: Optional[float]  # exclusive, None = unbounded
    multiplier: float

    @property
    def size(self) -> Optional[float]:
        return None if self.max_ev is None else self.max_ev - self.min_ev


BandTable = Sequence[BandMultiplier]


def _bands(*rows: tuple[float, Optional[float], float]) -> tuple[BandMultiplier, ...]:
    return tuple(BandMultiplier(lo, hi, mult) for lo, hi, mult in rows)


BAND_DECAY_CONFIG: dict[League, tuple[BandMultiplier, ...]] = {
    League.BRONZE: _bands(
        (0, 5_000, 1.0),
        (5_000, 25_000, 0.6),
        (25_000, 125_000, 0.3),
        (125_000, None, 0.1),
    ),
    League.SILVER: _bands(
        (0, 5_000, 1.0),
        (5_000, 25_000, 0.7),
        (25_000, 125_000, 0.45),
        (125_000, None, 0.15),
    ),
    League.GOLD: _bands(
        (0, 5_000, 1.0),
        (5_000, 25_000, 0.8),
        (25_000, 125_000, 0.6),
        (125_000, None, 0.2),
    ),
    League.DIAMOND: _bands(
        (0, 5_000, 1.0),
        (5_000, 25_000, 0.9),
        (25_000, 125_000, 0.7),
        (125_000, None, 0.25),
    ),
}


def validate_band_table(bands: BandTable, name: str = "bands") -> None:
    """Raise ``BandConfigError`` unless ``bands`` tile ``[0, inf)`` in order."""
    if not bands:
        raise BandConfigError(f"{name}: table is empty")
    if bands[0].min_ev != 0:
        raise BandConfigError(f"{name}: first band must start at 0, got {bands[0].min_ev}")
    if bands[-1].max_ev is not None:
        raise BandConfigError(f"{name}: last band must be unbounded")

    for index, band in enumerate(bands):
        if not 0.0 <= band.multiplier <= 1.0:
            raise BandConfigError(
                f"{name}[{index}]: multiplier {band.multiplier} outside [0, 1]"
            )
        if index == len(bands) - 1:
            break
        if band.max_ev is None:
            raise BandConfigError(f"{name}[{index}]: only the last band may be unbounded")
        if band.max_ev <= band.min_ev:
            raise BandConfigError(f"{name}[{index}]: empty band {band.min_ev}..{band.max_ev}")
        if bands[index + 1].min_ev != band.max_ev:
            raise BandConfigError(
                f"{name}[{index + 1}]: starts at {bands[index + 1].min_ev}, "
                f"expected {band.max_ev}"
            )


def validate_band_config(config: Mapping[League, BandTable]) -> None:
    missing = [league.value for league in League if league not in config]
    if missing:
        raise BandConfigError(f"no band table for: {', '.join(missing)}")
    for league, bands in config.items():
        validate_band_table(bands, name=League(league).value)


validate_band_config(BAND_DECAY_CONFIG)


def calculate_band_decay_fraction(eligible_volume: float, bands: BandTable) -> float:
    """Weighted share of ``eligible_volume`` that survives the bands, in [0, 1].

    Zero volume has nothing to discount and returns 1.0.
    """
    if eligible_volume <= 0:
        return 1.0

    remaining = eligible_volume
    weighted = 0.0
    for band in bands:
        if remaining <= 0:
            break
        size = band.size
        in_band = remaining if size is None else min(remaining, size)
        weighted += in_band * band.multiplier
        remaining -= in_band

    return weighted / eligible_volume


@dataclass(frozen=True)
class BandDecayResult:
    per_pair_results: tuple[PairXPResult, ...] = ()
    total_xp: float = 0.0

    @property
    def total_xp_raw(self) -> float:
        return sum(result.xp_swap_raw for result in self.per_pair_results)


def compute_pair_xp(
    pair_data: PairEligibleVolume,
    bands: BandTable,
    xp_rate_per_usd: float,
    k_fee: float,
) -> PairXPResult:
    xp_vol = xp_rate_per_usd * pair_data.eligible_volume
    xp_fee_ceiling = k_fee * pair_data.total_fees
    xp_swap_raw = min(xp_vol, xp_fee_ceiling)
    decay_fraction = calculate_band_decay_fraction(pair_data.eligible_volume, bands)
    return PairXPResult(
        pair=pair_data.pair,
        eligible_volume=pair_data.eligible_volume,
        total_fees=pair_data.total_fees,
        xp_vol=xp_vol,
        xp_fee_ceiling=xp_fee_ceiling,
        xp_swap_raw=xp_swap_raw,
        xp_swap_decayed=xp_swap_raw * decay_fraction,
        decay_fraction=decay_fraction,
    )


def apply_band_decay_by_pair(
    per_pair_data: Sequence[PairEligibleVolume],
    league: League,
    *,
    band_config: Optional[Mapping[League, BandTable]] = None,
    xp_rate_per_usd: Optional[float] = None,
    k_fee: Optional[float] = None,
) -> BandDecayResult:
    """Convert each pair's eligible volume and fees into decayed XP.

    ``band_config`` overrides the default tables; it is validated before use.
    Rate and fee multiplier default to the configured values.
    """
    if band_config is None:
        band_config = BAND_DECAY_CONFIG
    else:
        validate_band_config(band_config)

    rate = settings.XP_RATE_PER_USD if xp_rate_per_usd is None else xp_rate_per_usd
    fee_multiplier = settings.XP_K_FEE if k_fee is None else k_fee
    bands = band_config[league]

    results = tuple(
        compute_pair_xp(pair_data, bands, rate, fee_multiplier) for pair_data in per_pair_data
    )
    return BandDecayResult(
        per_pair_results=results,
        total_xp=sum(result.xp_swap_decayed for result in results),
    )
