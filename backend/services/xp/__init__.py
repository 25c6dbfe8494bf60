from .pairs import normalize_pair, split_pair
from .errors import (
    XPDistributionError,
    TradeValidationError,
    HistoricalPairLookupError,
    PersistenceError,
    BandConfigError,
)
from .trades import parse_trade, parse_trades, TradeParseResult, RejectedTrade
from .eligible_volume import (
    EligibleVolumeCalculator,
    EligibleVolumeResult,
    FilterStats,
    get_eligible_volume_and_fees,
)
from .leagues import LeagueThresholds, determine_league
from .band_decay import (
    BAND_DECAY_CONFIG,
    BandMultiplier,
    BandDecayResult,
    apply_band_decay_by_pair,
    calculate_band_decay_fraction,
)
from .unique_pair_bonus import calculate_unique_pair_bonus, compute_unique_pair_bonus
from .aggregator import build_weekly_record, zero_weekly_record
from .week import WeekRange, get_current_week_range, get_previous_week_range, week_range_for
from .calculator import calculate_wallet_xp

__all__ = [
    "normalize_pair",
    "split_pair",
    "XPDistributionError",
    "TradeValidationError",
    "HistoricalPairLookupError",
    "PersistenceError",
    "BandConfigError",
    "parse_trade",
    "parse_trades",
    "TradeParseResult",
    "RejectedTrade",
    "EligibleVolumeCalculator",
    "EligibleVolumeResult",
    "FilterStats",
    "get_eligible_volume_and_fees",
    "LeagueThresholds",
    "determine_league",
    "BAND_DECAY_CONFIG",
    "BandMultiplier",
    "BandDecayResult",
    "apply_band_decay_by_pair",
    "calculate_band_decay_fraction",
    "calculate_unique_pair_bonus",
    "compute_unique_pair_bonus",
    "build_weekly_record",
    "zero_weekly_record",
    "WeekRange",
    "get_current_week_range",
    "get_previous_week_range",
    "week_range_for",
    "calculate_wallet_xp",
]
