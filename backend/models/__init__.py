from .xp import (
    League,
    SwapType,
    Trade,
    PairEligibleVolume,
    PairXPResult,
    UniquePairBonusResult,
    SwapTypeBreakdown,
    FeeUpdateSummary,
    WeeklyXPRecord,
)

__all__ = [
    "League",
    "SwapType",
    "Trade",
    "PairEligibleVolume",
    "PairXPResult",
    "UniquePairBonusResult",
    "SwapTypeBreakdown",
    "FeeUpdateSummary",
    "WeeklyXPRecord",
]
