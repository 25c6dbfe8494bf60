"""Unique pair bonus: flat XP for trading pairs the wallet never traded before.

Two policies are supported, selected by ``XP_UPB_MODE``:

``historical``
    A pair is new when the wallet had no successful swap in it before the
    week start. Needs a ``HistoricalPairLookup``.
``weekly``
    Every distinct pair traded this week counts. No lookup is made.
"""

from __future__ import annotations

from datetime import datetime
from typing import AbstractSet, Iterable, Optional

from config import settings
from interfaces.xp_sources import HistoricalPairLookup
from models.xp import PairEligibleVolume, UniquePairBonusResult
from services.xp.errors import HistoricalPairLookupError

UPB_MODE_HISTORICAL = "historical"
UPB_MODE_WEEKLY = "weekly"


def qualifying_pairs(this_week_pairs: Iterable[PairEligibleVolume]) -> list[str]:
    return sorted({p.pair for p in this_week_pairs})


def compute_unique_pair_bonus(
    this_week_pairs: Iterable[PairEligibleVolume],
    historical_pairs: AbstractSet[str] = frozenset(),
    *,
    per_new_pair: Optional[float] = None,
    max_new_pairs: Optional[int] = None,
) -> UniquePairBonusResult:
    """Bonus for this week's pairs that are absent from ``historical_pairs``."""
    per_new_pair = settings.XP_UPB_PER_NEW_PAIR if per_new_pair is None else per_new_pair
    max_new_pairs = settings.XP_UPB_MAX_NEW_PAIRS if max_new_pairs is None else max_new_pairs

    new_pairs = [pair for pair in qualifying_pairs(this_week_pairs) if pair not in historical_pairs]
    capped = min(len(new_pairs), max_new_pairs)
    return UniquePairBonusResult(
        xp_pair_bonus=per_new_pair * capped,
        count_of_new_pairs=len(new_pairs),
        capped_count=capped,
        new_pairs=tuple(new_pairs),
        total_historical_pairs=len(historical_pairs),
    )


async def calculate_unique_pair_bonus(
    wallet_address: str,
    this_week_pairs: Iterable[PairEligibleVolume],
    week_start: datetime,
    *,
    history_lookup: Optional[HistoricalPairLookup] = None,
    enabled: Optional[bool] = None,
    mode: Optional[str] = None,
) -> UniquePairBonusResult:
    """Resolve the historical pair set if needed, then compute the bonus.

    Raises ``HistoricalPairLookupError`` when the lookup fails, so the
    caller can fail the wallet rather than award a bonus on incomplete data.
    """
    enabled = settings.XP_UPB_ENABLED if enabled is None else enabled
    mode = settings.XP_UPB_MODE if mode is None else mode
    pairs = list(this_week_pairs)

    if not enabled or not qualifying_pairs(pairs):
        return UniquePairBonusResult()

    if mode == UPB_MODE_WEEKLY:
        return compute_unique_pair_bonus(pairs)

    if history_lookup is None:
        raise HistoricalPairLookupError(
            wallet_address, RuntimeError("no historical pair lookup configured")
        )
    try:
        historical = await history_lookup.get_historical_pairs(wallet_address, week_start)
    except Exception as exc:
        raise HistoricalPairLookupError(wallet_address, exc) from exc

    return compute_unique_pair_bonus(pairs, frozenset(historical))
