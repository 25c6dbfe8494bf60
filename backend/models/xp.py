"""Value types for the XP distribution engine.

``Trade`` is the validated boundary type built from raw swap rows. The
intermediate results (``PairEligibleVolume``, ``PairXPResult``,
``UniquePairBonusResult``) are frozen dataclasses produced once per
computation. ``WeeklyXPRecord`` is the persisted output, one per wallet
per week.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from utils.utcnow import to_utc_naive


class League(str, Enum):
    """Volume tier controlling how steeply band decay applies."""

    BRONZE = "Bronze"
    SILVER = "Silver"
    GOLD = "Gold"
    DIAMOND = "Diamond"

    @property
    def db_value(self) -> str:
        return self.value.lower()

    @classmethod
    def from_db_value(cls, value: str) -> "League":
        return cls(str(value).strip().capitalize())


class SwapType(str, Enum):
    CLASSIC = "CLASSIC"
    LIMIT_ORDER = "LIMIT_ORDER"


SUCCESS_STATUS = "success"


def _coerce_usd(value: Any) -> float:
    """Parse a USD amount; malformed or negative values contribute nothing."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(parsed) or math.isinf(parsed) or parsed < 0:
        return 0.0
    return parsed


class Trade(BaseModel):
    """A single swap as seen by the engine. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    id: str
    wallet_address: str
    token_from_address: str
    token_to_address: str
    usd_volume: float = 0.0
    fees_usd: float = 0.0
    timestamp: datetime
    status: str = SUCCESS_STATUS
    swap_type: str = SwapType.CLASSIC.value
    price_impact: Optional[float] = None
    user_id: Optional[int] = None
    order_id: Optional[str] = None

    @field_validator("id", mode="before")
    @classmethod
    def _normalize_id(cls, value: object) -> object:
        text = str(value).strip() if value is not None else ""
        if not text:
            raise ValueError("trade id is required")
        return text

    @field_validator("wallet_address", "token_from_address", "token_to_address", mode="before")
    @classmethod
    def _normalize_address(cls, value: object) -> object:
        text = str(value).strip().lower() if value is not None else ""
        if not text:
            raise ValueError("address is required")
        return text

    @field_validator("usd_volume", "fees_usd", mode="before")
    @classmethod
    def _normalize_usd(cls, value: object) -> float:
        return _coerce_usd(value)

    @field_validator("timestamp", mode="before")
    @classmethod
    def _normalize_timestamp(cls, value: object) -> datetime:
        parsed = to_utc_naive(value)
        if parsed is None:
            raise ValueError(f"unparseable timestamp: {value!r}")
        return parsed

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: object) -> str:
        return str(value or "").strip().lower()

    @field_validator("swap_type", mode="before")
    @classmethod
    def _normalize_swap_type(cls, value: object) -> str:
        return str(value or SwapType.CLASSIC.value).strip().upper()

    @field_validator("price_impact", mode="before")
    @classmethod
    def _normalize_price_impact(cls, value: object) -> Optional[float]:
        if value is None or value == "":
            return None
        try:
            parsed = float(value)
        except (TypeError, ValueError):
            return None
        return None if math.isnan(parsed) else parsed

    @field_validator("order_id", mode="before")
    @classmethod
    def _normalize_order_id(cls, value: object) -> Optional[str]:
        if value is None:
            return None
        text = str(value).strip()
        return text or None

    @property
    def is_success(self) -> bool:
        return self.status == SUCCESS_STATUS

    @classmethod
    def from_row(cls, row: Any) -> "Trade":
        """Build from a mapping or an ORM row exposing the same attribute names."""
        if isinstance(row, Mapping):
            data = dict(row)
        else:
            data = {name: getattr(row, name, None) for name in cls.model_fields}
        return cls(**{k: v for k, v in data.items() if k in cls.model_fields and v is not None})


# ---------------------------------------------------------------------------
# Pipeline intermediates
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PairEligibleVolume:
    """Eligible volume and fees for one normalized pair."""

    pair: str
    eligible_volume: float
    total_fees: float


@dataclass(frozen=True)
class PairXPResult:
    """Per-pair XP breakdown after the fee ceiling and band decay."""

    pair: str
    eligible_volume: float
    total_fees: float
    xp_vol: float  # XP_RATE_PER_USD * EV
    xp_fee_ceiling: float  # K_FEE * fees
    xp_swap_raw: float  # min(xp_vol, xp_fee_ceiling)
    xp_swap_decayed: float  # xp_swap_raw * decay_fraction
    decay_fraction: float  # weighted EV / EV, in [0, 1]

    @property
    def limited_by(self) -> str:
        return "volume" if self.xp_vol <= self.xp_fee_ceiling else "fees"

    def to_metadata(self) -> dict[str, Any]:
        return {
            "pair": self.pair,
            "eligible_volume": self.eligible_volume,
            "total_fees": self.total_fees,
            "xp_vol": self.xp_vol,
            "xp_fee_ceiling": self.xp_fee_ceiling,
            "xp_raw": self.xp_swap_raw,
            "xp_decayed": self.xp_swap_decayed,
            "decay_fraction": self.decay_fraction,
        }


@dataclass(frozen=True)
class UniquePairBonusResult:
    xp_pair_bonus: float = 0.0
    count_of_new_pairs: int = 0
    capped_count: int = 0
    new_pairs: tuple[str, ...] = ()
    total_historical_pairs: int = 0


@dataclass(frozen=True)
class SwapTypeBreakdown:
    """Reporting-only counts and volumes by swap type."""

    classic: int = 0
    limit_order: int = 0
    total: int = 0
    classic_volume: float = 0.0
    limit_order_volume: float = 0.0

    def to_metadata(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class FeeUpdateSummary:
    """Outcome of the optional fee enrichment step that runs before a job."""

    total_orders: int = 0
    wallets_processed: int = 0
    fees_updated: int = 0
    orders_not_found: int = 0
    errors: tuple[str, ...] = field(default_factory=tuple)

    def to_metadata(self) -> dict[str, Any]:
        return {
            "orders_processed": self.total_orders,
            "fees_updated": self.fees_updated,
            "orders_not_found": self.orders_not_found,
            "error_count": len(self.errors),
        }


# ---------------------------------------------------------------------------
# Weekly output
# ---------------------------------------------------------------------------


class WeeklyXPRecord(BaseModel):
    """Complete XP settlement for one wallet and one week."""

    model_config = ConfigDict(frozen=True)

    wallet_address: str
    user_id: Optional[int] = None
    week_start: datetime
    week_end: datetime
    league: League = League.BRONZE
    swap_xp_raw: float = 0.0
    swap_xp_decayed: float = 0.0
    pair_bonus_xp: float = 0.0
    total_xp: float = 0.0
    eligible_volume: float = 0.0
    total_fees: float = 0.0
    unique_pairs_count: int = 0
    new_pairs_count: int = 0
    total_swaps: int = 0
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def per_pair_results(self) -> list[dict[str, Any]]:
        return list(self.metadata.get("per_pair_results", []))

    @property
    def new_pairs(self) -> list[str]:
        return list(self.metadata.get("new_pairs", []))

    def to_row(self) -> dict[str, Any]:
        """Values for the ``xp_distributions`` table, keyed by column name."""
        row = self.model_dump(exclude={"metadata", "league"})
        row["league"] = self.league.db_value
        row["metadata"] = self.metadata
        return row
