"""Boundary validation for raw trade rows."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional

from pydantic import ValidationError

from models.xp import Trade
from services.xp.errors import TradeValidationError


@dataclass(frozen=True)
class RejectedTrade:
    trade_id: Optional[str]
    reason: str


@dataclass(frozen=True)
class TradeParseResult:
    trades: tuple[Trade, ...] = ()
    rejected: tuple[RejectedTrade, ...] = field(default_factory=tuple)


def _raw_id(row: Any) -> Optional[str]:
    value = row.get("id") if isinstance(row, Mapping) else getattr(row, "id", None)
    return None if value is None else str(value)


def _describe(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "trade"
        parts.append(f"{loc}: {err.get('msg', 'invalid')}")
    return "; ".join(parts)


def parse_trade(row: Any) -> Trade:
    """Validate one raw row. Raises ``TradeValidationError`` when unusable."""
    if isinstance(row, Trade):
        return row
    try:
        return Trade.from_row(row)
    except ValidationError as exc:
        raise TradeValidationError(_describe(exc), trade_id=_raw_id(row)) from exc


def parse_trades(rows: Iterable[Any]) -> TradeParseResult:
    """Validate raw rows, keeping the usable ones and recording the rest.

    Malformed amounts never reject a row; they coerce to zero and are later
    removed by the dust floor. Only structural problems (missing id or
    addresses, unparseable timestamp) reject it.
    """
    accepted: list[Trade] = []
    rejected: list[RejectedTrade] = []
    for row in rows:
        try:
            accepted.append(parse_trade(row))
        except TradeValidationError as exc:
            rejected.append(RejectedTrade(trade_id=exc.trade_id, reason=str(exc)))
    return TradeParseResult(trades=tuple(accepted), rejected=tuple(rejected))
