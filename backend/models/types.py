"""Column types for XP ledger amounts."""

from __future__ import annotations

import math
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy.types import Numeric, TypeDecorator


class LedgerAmount(TypeDecorator):
    """USD volumes, fees and XP amounts stored as NUMERIC, read back as ``float``.

    Settled XP is compared across re-runs of the same week, so values go
    through ``Decimal(str(value))`` rather than binary float storage.
    Non-finite values are rejected at bind time.
    """

    impl = Numeric(28, 10, asdecimal=True)
    cache_ok = True

    def process_bind_param(self, value: Any, dialect):
        if value is None:
            return None
        if isinstance(value, Decimal):
            if not value.is_finite():
                raise ValueError(f"Non-finite ledger amount: {value!r}")
            return value
        if isinstance(value, float) and not math.isfinite(value):
            raise ValueError(f"Non-finite ledger amount: {value!r}")
        try:
            return Decimal(str(value))
        except (InvalidOperation, TypeError, ValueError) as exc:
            raise ValueError(f"Invalid ledger amount: {value!r}") from exc

    def process_result_value(self, value: Any, dialect):
        if value is None:
            return None
        return float(value)
