"""Shared fixtures for XP distribution tests."""

import sys
from pathlib import Path

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

import itertools
from datetime import datetime, timedelta

import pytest

from models.xp import Trade
from services.xp.week import WeekRange

WALLET = "0x00000000000000000000000000000000000000aa"
TOKEN_A = "0x1111111111111111111111111111111111111111"
TOKEN_B = "0x2222222222222222222222222222222222222222"
TOKEN_C = "0x3333333333333333333333333333333333333333"

WEEK_START = datetime(2026, 10, 5)  # a Monday


@pytest.fixture
def week():
    return WeekRange(start=WEEK_START, end=WEEK_START + timedelta(days=7))


@pytest.fixture
def make_trade():
    """Factory for ``Trade`` values; offsets are minutes after ``WEEK_START``."""
    ids = itertools.count(1)

    def _make(
        token_from=TOKEN_A,
        token_to=TOKEN_B,
        usd_volume=100.0,
        fees_usd=0.3,
        minutes=60,
        wallet=WALLET,
        **overrides,
    ):
        data = {
            "id": str(next(ids)),
            "wallet_address": wallet,
            "token_from_address": token_from,
            "token_to_address": token_to,
            "usd_volume": usd_volume,
            "fees_usd": fees_usd,
            "timestamp": WEEK_START + timedelta(minutes=minutes),
            "status": "success",
            "swap_type": "CLASSIC",
        }
        data.update(overrides)
        return Trade(**data)

    return _make


class FakeHistory:
    """In-memory historical pair lookup."""

    def __init__(self, pairs=None, error=None):
        self.pairs = dict(pairs or {})
        self.error = error
        self.calls = []

    async def get_historical_pairs(self, wallet_address, before):
        self.calls.append((wallet_address, before))
        if self.error is not None:
            raise self.error
        return set(self.pairs.get(wallet_address, set()))


class FakeStore:
    """Collects upserted records keyed like the real table."""

    def __init__(self, fail_for=()):
        self.records = {}
        self.fail_for = set(fail_for)
        self.upserts = 0

    async def upsert_weekly_record(self, record):
        self.upserts += 1
        if record.wallet_address in self.fail_for:
            raise ConnectionError("database unavailable")
        self.records[(record.wallet_address, record.week_start)] = record


class FakeTradeSource:
    def __init__(self, rows=None, error=None):
        self.rows = list(rows or [])
        self.error = error
        self.calls = []

    async def fetch_trades(self, week_start, week_end, wallet_address=None):
        self.calls.append((week_start, week_end, wallet_address))
        if self.error is not None:
            raise self.error
        return [
            row
            for row in self.rows
            if wallet_address is None
            or str(_field(row, "wallet_address")).lower() == wallet_address
        ]


def _field(row, name):
    return row.get(name) if isinstance(row, dict) else getattr(row, name)


@pytest.fixture
def fake_history():
    return FakeHistory()


@pytest.fixture
def fake_store():
    return FakeStore()


@pytest.fixture
def fake_source():
    return FakeTradeSource()
