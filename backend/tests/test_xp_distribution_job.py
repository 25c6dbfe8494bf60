import sys
from pathlib import Path

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from datetime import datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest

import config
import services.xp_distribution as xp_distribution
from models.xp import FeeUpdateSummary, League
from services.xp.week import WeekRange
from services.xp_distribution import (
    STATUS_FAILED,
    STATUS_SAVED,
    STATUS_UNSETTLED,
    XpDistributionJob,
)

TOKEN_A = "0x1111111111111111111111111111111111111111"
TOKEN_B = "0x2222222222222222222222222222222222222222"
TOKEN_C = "0x3333333333333333333333333333333333333333"
CURRENT_WEEK_START = datetime(2026, 10, 12)


@pytest.fixture(autouse=True)
def xp_defaults(monkeypatch):
    monkeypatch.setattr(config.settings, "XP_MIN_FILL_SIZE_USD", 8.0)
    monkeypatch.setattr(config.settings, "XP_UPB_ENABLED", True)
    monkeypatch.setattr(config.settings, "XP_UPB_MODE", "historical")
    monkeypatch.setattr(config.settings, "XP_UPB_PER_NEW_PAIR", 25.0)
    monkeypatch.setattr(config.settings, "XP_UPB_MAX_NEW_PAIRS", 4)
    monkeypatch.setattr(config.settings, "XP_RATE_PER_USD", 0.5)
    monkeypatch.setattr(config.settings, "XP_K_FEE", 200.0)


def _row(trade_id, wallet, week, token_from=TOKEN_A, token_to=TOKEN_B, usd=100.0, fee=0.5, minutes=60):
    return {
        "id": trade_id,
        "wallet_address": wallet,
        "token_from_address": token_from,
        "token_to_address": token_to,
        "usd_volume": usd,
        "fees_usd": fee,
        "timestamp": week.start + timedelta(minutes=minutes),
        "status": "success",
        "swap_type": "CLASSIC",
    }


def _job(source, history, store, **kwargs):
    return XpDistributionJob(
        trade_source=source, history_lookup=history, store=store, max_concurrency=2, **kwargs
    )


@pytest.mark.asyncio
async def test_run_settles_every_wallet(week, fake_source, fake_history, fake_store):
    fake_source.rows = [
        _row(1, "0xAAA", week, usd=100.0),
        _row(2, "0xbbb", week, token_to=TOKEN_C, usd=40.0),
        _row(3, "0xaaa", week, token_to=TOKEN_C, usd=20.0, minutes=300),
    ]

    summary = await _job(fake_source, fake_history, fake_store).run(week)

    assert summary.wallets_processed == 2
    assert summary.saved == 2
    assert not summary.has_failures
    assert set(fake_store.records) == {("0xaaa", week.start), ("0xbbb", week.start)}
    aaa = fake_store.records[("0xaaa", week.start)]
    assert aaa.total_swaps == 2
    assert aaa.eligible_volume == pytest.approx(120.0)
    assert fake_source.calls == [(week.start, week.end, None)]


@pytest.mark.asyncio
async def test_rejected_rows_are_counted_and_skipped(week, fake_source, fake_history, fake_store):
    bad = _row(2, "0xaaa", week)
    bad["token_from_address"] = None
    fake_source.rows = [_row(1, "0xaaa", week), bad]

    summary = await _job(fake_source, fake_history, fake_store).run(week)

    assert summary.rejected_trades == 1
    assert fake_store.records[("0xaaa", week.start)].total_swaps == 1


@pytest.mark.asyncio
async def test_persistence_failure_leaves_wallet_unsettled(week, fake_source, fake_history, fake_store):
    fake_source.rows = [_row(1, "0xaaa", week), _row(2, "0xbbb", week)]
    fake_store.fail_for.add("0xaaa")

    summary = await _job(fake_source, fake_history, fake_store).run(week)

    outcomes = {o.wallet_address: o for o in summary.outcomes}
    assert outcomes["0xaaa"].status == STATUS_UNSETTLED
    assert outcomes["0xaaa"].record is not None
    assert outcomes["0xaaa"].record.total_xp > 0
    assert "database unavailable" in outcomes["0xaaa"].error
    assert outcomes["0xbbb"].status == STATUS_SAVED
    assert summary.has_failures


@pytest.mark.asyncio
async def test_calculation_failure_does_not_abort_batch(week, fake_source, fake_history, fake_store):
    fake_source.rows = [_row(1, "0xaaa", week), _row(2, "0xbbb", week)]
    calculate = xp_distribution.calculate_wallet_xp

    async def flaky_calculate(wallet_address, *args, **kwargs):
        if wallet_address == "0xaaa":
            raise ValueError("corrupt band table")
        return await calculate(wallet_address, *args, **kwargs)

    with patch.object(xp_distribution, "calculate_wallet_xp", side_effect=flaky_calculate):
        summary = await _job(fake_source, fake_history, fake_store).run(week)

    outcomes = {o.wallet_address: o for o in summary.outcomes}
    assert outcomes["0xaaa"].status == STATUS_FAILED
    assert outcomes["0xaaa"].record is None
    assert outcomes["0xbbb"].status == STATUS_SAVED
    assert summary.failed == 1
    assert list(fake_store.records) == [("0xbbb", week.start)]


@pytest.mark.asyncio
async def test_history_lookup_failure_keeps_swap_xp_unsettled(week, fake_source, fake_history, fake_store):
    fake_source.rows = [_row(1, "0xaaa", week, usd=100.0, fee=1.0), _row(2, "0xbbb", week)]

    class FlakyHistory:
        async def get_historical_pairs(self, wallet_address, before):
            if wallet_address == "0xaaa":
                raise TimeoutError("history replica timed out")
            return set()

    summary = await _job(fake_source, FlakyHistory(), fake_store).run(week)

    outcomes = {o.wallet_address: o for o in summary.outcomes}
    aaa = outcomes["0xaaa"]
    assert aaa.status == STATUS_UNSETTLED
    assert aaa.partial
    assert "history replica timed out" in aaa.error
    assert aaa.record.swap_xp_decayed == pytest.approx(50.0)
    assert aaa.record.pair_bonus_xp == 0.0
    assert aaa.record.total_xp == pytest.approx(50.0)
    assert outcomes["0xbbb"].status == STATUS_SAVED
    assert not outcomes["0xbbb"].partial
    assert summary.has_failures
    assert list(fake_store.records) == [("0xbbb", week.start)]


@pytest.mark.asyncio
async def test_single_wallet_without_trades_gets_zero_record(week, fake_source, fake_history, fake_store):
    fake_source.rows = [_row(1, "0xbbb", week)]

    summary = await _job(fake_source, fake_history, fake_store).run(week, wallet_address="0xAAA")

    assert fake_source.calls == [(week.start, week.end, "0xaaa")]
    record = fake_store.records[("0xaaa", week.start)]
    assert record.total_xp == 0.0
    assert record.league is League.BRONZE
    assert summary.saved == 1


@pytest.mark.asyncio
async def test_rerun_upserts_same_key(week, fake_source, fake_history, fake_store):
    fake_source.rows = [_row(1, "0xaaa", week)]
    job = _job(fake_source, fake_history, fake_store)

    first = await job.run(week)
    second = await job.run(week)

    assert len(fake_store.records) == 1
    assert fake_store.upserts == 2
    assert first.outcomes[0].record == second.outcomes[0].record


@pytest.mark.asyncio
async def test_fee_enrichment_runs_first_and_is_recorded(week, fake_source, fake_history, fake_store):
    fake_source.rows = [_row(1, "0xaaa", week)]
    enricher = AsyncMock(return_value=FeeUpdateSummary(total_orders=3, fees_updated=2, orders_not_found=1))

    summary = await _job(fake_source, fake_history, fake_store, fee_enricher=enricher).run(week)

    enricher.assert_awaited_once_with(week.start, week.end)
    assert summary.fee_summary.fees_updated == 2
    record = fake_store.records[("0xaaa", week.start)]
    assert record.metadata["fee_update_summary"]["fees_updated"] == 2


@pytest.mark.asyncio
async def test_fee_enrichment_failure_does_not_stop_job(week, fake_source, fake_history, fake_store):
    fake_source.rows = [_row(1, "0xaaa", week)]
    enricher = AsyncMock(side_effect=RuntimeError("order api down"))

    summary = await _job(fake_source, fake_history, fake_store, fee_enricher=enricher).run(week)

    assert summary.fee_summary is None
    assert summary.saved == 1


@pytest.mark.asyncio
async def test_trade_source_failure_propagates(week, fake_source, fake_history, fake_store):
    fake_source.error = ConnectionError("source down")

    with pytest.raises(ConnectionError):
        await _job(fake_source, fake_history, fake_store).run(week)


@pytest.mark.asyncio
async def test_preview_does_not_persist(week, fake_source, fake_history, fake_store):
    fake_source.rows = [_row(1, "0xaaa", week, usd=50.0, fee=0.15)]

    record = await _job(fake_source, fake_history, fake_store).preview("0xAAA", week)

    assert record.total_xp == pytest.approx(50.0)
    assert fake_store.upserts == 0


@pytest.mark.asyncio
async def test_run_current_and_last_week_runs_last_week_first(fake_source, fake_history, fake_store):
    current = WeekRange(start=CURRENT_WEEK_START, end=CURRENT_WEEK_START + timedelta(days=7))
    job = _job(fake_source, fake_history, fake_store)

    with patch.object(xp_distribution, "get_current_week_range", return_value=current):
        summaries = await job.run_current_and_last_week()

    assert [s.week.start for s in summaries] == [current.start - timedelta(days=7), current.start]
    assert [call[0] for call in fake_source.calls] == [s.week.start for s in summaries]


def test_summary_to_dict_counts(week):
    summary = xp_distribution.DistributionSummary(
        week=week,
        outcomes=[
            xp_distribution.WalletOutcome("0xa", STATUS_SAVED),
            xp_distribution.WalletOutcome("0xb", STATUS_FAILED, error="boom"),
        ],
    )
    data = summary.to_dict()
    assert data["saved"] == 1
    assert data["failed"] == 1
    assert data["wallets_processed"] == 2
