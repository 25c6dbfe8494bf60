import sys
from pathlib import Path

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from datetime import timedelta

import pytest

import config
from models.xp import League
from services.xp.calculator import calculate_wallet_xp, select_wallet_trades
from services.xp.errors import HistoricalPairLookupError
from services.xp.pairs import normalize_pair

WALLET = "0x00000000000000000000000000000000000000aa"
TOKEN_A = "0x1111111111111111111111111111111111111111"
TOKEN_B = "0x2222222222222222222222222222222222222222"
TOKEN_C = "0x3333333333333333333333333333333333333333"


@pytest.fixture(autouse=True)
def xp_defaults(monkeypatch):
    for name, value in {
        "XP_MIN_FILL_SIZE_USD": 8.0,
        "XP_PRICE_IMPACT_FILTER_ENABLED": False,
        "XP_ROUND_TRIP_WINDOW_SECONDS": 300,
        "XP_RATE_PER_USD": 0.5,
        "XP_K_FEE": 200.0,
        "XP_LEAGUE_SILVER_MIN_EV": 5_000.0,
        "XP_LEAGUE_GOLD_MIN_EV": 25_000.0,
        "XP_LEAGUE_DIAMOND_MIN_EV": 125_000.0,
        "XP_UPB_ENABLED": True,
        "XP_UPB_PER_NEW_PAIR": 25.0,
        "XP_UPB_MAX_NEW_PAIRS": 4,
        "XP_UPB_MODE": "historical",
    }.items():
        monkeypatch.setattr(config.settings, name, value)


@pytest.fixture
def scenario_trades(make_trade):
    return [
        make_trade(TOKEN_A, TOKEN_B, usd_volume=50.0, fees_usd=0.15, minutes=60),
        make_trade(TOKEN_B, TOKEN_A, usd_volume=30.0, fees_usd=0.09, minutes=65),
        make_trade(TOKEN_A, TOKEN_C, usd_volume=9.0, fees_usd=0.03, minutes=120),
    ]


@pytest.mark.asyncio
async def test_end_to_end_weekly_scenario(scenario_trades, week, fake_history):
    record = await calculate_wallet_xp(
        WALLET, scenario_trades, week.start, week.end, history_lookup=fake_history
    )

    assert record.league is League.BRONZE
    assert record.eligible_volume == pytest.approx(59.0)
    assert record.total_fees == pytest.approx(0.18)
    assert record.swap_xp_raw == pytest.approx(29.5)
    assert record.swap_xp_decayed == pytest.approx(29.5)
    assert record.pair_bonus_xp == pytest.approx(50.0)
    assert record.total_xp == pytest.approx(79.5)
    assert record.unique_pairs_count == 2
    assert record.new_pairs_count == 2
    assert record.total_swaps == 3

    per_pair = {row["pair"]: row for row in record.per_pair_results}
    ab = per_pair[normalize_pair(TOKEN_A, TOKEN_B)]
    ac = per_pair[normalize_pair(TOKEN_A, TOKEN_C)]
    assert ab["eligible_volume"] == pytest.approx(50.0)
    assert ab["xp_vol"] == pytest.approx(25.0)
    assert ab["xp_fee_ceiling"] == pytest.approx(30.0)
    assert ab["xp_decayed"] == pytest.approx(25.0)
    assert ac["xp_raw"] == pytest.approx(4.5)
    assert ac["xp_fee_ceiling"] == pytest.approx(6.0)
    assert record.metadata["round_trip_excluded_ids"] == [scenario_trades[1].id]
    assert sorted(record.new_pairs) == sorted(per_pair)


@pytest.mark.asyncio
async def test_previously_traded_pair_earns_no_bonus(scenario_trades, week, fake_history):
    fake_history.pairs[WALLET] = {normalize_pair(TOKEN_B, TOKEN_A)}

    record = await calculate_wallet_xp(
        WALLET, scenario_trades, week.start, week.end, history_lookup=fake_history
    )

    assert record.new_pairs == [normalize_pair(TOKEN_A, TOKEN_C)]
    assert record.total_xp == pytest.approx(54.5)


@pytest.mark.asyncio
async def test_empty_trade_list_yields_zero_bronze_record(week, fake_history):
    record = await calculate_wallet_xp(WALLET, [], week.start, week.end, history_lookup=fake_history)

    assert record.league is League.BRONZE
    assert record.eligible_volume == 0.0
    assert record.total_fees == 0.0
    assert record.swap_xp_decayed == 0.0
    assert record.pair_bonus_xp == 0.0
    assert record.total_xp == 0.0
    assert fake_history.calls == []


@pytest.mark.asyncio
async def test_all_dust_yields_zero_record(make_trade, week, fake_history):
    trades = [make_trade(usd_volume=2.0), make_trade(TOKEN_A, TOKEN_C, usd_volume=7.99)]

    record = await calculate_wallet_xp(WALLET, trades, week.start, week.end, history_lookup=fake_history)

    assert record.total_xp == 0.0
    assert record.total_swaps == 2
    assert record.metadata["filter_stats"]["dust_filtered"] == 2


@pytest.mark.asyncio
async def test_pair_netted_to_zero_still_earns_new_pair_bonus(make_trade, week, fake_history):
    trades = [
        make_trade(TOKEN_A, TOKEN_B, usd_volume=100.0, fees_usd=1.0, minutes=60),
        make_trade(TOKEN_B, TOKEN_A, usd_volume=100.0, fees_usd=1.0, minutes=660),
    ]

    record = await calculate_wallet_xp(WALLET, trades, week.start, week.end, history_lookup=fake_history)

    assert record.eligible_volume == pytest.approx(0.0)
    assert record.swap_xp_decayed == pytest.approx(0.0)
    assert record.unique_pairs_count == 1
    assert record.new_pairs_count == 1
    assert record.pair_bonus_xp == pytest.approx(25.0)
    assert record.total_xp == pytest.approx(25.0)


@pytest.mark.asyncio
async def test_pipeline_is_idempotent(scenario_trades, week, fake_history):
    first = await calculate_wallet_xp(
        WALLET, scenario_trades, week.start, week.end, history_lookup=fake_history
    )
    second = await calculate_wallet_xp(
        WALLET, list(reversed(scenario_trades)), week.start, week.end, history_lookup=fake_history
    )

    assert first.model_dump_json() == second.model_dump_json()


@pytest.mark.asyncio
async def test_out_of_window_failed_and_foreign_trades_are_ignored(make_trade, week, fake_history):
    trades = [
        make_trade(usd_volume=100.0, fees_usd=1.0, minutes=30),
        make_trade(usd_volume=500.0, minutes=-30),
        make_trade(usd_volume=500.0, minutes=7 * 24 * 60),
        make_trade(usd_volume=500.0, status="failed"),
        make_trade(usd_volume=500.0, wallet="0xbbb"),
    ]

    kept = select_wallet_trades(WALLET.upper(), trades, week.start, week.end)
    record = await calculate_wallet_xp(WALLET, trades, week.start, week.end, history_lookup=fake_history)

    assert [t.id for t in kept] == [trades[0].id]
    assert record.total_swaps == 1
    assert record.eligible_volume == pytest.approx(100.0)


@pytest.mark.asyncio
async def test_swap_type_breakdown_is_reported(make_trade, week, fake_history):
    trades = [
        make_trade(usd_volume=40.0, minutes=10),
        make_trade(TOKEN_A, TOKEN_C, usd_volume=60.0, minutes=20, swap_type="LIMIT_ORDER"),
    ]

    record = await calculate_wallet_xp(WALLET, trades, week.start, week.end, history_lookup=fake_history)

    breakdown = record.metadata["swap_type_breakdown"]
    assert breakdown == {
        "classic": 1,
        "limit_order": 1,
        "total": 2,
        "classic_volume": 40.0,
        "limit_order_volume": 60.0,
    }


@pytest.mark.asyncio
async def test_high_volume_wallet_reaches_gold_with_decay(make_trade, week, fake_history):
    trades = [make_trade(usd_volume=30_000.0, fees_usd=500.0, minutes=10)]

    record = await calculate_wallet_xp(WALLET, trades, week.start, week.end, history_lookup=fake_history)

    assert record.league is League.GOLD
    assert record.swap_xp_raw == pytest.approx(15_000.0)
    assert record.swap_xp_decayed == pytest.approx(12_000.0)
    assert record.total_xp == pytest.approx(12_025.0)


@pytest.mark.asyncio
async def test_user_id_is_taken_from_trades(make_trade, week, fake_history):
    trades = [make_trade(minutes=10, user_id=42)]
    record = await calculate_wallet_xp(WALLET, trades, week.start, week.end, history_lookup=fake_history)
    assert record.user_id == 42


@pytest.mark.asyncio
async def test_lookup_failure_raises_with_record_without_bonus(scenario_trades, week, fake_history):
    fake_history.error = TimeoutError("slow replica")

    with pytest.raises(HistoricalPairLookupError) as excinfo:
        await calculate_wallet_xp(
            WALLET, scenario_trades, week.start, week.end, history_lookup=fake_history
        )

    partial = excinfo.value.partial_record
    assert partial.swap_xp_decayed == pytest.approx(29.5)
    assert partial.pair_bonus_xp == 0.0
    assert partial.new_pairs_count == 0
    assert partial.total_xp == pytest.approx(29.5)


@pytest.mark.asyncio
async def test_extra_metadata_is_merged(scenario_trades, week, fake_history):
    record = await calculate_wallet_xp(
        WALLET,
        scenario_trades,
        week.start,
        week.end,
        history_lookup=fake_history,
        extra_metadata={"fee_update_summary": {"fees_updated": 3}},
    )

    assert record.metadata["fee_update_summary"] == {"fees_updated": 3}
    assert record.week_end - record.week_start == timedelta(days=7)
