"""Shadow ledger: pricing, positions, volume, claims."""

from decimal import Decimal

import pytest

from predbridge.errors import AlreadyClaimedError, InvalidInputError, NothingToClaimError
from predbridge.ledger.shadow import ShadowLedger, apply_price_impact, share_price
from predbridge.models import MarketStatus
from predbridge.storage.markets import get_market, upsert_market
from predbridge.storage.positions import get_position
from predbridge.storage.trades import list_trades

from conftest import ALICE, BOB, T0, make_market


@pytest.fixture
def ledger(temp_db):
    return ShadowLedger(temp_db, clock=lambda: T0)


def test_share_price():
    assert share_price(50, "yes") == 0.5
    assert share_price(70, "no") == pytest.approx(0.3)
    assert share_price(100, "no") == 0.01
    assert share_price(0, "yes") == 0.01


def test_price_impact_bounds():
    # one large trade moves at most 15% of the remaining distance
    assert apply_price_impact(50, 0, 1000, "yes") == 58
    assert apply_price_impact(50, 0, 1000, "no") == 42
    assert apply_price_impact(99, 0, 1000, "yes") == 99
    assert apply_price_impact(1, 0, 1000, "no") == 1
    # a small trade against deep volume barely moves it
    assert apply_price_impact(50, 10_000, 1, "yes") == 50


def test_buy_creates_position_and_trade(temp_db, ledger):
    market = make_market(temp_db)
    trade = ledger.record_buy(market, ALICE, "yes", 1.0, tx_hash="0xabc")
    assert trade.shares == pytest.approx(2.0)
    assert trade.price == 0.5

    position = get_position(temp_db, ALICE, "m1", "yes")
    assert position.shares == pytest.approx(2.0)
    assert position.avg_price == pytest.approx(0.5)
    assert position.total_invested == pytest.approx(1.0)

    stored = get_market(temp_db, "m1")
    assert stored.volume == pytest.approx(1.0)
    assert stored.probability == 58
    assert [t.tx_hash for t in list_trades(temp_db, market_id="m1")] == ["0xabc"]


def test_repeat_buy_averages_price(temp_db, ledger):
    market = make_market(temp_db)
    ledger.record_buy(market, ALICE, "yes", 1.0)
    ledger.record_buy(market, ALICE, "yes", 1.0)
    position = get_position(temp_db, ALICE, "m1", "yes")
    second = 1.0 / 0.58
    assert position.shares == pytest.approx(2.0 + second)
    assert position.avg_price == pytest.approx(2.0 / (2.0 + second))


def test_display_rate_scales_volume(temp_db):
    market = make_market(temp_db)
    ShadowLedger(temp_db, display_rate=2000.0, clock=lambda: T0).record_buy(market, ALICE, "no", 0.5)
    assert get_market(temp_db, "m1").volume == pytest.approx(1000.0)


def test_buy_rejects_nonpositive(temp_db, ledger):
    market = make_market(temp_db)
    with pytest.raises(InvalidInputError):
        ledger.record_buy(market, ALICE, "yes", 0)


def test_sell_keeps_average(temp_db, ledger):
    market = make_market(temp_db)
    ledger.record_buy(market, ALICE, "yes", 1.0)
    ledger.record_sell(market, ALICE, "yes", 0.5)
    position = get_position(temp_db, ALICE, "m1", "yes")
    assert position.shares == pytest.approx(1.5)
    assert position.avg_price == pytest.approx(0.5)
    with pytest.raises(InvalidInputError):
        ledger.record_sell(market, ALICE, "yes", 5)


def test_pool_summary_and_potential_winnings(temp_db, ledger):
    market = make_market(temp_db)
    ledger.record_buy(market, ALICE, "yes", 1.0)
    ledger.record_buy(market, BOB, "no", 1.0)
    summary = ledger.pool_summary("m1")
    assert summary.total_pool == pytest.approx(2.0)
    assert summary.yes_shares == pytest.approx(2.0)

    winnings = ledger.potential_winnings("m1", ALICE)
    assert winnings["yes"] == Decimal(2)
    assert winnings["no"] == 0


def _resolve(conn, outcome):
    market = get_market(conn, "m1")
    resolved = market.model_copy(update={"status": MarketStatus.RESOLVED, "resolved_outcome": outcome})
    upsert_market(conn, resolved)
    return resolved


def test_settle_claim_once(temp_db, ledger):
    market = make_market(temp_db)
    ledger.record_buy(market, ALICE, "yes", 1.0)
    ledger.record_buy(market, BOB, "no", 1.0)
    resolved = _resolve(temp_db, "yes")

    result = ledger.settle_claim(resolved, ALICE)
    assert result.amount == Decimal(2)
    assert get_position(temp_db, ALICE, "m1", "yes").claimed
    with pytest.raises(AlreadyClaimedError):
        ledger.settle_claim(resolved, ALICE)
    with pytest.raises(NothingToClaimError):
        ledger.settle_claim(resolved, BOB)


def test_settle_claim_before_resolution(temp_db, ledger):
    market = make_market(temp_db)
    ledger.record_buy(market, ALICE, "yes", 1.0)
    with pytest.raises(NothingToClaimError):
        ledger.settle_claim(market, ALICE)


def test_claimed_flag_survives_later_upsert(temp_db, ledger):
    market = make_market(temp_db)
    ledger.record_buy(market, ALICE, "yes", 1.0)
    resolved = _resolve(temp_db, "yes")
    ledger.record_claim(resolved, ALICE, 10**18, "0xclaim")
    ledger.record_buy(get_market(temp_db, "m1"), ALICE, "yes", 1.0)
    position = get_position(temp_db, ALICE, "m1", "yes")
    assert position.claimed
    assert position.claim_tx_hash == "0xclaim"
