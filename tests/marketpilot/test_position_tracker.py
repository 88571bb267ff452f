"""
Tests for the position tracker — profit lock, break-even, pair status.
"""

import json
from unittest.mock import AsyncMock

import pytest

from marketpilot.connectors.polymarket_connector import PolymarketConnector
from marketpilot.markets.adapters import PolymarketAdapter
from marketpilot.models import Holding, LockState, MarketStatus, PairStatus, WalletPosition
from marketpilot.positions.tracker import assess, pair_status


def _position(**holdings: tuple[float, float]) -> WalletPosition:
    return WalletPosition(
        wallet="0xwallet",
        market_id="0xmarket",
        holdings={label: Holding(shares=s, avg_price=p) for label, (s, p) in holdings.items()},
    )


class TestProfitLock:
    def test_resolved_yes_single_side(self, make_market):
        market = make_market(1.0, 0.0, status=MarketStatus.RESOLVED)

        result = assess(_position(Yes=(10, 0.40)), market)

        assert result.profit_lock == pytest.approx(6.0)
        assert result.pair_status == PairStatus.UNPAIRED
        assert result.lock_state == LockState.PROFIT_LOCKED
        assert result.total_cost == pytest.approx(4.0)

    def test_resolved_against_holder(self, make_market):
        market = make_market(0.0, 1.0, status=MarketStatus.RESOLVED)

        result = assess(_position(Yes=(10, 0.40)), market)

        assert result.profit_lock == pytest.approx(-4.0)
        assert result.lock_state == LockState.AT_RISK

    def test_resolved_gamma_market_with_dust_prices(self):
        raw = {
            "conditionId": "0xcond",
            "question": "Bitcoin Up or Down",
            "endDate": "2026-01-01T00:15:00Z",
            "outcomes": json.dumps(["Up", "Down"]),
            "outcomePrices": json.dumps(["0.9995", "0.0005"]),
            "closed": True,
            "umaResolutionStatus": "resolved",
        }
        market = PolymarketAdapter(AsyncMock(spec=PolymarketConnector)).normalize_market(raw)
        position = WalletPosition(
            wallet="0xwallet", market_id=market.id, holdings={"Up": Holding(shares=10, avg_price=0.40)}
        )

        result = assess(position, market)

        assert result.profit_lock == pytest.approx(6.0)
        assert result.lock_state == LockState.PROFIT_LOCKED

    def test_open_market_takes_worst_case(self, make_market):
        result = assess(_position(Yes=(10, 0.40)), make_market(0.55))

        assert result.payouts == pytest.approx({"Yes": 6.0, "No": -4.0})
        assert result.profit_lock == pytest.approx(-4.0)
        assert result.lock_state == LockState.AT_RISK

    def test_locked_straddle(self, make_market):
        # 100 shares each side for 0.45 + 0.50 = 0.95 per pair
        result = assess(_position(Yes=(100, 0.45), No=(100, 0.50)), make_market(0.5))

        assert result.profit_lock == pytest.approx(5.0)
        assert result.pair_status == PairStatus.FULLY_PAIRED
        assert result.lock_state == LockState.PROFIT_LOCKED

    def test_break_even_lock(self, make_market):
        result = assess(_position(Yes=(10, 0.5), No=(10, 0.5)), make_market(0.5))

        assert result.profit_lock == pytest.approx(0.0)
        assert result.lock_state == LockState.BREAK_EVEN

    def test_nothing_held(self, make_market):
        result = assess(_position(), make_market(0.5))

        assert result.profit_lock == 0.0
        assert result.break_even is None
        assert result.pair_status == PairStatus.UNPAIRED
        assert result.lock_state == LockState.NO_POSITION
        assert result.lines == []


class TestBreakEven:
    def test_single_side(self, make_market):
        # 10 Yes at 0.40: expected P&L is zero when P(Yes) = 0.40
        result = assess(_position(Yes=(10, 0.40)), make_market(0.6))

        assert result.break_even == pytest.approx(0.40)
        assert result.break_even_outcome == "Yes"

    def test_lopsided_pair(self, make_market):
        # cost = 20*0.5 + 10*0.4 = 14 ; p = (14 - 10) / (20 - 10)
        result = assess(_position(Yes=(20, 0.5), No=(10, 0.4)), make_market(0.5))

        assert result.break_even == pytest.approx(0.4)
        assert result.break_even_outcome == "Yes"
        assert result.pair_status == PairStatus.PARTIAL

    def test_equal_shares_has_no_break_even(self, make_market):
        result = assess(_position(Yes=(10, 0.45), No=(10, 0.50)), make_market(0.5))
        assert result.break_even is None

    def test_out_of_range_is_none(self, make_market):
        # cost 9.55 is below both share counts: profitable whatever happens
        result = assess(_position(Yes=(20, 0.2), No=(15, 0.37)), make_market(0.5))

        assert result.profit_lock > 0
        assert result.break_even is None


class TestPairStatus:
    def test_within_tolerance_is_fully_paired(self):
        assert pair_status({"Yes": 100.0, "No": 100.5}) == PairStatus.FULLY_PAIRED

    def test_outside_tolerance_is_partial(self):
        assert pair_status({"Yes": 100.0, "No": 90.0}) == PairStatus.PARTIAL

    def test_single_side_is_unpaired(self):
        assert pair_status({"Yes": 5.0, "No": 0.0}) == PairStatus.UNPAIRED

    def test_small_absolute_difference(self):
        assert pair_status({"Yes": 0.5, "No": 0.505}) == PairStatus.FULLY_PAIRED


class TestLines:
    def test_unrealized_pnl_at_current_price(self, make_market):
        result = assess(_position(Yes=(10, 0.40), No=(5, 0.30)), make_market(0.55))

        lines = {line.outcome: line for line in result.lines}
        assert lines["Yes"].unrealized_pnl == pytest.approx(1.5)
        assert lines["No"].unrealized_pnl == pytest.approx(0.75)
        assert lines["No"].current_price == pytest.approx(0.45)


class TestMonotonicity:
    @pytest.mark.parametrize("winner, loser", [("Yes", "No"), ("No", "Yes")])
    @pytest.mark.parametrize("extra_price", [0.01, 0.5, 0.99])
    def test_adding_winning_shares_never_lowers_profit_lock(self, make_market, winner, loser, extra_price):
        yes = 1.0 if winner == "Yes" else 0.0
        market = make_market(yes, 1.0 - yes, status=MarketStatus.RESOLVED)

        lock = assess(_position(**{winner: (5, 0.6), loser: (8, 0.3)}), market).profit_lock
        for extra in (1, 5, 20):
            shares = 5 + extra
            avg = (5 * 0.6 + extra * extra_price) / shares
            grown = assess(_position(**{winner: (shares, avg), loser: (8, 0.3)}), market).profit_lock
            assert grown >= lock - 1e-9
            lock = grown
