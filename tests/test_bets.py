"""Tests for portfolio bets: placement, resolution and the batch job."""

import sys
import os

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from opinion_market.errors import InsufficientFunds, NotFoundError, ValidationError
from opinion_market.schemas.bet import BetCreate
from opinion_market.services.bet_settlement import is_winning, performance_percent


def bet_on_bob(**overrides):
    data = dict(target_account_id="bob", direction="increase", target_percentage=10, timeframe_hours=24, stake=100)
    data.update(overrides)
    return BetCreate(**data)


class TestOutcomeRules:
    def test_performance_percent(self):
        assert performance_percent(10000, 11000) == 10.0
        assert performance_percent(10000, 9000) == -10.0

    def test_increase_wins_at_target(self):
        assert is_winning("increase", 10, 10.0)
        assert not is_winning("increase", 10, 9.99)

    def test_decrease_wins_at_negative_target(self):
        assert is_winning("decrease", 10, -10.0)
        assert not is_winning("decrease", 10, 5.0)


class TestPlaceBet:
    def test_stake_escrowed(self, exchange, alice, bob):
        bet = exchange.bets.place_bet("alice", bet_on_bob())
        assert bet.status == "active"
        assert bet.stake == 100.0
        assert bet.potential_payout == 235.71
        assert bet.starting_value == 10000.0
        assert bet.expires_at - bet.placed_at == 24 * 60 * 60 * 1000
        assert exchange.accounts.get("alice").balance == 9900.0
        assert exchange.activity.list_recent()[0].type == "bet_place"

    def test_starting_value_includes_holdings(self, exchange, alice, bob):
        exchange.trades.buy("bob", 10, text="Bob's opinion")
        bet = exchange.bets.place_bet("alice", bet_on_bob())
        assert bet.starting_value == exchange.portfolio.net_worth("bob")

    def test_cannot_bet_on_self(self, exchange, alice):
        with pytest.raises(ValidationError):
            exchange.bets.place_bet("alice", bet_on_bob(target_account_id="alice"))

    @pytest.mark.parametrize(
        "overrides",
        [
            {"stake": 0.5},
            {"target_percentage": 0},
            {"target_percentage": 150},
            {"timeframe_hours": 0},
            {"timeframe_hours": 169},
        ],
    )
    def test_invalid_parameters(self, exchange, alice, bob, overrides):
        with pytest.raises(ValidationError):
            exchange.bets.place_bet("alice", bet_on_bob(**overrides))
        assert exchange.accounts.get("alice").balance == 10000.0

    def test_insufficient_funds(self, exchange, alice, bob):
        with pytest.raises(InsufficientFunds):
            exchange.bets.place_bet("alice", bet_on_bob(stake=20000))
        assert exchange.bets.list_bets(bettor_id="alice") == []

    def test_unknown_target(self, exchange, alice):
        with pytest.raises(NotFoundError):
            exchange.bets.place_bet("alice", bet_on_bob(target_account_id="nobody"))


class TestResolveBet:
    def test_won_pays_out(self, exchange, alice, bob):
        bet = exchange.bets.place_bet("alice", bet_on_bob())
        exchange.accounts.credit("bob", 1000)
        resolved = exchange.bets.resolve_bet(bet.id)
        assert resolved.status == "won"
        assert resolved.final_performance == 10.0
        alice_after = exchange.accounts.get("alice")
        assert alice_after.balance == 10135.71
        assert alice_after.total_earnings == 135.71
        assert exchange.activity.list_recent()[0].type == "bet_win"

    def test_decrease_bet_wins(self, exchange, alice, bob):
        bet = exchange.bets.place_bet("alice", bet_on_bob(direction="decrease"))
        exchange.accounts.debit("bob", 1000)
        assert exchange.bets.resolve_bet(bet.id).status == "won"

    def test_active_until_expiry(self, exchange, alice, bob):
        bet = exchange.bets.place_bet("alice", bet_on_bob())
        resolved = exchange.bets.resolve_bet(bet.id, now=bet.expires_at - 1)
        assert resolved.status == "active"
        assert exchange.accounts.get("alice").balance == 9900.0

    def test_lost_after_expiry(self, exchange, alice, bob):
        bet = exchange.bets.place_bet("alice", bet_on_bob())
        resolved = exchange.bets.resolve_bet(bet.id, now=bet.expires_at)
        assert resolved.status == "lost"
        alice_after = exchange.accounts.get("alice")
        assert alice_after.balance == 9900.0
        assert alice_after.total_losses == 100.0
        assert exchange.activity.list_recent()[0].type == "bet_loss"

    def test_zero_starting_value_refunded(self, exchange, alice):
        exchange.accounts.open_account("broke", "broke", starting_balance=0)
        bet = exchange.bets.place_bet("alice", bet_on_bob(target_account_id="broke"))
        resolved = exchange.bets.resolve_bet(bet.id)
        assert resolved.status == "expired"
        assert resolved.final_performance is None
        assert exchange.accounts.get("alice").balance == 10000.0

    def test_resolving_twice_pays_once(self, exchange, alice, bob):
        bet = exchange.bets.place_bet("alice", bet_on_bob())
        exchange.accounts.credit("bob", 2000)
        exchange.bets.resolve_bet(bet.id)
        again = exchange.bets.resolve_bet(bet.id)
        assert again.status == "won"
        assert exchange.accounts.get("alice").balance == 10135.71

    def test_unknown_bet(self, exchange):
        with pytest.raises(NotFoundError):
            exchange.bets.resolve_bet("missing")


class TestResolveDueBets:
    def test_summary(self, exchange, clock, alice, bob):
        exchange.accounts.open_account("carol", "carol")
        winner = exchange.bets.place_bet("alice", bet_on_bob(stake=10))
        exchange.bets.place_bet("alice", bet_on_bob(target_account_id="carol", stake=20))
        exchange.bets.place_bet("bob", bet_on_bob(target_account_id="carol", timeframe_hours=168, stake=30))
        # bob staked 30 himself, so he needs more than 1000 to be up 10%
        exchange.accounts.credit("bob", 1100)

        clock.advance_hours(48)
        summary = exchange.bets.resolve_due_bets()
        assert (summary.won, summary.lost, summary.active, summary.failed) == (1, 1, 1, 0)
        assert exchange.bets.get_bet(winner.id).status == "won"
        assert [b.status for b in exchange.bets.list_bets(status="active")] == ["active"]
