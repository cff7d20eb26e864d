"""Tests for the account ledger."""

import sys
import os
from concurrent.futures import ThreadPoolExecutor

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from opinion_market.errors import (
    InsufficientFunds,
    InsufficientPosition,
    NotFoundError,
    ValidationError,
)

ASSET = "a" * 32


class TestOpenAccount:
    def test_starting_balance(self, exchange, alice):
        assert alice.balance == 10000.0
        assert alice.total_earnings == 0.0
        assert alice.total_losses == 0.0
        assert alice.positions == {}

    def test_idempotent(self, exchange, alice):
        exchange.accounts.debit("alice", 100)
        again = exchange.accounts.open_account("alice", "alice")
        assert again.balance == 9900.0

    def test_custom_balance_and_bot(self, exchange):
        bot = exchange.accounts.open_account("bot-1", "trader bot", starting_balance=50, is_bot=True)
        assert bot.balance == 50.0
        assert bot.is_bot

    def test_requires_username(self, exchange):
        with pytest.raises(ValidationError):
            exchange.accounts.open_account("carol", "  ")

    def test_unknown_account(self, exchange):
        with pytest.raises(NotFoundError):
            exchange.accounts.get("nobody")
        assert exchange.accounts.find("nobody") is None


class TestBalance:
    def test_debit(self, exchange, alice):
        assert exchange.accounts.debit("alice", 10.01).balance == 9989.99

    def test_debit_insufficient_leaves_balance(self, exchange):
        exchange.accounts.open_account("poor", "poor", starting_balance=5)
        with pytest.raises(InsufficientFunds):
            exchange.accounts.debit("poor", 5.01)
        assert exchange.accounts.get("poor").balance == 5.0

    def test_debit_exact_balance_allowed(self, exchange):
        exchange.accounts.open_account("exact", "exact", starting_balance=5)
        assert exchange.accounts.debit("exact", 5).balance == 0.0

    def test_credit_with_earnings(self, exchange, alice):
        account = exchange.accounts.credit("alice", 250, earnings=150)
        assert account.balance == 10250.0
        assert account.total_earnings == 150.0

    def test_record_loss(self, exchange, alice):
        account = exchange.accounts.record_loss("alice", 42.5)
        assert account.total_losses == 42.5
        assert account.balance == 10000.0

    @pytest.mark.parametrize("amount", [0, -5, True])
    def test_invalid_amounts(self, exchange, alice, amount):
        with pytest.raises(ValidationError):
            exchange.accounts.debit("alice", amount)

    def test_concurrent_debits_all_applied(self, exchange, alice):
        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(lambda _: exchange.accounts.debit("alice", 1.0), range(20)))
        assert exchange.accounts.get("alice").balance == 9980.0


class TestPositions:
    def test_weighted_average_cost(self, exchange, alice):
        exchange.accounts.adjust_position("alice", ASSET, 2, 10.0)
        account = exchange.accounts.adjust_position("alice", ASSET, 2, 20.0)
        position = account.positions[ASSET]
        assert position.quantity == 4
        assert position.average_purchase_price == 15.0

    def test_sell_keeps_average(self, exchange, alice):
        exchange.accounts.adjust_position("alice", ASSET, 4, 12.0)
        account = exchange.accounts.adjust_position("alice", ASSET, -1, 30.0)
        assert account.positions[ASSET].quantity == 3
        assert account.positions[ASSET].average_purchase_price == 12.0

    def test_position_removed_at_zero(self, exchange, alice):
        exchange.accounts.adjust_position("alice", ASSET, 3, 10.0)
        account = exchange.accounts.adjust_position("alice", ASSET, -3, 10.0)
        assert ASSET not in account.positions
        assert exchange.accounts.get("alice").positions == {}

    def test_cannot_go_negative(self, exchange, alice):
        exchange.accounts.adjust_position("alice", ASSET, 1, 10.0)
        with pytest.raises(InsufficientPosition):
            exchange.accounts.adjust_position("alice", ASSET, -2, 10.0)
        assert exchange.accounts.get("alice").positions[ASSET].quantity == 1

    def test_zero_change_rejected(self, exchange, alice):
        with pytest.raises(ValidationError):
            exchange.accounts.adjust_position("alice", ASSET, 0, 10.0)


class TestApplyFill:
    def test_buy_fill(self, exchange, alice):
        account = exchange.accounts.apply_fill("alice", ASSET, "buy", 3, 10.03)
        assert account.balance == 9969.91
        assert account.positions[ASSET].quantity == 3
        assert account.positions[ASSET].average_purchase_price == 10.03

    def test_sell_fill_books_profit(self, exchange, alice):
        exchange.accounts.apply_fill("alice", ASSET, "buy", 2, 10.0)
        account = exchange.accounts.apply_fill("alice", ASSET, "sell", 2, 12.5)
        assert account.balance == 10005.0
        assert account.total_earnings == 5.0
        assert account.total_losses == 0.0
        assert account.positions == {}

    def test_sell_fill_books_loss(self, exchange, alice):
        exchange.accounts.apply_fill("alice", ASSET, "buy", 1, 10.0)
        account = exchange.accounts.apply_fill("alice", ASSET, "sell", 1, 9.0)
        assert account.total_losses == 1.0
        assert account.total_earnings == 0.0

    def test_buy_fill_insufficient_funds_changes_nothing(self, exchange):
        exchange.accounts.open_account("poor", "poor", starting_balance=20)
        with pytest.raises(InsufficientFunds):
            exchange.accounts.apply_fill("poor", ASSET, "buy", 3, 10.0)
        account = exchange.accounts.get("poor")
        assert account.balance == 20.0
        assert account.positions == {}
