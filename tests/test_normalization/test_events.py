"""Tests for transaction validation, filtering and ordering."""

import logging
from datetime import datetime, timezone

import pytest

from cryptogains.exceptions import StructuralError
from cryptogains.models.enums import TransactionType
from cryptogains.normalization import TransactionNormalizer, shape_problems

T = TransactionType


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class TestShapeProblems:
    def test_valid_trade(self, make_tx):
        tx = make_tx(T.TRADE, utc(2024, 1, 1), sent="1 BTC", received="20 ETH")
        assert shape_problems(tx) == []

    def test_trade_missing_received(self, make_tx):
        tx = make_tx(T.TRADE, utc(2024, 1, 1), sent="1 BTC")
        assert shape_problems(tx) == ["missing received amount"]

    def test_receive_with_sent(self, make_tx):
        tx = make_tx(T.RECEIVE, utc(2024, 1, 1), sent="1 BTC", received="1 BTC")
        assert "unexpected sent amount" in shape_problems(tx)

    def test_trade_same_currency(self, make_tx):
        tx = make_tx(T.TRADE, utc(2024, 1, 1), sent="1 BTC", received="2 BTC")
        assert any("same currency" in p for p in shape_problems(tx))

    def test_swap_with_fiat(self, make_tx):
        tx = make_tx(T.SWAP, utc(2024, 1, 1), sent="100 EUR", received="1 ETH")
        assert "a swap cannot involve fiat" in shape_problems(tx)

    def test_gift_needs_one_side(self, make_tx):
        both = make_tx(T.GIFT, utc(2024, 1, 1), sent="1 BTC", received="1 BTC")
        neither = make_tx(T.GIFT, utc(2024, 1, 1))
        assert shape_problems(both)
        assert shape_problems(neither)
        assert shape_problems(make_tx(T.GIFT, utc(2024, 1, 1), received="1 BTC")) == []

    def test_transfer_checks(self, make_tx):
        no_destination = make_tx(T.TRANSFER, utc(2024, 1, 1), sent="1 BTC")
        assert "transfer without destination wallet" in shape_problems(no_destination)
        grows = make_tx(T.TRANSFER, utc(2024, 1, 1), sent="1 BTC", received="2 BTC", to_wallet_id="cold")
        assert "transfer receives more than it sends" in shape_problems(grows)

    def test_value_must_be_fiat(self, make_tx):
        tx = make_tx(T.SELL, utc(2024, 1, 1), sent="1 BTC", value="10 ETH")
        assert shape_problems(tx) == ["value must be in fiat, got ETH"]


class TestTransactionNormalizer:
    def setup_method(self):
        self.normalizer = TransactionNormalizer()

    def test_structural_errors_collected(self, make_tx):
        txs = [
            make_tx(T.TRADE, utc(2024, 1, 1), sent="1 BTC", id="bad-1"),
            make_tx(T.BUY, utc(2024, 1, 2), sent="10 EUR", received="1 BTC", id="good"),
            make_tx(T.SEND, utc(2024, 1, 3), received="1 BTC", id="bad-2"),
        ]
        with pytest.raises(StructuralError) as exc_info:
            self.normalizer.normalize(txs)
        assert set(exc_info.value.problems) == {"bad-1", "bad-2"}
        assert "bad-1" in str(exc_info.value)

    def test_stable_chronological_sort(self, make_tx):
        txs = [
            make_tx(T.BUY, utc(2024, 1, 2), received="1 BTC", id="later"),
            make_tx(T.BUY, utc(2024, 1, 1), received="1 BTC", id="tie-first"),
            make_tx(T.BUY, utc(2024, 1, 1), received="2 BTC", id="tie-second"),
        ]
        ordered = self.normalizer.normalize(txs)
        assert [tx.id for tx in ordered] == ["tie-first", "tie-second", "later"]

    def test_disabled_sources_dropped(self, make_tx):
        txs = [
            make_tx(T.BUY, utc(2024, 1, 1), received="1 BTC", id="a", source_id="kraken.csv"),
            make_tx(T.BUY, utc(2024, 1, 1), received="1 BTC", id="b", source_id="old.csv"),
        ]
        ordered = self.normalizer.normalize(txs, enabled_sources={("main", "kraken.csv")})
        assert [tx.id for tx in ordered] == ["a"]

    def test_ignored_currency_dropped(self, make_tx):
        txs = [
            make_tx(T.RECEIVE, utc(2024, 1, 1), received="100 SPAMCOIN", id="spam"),
            make_tx(T.RECEIVE, utc(2024, 1, 1), received="1 BTC", id="btc"),
        ]
        ordered = self.normalizer.normalize(txs, ignored_currencies=["spamcoin"])
        assert [tx.id for tx in ordered] == ["btc"]

    def test_trade_kept_when_one_leg_not_ignored(self, make_tx):
        txs = [make_tx(T.TRADE, utc(2024, 1, 1), sent="1 BTC", received="100 XYZ", id="t")]
        assert len(self.normalizer.normalize(txs, ignored_currencies=["XYZ"])) == 1

    def test_fee_of_ignored_trade_kept(self, make_tx):
        txs = [
            make_tx(
                T.TRADE, utc(2024, 1, 1), sent="5 ABC", received="100 XYZ",
                fee="0.001 ETH", fee_value="2 EUR", id="t",
            )
        ]
        ordered = self.normalizer.normalize(txs, ignored_currencies=["ABC", "XYZ"])
        assert len(ordered) == 1
        fee_tx = ordered[0]
        assert fee_tx.type == T.FEE
        assert str(fee_tx.sent) == "0.001 ETH"
        assert fee_tx.received is None
        assert fee_tx.fee is None
        assert fee_tx.value.quantity == 2

    def test_duplicates_warned(self, make_tx, caplog):
        txs = [
            make_tx(T.BUY, utc(2024, 1, 1), received="1 BTC", id="a"),
            make_tx(T.BUY, utc(2024, 1, 1), received="1 BTC", id="b"),
        ]
        with caplog.at_level(logging.WARNING):
            ordered = self.normalizer.normalize(txs)
        assert len(ordered) == 2
        assert "Duplicate transaction" in caplog.text
