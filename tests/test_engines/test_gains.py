"""Tests for the capital gain calculator."""

from datetime import date, datetime, timezone
from decimal import Decimal

from cryptogains.config import EngineConfig
from cryptogains.engines.gains import GainCalculator, add_years, is_long_term
from cryptogains.engines.lots import LotLedger
from cryptogains.engines.pipeline import run
from cryptogains.models.enums import CostBasisTracking, GainError, TransactionType

T = TransactionType


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class TestHoldingPeriod:
    def test_add_years(self):
        assert add_years(date(2023, 3, 1), 1) == date(2024, 3, 1)
        assert add_years(date(2024, 2, 29), 1) == date(2025, 2, 28)
        assert add_years(date(2024, 2, 29), 4) == date(2028, 2, 29)

    def test_anniversary_is_long_term(self):
        assert is_long_term(utc(2023, 3, 1), utc(2024, 3, 1))

    def test_day_before_anniversary_is_short_term(self):
        assert not is_long_term(utc(2023, 3, 1), utc(2024, 2, 29))

    def test_leap_day_acquisition(self):
        assert not is_long_term(utc(2024, 2, 29), utc(2025, 2, 27))
        assert is_long_term(utc(2024, 2, 29), utc(2025, 2, 28))

    def test_configured_years(self):
        assert not is_long_term(utc(2020, 1, 1), utc(2025, 1, 1), years=10)
        assert is_long_term(utc(2024, 1, 1), utc(2024, 1, 1), years=0)


class TestEndToEnd:
    def test_partial_sale_then_split_sale(self, btc_history):
        result = run(btc_history)
        by_id = {p.transaction.id: p for p in result.processed}

        (first,) = by_id["sell-1"].events
        assert first.bought_tx_id == "buy-1"
        assert first.amount == Decimal("0.04013")
        assert first.cost == Decimal("0.04013") * Decimal("95.19")
        assert first.proceeds == Decimal("3.80")
        assert round(first.cost, 2) == Decimal("3.82")
        assert not first.long_term

        old, new = by_id["sell-2"].events
        assert old.bought_tx_id == "buy-1"
        assert old.amount == Decimal("0.95987")
        assert old.long_term
        assert new.bought_tx_id == "buy-2"
        assert new.amount == Decimal("0.54013")
        assert new.cost == Decimal("270.065")
        assert not new.long_term
        assert old.proceeds + new.proceeds == Decimal("300")
        assert by_id["sell-2"].gain_error is None

        assert result.holdings["BTC"] == (Decimal("0.45987"), Decimal("0.45987") * Decimal("500"))

    def test_cost_is_prorated_from_the_lot(self, make_tx):
        txs = [
            make_tx(T.BUY, utc(2013, 9, 24), sent="300 EUR", received="1 BTC", id="buy"),
            make_tx(T.SELL, utc(2013, 9, 25), sent="0.04013 BTC", received="3.80 EUR", id="sell"),
        ]
        (event,) = run(txs).processed[1].events
        assert event.cost == Decimal("12.039")


class TestGainCalculator:
    def setup_method(self):
        self.ledger = LotLedger()
        self.calculator = GainCalculator(self.ledger)

    def test_deficit_event_and_processing_continues(self, make_tx):
        txs = [
            make_tx(T.BUY, utc(2024, 1, 1), sent="100 EUR", received="1 ETH", value="100 EUR"),
            make_tx(T.SELL, utc(2024, 2, 1), sent="3 ETH", received="300 EUR", value="300 EUR"),
            make_tx(T.BUY, utc(2024, 3, 1), sent="50 EUR", received="1 ETH", value="50 EUR"),
            make_tx(T.SELL, utc(2024, 4, 1), sent="1 ETH", received="80 EUR", value="80 EUR"),
        ]
        _, short, _, later = self.calculator.process(txs)

        matched, deficit = short.events
        assert matched.cost == Decimal("100")
        assert matched.proceeds == Decimal("100")
        assert deficit.is_deficit
        assert deficit.amount == Decimal("2")
        assert deficit.cost is None
        assert deficit.proceeds == Decimal("200")
        assert not deficit.long_term
        assert short.gain is None
        assert short.gain_error == GainError.INSUFFICIENT_BALANCE

        assert later.gain == Decimal("30")
        assert later.gain_error is None

    def test_swap_carries_cost_basis(self, make_tx):
        txs = [
            make_tx(T.BUY, utc(2024, 1, 1), sent="100 EUR", received="1 BTC", value="100 EUR", id="buy"),
            make_tx(T.SWAP, utc(2024, 5, 1), sent="1 BTC", received="10 WBTC", value="600 EUR"),
        ]
        _, swap = self.calculator.process(txs)

        assert swap.events == ()
        assert swap.gain_error is None
        assert self.ledger.balance("BTC") == 0
        (lot,) = self.ledger.lots("WBTC")
        assert lot.amount == Decimal("10")
        assert lot.acquired_at == utc(2024, 1, 1)
        assert lot.origin_tx_id == "buy"
        assert lot.cost_base == Decimal("100")

    def test_one_to_one_swap_keeps_unit_cost(self, make_tx):
        txs = [
            make_tx(T.BUY, utc(2024, 1, 1), sent="300 EUR", received="3 ETH", value="300 EUR"),
            make_tx(T.SWAP, utc(2024, 5, 1), sent="2 ETH", received="2 STETH"),
        ]
        self.calculator.process(txs)
        (lot,) = self.ledger.lots("STETH")
        assert lot.unit_cost == Decimal("100")
        assert lot.acquired_at == utc(2024, 1, 1)

    def test_event_amounts_add_up_to_disposed_amount(self, make_tx):
        txs = [
            make_tx(T.BUY, utc(2024, 1, 1), sent="10 EUR", received="1 BTC", value="10 EUR"),
            make_tx(T.BUY, utc(2024, 1, 2), sent="10 EUR", received="0.7 BTC", value="10 EUR"),
            make_tx(T.BUY, utc(2024, 1, 3), sent="10 EUR", received="0.5 BTC", value="10 EUR"),
            make_tx(T.SELL, utc(2024, 2, 1), sent="2.5 BTC", received="100 EUR", value="100 EUR"),
        ]
        sell = self.calculator.process(txs)[-1]
        assert [e.amount for e in sell.events] == [Decimal("1"), Decimal("0.7"), Decimal("0.5"), Decimal("0.3")]
        assert sum(e.amount for e in sell.events) == Decimal("2.5")
        assert sum(e.proceeds for e in sell.events) == Decimal("100")

    def test_swap_fee_is_a_separate_disposal(self, make_tx):
        txs = [
            make_tx(T.BUY, utc(2024, 1, 1), sent="300 EUR", received="3 ETH", value="300 EUR"),
            make_tx(
                T.SWAP, utc(2024, 5, 1), sent="2 ETH", received="2 STETH", fee="0.01 ETH", fee_value="20 EUR"
            ),
        ]
        _, swap = self.calculator.process(txs)

        (event,) = swap.events
        assert event.currency == "ETH"
        assert event.amount == Decimal("0.01")
        assert event.cost == Decimal("1")
        assert event.proceeds == Decimal("20")
        assert swap.fee_charge.currency == "ETH"
        assert swap.fee_charge.value == Decimal("20")
        (lot,) = self.ledger.lots("STETH")
        assert lot.unit_cost == Decimal("100")
        assert self.ledger.balance("ETH") == Decimal("0.99")

    def test_swap_beyond_holdings(self, make_tx):
        swap = make_tx(T.SWAP, utc(2024, 5, 1), sent="2 BTC", received="2 WBTC", id="swap")
        (processed,) = self.calculator.process([swap])
        assert processed.gain_error == GainError.INSUFFICIENT_BALANCE
        (lot,) = self.ledger.lots("WBTC")
        assert lot.unit_cost is None
        assert lot.origin_tx_id == "swap"

    def test_crypto_fee_in_sent_currency_is_disposed_with_it(self, make_tx):
        txs = [
            make_tx(T.BUY, utc(2024, 1, 1), sent="100 EUR", received="1 BTC", value="100 EUR"),
            make_tx(
                T.TRADE, utc(2024, 2, 1), sent="0.5 BTC", received="10 ETH", fee="0.01 BTC", value="60 EUR"
            ),
        ]
        _, trade = self.calculator.process(txs)
        (event,) = trade.events
        assert event.amount == Decimal("0.51")
        assert event.cost == Decimal("51")
        assert event.proceeds == Decimal("60")
        assert trade.fee_charge is None
        assert self.ledger.cost_base("ETH") == Decimal("60")

    def test_fiat_fee_on_buy_adds_to_cost(self, make_tx):
        buy = make_tx(T.BUY, utc(2024, 1, 1), sent="100 EUR", received="1 BTC", fee="2 EUR", value="100 EUR")
        (processed,) = self.calculator.process([buy])
        assert self.ledger.cost_base("BTC") == Decimal("102")
        assert processed.fee_charge is None

    def test_separate_fee_is_charged_to_disposed_currency(self, make_tx):
        txs = [
            make_tx(T.BUY, utc(2024, 1, 1), sent="100 EUR", received="1 BTC", value="100 EUR"),
            make_tx(T.SELL, utc(2024, 2, 1), sent="1 BTC", received="120 EUR", fee="1.5 EUR", value="120 EUR"),
        ]
        _, sell = self.calculator.process(txs)
        assert sell.fee_charge.currency == "BTC"
        assert sell.fee_charge.value == Decimal("1.5")
        assert sell.gain == Decimal("20")

    def test_crypto_fee_in_third_currency_is_disposed(self, make_tx):
        txs = [
            make_tx(T.BUY, utc(2024, 1, 1), sent="100 EUR", received="10 BNB", value="100 EUR", id="bnb"),
            make_tx(T.BUY, utc(2024, 1, 2), sent="100 EUR", received="1 BTC", value="100 EUR"),
            make_tx(
                T.SELL, utc(2024, 2, 1), sent="1 BTC", received="120 EUR",
                fee="1 BNB", value="120 EUR", fee_value="15 EUR",
            ),
        ]
        *_, sell = self.calculator.process(txs)
        btc, bnb = sell.events
        assert btc.currency == "BTC"
        assert bnb.currency == "BNB"
        assert bnb.bought_tx_id == "bnb"
        assert bnb.cost == Decimal("10")
        assert bnb.proceeds == Decimal("15")
        assert sell.fee_charge.currency == "BTC"
        assert sell.fee_charge.value == Decimal("15")

    def test_income_with_value(self, make_tx):
        (processed,) = self.calculator.process(
            [make_tx(T.STAKING, utc(2024, 1, 1), received="2 DOT", value="10 EUR")]
        )
        assert processed.income.quantity == Decimal("2")
        assert processed.income.value == Decimal("10")
        assert processed.gain_error is None
        assert self.ledger.cost_base("DOT") == Decimal("10")

    def test_income_without_value(self, make_tx):
        (processed,) = self.calculator.process([make_tx(T.STAKING, utc(2024, 1, 1), received="2 DOT")])
        assert processed.income.value is None
        assert processed.gain is None
        assert processed.gain_error == GainError.MISSING_FIAT_VALUE
        assert self.ledger.cost_base("DOT") is None

    def test_airdrop_has_zero_cost(self, make_tx):
        (processed,) = self.calculator.process([make_tx(T.AIRDROP, utc(2024, 1, 1), received="50 UNI")])
        assert processed.gain_error is None
        assert processed.income is None
        assert self.ledger.cost_base("UNI") == 0

    def test_stolen_realizes_nothing(self, make_tx):
        txs = [
            make_tx(T.BUY, utc(2024, 1, 1), sent="100 EUR", received="1 BTC", value="100 EUR"),
            make_tx(T.STOLEN, utc(2024, 2, 1), sent="0.5 BTC"),
        ]
        _, stolen = self.calculator.process(txs)
        (event,) = stolen.events
        assert event.proceeds == 0
        assert stolen.gain == Decimal("-50")

    def test_missing_cost_base(self, make_tx):
        txs = [
            make_tx(T.RECEIVE, utc(2024, 1, 1), received="1 BTC"),
            make_tx(T.SELL, utc(2024, 2, 1), sent="1 BTC", received="100 EUR", value="100 EUR"),
        ]
        receive, sell = self.calculator.process(txs)
        assert receive.gain_error == GainError.MISSING_FIAT_VALUE
        (event,) = sell.events
        assert event.cost is None
        assert sell.gain is None
        assert sell.gain_error == GainError.MISSING_COST_BASE

    def test_insufficient_balance_takes_precedence(self, make_tx):
        (processed,) = self.calculator.process([make_tx(T.SEND, utc(2024, 1, 1), sent="1 BTC")])
        assert processed.gain_error == GainError.INSUFFICIENT_BALANCE

    def test_unmatched_deposit_is_zero_cost(self, make_tx):
        (processed,) = self.calculator.process([make_tx(T.DEPOSIT, utc(2024, 1, 1), received="1 BTC")])
        assert processed.gain_error is None
        assert self.ledger.cost_base("BTC") == 0

    def test_matched_transfer_realizes_nothing(self, make_tx):
        txs = [
            make_tx(T.BUY, utc(2024, 1, 1), sent="100 EUR", received="1 BTC", value="100 EUR"),
            make_tx(T.SEND, utc(2024, 2, 1), sent="1 BTC", id="s", matching_tx_id="r"),
            make_tx(T.RECEIVE, utc(2024, 2, 1, 0, 10), received="1 BTC", id="r", matching_tx_id="s"),
        ]
        _, send, receive = self.calculator.process(txs)
        assert send.events == () and receive.events == ()
        assert self.ledger.balance("BTC") == Decimal("1")

    def test_fiat_movements_ignored(self, make_tx):
        (processed,) = self.calculator.process([make_tx(T.WITHDRAWAL, utc(2024, 1, 1), sent="500 EUR")])
        assert processed.events == ()
        assert processed.gain_error is None


class TestPerWalletTracking:
    def setup_method(self):
        config = EngineConfig(cost_basis_tracking=CostBasisTracking.PER_WALLET)
        self.ledger = LotLedger(per_wallet=True)
        self.calculator = GainCalculator(self.ledger, config)

    def test_lots_follow_matched_transfer(self, make_tx):
        txs = [
            make_tx(
                T.BUY, utc(2024, 1, 1), sent="100 EUR", received="1 BTC", value="100 EUR",
                wallet_id="exchange", id="buy",
            ),
            make_tx(T.SEND, utc(2024, 2, 1), sent="1 BTC", wallet_id="exchange", id="s", matching_tx_id="r"),
            make_tx(T.RECEIVE, utc(2024, 2, 1, 0, 10), received="1 BTC", wallet_id="cold", id="r", matching_tx_id="s"),
            make_tx(
                T.SELL, utc(2024, 3, 1), sent="1 BTC", received="150 EUR", value="150 EUR", wallet_id="cold"
            ),
        ]
        *_, sell = self.calculator.process(txs)
        (event,) = sell.events
        assert event.bought_tx_id == "buy"
        assert event.acquired_at == utc(2024, 1, 1)
        assert sell.gain == Decimal("50")
        assert self.ledger.balance("BTC", "exchange") == 0

    def test_transfer_between_wallets(self, make_tx):
        txs = [
            make_tx(
                T.BUY, utc(2024, 1, 1), sent="100 EUR", received="2 BTC", value="100 EUR", wallet_id="exchange"
            ),
            make_tx(T.TRANSFER, utc(2024, 2, 1), sent="1 BTC", wallet_id="exchange", to_wallet_id="cold"),
        ]
        _, transfer = self.calculator.process(txs)
        assert transfer.events == ()
        assert self.ledger.balance("BTC", "cold") == Decimal("1")
        assert self.ledger.cost_base("BTC", "cold") == Decimal("50")

    def test_selling_from_empty_wallet_is_a_deficit(self, make_tx):
        txs = [
            make_tx(
                T.BUY, utc(2024, 1, 1), sent="100 EUR", received="1 BTC", value="100 EUR", wallet_id="exchange"
            ),
            make_tx(T.SELL, utc(2024, 2, 1), sent="1 BTC", received="150 EUR", value="150 EUR", wallet_id="cold"),
        ]
        _, sell = self.calculator.process(txs)
        assert sell.gain_error == GainError.INSUFFICIENT_BALANCE
