"""Shared test fixtures for cryptogains."""

from datetime import datetime, timezone
from decimal import Decimal
from itertools import count

import pytest

from cryptogains.engines.lots import LotLedger
from cryptogains.models.enums import TransactionType
from cryptogains.models.transaction import Amount, Transaction


def amt(text: str) -> Amount:
    """Amount from text such as '1.5 BTC'."""
    quantity, currency = text.split()
    return Amount(currency=currency, quantity=Decimal(quantity))


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def make_tx():
    """Factory for transactions with sequential ids."""
    ids = count(1)

    def _make(
        tx_type: TransactionType,
        timestamp: datetime,
        sent: str | None = None,
        received: str | None = None,
        fee: str | None = None,
        value: str | None = None,
        fee_value: str | None = None,
        **fields,
    ) -> Transaction:
        fields.setdefault("id", f"tx-{next(ids)}")
        fields.setdefault("wallet_id", "main")
        return Transaction(
            type=tx_type,
            timestamp=timestamp,
            sent=amt(sent) if sent else None,
            received=amt(received) if received else None,
            fee=amt(fee) if fee else None,
            value=amt(value) if value else None,
            fee_value=amt(fee_value) if fee_value else None,
            **fields,
        )

    return _make


@pytest.fixture
def ledger() -> LotLedger:
    return LotLedger()


@pytest.fixture
def btc_history(make_tx) -> list[Transaction]:
    """Buy, partial sell and a later buy of BTC with known fiat values."""
    return [
        make_tx(TransactionType.BUY, utc(2013, 9, 24, 12), sent="95.19 EUR", received="1 BTC", id="buy-1"),
        make_tx(
            TransactionType.SELL, utc(2013, 9, 25, 12), sent="0.04013 BTC", received="3.80 EUR", id="sell-1"
        ),
        make_tx(TransactionType.BUY, utc(2014, 3, 1, 9), sent="500 EUR", received="1 BTC", id="buy-2"),
        make_tx(TransactionType.SELL, utc(2015, 1, 10, 9), sent="1.5 BTC", received="300 EUR", id="sell-2"),
    ]
