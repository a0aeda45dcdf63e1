"""Fiat valuation of transactions.

The engine only needs a price oracle answering "what was one unit of this
currency worth in EUR at this instant". `PriceTable` is the bundled oracle
backed by recorded price points; any object with a matching `price` method
can be used instead.
"""

import bisect
import json
import logging
from collections import defaultdict
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Protocol

from cryptogains.exceptions import SourceImportError
from cryptogains.models.enums import FIAT_CURRENCY
from cryptogains.models.transaction import Amount, Transaction, fiat

logger = logging.getLogger(__name__)

# Warn when both legs of a crypto-to-crypto trade are valued this far apart
MAX_LEG_VALUE_RATIO = Decimal("0.95")


class PriceOracle(Protocol):
    def price(self, currency: str, at: datetime) -> Decimal | None:
        """EUR price of one unit, or None when no price is available."""
        ...


class NoPrices:
    """Oracle that knows nothing beyond the fiat currency itself."""

    def price(self, currency: str, at: datetime) -> Decimal | None:
        return Decimal("1") if currency == FIAT_CURRENCY else None


class PriceTable:
    """Price points per currency, interpolated linearly between neighbours."""

    def __init__(self, points: dict[str, list[tuple[datetime, Decimal]]] | None = None):
        self._times: dict[str, list[datetime]] = defaultdict(list)
        self._prices: dict[str, list[Decimal]] = defaultdict(list)
        for currency, series in (points or {}).items():
            for at, price in series:
                self.add(currency, at, price)

    def add(self, currency: str, at: datetime, price: Decimal) -> None:
        if at.tzinfo is None:
            at = at.replace(tzinfo=timezone.utc)
        currency = currency.upper()
        times, prices = self._times[currency], self._prices[currency]
        index = bisect.bisect_right(times, at)
        times.insert(index, at)
        prices.insert(index, price)

    def price(self, currency: str, at: datetime) -> Decimal | None:
        if currency == FIAT_CURRENCY:
            return Decimal("1")
        times = self._times.get(currency)
        if not times:
            return None
        prices = self._prices[currency]
        index = bisect.bisect_right(times, at)
        if index == 0:
            return prices[0]
        if index == len(times):
            return prices[-1]

        before, after = times[index - 1], times[index]
        span = Decimal(str((after - before).total_seconds()))
        if span == 0:
            return prices[index]
        ratio = Decimal(str((at - before).total_seconds())) / span
        return prices[index - 1] + ratio * (prices[index] - prices[index - 1])

    @classmethod
    def from_json(cls, path: Path) -> "PriceTable":
        """Load `{"BTC": [["2024-01-01T00:00:00Z", "38000.5"], ...], ...}`."""
        try:
            raw = json.loads(path.read_text())
        except (OSError, json.JSONDecodeError) as exc:
            raise SourceImportError(str(path), f"cannot read price table: {exc}") from exc

        table = cls()
        for currency, series in raw.items():
            for at, price in series:
                table.add(currency, datetime.fromisoformat(at), Decimal(str(price)))
        return table


def estimate_value(oracle: PriceOracle, amount: Amount, at: datetime) -> Amount | None:
    if amount.is_fiat:
        return amount
    price = oracle.price(amount.currency, at)
    if price is None:
        return None
    return fiat(price * amount.quantity)


class TransactionValuer:
    """Fills in missing `value` and `fee_value` from a price oracle."""

    def __init__(self, oracle: PriceOracle):
        self.oracle = oracle

    def value_all(self, transactions: list[Transaction]) -> list[Transaction]:
        return [self.value(tx) for tx in transactions]

    def value(self, tx: Transaction) -> Transaction:
        update: dict = {}
        if tx.value is None:
            value = self._transaction_value(tx)
            if value is not None:
                update["value"] = value
        if tx.fee_value is None and tx.fee is not None:
            fee_value = estimate_value(self.oracle, tx.fee, tx.timestamp)
            if fee_value is not None:
                update["fee_value"] = fee_value
        return tx.model_copy(update=update) if update else tx

    def _transaction_value(self, tx: Transaction) -> Amount | None:
        if tx.sent is not None and tx.received is not None:
            # Trading to or from fiat, the value is known exactly
            if tx.received.is_fiat:
                return tx.received
            if tx.sent.is_fiat:
                return tx.sent
            value_in = estimate_value(self.oracle, tx.received, tx.timestamp)
            value_out = estimate_value(self.oracle, tx.sent, tx.timestamp)
            if value_in is None or value_out is None:
                return value_in or value_out
            low = min(value_in.quantity, value_out.quantity)
            high = max(value_in.quantity, value_out.quantity)
            if low < high * MAX_LEG_VALUE_RATIO:
                logger.warning(
                    "%s: %d%% value difference between incoming %s (%s) and outgoing %s (%s)",
                    tx.id, round(100 * (high - low) / high), tx.received, value_in, tx.sent, value_out,
                )
            return fiat((value_in.quantity + value_out.quantity) / 2)

        amount = tx.sent or tx.received
        if amount is None:
            return None
        return estimate_value(self.oracle, amount, tx.timestamp)
