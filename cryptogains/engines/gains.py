"""Disposal matching and capital gain calculation.

Walks a chronologically ordered transaction sequence, feeding acquisitions
into the lot ledger and turning disposals into capital gain events. Deficits
and missing prices are recorded on the results instead of raising: a disposal
exceeding the tracked holdings still produces an event, with unknown cost.
"""

import logging
from datetime import date, datetime
from decimal import Decimal

from cryptogains.config import EngineConfig
from cryptogains.engines.lots import LotLedger
from cryptogains.models.enums import (
    INCOME_TYPES,
    ZERO_COST_TYPES,
    ZERO_PROCEEDS_TYPES,
    GainError,
    TransactionType,
)
from cryptogains.models.ledger import (
    CapitalGainEvent,
    FeeCharge,
    IncomeReceipt,
    ProcessedTransaction,
)
from cryptogains.models.transaction import Amount, Transaction
from cryptogains.normalization.transfers import INCOMING_TYPES, OUTGOING_TYPES

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

T = TransactionType

# Transactions whose separately paid fee is reported as a trading cost
FEE_CHARGED_TYPES = frozenset({T.BUY, T.SELL, T.TRADE, T.SWAP})

# Error precedence when a transaction runs into several problems
_ERROR_RANK = {
    GainError.INSUFFICIENT_BALANCE: 0,
    GainError.MISSING_COST_BASE: 1,
    GainError.MISSING_FIAT_VALUE: 2,
}


def add_years(d: datetime | date, years: int):
    """Same calendar date `years` later; Feb 29 falls back to Feb 28."""
    try:
        return d.replace(year=d.year + years)
    except ValueError:
        return d.replace(year=d.year + years, day=28)


def is_long_term(acquired_at: datetime, disposed_at: datetime, years: int = 1) -> bool:
    """Held for at least `years` calendar years."""
    return disposed_at >= add_years(acquired_at, years)


class _Outcome:
    """Accumulates what processing one transaction produced."""

    def __init__(self, tx: Transaction):
        self.tx = tx
        self.events: list[CapitalGainEvent] = []
        self.error: GainError | None = None
        self.acquisition_unknown = False
        self.fee_charge: FeeCharge | None = None
        self.income: IncomeReceipt | None = None

    def flag(self, error: GainError) -> None:
        if self.error is None or _ERROR_RANK[error] < _ERROR_RANK[self.error]:
            self.error = error

    def result(self) -> ProcessedTransaction:
        gain: Decimal | None = ZERO
        for event in self.events:
            if event.gain_or_loss is None:
                gain = None
                break
            gain += event.gain_or_loss
        if self.acquisition_unknown and not self.events:
            gain = None
        return ProcessedTransaction(
            transaction=self.tx,
            events=tuple(self.events),
            gain=gain if self.error is None else None,
            gain_error=self.error,
            fee_charge=self.fee_charge,
            income=self.income,
        )


class GainCalculator:
    """Applies transactions to a lot ledger and computes realized gains."""

    def __init__(self, ledger: LotLedger, config: EngineConfig | None = None):
        self.ledger = ledger
        self.config = config or EngineConfig()
        self._known: dict[str, Transaction] = {}
        self._moved_pairs: set[frozenset[str]] = set()

    def register(self, transactions: list[Transaction]) -> None:
        """Make transactions resolvable as transfer counterparts."""
        self._known.update((tx.id, tx) for tx in transactions)

    def process(self, transactions: list[Transaction]) -> list[ProcessedTransaction]:
        """Process chronologically sorted transactions in order."""
        self.register(transactions)
        return [self.process_one(tx) for tx in transactions]

    def process_one(self, tx: Transaction) -> ProcessedTransaction:
        outcome = _Outcome(tx)
        fee_pending = tx.fee is not None

        if tx.type in (T.BUY, T.SELL, T.TRADE):
            fee_pending = self._exchange(outcome)
        elif tx.type == T.SWAP:
            self._swap(outcome)
        elif tx.type == T.TRANSFER:
            self._move(outcome, tx.sent, tx.wallet_id, tx.to_wallet_id, tx.timestamp)
        elif tx.type in OUTGOING_TYPES or tx.type in INCOMING_TYPES:
            self._send_or_receive(outcome)
        elif tx.type in ZERO_PROCEEDS_TYPES:
            fee_pending = self._spend(outcome, ZERO)
        elif tx.type in (T.FEE, T.EXPENSE):
            fee_pending = self._spend(outcome, self._fiat(tx.value))
        elif tx.type == T.GIFT:
            if tx.sent is not None:
                fee_pending = self._spend(outcome, self._fiat(tx.value))
            else:
                self._acquire(outcome, tx.received, self._fiat(tx.value))
        elif tx.type in ZERO_COST_TYPES:
            self._acquire(outcome, tx.received, ZERO)
        elif tx.type in INCOME_TYPES:
            value = self._fiat(tx.value)
            self._acquire(outcome, tx.received, value)
            if not tx.received.is_fiat:
                outcome.income = IncomeReceipt(
                    currency=tx.received.currency, quantity=tx.received.quantity, value=value
                )

        if fee_pending:
            self._pay_fee(outcome)

        return outcome.result()

    # --- Transaction kinds ---

    def _exchange(self, outcome: _Outcome) -> bool:
        """Buy, sell or trade. Returns whether the fee still needs handling."""
        tx = outcome.tx
        value = self._fiat(tx.value)
        fee_pending = tx.fee is not None
        outgoing = tx.sent
        acquisition_cost = value

        if tx.fee_is_part_of_sent_currency:
            fee_pending = False
            if outgoing.is_fiat:
                # A fiat fee on the paying side adds to what the acquisition cost
                if acquisition_cost is not None:
                    acquisition_cost += tx.fee.quantity
            else:
                # Disposing the fee along with the amount lowers the net proceeds per unit
                outgoing = outgoing.try_add(tx.fee)

        if outgoing is not None and not outgoing.is_fiat:
            self._dispose(outcome, outgoing, value)
        if tx.received is not None and not tx.received.is_fiat:
            self._acquire(outcome, tx.received, acquisition_cost)
        return fee_pending

    def _swap(self, outcome: _Outcome) -> None:
        """Exchange that carries the cost basis over instead of realizing a gain.

        The swap itself emits no events. A crypto fee is not part of the
        carried-over amount: it is paid separately like on any trade, so it
        yields its own fee disposal event and a `FeeCharge`.
        """
        tx = outcome.tx
        sent, received = tx.sent, tx.received
        disposal = self.ledger.dispose(sent.currency, sent.quantity, tx.timestamp, tx.wallet_id)
        if sent.quantity == 0:
            return
        ratio = received.quantity / sent.quantity

        for fragment in disposal.fragments:
            quantity = fragment.amount * ratio
            unit_cost = None
            if fragment.cost is not None and quantity > 0:
                unit_cost = fragment.cost / quantity
            elif fragment.cost is None:
                outcome.flag(GainError.MISSING_COST_BASE)
            self.ledger.acquire(
                received.currency,
                quantity,
                unit_cost,
                fragment.lot.acquired_at,
                fragment.lot.origin_tx_id,
                tx.wallet_id,
            )

        if disposal.deficit > 0:
            logger.warning(
                "%s: swapped %s %s more than the tracked holdings; received share has unknown cost basis",
                tx.id, disposal.deficit, sent.currency,
            )
            outcome.flag(GainError.INSUFFICIENT_BALANCE)
            self.ledger.acquire(
                received.currency, disposal.deficit * ratio, None, tx.timestamp, tx.id, tx.wallet_id
            )

    def _send_or_receive(self, outcome: _Outcome) -> None:
        tx = outcome.tx
        outgoing = tx.type in OUTGOING_TYPES
        amount = tx.sent if outgoing else tx.received
        if amount.is_fiat:
            return

        if tx.is_matched_transfer:
            partner = self._known.get(tx.matching_tx_id)
            if partner is None:
                logger.warning("%s: transfer counterpart %s is unknown", tx.id, tx.matching_tx_id)
                return
            send, receive = (tx, partner) if outgoing else (partner, tx)
            pair = frozenset((send.id, receive.id))
            if pair in self._moved_pairs:
                return
            self._moved_pairs.add(pair)
            quantity = min(send.sent.quantity, receive.received.quantity)
            self._move(
                outcome,
                Amount(currency=amount.currency, quantity=quantity),
                send.wallet_id,
                receive.wallet_id,
                max(send.timestamp, receive.timestamp),
            )
            return

        if outgoing:
            # Sent to someone else: disposed at market value
            self._dispose(outcome, amount, self._fiat(tx.value))
        elif tx.type == T.DEPOSIT:
            self._acquire(outcome, amount, ZERO)
        else:
            self._acquire(outcome, amount, self._fiat(tx.value))

    def _spend(self, outcome: _Outcome, proceeds: Decimal | None) -> bool:
        """Dispose the sent amount for `proceeds`. Returns whether the fee still needs handling."""
        tx = outcome.tx
        if tx.sent.is_fiat:
            return tx.fee is not None
        amount = tx.sent
        fee_pending = tx.fee is not None
        if tx.fee_is_part_of_sent_currency:
            amount = amount.try_add(tx.fee)
            fee_pending = False
        self._dispose(outcome, amount, proceeds)
        return fee_pending

    def _pay_fee(self, outcome: _Outcome) -> None:
        """Dispose a crypto fee on its own and attribute its value as a cost."""
        tx = outcome.tx
        fee = tx.fee
        fee_value = self._fiat(tx.fee_value)
        if fee.is_fiat and fee_value is None:
            fee_value = fee.quantity

        if not fee.is_fiat:
            self._dispose(outcome, fee, fee_value)

        if tx.type in FEE_CHARGED_TYPES:
            disposed = tx.sent if tx.sent is not None and not tx.sent.is_fiat else None
            currency = disposed.currency if disposed is not None else fee.currency
            outcome.fee_charge = FeeCharge(currency=currency, value=fee_value)

    # --- Ledger operations ---

    def _acquire(self, outcome: _Outcome, amount: Amount, cost: Decimal | None) -> None:
        tx = outcome.tx
        if amount.is_fiat or amount.quantity == 0:
            return
        unit_cost = cost / amount.quantity if cost is not None else None
        if unit_cost is None:
            outcome.acquisition_unknown = True
            outcome.flag(GainError.MISSING_FIAT_VALUE)
        self.ledger.acquire(amount.currency, amount.quantity, unit_cost, tx.timestamp, tx.id, tx.wallet_id)

    def _dispose(self, outcome: _Outcome, amount: Amount, proceeds: Decimal | None) -> None:
        """Consume lots for `amount` and emit one event per consumed fragment."""
        tx = outcome.tx
        if amount.quantity == 0:
            return
        disposal = self.ledger.dispose(amount.currency, amount.quantity, tx.timestamp, tx.wallet_id)
        years = self.config.holding_period_years

        def share(quantity: Decimal) -> Decimal | None:
            if proceeds is None:
                return None
            return proceeds * quantity / amount.quantity

        for fragment in disposal.fragments:
            cost = fragment.cost
            if cost is None:
                outcome.flag(GainError.MISSING_COST_BASE)
            outcome.events.append(
                CapitalGainEvent(
                    currency=amount.currency,
                    amount=fragment.amount,
                    acquired_at=fragment.lot.acquired_at,
                    disposed_at=tx.timestamp,
                    bought_tx_id=fragment.lot.origin_tx_id,
                    sold_tx_id=tx.id,
                    cost=cost,
                    proceeds=share(fragment.amount),
                    long_term=is_long_term(fragment.lot.acquired_at, tx.timestamp, years),
                    wallet_id=tx.wallet_id,
                )
            )

        if disposal.deficit > 0:
            logger.warning(
                "At %s a remaining sold amount of %s %s was not found in the holdings (%s)",
                tx.timestamp, disposal.deficit, amount.currency, tx.id,
            )
            outcome.flag(GainError.INSUFFICIENT_BALANCE)
            outcome.events.append(
                CapitalGainEvent(
                    currency=amount.currency,
                    amount=disposal.deficit,
                    acquired_at=None,
                    disposed_at=tx.timestamp,
                    bought_tx_id=None,
                    sold_tx_id=tx.id,
                    cost=None,
                    proceeds=share(disposal.deficit),
                    long_term=False,
                    wallet_id=tx.wallet_id,
                )
            )

        if proceeds is None:
            outcome.flag(GainError.MISSING_FIAT_VALUE)

    def _move(
        self,
        outcome: _Outcome,
        amount: Amount,
        from_wallet: str,
        to_wallet: str | None,
        at: datetime,
    ) -> None:
        """Move lots between own wallets, keeping acquisition dates and costs."""
        if not self.ledger.per_wallet or amount.is_fiat or from_wallet == to_wallet:
            return
        disposal = self.ledger.dispose(amount.currency, amount.quantity, at, from_wallet)
        for fragment in disposal.fragments:
            self.ledger.restore(fragment, to_wallet)
        if disposal.deficit > 0:
            logger.warning(
                "%s: transferred %s %s more than wallet %s holds",
                outcome.tx.id, disposal.deficit, amount.currency, from_wallet,
            )
            outcome.flag(GainError.INSUFFICIENT_BALANCE)

    @staticmethod
    def _fiat(amount: Amount | None) -> Decimal | None:
        return amount.quantity if amount is not None else None
