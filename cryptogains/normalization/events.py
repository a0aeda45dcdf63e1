"""Transaction normalization: validation, filtering and ordering."""

import logging
from collections.abc import Iterable

from cryptogains.exceptions import StructuralError
from cryptogains.models.enums import TransactionType
from cryptogains.models.transaction import Transaction

logger = logging.getLogger(__name__)

T = TransactionType

# type -> (sent rule, received rule); "required", "optional" or "forbidden"
_SHAPES: dict[TransactionType, tuple[str, str]] = {
    T.TRADE: ("required", "required"),
    T.SWAP: ("required", "required"),
    T.BUY: ("optional", "required"),
    T.SELL: ("required", "optional"),
    T.DEPOSIT: ("forbidden", "required"),
    T.RECEIVE: ("forbidden", "required"),
    T.CHAIN_SPLIT: ("forbidden", "required"),
    T.INCOME: ("forbidden", "required"),
    T.AIRDROP: ("forbidden", "required"),
    T.STAKING: ("forbidden", "required"),
    T.CASHBACK: ("forbidden", "required"),
    T.SPAM: ("forbidden", "required"),
    T.WITHDRAWAL: ("required", "forbidden"),
    T.SEND: ("required", "forbidden"),
    T.FEE: ("required", "forbidden"),
    T.EXPENSE: ("required", "forbidden"),
    T.STOLEN: ("required", "forbidden"),
    T.LOST: ("required", "forbidden"),
    T.BURN: ("required", "forbidden"),
    T.TRANSFER: ("required", "optional"),
    T.GIFT: ("optional", "optional"),
}


def _check_leg(name: str, rule: str, present: bool) -> str | None:
    if rule == "required" and not present:
        return f"missing {name} amount"
    if rule == "forbidden" and present:
        return f"unexpected {name} amount"
    return None


def shape_problems(tx: Transaction) -> list[str]:
    """Return the reasons a transaction's type/field combination is invalid."""
    sent_rule, received_rule = _SHAPES[tx.type]
    problems = [
        p
        for p in (
            _check_leg("sent", sent_rule, tx.sent is not None),
            _check_leg("received", received_rule, tx.received is not None),
        )
        if p
    ]

    if tx.type == T.GIFT and (tx.sent is None) == (tx.received is None):
        problems.append("a gift needs exactly one of sent or received")

    if tx.type in (T.TRADE, T.SWAP) and tx.sent and tx.received:
        if tx.sent.currency == tx.received.currency:
            problems.append(f"{tx.type.value} sends and receives the same currency {tx.sent.currency}")
        if tx.type == T.SWAP and (tx.sent.is_fiat or tx.received.is_fiat):
            problems.append("a swap cannot involve fiat")

    if tx.type == T.TRANSFER:
        if not tx.to_wallet_id:
            problems.append("transfer without destination wallet")
        if tx.sent and tx.received:
            if tx.received.currency != tx.sent.currency:
                problems.append("transfer changes currency")
            elif tx.received.quantity > tx.sent.quantity:
                problems.append("transfer receives more than it sends")

    for label, amount in (("value", tx.value), ("fee_value", tx.fee_value)):
        if amount is not None and not amount.is_fiat:
            problems.append(f"{label} must be in fiat, got {amount.currency}")

    return problems


def sort_key(indexed: tuple[int, Transaction]):
    index, tx = indexed
    return (tx.timestamp, index)


class TransactionNormalizer:
    """Turns the raw transactions of all sources into one ordered sequence."""

    def normalize(
        self,
        transactions: Iterable[Transaction],
        enabled_sources: set[tuple[str, str]] | None = None,
        ignored_currencies: Iterable[str] = (),
    ) -> list[Transaction]:
        """Validate, filter and sort transactions.

        Args:
            transactions: Transactions in ingestion order.
            enabled_sources: (wallet_id, source_id) pairs to keep; None keeps all.
            ignored_currencies: Currencies excluded from the ledger.

        Raises:
            StructuralError: if any transaction is malformed.
        """
        validated = self._validate(list(transactions))
        if enabled_sources is not None:
            validated = [tx for tx in validated if (tx.wallet_id, tx.source_id) in enabled_sources]
        ignored = {c.upper() for c in ignored_currencies}
        if ignored:
            validated = self._drop_ignored(validated, ignored)
        ordered = self.sort(validated)
        self._warn_duplicates(ordered)
        return ordered

    @staticmethod
    def sort(transactions: list[Transaction]) -> list[Transaction]:
        """Chronological order, stable on ties by ingestion order."""
        return [tx for _, tx in sorted(enumerate(transactions), key=sort_key)]

    def _validate(self, transactions: list[Transaction]) -> list[Transaction]:
        problems: dict[str, str] = {}
        for tx in transactions:
            found = shape_problems(tx)
            if found:
                problems[tx.id] = ", ".join(found)
        if problems:
            raise StructuralError(problems)
        return transactions

    def _drop_ignored(self, transactions: list[Transaction], ignored: set[str]) -> list[Transaction]:
        kept: list[Transaction] = []
        for tx in transactions:
            legs = [a.currency for a in (tx.sent, tx.received) if a is not None]
            # Trades are only ignored when both legs are ignored
            if not legs or not all(currency in ignored for currency in legs):
                kept.append(tx)
                continue
            if tx.fee is not None and tx.fee.currency not in ignored:
                # The fee still left the wallet, keep it as a fee transaction
                kept.append(
                    tx.model_copy(
                        update={
                            "type": TransactionType.FEE,
                            "sent": tx.fee,
                            "received": None,
                            "fee": None,
                            "value": tx.fee_value,
                            "fee_value": None,
                        }
                    )
                )
        return kept

    def _warn_duplicates(self, transactions: list[Transaction]) -> None:
        for previous, current in zip(transactions, transactions[1:]):
            if previous.model_dump(exclude={"id", "source_id"}) == current.model_dump(exclude={"id", "source_id"}):
                logger.warning("Duplicate transaction detected: %s and %s", previous.id, current.id)
