"""Trade consolidation: collapse trades routed through an intermediate currency.

Exchanges often execute BCH -> XLM as BCH -> BTC followed by BTC -> XLM. Kept
separate, the two legs would create and immediately dispose an artificial BTC
lot. Merging them records a single BCH -> XLM trade instead.
"""

import logging
from collections import defaultdict
from datetime import timedelta

from cryptogains.config import DEFAULT_MERGE_WINDOW
from cryptogains.exceptions import ConfigurationError
from cryptogains.models.enums import TransactionType
from cryptogains.models.transaction import Amount, Transaction

logger = logging.getLogger(__name__)


def _fee_currency(tx: Transaction) -> str:
    return tx.fee.currency if tx.fee is not None else ""


def _merged_fee_value(first: Transaction, second: Transaction) -> Amount | None:
    if first.fee is None:
        return second.fee_value
    if second.fee is None:
        return first.fee_value
    if first.fee_value is None or second.fee_value is None:
        return None
    return first.fee_value.try_add(second.fee_value)


class TradeConsolidator:
    """Merges adjacent trade legs of the same wallet that chain through one currency."""

    def __init__(self, window: timedelta = DEFAULT_MERGE_WINDOW):
        if window < timedelta(0):
            raise ConfigurationError("merge_window", f"must not be negative, got {window}")
        self.window = window

    def consolidate(self, transactions: list[Transaction]) -> list[Transaction]:
        """Return the chronologically sorted sequence with chained legs merged.

        Passes repeat until nothing merges, so consolidating the output again
        is a no-op.
        """
        current = list(transactions)
        while True:
            merged = self._merge_pass(current)
            if len(merged) == len(current):
                return merged
            current = merged

    def _merge_pass(self, transactions: list[Transaction]) -> list[Transaction]:
        by_wallet: dict[str, list[Transaction]] = defaultdict(list)
        for tx in transactions:
            by_wallet[tx.wallet_id].append(tx)

        merged: list[Transaction] = []
        for wallet_id in sorted(by_wallet):
            merged.extend(self._merge_wallet(by_wallet[wallet_id]))

        # Restore the overall order; wallets were processed separately
        position: dict[str, int] = {}
        for index, tx in enumerate(transactions):
            position.setdefault(tx.id, index)
        merged.sort(key=lambda tx: (tx.timestamp, position[tx.id]))
        return merged

    def pairs(self, transactions: list[Transaction]) -> list[tuple[Transaction, Transaction]]:
        """Adjacent legs that would be merged, without merging them."""
        found: list[tuple[Transaction, Transaction]] = []
        by_wallet: dict[str, list[Transaction]] = defaultdict(list)
        for tx in transactions:
            by_wallet[tx.wallet_id].append(tx)
        for wallet_id in sorted(by_wallet):
            ordered = self._candidate_order(by_wallet[wallet_id])
            for first, second in zip(ordered, ordered[1:]):
                if self.can_merge(first, second):
                    found.append((first, second))
        return found

    def can_merge(self, first: Transaction, second: Transaction) -> bool:
        """Check every merge condition exactly; anything short of a match is no merge."""
        if first.type != TransactionType.TRADE or second.type != TransactionType.TRADE:
            return False
        if first.wallet_id != second.wallet_id:
            return False
        if first.received != second.sent:
            return False
        if first.sent.currency == second.received.currency:
            return False
        elapsed = second.timestamp - first.timestamp
        if elapsed < timedelta(0) or elapsed > self.window:
            return False
        if first.fee is not None and second.fee is not None and first.fee.currency != second.fee.currency:
            return False
        return True

    def merge(self, first: Transaction, second: Transaction) -> Transaction:
        """Build the single trade that replaces two chained legs.

        Both legs price the same intermediate amount, so the first known value
        is kept. Fee values add up when every fee's value is known.
        """
        fee: Amount | None = first.fee
        if second.fee is not None:
            fee = second.fee if fee is None else fee.try_add(second.fee)

        fee_value = _merged_fee_value(first, second)
        description = " / ".join(d for d in (first.description, second.description) if d)
        return first.model_copy(
            update={
                "received": second.received,
                "fee": fee,
                "value": first.value if first.value is not None else second.value,
                "fee_value": fee_value,
                "description": description,
                "merged_tx_ids": (first.merged_tx_ids or (first.id,)) + (second.merged_tx_ids or (second.id,)),
            }
        )

    def _candidate_order(self, transactions: list[Transaction]) -> list[Transaction]:
        # Within one timestamp, order by fee currency so matching legs end up adjacent
        indexed = list(enumerate(transactions))
        indexed.sort(key=lambda item: (item[1].timestamp, _fee_currency(item[1]), item[0]))
        return [tx for _, tx in indexed]

    def _merge_wallet(self, transactions: list[Transaction]) -> list[Transaction]:
        ordered = self._candidate_order(transactions)
        if not ordered:
            return []
        result = [ordered[0]]
        for tx in ordered[1:]:
            last = result[-1]
            if self.can_merge(last, tx):
                logger.info("Merging trade %s into %s via %s", tx.id, last.id, last.received.currency)
                result[-1] = self.merge(last, tx)
            else:
                result.append(tx)
        return result
