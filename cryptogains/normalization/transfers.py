"""Pair one-sided sends and receives into transfers between own wallets.

Each source only sees its own side of a movement between two of the user's
wallets. Before FIFO runs, a send is paired with the receive that most likely
belongs to it, so that the pair moves holdings instead of realizing a gain.
When the received quantity is lower than the sent quantity, the difference is
booked as a fee on the send.
"""

import logging
from datetime import timedelta
from decimal import Decimal

from cryptogains.models.enums import TransactionType
from cryptogains.models.transaction import Amount, Transaction

logger = logging.getLogger(__name__)

OUTGOING_TYPES = frozenset({TransactionType.SEND, TransactionType.WITHDRAWAL})
INCOMING_TYPES = frozenset({TransactionType.RECEIVE, TransactionType.DEPOSIT})

# How far back a send looks for its receive, and a receive for its send
SEND_LOOKBACK = timedelta(hours=1)
RECEIVE_LOOKBACK = timedelta(days=1)

# Received quantity may be at most this much lower than the sent quantity
MIN_RECEIVED_RATIO = Decimal("0.95")


def _is_candidate(tx: Transaction) -> bool:
    if tx.type in OUTGOING_TYPES:
        return tx.sent is not None and not tx.sent.is_fiat
    if tx.type in INCOMING_TYPES:
        return tx.received is not None and not tx.received.is_fiat
    return False


class TransferMatcher:
    """Matches sends with receives in a chronologically sorted sequence."""

    def match(self, transactions: list[Transaction]) -> list[Transaction]:
        """Return a copy of the sequence with matched pairs linked by id."""
        result = [self._normalize_transfer(tx) for tx in transactions]
        unmatched: list[int] = []
        pairs: list[tuple[int, int]] = []

        for index, tx in enumerate(result):
            if tx.matching_tx_id is not None or not _is_candidate(tx):
                continue
            outgoing = tx.type in OUTGOING_TYPES
            oldest = tx.timestamp - (SEND_LOOKBACK if outgoing else RECEIVE_LOOKBACK)

            best: tuple[int, Decimal] | None = None
            for position in range(len(unmatched) - 1, -1, -1):
                candidate = result[unmatched[position]]
                if candidate.timestamp < oldest:
                    break
                if (candidate.type in OUTGOING_TYPES) == outgoing:
                    continue
                send, receive = (tx, candidate) if outgoing else (candidate, tx)
                difference = self._difference(send, receive)
                if difference is None:
                    continue
                if best is None or difference < best[1]:
                    best = (position, difference)
                if difference == 0:
                    break

            if best is None:
                unmatched.append(index)
                continue
            other = unmatched.pop(best[0])
            pairs.append((index, other) if outgoing else (other, index))

        for send_index, receive_index in pairs:
            linked = self._link(result[send_index], result[receive_index])
            if linked is None:
                continue
            result[send_index], result[receive_index] = linked

        return result

    @staticmethod
    def _difference(send: Transaction, receive: Transaction) -> Decimal | None:
        """Quantity lost between send and receive, None when they cannot match."""
        sent, received = send.sent, receive.received
        if sent.currency != received.currency:
            return None
        if send.blockchain and receive.blockchain and send.blockchain.tx_hash != receive.blockchain.tx_hash:
            return None
        if received.quantity > sent.quantity or received.quantity < sent.quantity * MIN_RECEIVED_RATIO:
            return None
        return sent.quantity - received.quantity

    @staticmethod
    def _link(send: Transaction, receive: Transaction) -> tuple[Transaction, Transaction] | None:
        sent, received = send.sent, receive.received
        send_update: dict = {"matching_tx_id": receive.id}
        receive_update: dict = {"matching_tx_id": send.id}

        if received.quantity < sent.quantity:
            implied_fee = Amount(currency=sent.currency, quantity=sent.quantity - received.quantity)
            existing = send.fee
            if existing is None:
                logger.warning(
                    "A fee of %s appears to be included in the sent amount %s of %s, adjusting sent amount to %s",
                    implied_fee, sent, send.id, received,
                )
                send_update.update(sent=received, fee=implied_fee, fee_value=None)
            elif existing.currency != implied_fee.currency:
                logger.warning(
                    "Send %s and receive %s imply a fee of %s, but the send already has a fee in %s; not matching",
                    send.id, receive.id, implied_fee, existing.currency,
                )
                return None
            elif existing.quantity == implied_fee.quantity:
                send_update.update(sent=received)
            elif receive.fee is None:
                # Rounding on the receiving side lost a small amount; book it on the receive
                logger.warning(
                    "Sent %s differs from received %s and fee %s does not match, booking %s as receive fee",
                    sent, received, existing, implied_fee,
                )
                receive_update.update(received=sent, fee=implied_fee, fee_value=None)
            else:
                logger.warning(
                    "Sent %s differs from received %s and both sides already have a fee", sent, received
                )

        return send.model_copy(update=send_update), receive.model_copy(update=receive_update)

    @staticmethod
    def _normalize_transfer(tx: Transaction) -> Transaction:
        """Book the gap between sent and received of a transfer record as its fee."""
        if tx.type != TransactionType.TRANSFER or tx.received is None or tx.fee is not None:
            return tx
        gap = tx.sent.quantity - tx.received.quantity
        if gap <= 0:
            return tx
        return tx.model_copy(
            update={"sent": tx.received, "fee": Amount(currency=tx.sent.currency, quantity=gap)}
        )
