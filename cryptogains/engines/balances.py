"""Balance queries over a transaction sequence.

Balances here follow the raw quantities flowing in and out of each wallet,
independent of lot matching, so they also reveal wallets whose history is
incomplete (negative balances).
"""

from collections import defaultdict
from collections.abc import Iterable
from datetime import datetime
from decimal import Decimal

from cryptogains.models.enums import TransactionType
from cryptogains.models.transaction import Transaction

ZERO = Decimal("0")


def _flows(tx: Transaction) -> Iterable[tuple[str, str, Decimal]]:
    """(wallet_id, currency, signed quantity) for each crypto movement of a transaction."""
    if tx.sent is not None and not tx.sent.is_fiat:
        yield tx.wallet_id, tx.sent.currency, -tx.sent.quantity
    if tx.fee is not None and not tx.fee.is_fiat:
        yield tx.wallet_id, tx.fee.currency, -tx.fee.quantity
    if tx.type == TransactionType.TRANSFER:
        arrived = tx.received or tx.sent
        if not arrived.is_fiat:
            yield tx.to_wallet_id or "", arrived.currency, arrived.quantity
    elif tx.received is not None and not tx.received.is_fiat:
        yield tx.wallet_id, tx.received.currency, tx.received.quantity


def calculate_balances(
    transactions: Iterable[Transaction],
    wallet_id: str | None = None,
    at: datetime | None = None,
) -> dict[str, Decimal]:
    """Net quantity per currency, optionally for one wallet and up to `at`.

    Currencies whose balance is exactly zero are omitted.
    """
    balances: dict[str, Decimal] = defaultdict(lambda: ZERO)
    for tx in transactions:
        if at is not None and tx.timestamp > at:
            continue
        for wallet, currency, quantity in _flows(tx):
            if wallet_id is None or wallet == wallet_id:
                balances[currency] += quantity
    return {currency: balance for currency, balance in sorted(balances.items()) if balance != 0}


def balance_at(
    transactions: Iterable[Transaction],
    wallet_id: str | None,
    currency: str,
    at: datetime | None = None,
) -> Decimal:
    """Historical balance of one currency, in one wallet or across all of them."""
    return calculate_balances(transactions, wallet_id, at).get(currency.upper(), ZERO)


def wallet_balances(transactions: Iterable[Transaction]) -> dict[str, dict[str, Decimal]]:
    """Current balances per wallet id."""
    per_wallet: dict[str, dict[str, Decimal]] = defaultdict(lambda: defaultdict(lambda: ZERO))
    for tx in transactions:
        for wallet, currency, quantity in _flows(tx):
            per_wallet[wallet][currency] += quantity
    return {
        wallet: {c: q for c, q in sorted(balances.items()) if q != 0}
        for wallet, balances in sorted(per_wallet.items())
    }
