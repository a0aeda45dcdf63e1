"""Enumerations for cryptogains."""

from enum import StrEnum

FIAT_CURRENCY = "EUR"


class TransactionType(StrEnum):
    BUY = "buy"
    SELL = "sell"
    TRADE = "trade"
    SWAP = "swap"
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    FEE = "fee"
    RECEIVE = "receive"
    SEND = "send"
    TRANSFER = "transfer"
    CHAIN_SPLIT = "chain-split"
    EXPENSE = "expense"
    STOLEN = "stolen"
    LOST = "lost"
    BURN = "burn"
    INCOME = "income"
    AIRDROP = "airdrop"
    STAKING = "staking"
    CASHBACK = "cashback"
    GIFT = "gift"
    SPAM = "spam"


class GainError(StrEnum):
    INSUFFICIENT_BALANCE = "insufficient_balance"
    MISSING_COST_BASE = "missing_cost_base"
    MISSING_FIAT_VALUE = "missing_fiat_value"


class HoldingPeriod(StrEnum):
    SHORT_TERM = "SHORT_TERM"
    LONG_TERM = "LONG_TERM"


class FeePolicy(StrEnum):
    """How fees paid in a currency other than the disposed one are reported."""

    SHORT_TERM_COST = "short_term_cost"
    IGNORE = "ignore"


class CostBasisTracking(StrEnum):
    UNIVERSAL = "universal"
    PER_WALLET = "per_wallet"


# Receipts whose fair-market value counts as income
INCOME_TYPES = frozenset({TransactionType.STAKING, TransactionType.INCOME, TransactionType.CASHBACK})

# Receipts acquired at zero cost basis
ZERO_COST_TYPES = frozenset({TransactionType.AIRDROP, TransactionType.SPAM, TransactionType.CHAIN_SPLIT})

# Disposals that realize nothing
ZERO_PROCEEDS_TYPES = frozenset({TransactionType.STOLEN, TransactionType.LOST, TransactionType.BURN})
