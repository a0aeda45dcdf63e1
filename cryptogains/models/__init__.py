"""Data models for cryptogains."""

from cryptogains.models.enums import (
    FIAT_CURRENCY,
    CostBasisTracking,
    FeePolicy,
    GainError,
    HoldingPeriod,
    TransactionType,
)
from cryptogains.models.ledger import (
    CapitalGainEvent,
    Disposal,
    FeeCharge,
    IncomeReceipt,
    Lot,
    LotFragment,
    ProcessedTransaction,
)
from cryptogains.models.reports import CurrencySummary, YearlyReport
from cryptogains.models.transaction import Amount, BlockchainRef, Transaction

__all__ = [
    "Amount",
    "BlockchainRef",
    "CapitalGainEvent",
    "CostBasisTracking",
    "CurrencySummary",
    "Disposal",
    "FIAT_CURRENCY",
    "FeeCharge",
    "FeePolicy",
    "GainError",
    "HoldingPeriod",
    "IncomeReceipt",
    "Lot",
    "LotFragment",
    "ProcessedTransaction",
    "Transaction",
    "TransactionType",
    "YearlyReport",
]
