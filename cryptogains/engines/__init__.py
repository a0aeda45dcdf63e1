"""Capital gains computation engines."""

from cryptogains.engines.gains import GainCalculator, add_years, is_long_term
from cryptogains.engines.lots import LotLedger
from cryptogains.engines.pipeline import LedgerEngine, LedgerRun, run
from cryptogains.engines.valuation import NoPrices, PriceOracle, PriceTable, TransactionValuer

__all__ = [
    "GainCalculator",
    "LedgerEngine",
    "LedgerRun",
    "LotLedger",
    "NoPrices",
    "PriceOracle",
    "PriceTable",
    "TransactionValuer",
    "add_years",
    "is_long_term",
    "run",
]
