"""End-to-end computation pass.

Runs normalization, transfer matching, trade consolidation, valuation, FIFO
matching and report aggregation over a transaction sequence, and returns the
results as an immutable snapshot. Every pass starts from scratch; nothing is
carried over between runs.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from itertools import groupby

from cryptogains.config import EngineConfig
from cryptogains.engines.balances import balance_at, calculate_balances, wallet_balances
from cryptogains.engines.gains import GainCalculator
from cryptogains.engines.lots import LotLedger
from cryptogains.engines.valuation import NoPrices, PriceOracle, TransactionValuer
from cryptogains.models.ledger import ProcessedTransaction
from cryptogains.models.reports import YearlyReport
from cryptogains.models.transaction import Transaction
from cryptogains.normalization import TradeConsolidator, TransactionNormalizer, TransferMatcher
from cryptogains.reports.aggregator import Holdings, ReportAggregator, YearActivity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerRun:
    """Result of one computation pass."""

    processed: tuple[ProcessedTransaction, ...]
    reports: tuple[YearlyReport, ...]
    holdings: Holdings = field(default_factory=dict)

    @property
    def transactions(self) -> list[Transaction]:
        return [p.transaction for p in self.processed]

    def report_for(self, year: int | None) -> YearlyReport | None:
        """The report of a year, or the all-time report for None."""
        for report in self.reports:
            if report.year == year:
                return report
        return None

    @property
    def years(self) -> list[int]:
        return [r.year for r in self.reports if r.year is not None]

    def balances(self, wallet_id: str | None = None, at: datetime | None = None) -> dict[str, Decimal]:
        return calculate_balances(self.transactions, wallet_id, at)

    def balance_at(self, wallet_id: str | None, currency: str, at: datetime | None = None) -> Decimal:
        return balance_at(self.transactions, wallet_id, currency, at)

    def wallet_balances(self) -> dict[str, dict[str, Decimal]]:
        return wallet_balances(self.transactions)


class LedgerEngine:
    """Computes capital gains reports from raw transactions."""

    def __init__(self, config: EngineConfig | None = None, oracle: PriceOracle | None = None):
        self.config = config or EngineConfig()
        self.oracle = oracle or NoPrices()

    def prepare(
        self,
        transactions: Iterable[Transaction],
        enabled_sources: set[tuple[str, str]] | None = None,
        ignored_currencies: Iterable[str] = (),
    ) -> list[Transaction]:
        """Normalize, match, consolidate and value transactions, without FIFO."""
        ordered = TransactionNormalizer().normalize(transactions, enabled_sources, ignored_currencies)
        matched = TransferMatcher().match(ordered)
        if self.config.merge_consecutive_trades:
            matched = TradeConsolidator(self.config.merge_window).consolidate(matched)
        return TransactionValuer(self.oracle).value_all(matched)

    def run(
        self,
        transactions: Iterable[Transaction],
        enabled_sources: set[tuple[str, str]] | None = None,
        ignored_currencies: Iterable[str] = (),
    ) -> LedgerRun:
        prepared = self.prepare(transactions, enabled_sources, ignored_currencies)
        logger.info("Processing %d transactions", len(prepared))

        ledger = LotLedger(per_wallet=self.config.per_wallet)
        calculator = GainCalculator(ledger, self.config)
        calculator.register(prepared)

        processed: list[ProcessedTransaction] = []
        years: list[YearActivity] = []
        for year, group in groupby(prepared, key=lambda tx: tx.year):
            year_processed = [calculator.process_one(tx) for tx in group]
            processed.extend(year_processed)
            years.append(YearActivity(year=year, processed=year_processed, holdings=ledger.snapshot()))

        reports = ReportAggregator(self.config.fee_policy).aggregate(years)
        return LedgerRun(processed=tuple(processed), reports=tuple(reports), holdings=ledger.snapshot())


def run(
    transactions: Iterable[Transaction],
    config: EngineConfig | None = None,
    oracle: PriceOracle | None = None,
) -> LedgerRun:
    """Shortcut for a pass over all transactions with no source filtering."""
    return LedgerEngine(config, oracle).run(transactions)
