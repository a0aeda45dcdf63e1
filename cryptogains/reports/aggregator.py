"""Yearly report aggregation.

Sums the processed transactions of each calendar year into a YearlyReport,
carrying per-currency balances over from one year to the next, and appends an
all-time report covering every year. Figures with unknown value are left out
of the sums and counted instead, so a report never silently pretends to be
complete.
"""

from dataclasses import dataclass, field
from decimal import Decimal

from cryptogains.models.enums import FeePolicy
from cryptogains.models.ledger import ProcessedTransaction
from cryptogains.models.reports import CurrencySummary, YearlyReport

ZERO = Decimal("0")

# currency -> (balance, cost base) after the last transaction of a year
Holdings = dict[str, tuple[Decimal, Decimal | None]]


@dataclass
class YearActivity:
    """Everything the ledger produced for one calendar year."""

    year: int
    processed: list[ProcessedTransaction] = field(default_factory=list)
    holdings: Holdings = field(default_factory=dict)


def _summary_order(summary: CurrencySummary):
    return (-summary.cost, summary.currency)


class ReportAggregator:
    def __init__(self, fee_policy: FeePolicy = FeePolicy.SHORT_TERM_COST):
        self.fee_policy = fee_policy

    def aggregate(self, years: list[YearActivity]) -> list[YearlyReport]:
        """One report per year in the given order, followed by the all-time report."""
        reports: list[YearlyReport] = []
        previous: dict[str, CurrencySummary] = {}
        for activity in years:
            report = self._year_report(activity, previous)
            previous = {summary.currency: summary for summary in report.currencies}
            reports.append(report)
        reports.append(self._all_time(reports))
        return reports

    def _year_report(self, activity: YearActivity, previous: dict[str, CurrencySummary]) -> YearlyReport:
        summaries: dict[str, CurrencySummary] = {}

        def summary_for(currency: str) -> CurrencySummary:
            if currency not in summaries:
                summaries[currency] = CurrencySummary(currency=currency)
            return summaries[currency]

        # Carry over every currency still held at the start of the year
        for currency, last in previous.items():
            if last.balance_end > 0:
                summary = summary_for(currency)
                summary.balance_start = last.balance_end
                summary.cost_start = last.cost_end

        report = YearlyReport(year=activity.year)
        for processed in activity.processed:
            for event in processed.events:
                report.gains.append(event)
                summary = summary_for(event.currency)
                summary.quantity_disposed += event.amount

                if event.cost is None:
                    report.unknown_cost_events += 1
                    summary.cost_unknown = True
                else:
                    summary.cost += event.cost
                if event.proceeds is None:
                    report.unknown_proceeds_events += 1
                    summary.proceeds_unknown = True
                else:
                    summary.proceeds += event.proceeds

                if not event.long_term:
                    # A known half counts even when the other half is unknown
                    if event.cost is not None:
                        report.short_term_cost += event.cost
                    if event.proceeds is not None:
                        report.short_term_proceeds += event.proceeds

                gain_or_loss = event.gain_or_loss
                if gain_or_loss is None:
                    continue
                if event.long_term:
                    if gain_or_loss >= 0:
                        report.long_term_capital_gains += gain_or_loss
                    else:
                        report.long_term_capital_losses -= gain_or_loss
                elif gain_or_loss >= 0:
                    report.short_term_capital_gains += gain_or_loss
                else:
                    report.short_term_capital_losses -= gain_or_loss

            if processed.fee_charge is not None:
                summary = summary_for(processed.fee_charge.currency)
                if processed.fee_charge.value is None:
                    report.unknown_fee_values += 1
                    summary.fees_unknown = True
                else:
                    summary.fees += processed.fee_charge.value

            if processed.income is not None:
                summary = summary_for(processed.income.currency)
                summary.quantity_income += processed.income.quantity
                if processed.income.value is None:
                    summary.income_unknown = True
                else:
                    summary.income += processed.income.value

        for currency in activity.holdings:
            summary_for(currency)

        for summary in summaries.values():
            summary.balance_end, summary.cost_end = activity.holdings.get(summary.currency, (ZERO, ZERO))
            summary.capital_profit_loss = summary.proceeds - summary.cost - summary.fees
            summary.total_profit_loss = summary.capital_profit_loss + summary.income
            if self.fee_policy == FeePolicy.SHORT_TERM_COST:
                report.short_term_capital_losses += summary.fees
                report.short_term_cost += summary.fees

        report.currencies = sorted(summaries.values(), key=_summary_order)
        return report

    def _all_time(self, reports: list[YearlyReport]) -> YearlyReport:
        all_time = YearlyReport(year=None)
        summaries: dict[str, CurrencySummary] = {}

        for report in reports:
            all_time.short_term_cost += report.short_term_cost
            all_time.short_term_proceeds += report.short_term_proceeds
            all_time.short_term_capital_gains += report.short_term_capital_gains
            all_time.short_term_capital_losses += report.short_term_capital_losses
            all_time.long_term_capital_gains += report.long_term_capital_gains
            all_time.long_term_capital_losses += report.long_term_capital_losses
            all_time.unknown_cost_events += report.unknown_cost_events
            all_time.unknown_proceeds_events += report.unknown_proceeds_events
            all_time.unknown_fee_values += report.unknown_fee_values
            all_time.gains.extend(report.gains)

            for year_summary in report.currencies:
                summary = summaries.setdefault(
                    year_summary.currency, CurrencySummary(currency=year_summary.currency)
                )
                summary.balance_end = year_summary.balance_end
                summary.cost_end = year_summary.cost_end
                summary.quantity_disposed += year_summary.quantity_disposed
                summary.quantity_income += year_summary.quantity_income
                summary.cost += year_summary.cost
                summary.fees += year_summary.fees
                summary.proceeds += year_summary.proceeds
                summary.capital_profit_loss += year_summary.capital_profit_loss
                summary.income += year_summary.income
                summary.total_profit_loss += year_summary.total_profit_loss
                summary.cost_unknown |= year_summary.cost_unknown
                summary.proceeds_unknown |= year_summary.proceeds_unknown
                summary.fees_unknown |= year_summary.fees_unknown
                summary.income_unknown |= year_summary.income_unknown

        all_time.currencies = sorted(summaries.values(), key=_summary_order)
        return all_time
