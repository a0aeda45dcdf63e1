"""CSV exports of yearly reports.

File names follow the layout `{year}_report_summary.csv` and
`{year}_capital_gains_report.csv` (`all_time` for the all-time report) next
to a `yearly_summary.csv` listing the short-term totals of every report.
Unknown figures are written as empty cells, and a report with unknown
figures is marked incomplete.
"""

import csv
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from zoneinfo import ZoneInfo

from cryptogains import __version__
from cryptogains.models.ledger import CapitalGainEvent
from cryptogains.models.reports import YearlyReport

# Timestamps in the gains export are shown in local time
EXPORT_TIMEZONE = ZoneInfo("Europe/Berlin")
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

CENT = Decimal("0.01")

GAINS_HEADER = ["Currency", "Bought", "Sold", "Quantity", "Cost", "Proceeds", "Gain or Loss", "Long Term"]

SUMMARY_HEADER = [
    "Currency",
    "Proceeds",
    "Cost (ex Fees)",
    "Fees",
    "Capital Gains",
    "Other Income",
    "Total Gains",
    "Opening Balance",
    "Quantity Traded",
    "Quantity Income",
    "Closing Balance",
]

YEARLY_HEADER = ["Year", "Proceeds", "Cost", "Gain or Loss", "Complete"]


def rounded_to_cent(amount: Decimal | None) -> str:
    if amount is None:
        return ""
    return str(amount.quantize(CENT, rounding=ROUND_HALF_UP))


def _flag(value: bool) -> str:
    return "true" if value else "false"


def _local_time(value) -> str:
    if value is None:
        return ""
    return value.astimezone(EXPORT_TIMEZONE).strftime(DATE_FORMAT)


def report_file_stem(report: YearlyReport) -> str:
    return "all_time" if report.year is None else str(report.year)


def gain_row(gain: CapitalGainEvent) -> list[str]:
    return [
        gain.currency,
        _local_time(gain.acquired_at),
        _local_time(gain.disposed_at),
        str(gain.amount),
        rounded_to_cent(gain.cost),
        rounded_to_cent(gain.proceeds),
        rounded_to_cent(gain.gain_or_loss),
        _flag(gain.long_term),
    ]


def write_gains_csv(gains: list[CapitalGainEvent], path: Path) -> None:
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(GAINS_HEADER)
        writer.writerows(gain_row(gain) for gain in gains)


def write_summary_csv(report: YearlyReport, path: Path) -> None:
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow([f"Exported by cryptogains {__version__}"])
        writer.writerow([])
        writer.writerow(["", "Short Term", "Long Term", "Total"])
        writer.writerow([
            "Capital Gains",
            rounded_to_cent(report.short_term_capital_gains),
            rounded_to_cent(report.long_term_capital_gains),
            rounded_to_cent(report.total_capital_gains),
        ])
        writer.writerow([
            "Capital Losses",
            rounded_to_cent(report.short_term_capital_losses),
            rounded_to_cent(report.long_term_capital_losses),
            rounded_to_cent(report.total_capital_losses),
        ])
        writer.writerow([
            "Net Capital Gains",
            rounded_to_cent(report.short_term_net_capital_gains),
            rounded_to_cent(report.long_term_net_capital_gains),
            rounded_to_cent(report.total_net_capital_gains),
        ])
        writer.writerow(["Complete", _flag(report.is_complete)])
        writer.writerow([])
        writer.writerow(SUMMARY_HEADER)
        for c in report.currencies:
            writer.writerow([
                c.currency,
                "" if c.proceeds_unknown else rounded_to_cent(c.proceeds),
                "" if c.cost_unknown else rounded_to_cent(c.cost),
                "" if c.fees_unknown else rounded_to_cent(c.fees),
                "" if not c.is_complete else rounded_to_cent(c.capital_profit_loss),
                "" if c.income_unknown else rounded_to_cent(c.income),
                "" if not c.is_complete else rounded_to_cent(c.total_profit_loss),
                str(c.balance_start),
                str(c.quantity_disposed),
                str(c.quantity_income),
                str(c.balance_end),
            ])
        warnings = report.warnings()
        if warnings:
            writer.writerow([])
            writer.writerow(["Warnings"])
            writer.writerows([message] for message in warnings)


def write_yearly_summary_csv(reports: list[YearlyReport], path: Path) -> None:
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(YEARLY_HEADER)
        for report in reports:
            writer.writerow([
                report.year if report.year is not None else 0,
                rounded_to_cent(report.short_term_proceeds),
                rounded_to_cent(report.short_term_cost),
                rounded_to_cent(report.short_term_proceeds - report.short_term_cost),
                _flag(report.is_complete),
            ])


def export_all(reports: list[YearlyReport], output_dir: Path) -> list[Path]:
    """Write every export for every report into `output_dir`. Returns the written paths."""
    output_dir.mkdir(parents=True, exist_ok=True)
    written = [output_dir / "yearly_summary.csv"]
    write_yearly_summary_csv(reports, written[0])
    for report in reports:
        stem = report_file_stem(report)
        summary_path = output_dir / f"{stem}_report_summary.csv"
        gains_path = output_dir / f"{stem}_capital_gains_report.csv"
        write_summary_csv(report, summary_path)
        write_gains_csv(report.gains, gains_path)
        written.extend([summary_path, gains_path])
    return written
