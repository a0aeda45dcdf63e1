"""Report aggregation and output for cryptogains."""

from cryptogains.reports.aggregator import ReportAggregator, YearActivity
from cryptogains.reports.export import export_all, write_gains_csv, write_summary_csv, write_yearly_summary_csv
from cryptogains.reports.summary import YearlyReportGenerator

__all__ = [
    "ReportAggregator",
    "YearActivity",
    "YearlyReportGenerator",
    "export_all",
    "write_gains_csv",
    "write_summary_csv",
    "write_yearly_summary_csv",
]
