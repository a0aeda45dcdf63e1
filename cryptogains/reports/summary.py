"""Yearly capital gains report generator."""

from pathlib import Path

from jinja2 import Environment, FileSystemLoader

from cryptogains.models.reports import YearlyReport

TEMPLATE_DIR = Path(__file__).parent / "templates"


def _money(value) -> str:
    """Format a fiat amount, or '?' when unknown."""
    if value is None:
        return "?"
    return f"{value:,.2f}"


def _quantity(value) -> str:
    if value is None:
        return "?"
    return f"{value.normalize():f}"


class YearlyReportGenerator:
    """Generates a human-readable capital gains summary per year."""

    def __init__(self) -> None:
        self.env = Environment(loader=FileSystemLoader(str(TEMPLATE_DIR)), trim_blocks=True, lstrip_blocks=True)
        self.env.filters["money"] = _money
        self.env.filters["quantity"] = _quantity

    def render(self, report: YearlyReport, show_gains: bool = False) -> str:
        """Render the summary of one report, optionally listing every gain."""
        template = self.env.get_template("yearly_report.txt")
        return template.render(report=report, show_gains=show_gains)
