"""Typer CLI interface for cryptogains."""

import logging
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.table import Table

from cryptogains.config import EngineConfig
from cryptogains.engines import LedgerEngine, LedgerRun, PriceTable
from cryptogains.engines.valuation import NoPrices, PriceOracle
from cryptogains.exceptions import GainsError, UnknownSourceFormatError
from cryptogains.models.enums import CostBasisTracking, FeePolicy
from cryptogains.models.transaction import Amount
from cryptogains.normalization import TradeConsolidator, TransactionNormalizer
from cryptogains.portfolio import Portfolio

app = typer.Typer(
    name="cryptogains",
    help="FIFO capital gains ledger for crypto currency transactions.",
    no_args_is_help=True,
)

console = Console()

PORTFOLIO_OPTION = typer.Option(
    Path("portfolio.json"),
    "--portfolio",
    "-p",
    envvar="CRYPTOGAINS_PORTFOLIO",
    help="Path to the portfolio file",
)
PRICES_OPTION = typer.Option(
    None,
    "--prices",
    envvar="CRYPTOGAINS_PRICES",
    help="JSON price table used to value transactions without a fiat value",
)
HOLDING_YEARS_OPTION = typer.Option(None, "--holding-years", help="Years after which a gain is long term")
MERGE_WINDOW_OPTION = typer.Option(None, "--merge-window", help="Minutes within which partial trades are merged")
FEE_POLICY_OPTION = typer.Option(None, "--fee-policy", help="How trading fees enter the totals")
TRACKING_OPTION = typer.Option(None, "--tracking", help="Cost basis tracking: universal or per_wallet")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show informational log messages"),
) -> None:
    """FIFO capital gains ledger for crypto currency transactions."""
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _fail(exc: Exception) -> NoReturn:
    typer.echo(f"Error: {exc}", err=True)
    raise typer.Exit(1)


def _load_portfolio(path: Path) -> Portfolio:
    try:
        return Portfolio.load(path)
    except GainsError as exc:
        _fail(exc)


def _config(
    portfolio: Portfolio,
    holding_years: int | None,
    merge_window: float | None,
    fee_policy: FeePolicy | None,
    tracking: CostBasisTracking | None,
) -> EngineConfig:
    overrides: dict = {}
    if holding_years is not None:
        overrides["holding_period_years"] = holding_years
    if merge_window is not None:
        overrides["merge_window"] = timedelta(minutes=merge_window)
    if fee_policy is not None:
        overrides["fee_policy"] = fee_policy
    if tracking is not None:
        overrides["cost_basis_tracking"] = tracking
    # Revalidate so overrides go through the setting checks
    return EngineConfig.model_validate({**portfolio.settings.model_dump(), **overrides})


def _oracle(prices: Path | None) -> PriceOracle:
    if prices is None:
        return NoPrices()
    return PriceTable.from_json(prices)


def _run(
    portfolio_path: Path,
    prices: Path | None,
    holding_years: int | None = None,
    merge_window: float | None = None,
    fee_policy: FeePolicy | None = None,
    tracking: CostBasisTracking | None = None,
) -> LedgerRun:
    portfolio = _load_portfolio(portfolio_path)
    try:
        config = _config(portfolio, holding_years, merge_window, fee_policy, tracking)
        engine = LedgerEngine(config, _oracle(prices))
        return engine.run(
            portfolio.load_transactions(),
            enabled_sources=portfolio.enabled_sources(),
            ignored_currencies=portfolio.ignored_currencies,
        )
    except GainsError as exc:
        _fail(exc)


def _amount(amount: Amount | None) -> str:
    return str(amount) if amount is not None else ""


def _money(value: Decimal | None) -> str:
    return "?" if value is None else f"{value:,.2f}"


@app.command()
def init(portfolio: Path = PORTFOLIO_OPTION) -> None:
    """Create an empty portfolio file."""
    if portfolio.exists():
        typer.echo(f"Error: {portfolio} already exists", err=True)
        raise typer.Exit(1)
    Portfolio().save(portfolio)
    typer.echo(f"Created portfolio {portfolio}")


@app.command(name="add-source")
def add_source(
    wallet: str = typer.Argument(..., help="Wallet name; created when missing"),
    file: Path = typer.Argument(..., help="Transaction file (CTC CSV or cryptogains JSON)"),
    source_format: str | None = typer.Option(None, "--format", "-f", help="Source format; detected when omitted"),
    name: str = typer.Option("", "--name", help="Display name of the source"),
    portfolio: Path = PORTFOLIO_OPTION,
) -> None:
    """Add a transaction source file to a wallet."""
    from cryptogains.ingestion import detect_format, get_format, read_source

    loaded = _load_portfolio(portfolio)
    try:
        data = read_source(file)
        detected = get_format(source_format) if source_format else detect_format(data)
        if detected is None:
            raise UnknownSourceFormatError(str(file))
        count = len(detected.parse(data, file.name))
        loaded.add_source(wallet, file, detected.source_type, name)
        loaded.save()
    except GainsError as exc:
        _fail(exc)
    typer.echo(f"Added {file.name} ({detected.label}, {count} transactions) to wallet '{wallet}'")


@app.command()
def wallets(portfolio: Path = PORTFOLIO_OPTION) -> None:
    """List wallets, their sources and raw balances."""
    loaded = _load_portfolio(portfolio)
    try:
        transactions = loaded.load_transactions()
    except GainsError as exc:
        _fail(exc)
    from cryptogains.engines.balances import wallet_balances

    balances = wallet_balances(transactions)
    table = Table(title="Wallets")
    table.add_column("Wallet")
    table.add_column("Source")
    table.add_column("Type")
    table.add_column("Enabled")
    table.add_column("Balances")
    for wallet in loaded.wallets:
        held = ", ".join(f"{q} {c}" for c, q in balances.get(wallet.name, {}).items())
        table.add_row(wallet.name, "", "", "yes" if wallet.enabled else "no", held)
        for source in wallet.sources:
            table.add_row("", source.source_id, source.source_type, "yes" if source.enabled else "no", "")
    console.print(table)


@app.command()
def transactions(
    errors: bool = typer.Option(False, "--errors", help="Only show transactions with a gain error"),
    currency: str | None = typer.Option(None, "--currency", "-c", help="Only show transactions touching a currency"),
    wallet: str | None = typer.Option(None, "--wallet", "-w", help="Only show transactions of a wallet"),
    portfolio: Path = PORTFOLIO_OPTION,
    prices: Path | None = PRICES_OPTION,
    holding_years: int | None = HOLDING_YEARS_OPTION,
    merge_window: float | None = MERGE_WINDOW_OPTION,
    fee_policy: FeePolicy | None = FEE_POLICY_OPTION,
    tracking: CostBasisTracking | None = TRACKING_OPTION,
) -> None:
    """List processed transactions with their realized gain."""
    run = _run(portfolio, prices, holding_years, merge_window, fee_policy, tracking)

    table = Table(title="Transactions")
    for column in ("Time (UTC)", "Wallet", "Type", "Sent", "Received", "Fee", "Value", "Gain", "Issue"):
        table.add_column(column)
    shown = 0
    for processed in run.processed:
        tx = processed.transaction
        if errors and processed.gain_error is None:
            continue
        if currency and currency.upper() not in tx.currencies():
            continue
        if wallet and tx.wallet_id != wallet:
            continue
        shown += 1
        table.add_row(
            tx.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            tx.wallet_id,
            tx.type.value + (" (matched)" if tx.is_matched_transfer else ""),
            _amount(tx.sent),
            _amount(tx.received),
            _amount(tx.fee),
            _money(tx.value.quantity) if tx.value else "?",
            _money(processed.gain) if processed.events or processed.gain_error else "",
            processed.gain_error.value if processed.gain_error else "",
        )
    console.print(table)
    typer.echo(f"{shown} of {len(run.processed)} transactions")


@app.command()
def report(
    year: int | None = typer.Option(None, "--year", "-y", help="Only this year; all years when omitted"),
    out: Path | None = typer.Option(None, "--out", "-o", help="Directory to write text and CSV reports to"),
    gains: bool = typer.Option(False, "--gains", help="List every capital gain in the text report"),
    portfolio: Path = PORTFOLIO_OPTION,
    prices: Path | None = PRICES_OPTION,
    holding_years: int | None = HOLDING_YEARS_OPTION,
    merge_window: float | None = MERGE_WINDOW_OPTION,
    fee_policy: FeePolicy | None = FEE_POLICY_OPTION,
    tracking: CostBasisTracking | None = TRACKING_OPTION,
) -> None:
    """Show capital gains reports and optionally export them."""
    from cryptogains.reports import YearlyReportGenerator, export_all

    run = _run(portfolio, prices, holding_years, merge_window, fee_policy, tracking)
    if year is not None:
        selected = run.report_for(year)
        if selected is None:
            typer.echo(f"Error: No transactions in {year}. Years: {', '.join(map(str, run.years))}", err=True)
            raise typer.Exit(1)
        reports = [selected]
    else:
        reports = list(run.reports)

    generator = YearlyReportGenerator()
    for selected in reports:
        typer.echo(generator.render(selected, show_gains=gains))

    if out is not None:
        written = export_all(list(run.reports), out)
        for selected in run.reports:
            stem = "all_time" if selected.year is None else str(selected.year)
            path = out / f"{stem}_report.txt"
            path.write_text(generator.render(selected, show_gains=True))
            written.append(path)
        typer.echo(f"Wrote {len(written)} files to {out}")


def _parse_time(value: str) -> datetime:
    try:
        at = datetime.fromisoformat(value)
    except ValueError:
        typer.echo(f"Error: Invalid time '{value}'. Use ISO format, e.g. 2024-12-31 or 2024-12-31T23:59:59", err=True)
        raise typer.Exit(1)
    if at.tzinfo is None:
        at = at.replace(tzinfo=timezone.utc)
    if len(value) == 10:
        # A bare date includes the whole day
        at += timedelta(days=1) - timedelta(microseconds=1)
    return at


@app.command()
def balances(
    wallet: str | None = typer.Option(None, "--wallet", "-w", help="Balances of one wallet"),
    at: str | None = typer.Option(None, "--at", help="Historical balance at this date or time (UTC)"),
    portfolio: Path = PORTFOLIO_OPTION,
    prices: Path | None = PRICES_OPTION,
    tracking: CostBasisTracking | None = TRACKING_OPTION,
) -> None:
    """Show current or historical balances."""
    run = _run(portfolio, prices, tracking=tracking)
    when = _parse_time(at) if at else None
    quantities = run.balances(wallet, when)

    title = "Balances"
    if wallet:
        title += f" of {wallet}"
    if when:
        title += f" at {when:%Y-%m-%d %H:%M:%S}"
    table = Table(title=title)
    table.add_column("Currency")
    table.add_column("Quantity", justify="right")
    show_cost = wallet is None and when is None
    if show_cost:
        table.add_column("Cost Base", justify="right")
    for currency, quantity in quantities.items():
        row = [currency, str(quantity)]
        if show_cost:
            _, cost = run.holdings.get(currency, (Decimal("0"), Decimal("0")))
            row.append(_money(cost))
        table.add_row(*row)
    console.print(table)


def _normalized(portfolio_path: Path):
    loaded = _load_portfolio(portfolio_path)
    try:
        return TransactionNormalizer().normalize(
            loaded.load_transactions(), loaded.enabled_sources(), loaded.ignored_currencies
        )
    except GainsError as exc:
        _fail(exc)


@app.command(name="export-json")
def export_json_cmd(
    output: Path = typer.Argument(..., help="Destination JSON file"),
    portfolio: Path = PORTFOLIO_OPTION,
) -> None:
    """Export all enabled transactions to the cryptogains JSON format."""
    from cryptogains.ingestion import export_json

    ordered = _normalized(portfolio)
    export_json(ordered, output)
    typer.echo(f"Exported {len(ordered)} transactions to {output}")


@app.command(name="export-ctc")
def export_ctc_cmd(
    output: Path = typer.Argument(..., help="Destination CSV file"),
    portfolio: Path = PORTFOLIO_OPTION,
) -> None:
    """Export all enabled transactions as CryptoTaxCalculator CSV."""
    from cryptogains.ingestion import write_ctc_csv

    ordered = _normalized(portfolio)
    write_ctc_csv(ordered, output)
    typer.echo(f"Exported {len(ordered)} transactions to {output}")


@app.command()
def consolidate(
    merge_window: float | None = MERGE_WINDOW_OPTION,
    portfolio: Path = PORTFOLIO_OPTION,
) -> None:
    """Preview which consecutive trades would be merged."""
    loaded = _load_portfolio(portfolio)
    try:
        config = _config(loaded, None, merge_window, None, None)
    except GainsError as exc:
        _fail(exc)
    ordered = _normalized(portfolio)
    pairs = TradeConsolidator(config.merge_window).pairs(ordered)
    if not pairs:
        typer.echo("No trades to merge.")
        return
    for first, second in pairs:
        typer.echo(
            f"{first.timestamp:%Y-%m-%d %H:%M:%S} {first.wallet_id}: "
            f"{first.sent} -> {first.received} + {second.sent} -> {second.received}"
        )
    typer.echo(f"{len(pairs)} merge(s)")


if __name__ == "__main__":
    app()
