"""Report output models."""

from decimal import Decimal

from pydantic import BaseModel, Field

from cryptogains.models.ledger import CapitalGainEvent

ZERO = Decimal("0")


class CurrencySummary(BaseModel):
    currency: str
    balance_start: Decimal = ZERO
    balance_end: Decimal = ZERO
    cost_start: Decimal | None = ZERO
    cost_end: Decimal | None = ZERO
    quantity_disposed: Decimal = ZERO
    quantity_income: Decimal = ZERO
    cost: Decimal = ZERO
    fees: Decimal = ZERO
    proceeds: Decimal = ZERO
    capital_profit_loss: Decimal = ZERO
    income: Decimal = ZERO
    total_profit_loss: Decimal = ZERO
    # Set when a contribution was excluded from the sum above because its value is unknown
    cost_unknown: bool = False
    proceeds_unknown: bool = False
    fees_unknown: bool = False
    income_unknown: bool = False

    @property
    def is_complete(self) -> bool:
        return not (self.cost_unknown or self.proceeds_unknown or self.fees_unknown or self.income_unknown)


class YearlyReport(BaseModel):
    year: int | None  # None for the all-time report
    short_term_cost: Decimal = ZERO
    short_term_proceeds: Decimal = ZERO
    short_term_capital_gains: Decimal = ZERO
    short_term_capital_losses: Decimal = ZERO
    long_term_capital_gains: Decimal = ZERO
    long_term_capital_losses: Decimal = ZERO
    currencies: list[CurrencySummary] = Field(default_factory=list)
    gains: list[CapitalGainEvent] = Field(default_factory=list)
    unknown_cost_events: int = 0
    unknown_proceeds_events: int = 0
    unknown_fee_values: int = 0

    @property
    def label(self) -> str:
        return "All time" if self.year is None else str(self.year)

    @property
    def short_term_net_capital_gains(self) -> Decimal:
        return self.short_term_capital_gains - self.short_term_capital_losses

    @property
    def long_term_net_capital_gains(self) -> Decimal:
        return self.long_term_capital_gains - self.long_term_capital_losses

    @property
    def total_capital_gains(self) -> Decimal:
        return self.short_term_capital_gains + self.long_term_capital_gains

    @property
    def total_capital_losses(self) -> Decimal:
        return self.short_term_capital_losses + self.long_term_capital_losses

    @property
    def total_net_capital_gains(self) -> Decimal:
        return self.total_capital_gains - self.total_capital_losses

    @property
    def deficit_events(self) -> int:
        return sum(1 for gain in self.gains if gain.is_deficit)

    @property
    def is_complete(self) -> bool:
        return not (self.unknown_cost_events or self.unknown_proceeds_events or self.unknown_fee_values)

    def warnings(self) -> list[str]:
        """Human-readable reasons why the totals may be incomplete."""
        messages = []
        if self.deficit_events:
            messages.append(
                f"{self.deficit_events} disposal(s) exceeded the tracked holdings; "
                "their cost basis is unknown (missing import of an earlier acquisition?)"
            )
        other_unknown_cost = self.unknown_cost_events - self.deficit_events
        if other_unknown_cost > 0:
            messages.append(f"{other_unknown_cost} disposal(s) consumed lots with unknown cost basis")
        if self.unknown_proceeds_events:
            messages.append(f"{self.unknown_proceeds_events} disposal(s) have no known fiat value")
        if self.unknown_fee_values:
            messages.append(f"{self.unknown_fee_values} fee(s) have no known fiat value")
        return messages
