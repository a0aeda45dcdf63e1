"""Lot, disposal and capital gain models."""

import re
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from cryptogains.models.enums import GainError, HoldingPeriod
from cryptogains.models.transaction import Transaction


_NUMBERS = re.compile(r"(\d+)")


def id_order(tx_id: str) -> tuple:
    """Sort key comparing the numbers inside an id by value, so `x.csv:9` precedes `x.csv:10`."""
    return tuple(int(part) if i % 2 else part for i, part in enumerate(_NUMBERS.split(tx_id)))


class Lot(BaseModel):
    """Remaining quantity of one acquisition. `unit_cost` None means unknown."""

    currency: str
    amount: Decimal = Field(ge=0)
    unit_cost: Decimal | None
    acquired_at: datetime
    origin_tx_id: str
    wallet_id: str | None = None

    @property
    def cost_base(self) -> Decimal | None:
        if self.unit_cost is None:
            return None
        return self.amount * self.unit_cost

    @property
    def sort_key(self) -> tuple[datetime, tuple]:
        return (self.acquired_at, id_order(self.origin_tx_id))


class LotFragment(BaseModel):
    """The part of a lot consumed by a single disposal."""

    model_config = ConfigDict(frozen=True)

    lot: Lot
    amount: Decimal

    @property
    def cost(self) -> Decimal | None:
        if self.lot.unit_cost is None:
            return None
        return self.amount * self.lot.unit_cost


class Disposal(BaseModel):
    """Result of consuming lots: matched fragments plus any unmatched quantity."""

    model_config = ConfigDict(frozen=True)

    currency: str
    fragments: list[LotFragment] = Field(default_factory=list)
    deficit: Decimal = Decimal("0")

    @property
    def matched(self) -> Decimal:
        return sum((f.amount for f in self.fragments), Decimal("0"))


class CapitalGainEvent(BaseModel):
    """One realized gain or loss. Deficit events have no lot and unknown cost."""

    model_config = ConfigDict(frozen=True)

    currency: str
    amount: Decimal
    acquired_at: datetime | None
    disposed_at: datetime
    bought_tx_id: str | None
    sold_tx_id: str
    cost: Decimal | None
    proceeds: Decimal | None
    long_term: bool
    wallet_id: str | None = None

    @property
    def is_deficit(self) -> bool:
        return self.bought_tx_id is None

    @property
    def gain_or_loss(self) -> Decimal | None:
        if self.cost is None or self.proceeds is None:
            return None
        return self.proceeds - self.cost

    @property
    def holding_period(self) -> HoldingPeriod:
        return HoldingPeriod.LONG_TERM if self.long_term else HoldingPeriod.SHORT_TERM

    @property
    def year(self) -> int:
        return self.disposed_at.year


class FeeCharge(BaseModel):
    """A trading fee reported next to the disposal rather than inside it."""

    model_config = ConfigDict(frozen=True)

    currency: str  # summary row the fee is attributed to
    value: Decimal | None  # None when the fee has no known fiat value


class IncomeReceipt(BaseModel):
    model_config = ConfigDict(frozen=True)

    currency: str
    quantity: Decimal
    value: Decimal | None


class ProcessedTransaction(BaseModel):
    """A transaction annotated with what the engine derived from it."""

    model_config = ConfigDict(frozen=True)

    transaction: Transaction
    events: tuple[CapitalGainEvent, ...] = ()
    gain: Decimal | None = None
    gain_error: GainError | None = None
    fee_charge: FeeCharge | None = None
    income: IncomeReceipt | None = None
