"""Core transaction model shared by every source adapter and the engine."""

from datetime import datetime, timezone
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from cryptogains.models.enums import FIAT_CURRENCY, TransactionType


class Amount(BaseModel):
    model_config = ConfigDict(frozen=True)

    currency: str
    quantity: Decimal = Field(ge=0)

    @field_validator("currency")
    @classmethod
    def _normalize_currency(cls, value: str) -> str:
        return value.strip().upper()

    @property
    def is_fiat(self) -> bool:
        return self.currency == FIAT_CURRENCY

    def try_add(self, other: "Amount") -> "Amount | None":
        """Sum two amounts of the same currency, None when currencies differ."""
        if other.currency != self.currency:
            return None
        return Amount(currency=self.currency, quantity=self.quantity + other.quantity)

    def __str__(self) -> str:
        return f"{self.quantity} {self.currency}"


def fiat(quantity: Decimal) -> Amount:
    return Amount(currency=FIAT_CURRENCY, quantity=quantity)


class BlockchainRef(BaseModel):
    model_config = ConfigDict(frozen=True)

    chain: str
    tx_hash: str


class Transaction(BaseModel):
    """A normalized, immutable transaction record.

    `value` and `fee_value` hold the fiat value of the transaction and of its
    fee. Sources may supply them; otherwise they are estimated from the price
    oracle before the engine runs.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    timestamp: datetime
    wallet_id: str = ""
    source_id: str = ""
    type: TransactionType
    sent: Amount | None = None
    received: Amount | None = None
    fee: Amount | None = None
    value: Amount | None = None
    fee_value: Amount | None = None
    description: str = ""
    blockchain: BlockchainRef | None = None
    to_wallet_id: str | None = None  # transfer destination
    matching_tx_id: str | None = None  # paired send/receive
    merged_tx_ids: tuple[str, ...] = ()

    @field_validator("timestamp")
    @classmethod
    def _as_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @property
    def fee_is_part_of_sent_currency(self) -> bool:
        return self.fee is not None and self.sent is not None and self.fee.currency == self.sent.currency

    @property
    def fee_is_part_of_received_currency(self) -> bool:
        return (
            self.fee is not None
            and self.received is not None
            and self.fee.currency == self.received.currency
        )

    @property
    def year(self) -> int:
        return self.timestamp.year

    @property
    def is_matched_transfer(self) -> bool:
        return self.matching_tx_id is not None

    def currencies(self) -> set[str]:
        """All currencies this transaction touches, fee included."""
        return {a.currency for a in (self.sent, self.received, self.fee) if a is not None}
