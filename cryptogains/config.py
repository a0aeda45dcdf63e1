"""Engine settings."""

from datetime import timedelta

from pydantic import BaseModel, field_validator

from cryptogains.exceptions import ConfigurationError
from cryptogains.models.enums import CostBasisTracking, FeePolicy

DEFAULT_MERGE_WINDOW = timedelta(minutes=5)


class EngineConfig(BaseModel):
    """Settings for one computation pass.

    Invalid values raise ConfigurationError, which is fatal before any
    transaction is processed.
    """

    holding_period_years: int = 1
    merge_consecutive_trades: bool = True
    merge_window: timedelta = DEFAULT_MERGE_WINDOW
    fee_policy: FeePolicy = FeePolicy.SHORT_TERM_COST
    cost_basis_tracking: CostBasisTracking = CostBasisTracking.UNIVERSAL

    @field_validator("holding_period_years")
    @classmethod
    def _check_holding_period(cls, value: int) -> int:
        if value < 0:
            raise ConfigurationError("holding_period_years", f"must not be negative, got {value}")
        return value

    @field_validator("merge_window")
    @classmethod
    def _check_merge_window(cls, value: timedelta) -> timedelta:
        if value < timedelta(0):
            raise ConfigurationError("merge_window", f"must not be negative, got {value}")
        return value

    @property
    def per_wallet(self) -> bool:
        return self.cost_basis_tracking == CostBasisTracking.PER_WALLET
