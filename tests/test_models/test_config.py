"""Tests for engine settings."""

from datetime import timedelta

import pytest

from cryptogains.config import DEFAULT_MERGE_WINDOW, EngineConfig
from cryptogains.exceptions import ConfigurationError, GainsError
from cryptogains.models.enums import CostBasisTracking, FeePolicy


class TestEngineConfig:
    def test_defaults(self):
        config = EngineConfig()
        assert config.holding_period_years == 1
        assert config.merge_window == DEFAULT_MERGE_WINDOW == timedelta(minutes=5)
        assert config.merge_consecutive_trades
        assert config.fee_policy == FeePolicy.SHORT_TERM_COST
        assert not config.per_wallet

    def test_negative_merge_window(self):
        with pytest.raises(ConfigurationError) as exc_info:
            EngineConfig(merge_window=timedelta(minutes=-1))
        assert exc_info.value.setting == "merge_window"
        assert isinstance(exc_info.value, GainsError)

    def test_negative_holding_period(self):
        with pytest.raises(ConfigurationError, match="holding_period_years"):
            EngineConfig(holding_period_years=-1)

    def test_zero_values_allowed(self):
        config = EngineConfig(holding_period_years=0, merge_window=timedelta(0))
        assert config.holding_period_years == 0

    def test_per_wallet(self):
        assert EngineConfig(cost_basis_tracking=CostBasisTracking.PER_WALLET).per_wallet

    def test_from_strings(self):
        config = EngineConfig.model_validate({"fee_policy": "ignore", "cost_basis_tracking": "per_wallet"})
        assert config.fee_policy == FeePolicy.IGNORE
        assert config.cost_basis_tracking == CostBasisTracking.PER_WALLET
