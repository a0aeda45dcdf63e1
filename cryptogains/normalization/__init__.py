"""Normalization layer: ordering, transfer matching and trade consolidation."""

from cryptogains.normalization.consolidation import TradeConsolidator
from cryptogains.normalization.events import TransactionNormalizer, shape_problems
from cryptogains.normalization.transfers import TransferMatcher

__all__ = ["TradeConsolidator", "TransactionNormalizer", "TransferMatcher", "shape_problems"]
