"""cryptogains: FIFO capital gains ledger for crypto currency transactions."""

__version__ = "0.1.0"
