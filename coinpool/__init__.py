"""Wallet position reconstruction and group PnL redistribution."""

__version__ = "0.1.0"
