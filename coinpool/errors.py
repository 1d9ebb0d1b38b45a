"""Exceptions raised by reconstruction, PnL and redistribution."""


class CoinPoolError(Exception):
    """Base class for all errors raised by this package."""


class OracleMiss(CoinPoolError):
    """A price lookup returned no usable data.

    Only raised inside the oracle client; callers see ``None`` instead.
    """


class TransferHistoryError(CoinPoolError):
    """The transaction history provider rejected the request."""


class NoBuyActivity(CoinPoolError):
    """A wallet has no inbound transfers, so it has no cost basis."""

    def __init__(self, wallet_address: str = ""):
        self.wallet_address = wallet_address
        target = f" for {wallet_address}" if wallet_address else ""
        super().__init__(f"No buy (IN) transactions found{target}")


class DivisionByZero(CoinPoolError, ZeroDivisionError):
    """Entry market cap of zero makes the market cap ratio undefined."""

    def __init__(self, wallet_id: str = ""):
        self.wallet_id = wallet_id
        super().__init__(f"Entry market cap is 0 for wallet {wallet_id or '?'}")


class PolicyInputInconsistent(CoinPoolError):
    """Custom redistribution percentages do not describe a full split."""

    def __init__(self, message: str, total=None):
        self.total = total
        super().__init__(message)


class CsvFormatError(CoinPoolError):
    """A wallet CSV file is missing required columns or rows."""
