"""Profit and loss of a wallet from its entry and exit market caps."""

from typing import Iterable

from .errors import DivisionByZero
from .models import PnLResult, WalletRecord


def compute_pnl(wallet: WalletRecord) -> PnLResult:
    """
    Compute raw PnL assuming the position scaled with market cap.

    A raw PnL of exactly zero is not a profit.
    """
    if wallet.entry_market_cap == 0:
        raise DivisionByZero(wallet.id)

    ratio = wallet.exit_market_cap / wallet.entry_market_cap
    raw_pnl = wallet.invested_amount * ratio - wallet.invested_amount

    return PnLResult(
        wallet=wallet,
        raw_pnl=raw_pnl,
        pnl_percentage=(ratio - 1) * 100,
        is_profit=raw_pnl > 0,
    )


def compute_batch(wallets: Iterable[WalletRecord]) -> tuple[list[PnLResult], dict[str, str]]:
    """Compute PnL for every wallet, collecting failures by wallet id."""
    results = []
    failures = {}
    for wallet in wallets:
        try:
            results.append(compute_pnl(wallet))
        except DivisionByZero as e:
            failures[wallet.id] = str(e)
    return results, failures
