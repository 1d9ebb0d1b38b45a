"""
Redistribution of group profit to losing wallets.

Winners fund a pool that is split among losers under a selectable policy:

- equal: every loser receives the same share of the pool
- proportional: losers receive relief in proportion to their loss
- custom: caller-supplied percentage of the pool per loser id
- clawback: winners give up all profit above principal, split equally

For the first three the pool is min(total profit, total loss) and winners
contribute in proportion to their share of total profit.
"""

from decimal import Decimal
from typing import Iterable, Optional

from rich.console import Console
from rich.table import Table

from .errors import PolicyInputInconsistent
from .models import (
    CalculatedWallet,
    PnLResult,
    PolicyKind,
    RedistributionPolicy,
    RedistributionSummary,
)

console = Console()

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def _calculated(result: PnLResult, redistribution: Decimal = ZERO) -> CalculatedWallet:
    wallet = result.wallet
    return CalculatedWallet(
        **wallet.model_dump(),
        raw_pnl=result.raw_pnl,
        pnl_percentage=result.pnl_percentage,
        redistribution_amount=redistribution,
        final_balance=wallet.invested_amount + result.raw_pnl + redistribution,
        is_profit=result.is_profit,
    )


def validate_custom_percentages(
    losers: Iterable[PnLResult],
    percentages: dict[str, Decimal],
    tolerance: Decimal = Decimal("0.01"),
) -> Decimal:
    """
    Check that custom percentages split the whole pool among losers.

    Returns the total percentage. Raises PolicyInputInconsistent when an id
    is not a losing wallet or the total is not 100 within tolerance.
    """
    loser_ids = {r.wallet.id for r in losers}
    unknown = sorted(set(percentages) - loser_ids)
    if unknown:
        raise PolicyInputInconsistent(
            f"Percentages given for wallets that are not losers: {', '.join(unknown)}"
        )

    if any(Decimal(str(p)) < 0 for p in percentages.values()):
        raise PolicyInputInconsistent("Custom percentages must not be negative")

    total = sum((Decimal(str(percentages.get(i, 0))) for i in loser_ids), ZERO)
    if abs(total - HUNDRED) > tolerance:
        raise PolicyInputInconsistent(
            f"Custom percentages must total 100%, got {total}%", total=total
        )
    return total


class RedistributionEngine:
    """
    Rebalance raw PnL across a group of wallets.

    Every pass builds new CalculatedWallet records in input order; the input
    results are never modified.
    """

    def __init__(self, results: Iterable[PnLResult], policy: Optional[RedistributionPolicy] = None):
        self.results = list(results)
        self.policy = policy or RedistributionPolicy.equal_share()

    @property
    def winners(self) -> list[PnLResult]:
        return [r for r in self.results if r.is_profit]

    @property
    def losers(self) -> list[PnLResult]:
        return [r for r in self.results if not r.is_profit]

    @property
    def total_profit(self) -> Decimal:
        return sum((r.raw_pnl for r in self.winners), ZERO)

    @property
    def total_loss(self) -> Decimal:
        return sum((abs(r.raw_pnl) for r in self.losers), ZERO)

    @property
    def pool(self) -> Decimal:
        """Amount moved from winners to losers in this pass."""
        if not self.winners or not self.losers:
            return ZERO
        if self.policy.kind == PolicyKind.FULL_CLAWBACK:
            return self.total_profit if self.total_loss > 0 else ZERO
        return min(self.total_profit, self.total_loss)

    def _loser_share(self, loser: PnLResult, pool: Decimal, loser_count: int) -> Decimal:
        kind = self.policy.kind
        if kind in (PolicyKind.EQUAL_SHARE, PolicyKind.FULL_CLAWBACK):
            return pool / loser_count
        if kind == PolicyKind.PROPORTIONAL:
            return pool * (abs(loser.raw_pnl) / self.total_loss)
        if kind == PolicyKind.CUSTOM_PERCENTAGE:
            percentage = Decimal(str(self.policy.percentages.get(loser.wallet.id, 0)))
            return pool * percentage / HUNDRED
        raise ValueError(f"Unsupported redistribution policy: {kind}")

    def _amounts(self) -> dict[int, Decimal]:
        """Redistribution amount per input index."""
        amounts = {i: ZERO for i in range(len(self.results))}
        pool = self.pool
        if pool == 0:
            return amounts

        loser_count = len(self.losers)
        total_profit = self.total_profit

        for i, result in enumerate(self.results):
            if result.is_profit:
                if self.policy.kind == PolicyKind.FULL_CLAWBACK:
                    amounts[i] = -result.raw_pnl
                else:
                    amounts[i] = -pool * (result.raw_pnl / total_profit)
            else:
                amounts[i] = self._loser_share(result, pool, loser_count)

        return amounts

    def redistribute(self) -> list[CalculatedWallet]:
        """Compute redistribution and final balance for every wallet."""
        amounts = self._amounts()
        return [_calculated(r, amounts[i]) for i, r in enumerate(self.results)]

    def summary(self, calculated: Optional[list[CalculatedWallet]] = None) -> RedistributionSummary:
        """Group totals for a redistribution pass."""
        if calculated is None:
            calculated = self.redistribute()

        return RedistributionSummary(
            policy=self.policy.kind,
            wallet_count=len(calculated),
            winners=len(self.winners),
            losers=len(self.losers),
            total_invested=sum((w.invested_amount for w in calculated), ZERO),
            total_raw_pnl=sum((w.raw_pnl for w in calculated), ZERO),
            total_final_balance=sum((w.final_balance for w in calculated), ZERO),
            total_profit=self.total_profit,
            total_loss=self.total_loss,
            pool=self.pool,
            redistributed=sum((w.redistribution_amount for w in calculated if not w.is_profit), ZERO),
        )

    def print_results(self, calculated: Optional[list[CalculatedWallet]] = None):
        """Print a formatted redistribution report."""
        if calculated is None:
            calculated = self.redistribute()
        summary = self.summary(calculated)

        table = Table(title=f"P&L Redistribution ({summary.policy.value})")
        table.add_column("ID", style="dim")
        table.add_column("Wallet", style="cyan")
        table.add_column("Token")
        table.add_column("Invested", justify="right")
        table.add_column("Raw P&L", justify="right")
        table.add_column("P&L %", justify="right")
        table.add_column("Redistribution", justify="right")
        table.add_column("Final Balance", justify="right", style="bold")

        # Profit wallets first, then loss wallets
        for wallet in sorted(calculated, key=lambda w: not w.is_profit):
            colour = "green" if wallet.is_profit else "red"
            sign = "+" if wallet.redistribution_amount >= 0 else ""
            table.add_row(
                wallet.id,
                wallet.wallet_address,
                wallet.token_name,
                f"${wallet.invested_amount:,.2f}",
                f"[{colour}]${wallet.raw_pnl:,.2f}[/{colour}]",
                f"[{colour}]{wallet.pnl_percentage:.2f}%[/{colour}]",
                f"{sign}${wallet.redistribution_amount:,.2f}",
                f"${wallet.final_balance:,.2f}",
            )

        console.print(table)
        console.print(
            f"Total invested: ${summary.total_invested:,.2f} | "
            f"Raw P&L: ${summary.total_raw_pnl:,.2f} | "
            f"Final balance: ${summary.total_final_balance:,.2f}"
        )
        if summary.pool > 0:
            console.print(
                f"[green]Redistributed ${summary.redistributed:,.2f} from {summary.winners} "
                f"profitable wallets to {summary.losers} losing wallets.[/green]"
            )


def redistribute(results: Iterable[PnLResult], policy: Optional[RedistributionPolicy] = None) -> list[CalculatedWallet]:
    """Convenience function to run one redistribution pass."""
    return RedistributionEngine(results, policy).redistribute()


def summarize(results: Iterable[PnLResult], policy: Optional[RedistributionPolicy] = None) -> RedistributionSummary:
    """Convenience function to summarize one redistribution pass."""
    return RedistributionEngine(results, policy).summary()


def build_policy(name: str, percentages: Optional[dict[str, Decimal]] = None) -> RedistributionPolicy:
    """Build a policy from its name (equal, proportional, custom, clawback)."""
    try:
        kind = PolicyKind(name.lower())
    except ValueError:
        choices = ", ".join(k.value for k in PolicyKind)
        raise ValueError(f"Unknown redistribution policy: {name}. Use: {choices}") from None

    if kind == PolicyKind.CUSTOM_PERCENTAGE:
        return RedistributionPolicy.custom(percentages or {})
    return RedistributionPolicy(kind=kind)
