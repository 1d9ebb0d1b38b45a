"""
Position reconstruction from token transfer history.

Turns a wallet's buy/sell transfers into the USD cost basis still at risk
(FIFO lot matching against historical prices) and the entry/exit market caps
used by the PnL engine.
"""

import time
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Optional

from rich.console import Console

from .errors import NoBuyActivity, TransferHistoryError
from .models import PriceSample, TransferDirection, TransferEvent, WalletPosition, WalletRecord
from .oracle import PriceLookup, PriceOracleClient

console = Console()


@dataclass
class Lot:
    """A buy and the quantity of it never sold again."""

    buy: TransferEvent
    residual: Decimal


@dataclass
class LotMatch:
    """Outcome of FIFO matching sells against buys."""

    lots: list[Lot]
    # Sell quantity with no earlier buy to match against
    unmatched_sell_tokens: Decimal = Decimal("0")

    @property
    def net_tokens(self) -> Decimal:
        return sum((lot.residual for lot in self.lots), Decimal("0"))


def split_events(events: Iterable[TransferEvent]) -> tuple[list[TransferEvent], list[TransferEvent]]:
    """Partition events into (buys, sells), each sorted by timestamp."""
    buys = [e for e in events if e.direction == TransferDirection.IN]
    sells = [e for e in events if e.direction == TransferDirection.OUT]
    buys.sort(key=lambda e: e.timestamp)
    sells.sort(key=lambda e: e.timestamp)
    return buys, sells


def match_lots(events: Iterable[TransferEvent]) -> LotMatch:
    """
    Match sells against buys, oldest first.

    A sell that has not been matched yet and happened at or before a buy is
    skipped for that buy and every later one. A sell that was already partly
    matched against an earlier buy carries its remainder forward to the next
    buy. Input events are never modified.
    """
    buys, sells = split_events(events)
    remaining = [s.token_amount for s in sells]
    touched = [False] * len(sells)
    skipped = Decimal("0")
    cursor = 0
    lots = []

    for buy in buys:
        left = buy.token_amount

        while left > 0 and cursor < len(sells):
            if not touched[cursor] and sells[cursor].timestamp <= buy.timestamp:
                skipped += remaining[cursor]
                cursor += 1
                continue

            matched = min(left, remaining[cursor])
            left -= matched
            remaining[cursor] -= matched
            touched[cursor] = True
            if remaining[cursor] == 0:
                cursor += 1

        lots.append(Lot(buy=buy, residual=left))

    leftover = sum(remaining[cursor:], Decimal("0"))
    return LotMatch(lots=lots, unmatched_sell_tokens=skipped + leftover)


class PositionReconstructor:
    """
    Reconstruct a wallet's net invested amount for one token.

    Oracle lookups are awaited one at a time and cached per timestamp for
    the duration of a single reconstruction. A failed lookup degrades to the
    fallback value and never aborts the computation.
    """

    def __init__(
        self,
        price_at: PriceLookup,
        fallback_market_cap: Decimal,
        now: Optional[int] = None,
        verbose: bool = False,
    ):
        self.price_at = price_at
        self.fallback_market_cap = Decimal(str(fallback_market_cap))
        self.now = now
        self.verbose = verbose

    async def _lookup(self, timestamp: int, cache: dict[int, Optional[PriceSample]]) -> Optional[PriceSample]:
        if timestamp in cache:
            return cache[timestamp]
        try:
            sample = await self.price_at(timestamp)
        except Exception as e:
            console.print(f"[yellow]Oracle lookup failed at {timestamp}, using fallback: {e}[/yellow]")
            sample = None
        cache[timestamp] = sample
        return sample

    async def reconstruct(self, events: Iterable[TransferEvent], wallet_address: str = "") -> WalletPosition:
        """Compute the WalletPosition for a wallet's transfer events."""
        events = list(events)
        buys, sells = split_events(events)
        if not buys:
            raise NoBuyActivity(wallet_address)

        cache: dict[int, Optional[PriceSample]] = {}
        missed: set[int] = set()

        entry_timestamp = buys[0].timestamp
        if sells:
            exit_timestamp = sells[-1].timestamp
        else:
            exit_timestamp = self.now if self.now is not None else int(time.time())

        entry_sample = await self._lookup(entry_timestamp, cache)
        if entry_sample is None:
            missed.add(entry_timestamp)
            entry_market_cap = self.fallback_market_cap
            console.print(f"[yellow]No entry market cap at {entry_timestamp}, using ${entry_market_cap:,.0f}[/yellow]")
        else:
            entry_market_cap = entry_sample.market_cap

        exit_sample = await self._lookup(exit_timestamp, cache)
        if exit_sample is None:
            missed.add(exit_timestamp)
            exit_market_cap = self.fallback_market_cap
            console.print(f"[yellow]No exit market cap at {exit_timestamp}, using ${exit_market_cap:,.0f}[/yellow]")
        else:
            exit_market_cap = exit_sample.market_cap

        match = match_lots(events)
        invested = Decimal("0")

        for lot in match.lots:
            if lot.residual <= 0:
                continue

            sample = await self._lookup(lot.buy.timestamp, cache)
            if sample is None:
                # Known gap: unpriced units add no cost basis
                missed.add(lot.buy.timestamp)
                price = Decimal("0")
            else:
                price = sample.price

            invested += lot.residual * price
            if self.verbose:
                console.print(
                    f"[dim]Buy: amount={lot.buy.token_amount}, net={lot.residual}, "
                    f"price={price}, usd={lot.residual * price}, timestamp={lot.buy.timestamp}[/dim]"
                )

        return WalletPosition(
            net_invested_usd=invested,
            entry_market_cap=entry_market_cap,
            exit_market_cap=exit_market_cap,
            net_tokens=match.net_tokens,
            unmatched_sell_tokens=match.unmatched_sell_tokens,
            entry_timestamp=entry_timestamp,
            exit_timestamp=exit_timestamp,
            oracle_misses=len(missed),
        )


async def reconstruct(
    events: Iterable[TransferEvent],
    price_at: PriceLookup,
    fallback_market_cap: Decimal,
    now: Optional[int] = None,
) -> WalletPosition:
    """Convenience function to reconstruct a single position."""
    reconstructor = PositionReconstructor(price_at, fallback_market_cap, now=now)
    return await reconstructor.reconstruct(events)


@dataclass
class GroupReconstruction:
    """Reconstructed wallet records plus the wallets that failed."""

    records: list[WalletRecord] = field(default_factory=list)
    positions: dict[str, WalletPosition] = field(default_factory=dict)
    failures: dict[str, str] = field(default_factory=dict)


async def reconstruct_group(
    oracle: PriceOracleClient,
    token_id: str,
    wallet_addresses: Iterable[str],
    fallback_market_cap: Decimal,
    token_name: str = "",
    now: Optional[int] = None,
) -> GroupReconstruction:
    """
    Reconstruct every wallet of a group for one token.

    Wallets without buys or whose history cannot be fetched are recorded in
    ``failures`` and skipped; the rest of the group is still reconstructed.
    """
    result = GroupReconstruction()
    reconstructor = PositionReconstructor(oracle.price_at(token_id), fallback_market_cap, now=now)

    for index, address in enumerate(wallet_addresses, start=1):
        try:
            events = await oracle.get_transfer_history(address, token_id)
            position = await reconstructor.reconstruct(events, wallet_address=address)
        except (NoBuyActivity, TransferHistoryError) as e:
            console.print(f"[yellow]Skipping {address}: {e}[/yellow]")
            result.failures[address] = str(e)
            continue

        result.positions[address] = position
        result.records.append(
            WalletRecord.from_position(f"wallet-{index}", address, token_name or token_id, position)
        )

    return result
