"""Shared fixtures for the coinpool test suite."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

import pytest

from coinpool.models import PriceSample, TransferDirection, TransferEvent, WalletRecord


def buy(amount, timestamp: int) -> TransferEvent:
    return TransferEvent(direction=TransferDirection.IN, token_amount=Decimal(str(amount)), timestamp=timestamp)


def sell(amount, timestamp: int) -> TransferEvent:
    return TransferEvent(direction=TransferDirection.OUT, token_amount=Decimal(str(amount)), timestamp=timestamp)


def sample(price, market_cap) -> PriceSample:
    return PriceSample(price=Decimal(str(price)), market_cap=Decimal(str(market_cap)))


class FakePriceLookup:
    """Price lookup backed by a dict; missing timestamps are misses."""

    def __init__(self, samples: dict[int, PriceSample], fail_on: tuple[int, ...] = ()):
        self.samples = samples
        self.fail_on = fail_on
        self.calls: list[int] = []

    async def __call__(self, timestamp: int) -> Optional[PriceSample]:
        self.calls.append(timestamp)
        if timestamp in self.fail_on:
            raise TimeoutError(f"lookup timed out at {timestamp}")
        return self.samples.get(timestamp)


@pytest.fixture
def make_wallet():
    """Factory for WalletRecord values."""

    def _make(
        wallet_id: str,
        invested=1000,
        entry=1_000_000,
        exit=1_000_000,
        address: Optional[str] = None,
    ) -> WalletRecord:
        return WalletRecord(
            id=wallet_id,
            wallet_address=address or f"addr-{wallet_id}",
            token_name="PEPE",
            invested_amount=Decimal(str(invested)),
            entry_market_cap=Decimal(str(entry)),
            exit_market_cap=Decimal(str(exit)),
        )

    return _make


@pytest.fixture
def example_three_events() -> list[TransferEvent]:
    """Buys of 100 @ t=0 and 50 @ t=10, one sell of 120 @ t=5."""
    return [buy(50, 10), sell(120, 5), buy(100, 0)]


@pytest.fixture
def example_three_prices() -> FakePriceLookup:
    return FakePriceLookup({
        0: sample("1", "1000000"),
        5: sample("1.5", "1500000"),
        10: sample("2", "2000000"),
    })
