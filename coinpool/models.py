"""Data models for position reconstruction and PnL redistribution."""

from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class TransferDirection(str, Enum):
    IN = "in"
    OUT = "out"


class PolicyKind(str, Enum):
    EQUAL_SHARE = "equal"
    PROPORTIONAL = "proportional"
    CUSTOM_PERCENTAGE = "custom"
    FULL_CLAWBACK = "clawback"


class TransferEvent(BaseModel):
    """One observed token movement for a wallet."""

    model_config = ConfigDict(frozen=True)

    direction: TransferDirection
    token_amount: Decimal = Field(ge=0)
    timestamp: int

    @classmethod
    def from_raw(
        cls,
        direction: TransferDirection,
        raw_amount,
        decimals: Optional[int],
        timestamp: int,
    ) -> "TransferEvent":
        """Build an event from a provider amount expressed in base units."""
        amount = Decimal(str(raw_amount)) / (Decimal(10) ** (decimals or 0))
        return cls(direction=direction, token_amount=amount, timestamp=int(timestamp))


class PriceSample(BaseModel):
    """Price and market cap of a token at a point in time."""

    model_config = ConfigDict(frozen=True)

    price: Decimal = Field(ge=0)
    market_cap: Decimal = Field(ge=0)


class TokenInfo(BaseModel):
    """Current snapshot of a token."""

    address: str
    name: str
    symbol: str
    price: Decimal = Decimal("0")
    market_cap: Decimal = Decimal("0")


class WalletPosition(BaseModel):
    """Reconstructed cost basis for one wallet/token pair."""

    net_invested_usd: Decimal = Field(ge=0)
    entry_market_cap: Decimal
    exit_market_cap: Decimal
    net_tokens: Decimal = Decimal("0")
    unmatched_sell_tokens: Decimal = Decimal("0")
    entry_timestamp: Optional[int] = None
    exit_timestamp: Optional[int] = None
    oracle_misses: int = 0

    @property
    def fully_exited(self) -> bool:
        """Whether every bought unit was sold again."""
        return self.net_invested_usd == 0 and self.net_tokens == 0


class WalletRecord(BaseModel):
    """A wallet's investment, as entered by the user or reconstructed."""

    model_config = ConfigDict(frozen=True)

    id: str
    wallet_address: str
    token_name: str
    invested_amount: Decimal = Field(ge=0)
    entry_market_cap: Decimal = Field(ge=0)
    exit_market_cap: Decimal = Field(ge=0)

    @classmethod
    def from_position(
        cls,
        wallet_id: str,
        wallet_address: str,
        token_name: str,
        position: WalletPosition,
    ) -> "WalletRecord":
        return cls(
            id=wallet_id,
            wallet_address=wallet_address,
            token_name=token_name,
            invested_amount=position.net_invested_usd,
            entry_market_cap=position.entry_market_cap,
            exit_market_cap=position.exit_market_cap,
        )


class PnLResult(BaseModel):
    """Raw profit or loss of a single wallet."""

    model_config = ConfigDict(frozen=True)

    wallet: WalletRecord
    raw_pnl: Decimal
    pnl_percentage: Decimal
    is_profit: bool


class CalculatedWallet(WalletRecord):
    """A wallet record annotated with PnL and its redistribution."""

    raw_pnl: Decimal
    pnl_percentage: Decimal
    redistribution_amount: Decimal = Decimal("0")
    final_balance: Decimal
    is_profit: bool


class RedistributionPolicy(BaseModel):
    """How the redistribution pool is split among losing wallets."""

    model_config = ConfigDict(frozen=True)

    kind: PolicyKind = PolicyKind.EQUAL_SHARE
    # wallet id -> percentage of the pool, only read by CUSTOM_PERCENTAGE
    percentages: dict[str, Decimal] = Field(default_factory=dict)

    @classmethod
    def equal_share(cls) -> "RedistributionPolicy":
        return cls(kind=PolicyKind.EQUAL_SHARE)

    @classmethod
    def proportional(cls) -> "RedistributionPolicy":
        return cls(kind=PolicyKind.PROPORTIONAL)

    @classmethod
    def custom(cls, percentages: dict[str, Decimal]) -> "RedistributionPolicy":
        return cls(kind=PolicyKind.CUSTOM_PERCENTAGE, percentages=percentages)

    @classmethod
    def full_clawback(cls) -> "RedistributionPolicy":
        return cls(kind=PolicyKind.FULL_CLAWBACK)


class RedistributionSummary(BaseModel):
    """Group totals for one redistribution pass."""

    policy: PolicyKind
    wallet_count: int
    winners: int
    losers: int
    total_invested: Decimal = Decimal("0")
    total_raw_pnl: Decimal = Decimal("0")
    total_final_balance: Decimal = Decimal("0")
    total_profit: Decimal = Decimal("0")
    total_loss: Decimal = Decimal("0")
    pool: Decimal = Decimal("0")
    redistributed: Decimal = Decimal("0")

    @property
    def net_redistribution(self) -> Decimal:
        """Should be zero for a consistent policy input."""
        return self.total_final_balance - self.total_invested - self.total_raw_pnl
