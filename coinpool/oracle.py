"""
Price oracle and transaction history client.

Wraps the three data providers the reconstructor depends on:
- DexScreener for the current token snapshot (price, FDV market cap)
- Birdeye for historical price and market cap at a timestamp
- Helius for a wallet's parsed transaction history

Lookups that find nothing return None. They never substitute made-up data.
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Awaitable, Callable, Optional

import httpx
from rich.console import Console

from .config import OracleConfig
from .errors import OracleMiss, TransferHistoryError
from .models import PriceSample, TokenInfo, TransferDirection, TransferEvent

console = Console()

PriceLookup = Callable[[int], Awaitable[Optional[PriceSample]]]


def _to_decimal(value: Any) -> Decimal:
    """Convert a provider number (int, float or numeric string) to Decimal."""
    if value is None or isinstance(value, bool):
        raise OracleMiss(f"Not a number: {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise OracleMiss(f"Not a number: {value!r}") from e


def parse_token_transfers(
    transactions: list[dict],
    wallet_address: str,
    mint_address: str,
) -> list[TransferEvent]:
    """
    Extract the wallet's transfers of one token from parsed transactions.

    A transfer into the wallet is a buy (IN), one out of it a sell (OUT).
    Amounts are normalized by the transfer's decimals.
    """
    events = []
    for tx in transactions:
        transfers = tx.get("tokenTransfers") or []
        timestamp = tx.get("timestamp")
        if timestamp is None:
            continue

        for transfer in transfers:
            if transfer.get("mint") != mint_address:
                continue

            amount = transfer.get("tokenAmount", 0)
            decimals = transfer.get("decimals")

            if transfer.get("toUserAccount") == wallet_address:
                events.append(TransferEvent.from_raw(TransferDirection.IN, amount, decimals, timestamp))
            if transfer.get("fromUserAccount") == wallet_address:
                events.append(TransferEvent.from_raw(TransferDirection.OUT, amount, decimals, timestamp))

    return events


class PriceOracleClient:
    """Async client for token prices, market caps and transfer history."""

    def __init__(self, config: OracleConfig, client: Optional[httpx.AsyncClient] = None):
        self.config = config
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self):
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.timeout_seconds)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._client and self._owns_client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("Oracle client not initialized. Use 'async with' context.")
        return self._client

    @property
    def _birdeye_headers(self) -> dict[str, str]:
        return {"X-API-KEY": self.config.birdeye_api_key}

    async def _fetch_pair(self, token_address: str) -> dict:
        """Fetch the first DexScreener pair for a token."""
        url = f"{self.config.dexscreener_url}/latest/dex/tokens/{token_address}"
        response = await self.client.get(url)
        response.raise_for_status()
        pairs = response.json().get("pairs") or []
        if not pairs:
            raise OracleMiss(f"No trading pairs for {token_address}")
        return pairs[0]

    async def get_token_info(self, token_address: str) -> Optional[TokenInfo]:
        """Fetch the current name, symbol, price and market cap of a token."""
        try:
            pair = await self._fetch_pair(token_address)
            base = pair.get("baseToken") or {}
            return TokenInfo(
                address=token_address,
                name=base.get("name") or "Unknown Token",
                symbol=base.get("symbol") or "UNKNOWN",
                price=_to_decimal(pair.get("priceUsd") or 0),
                market_cap=_to_decimal(pair.get("fdv") or 0),
            )
        except (httpx.HTTPError, ValueError, OracleMiss) as e:
            console.print(f"[red]Error fetching token data for {token_address}: {e}[/red]")
            return None

    async def _fetch_current_price(self, token_id: str) -> PriceSample:
        pair = await self._fetch_pair(token_id)
        return PriceSample(
            price=_to_decimal(pair.get("priceUsd")),
            market_cap=_to_decimal(pair.get("fdv")),
        )

    async def _fetch_historical_price(self, token_id: str, at_timestamp: int) -> PriceSample:
        url = f"{self.config.birdeye_url}/public/price_historical"
        params = {"address": token_id, "time": int(at_timestamp)}
        response = await self.client.get(url, params=params, headers=self._birdeye_headers)
        response.raise_for_status()

        data = (response.json() or {}).get("data") or {}
        price = data.get("price")
        market_cap = data.get("market_cap")
        if not isinstance(price, (int, float)) or not isinstance(market_cap, (int, float)):
            raise OracleMiss(f"No historical price for {token_id} at {at_timestamp}")

        return PriceSample(price=_to_decimal(price), market_cap=_to_decimal(market_cap))

    async def get_price(self, token_id: str, at_timestamp: Optional[int] = None) -> Optional[PriceSample]:
        """
        Look up a price/market cap sample.

        Returns the current sample when at_timestamp is omitted, the
        historical one otherwise. Any failure is reported as None.
        """
        try:
            if at_timestamp is None:
                return await self._fetch_current_price(token_id)
            return await self._fetch_historical_price(token_id, at_timestamp)
        except (httpx.HTTPError, ValueError, OracleMiss) as e:
            when = "now" if at_timestamp is None else str(at_timestamp)
            console.print(f"[yellow]Price lookup missed for {token_id} at {when}: {e}[/yellow]")
            return None

    def price_at(self, token_id: str) -> PriceLookup:
        """Bind get_price to one token for use by the reconstructor."""

        async def lookup(timestamp: int) -> Optional[PriceSample]:
            return await self.get_price(token_id, timestamp)

        return lookup

    async def get_transfer_history(self, wallet_address: str, token_id: str) -> list[TransferEvent]:
        """Fetch the wallet's transfers of one token from Helius."""
        if not self.config.helius_api_key:
            raise TransferHistoryError("HELIUS_API_KEY is not configured")

        url = f"{self.config.helius_url}/v0/addresses/{wallet_address}/transactions"
        params = {"api-key": self.config.helius_api_key, "limit": self.config.transaction_limit}

        try:
            response = await self.client.get(url, params=params)
            response.raise_for_status()
            transactions = response.json()
        except httpx.HTTPStatusError as e:
            raise TransferHistoryError(
                f"Helius API error: {e.response.status_code}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise TransferHistoryError(f"Failed to fetch wallet data: {e}") from e

        if not isinstance(transactions, list):
            raise TransferHistoryError("Unexpected transaction history payload")

        try:
            return parse_token_transfers(transactions, wallet_address, token_id)
        except (InvalidOperation, ValueError, TypeError, AttributeError) as e:
            raise TransferHistoryError(f"Malformed transfer in history for {wallet_address}: {e}") from e
