"""
FastAPI application exposing PnL redistribution to UI clients.

Run with: uvicorn web.app:app --reload
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from coinpool.config import get_config
from coinpool.errors import NoBuyActivity, PolicyInputInconsistent, TransferHistoryError
from coinpool.models import (
    CalculatedWallet,
    PolicyKind,
    RedistributionSummary,
    TokenInfo,
    WalletPosition,
    WalletRecord,
)
from coinpool.oracle import PriceOracleClient
from coinpool.pnl import compute_batch
from coinpool.reconstructor import PositionReconstructor
from coinpool.redistribution import RedistributionEngine, build_policy, validate_custom_percentages

# App setup
app = FastAPI(
    title="Coin Pool PnL",
    description="Reconstruct wallet positions and redistribute group P&L",
    version="0.1.0"
)


# Request/Response models
class CalculateRequest(BaseModel):
    wallets: list[WalletRecord]
    policy: PolicyKind = PolicyKind.EQUAL_SHARE
    percentages: dict[str, Decimal] = Field(default_factory=dict)


class CalculateResponse(BaseModel):
    wallets: list[CalculatedWallet]
    summary: RedistributionSummary
    excluded: dict[str, str]


class ReconstructRequest(BaseModel):
    wallet_address: str
    token_address: str
    fallback_market_cap: Optional[Decimal] = None


# Routes
@app.get("/api/health")
async def health():
    """Health check endpoint."""
    return {"status": "ok", "timestamp": datetime.now().isoformat()}


@app.post("/api/calculate", response_model=CalculateResponse)
async def calculate(req: CalculateRequest):
    """Compute P&L and redistribution for a group of wallets."""
    ids = [w.id for w in req.wallets]
    if len(set(ids)) != len(ids):
        raise HTTPException(status_code=422, detail="Wallet ids must be unique")

    results, excluded = compute_batch(req.wallets)
    if not results:
        raise HTTPException(status_code=422, detail={"message": "No wallets with valid data", "excluded": excluded})

    policy = build_policy(req.policy.value, req.percentages)
    engine = RedistributionEngine(results, policy)

    # Percentages only matter when something is redistributed
    if policy.kind == PolicyKind.CUSTOM_PERCENTAGE and engine.pool > 0:
        try:
            validate_custom_percentages(
                engine.losers,
                policy.percentages,
                get_config().redistribution.percentage_tolerance,
            )
        except PolicyInputInconsistent as e:
            raise HTTPException(status_code=400, detail=str(e))

    calculated = engine.redistribute()
    return CalculateResponse(
        wallets=calculated,
        summary=engine.summary(calculated),
        excluded=excluded,
    )


@app.post("/api/reconstruct", response_model=WalletPosition)
async def reconstruct(req: ReconstructRequest):
    """Reconstruct a wallet's net invested amount for one token."""
    async with PriceOracleClient(get_config().oracle) as oracle:
        fallback = req.fallback_market_cap
        if fallback is None:
            info = await oracle.get_token_info(req.token_address)
            fallback = info.market_cap if info else Decimal("0")

        try:
            events = await oracle.get_transfer_history(req.wallet_address, req.token_address)
            reconstructor = PositionReconstructor(oracle.price_at(req.token_address), fallback)
            return await reconstructor.reconstruct(events, wallet_address=req.wallet_address)
        except NoBuyActivity as e:
            raise HTTPException(status_code=422, detail=str(e))
        except TransferHistoryError as e:
            raise HTTPException(status_code=502, detail=str(e))


@app.get("/api/token/{address}", response_model=TokenInfo)
async def token(address: str):
    """Current token snapshot."""
    async with PriceOracleClient(get_config().oracle) as oracle:
        info = await oracle.get_token_info(address)

    if info is None:
        raise HTTPException(status_code=404, detail="Token not found")
    return info
