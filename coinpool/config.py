"""Configuration management for the PnL redistribution tool."""

import os
from decimal import Decimal
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel


class OracleConfig(BaseModel):
    """Price and transaction data provider configuration."""

    dexscreener_url: str = "https://api.dexscreener.com"
    birdeye_url: str = "https://public-api.birdeye.so"
    helius_url: str = "https://api.helius.xyz"
    # Birdeye accepts "public" for basic usage
    birdeye_api_key: str = "public"
    helius_api_key: Optional[str] = None
    timeout_seconds: float = 30.0
    transaction_limit: int = 100


class RedistributionConfig(BaseModel):
    """Redistribution engine defaults."""

    default_policy: str = "equal"
    # Allowed drift of custom percentages from 100
    percentage_tolerance: Decimal = Decimal("0.01")


class Config(BaseModel):
    """Main configuration container."""

    oracle: OracleConfig = OracleConfig()
    redistribution: RedistributionConfig = RedistributionConfig()

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "Config":
        """Load configuration from environment variables."""
        if env_file:
            load_dotenv(env_file)
        else:
            load_dotenv()

        oracle = OracleConfig(
            dexscreener_url=os.getenv("DEXSCREENER_URL", "https://api.dexscreener.com"),
            birdeye_url=os.getenv("BIRDEYE_URL", "https://public-api.birdeye.so"),
            helius_url=os.getenv("HELIUS_URL", "https://api.helius.xyz"),
            birdeye_api_key=os.getenv("BIRDEYE_API_KEY", "public"),
            helius_api_key=os.getenv("HELIUS_API_KEY"),
            timeout_seconds=float(os.getenv("ORACLE_TIMEOUT_SECONDS", "30")),
            transaction_limit=int(os.getenv("HELIUS_TRANSACTION_LIMIT", "100")),
        )

        redistribution = RedistributionConfig(
            default_policy=os.getenv("DEFAULT_POLICY", "equal"),
            percentage_tolerance=Decimal(os.getenv("PERCENTAGE_TOLERANCE", "0.01")),
        )

        return cls(oracle=oracle, redistribution=redistribution)


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get or create the global configuration."""
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config
