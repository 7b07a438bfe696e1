"""
Configuration schema for the orderbook arbitrage bot.

Validated with pydantic so that a malformed config fails at startup
rather than halfway through a round.
"""

from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .constants import (
    DEFAULT_ETH_PRICE_TIMEOUT_MS,
    DEFAULT_POOL_FETCH_TIMEOUT_MS,
    DEFAULT_RECEIPT_TIMEOUT_S,
)
from .types import Token


class TokenConfig(BaseModel):
    address: str = Field(..., min_length=42, max_length=42)
    decimals: int = Field(18, ge=0, le=77)
    symbol: str = ""

    def to_token(self) -> Token:
        return Token(self.address, self.decimals, self.symbol)


class ChainConfig(BaseModel):
    """Chain descriptor"""

    id: int = Field(..., gt=0)
    name: str = ""
    explorer_url: str = Field(..., description="Block explorer base url")
    native_wrapped_token: TokenConfig

    @field_validator("explorer_url")
    @classmethod
    def strip_trailing_slash(cls, v):
        return v.rstrip("/")


class BotConfig(BaseModel):
    """Complete bot configuration"""

    chain: ChainConfig
    rpc: List[str] = Field(..., min_length=1, description="RPC endpoints, in fallback order")
    quote_rpc: Optional[List[str]] = None
    flashbot_rpc: Optional[str] = None

    arb_address: str = Field(..., min_length=42, max_length=42)
    route_processor_address: str = Field(..., min_length=42, max_length=42)

    hops: int = Field(11, ge=1, le=64, description="Binary search iterations per mode")
    retries: int = Field(1, ge=1, le=3, description="Concurrent bundling modes")
    gas_coverage_percentage: str = Field(
        "100", description="Share of gas cost the trade must cover, in percent"
    )
    max_ratio: bool = False
    shuffle: bool = True
    bundle: bool = True

    pool_fetch_timeout_ms: int = Field(DEFAULT_POOL_FETCH_TIMEOUT_MS, gt=0)
    eth_price_timeout_ms: int = Field(DEFAULT_ETH_PRICE_TIMEOUT_MS, gt=0)
    receipt_timeout_s: int = Field(DEFAULT_RECEIPT_TIMEOUT_S, gt=0)
    test_block_number: Optional[int] = Field(None, ge=0)

    pool_blacklist: List[str] = Field(default_factory=list)
    metrics_port: Optional[int] = Field(None, ge=1, le=65535)

    @field_validator("gas_coverage_percentage", mode="before")
    @classmethod
    def validate_gas_coverage(cls, v):
        v = str(v).strip()
        try:
            value = Decimal(v)
        except InvalidOperation:
            raise ValueError(f"gas_coverage_percentage is not a number: {v}")
        if value < 0:
            raise ValueError("gas_coverage_percentage cannot be negative")
        return v

    @field_validator("pool_blacklist")
    @classmethod
    def lowercase_blacklist(cls, v):
        return [address.lower() for address in v]

    @model_validator(mode="after")
    def validate_rpc_urls(self):
        for url in [*self.rpc, *(self.quote_rpc or [])]:
            if not url.startswith(("http://", "https://", "ws://", "wss://")):
                raise ValueError(f"Invalid rpc url: {url}")
        return self

    @property
    def quote_rpcs(self) -> List[str]:
        return self.quote_rpc or self.rpc

    @property
    def gas_covered(self) -> bool:
        """Whether a trade must pay back any share of its gas cost."""
        return Decimal(self.gas_coverage_percentage) != 0

    @property
    def native_wrapped_token(self) -> Token:
        return self.chain.native_wrapped_token.to_token()

    model_config = {
        "extra": "forbid",
        "validate_assignment": True,
    }


def validate_bot_config(config_dict: Dict) -> BotConfig:
    """
    Validate a bot configuration dictionary

    Raises:
        pydantic.ValidationError: If configuration is invalid
    """
    return BotConfig(**config_dict)
