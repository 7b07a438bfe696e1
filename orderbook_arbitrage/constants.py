"""
Constants and enums for the orderbook arbitrage bot.

Centralizes fixed-point units, gas factors and timeouts so that the
arithmetic in the pipeline matches the on-chain contracts exactly.
"""

from enum import Enum

# 18-decimal fixed point unit
ONE = 10**18

MAX_UINT256 = 2**256 - 1

# Gas limit is set to 103% of the node's estimate
GAS_LIMIT_MULTIPLIER = 103

# Extra margin applied on top of the configured gas coverage percentage
GAS_COVERAGE_HEADROOM = "1.05"

DEFAULT_POOL_FETCH_TIMEOUT_MS = 90_000
DEFAULT_ETH_PRICE_TIMEOUT_MS = 30_000
DEFAULT_RECEIPT_TIMEOUT_S = 120

REDACTED = "**********"

ROUTE_NO_WAY = "NoWay"

# Substrings of node errors meaning the signer cannot pay for gas
INSUFFICIENT_FUNDS_MARKERS = (
    "insufficient funds for gas",
    "gas required exceeds allowance",
    "insufficient_funds",
)


class ErrorSeverity(Enum):
    """Telemetry severity attached to a halted pair."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
