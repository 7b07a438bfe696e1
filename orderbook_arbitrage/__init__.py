"""
Orderbook Arbitrage Bot.

Scans on-chain orderbook limit orders for fills that can be sold at a
profit on external AMM liquidity, proves them by gas estimation and
submits them through an arb contract.
"""

from orderbook_arbitrage.version import __version__

PROJECT_NAME = "orderbook-arbitrage"
VERSION = __version__

from orderbook_arbitrage.accounts import AccountPool
from orderbook_arbitrage.config_loader import load_bot_config, load_secrets
from orderbook_arbitrage.config_schema import BotConfig
from orderbook_arbitrage.logging_config import setup_logging
from orderbook_arbitrage.metrics import BotMetrics
from orderbook_arbitrage.processes.dryrun import find_opp, find_opp_with_retries
from orderbook_arbitrage.processes.process_orders import process_orders
from orderbook_arbitrage.processes.process_pair import process_pair
from orderbook_arbitrage.profit import estimate_profit
from orderbook_arbitrage.types import (
    Account,
    BatchResult,
    DryrunHaltReason,
    ProcessPairHaltReason,
    ProcessPairReport,
    ProcessPairReportStatus,
)

__all__ = [
    "PROJECT_NAME",
    "VERSION",
    "AccountPool",
    "load_bot_config",
    "load_secrets",
    "BotConfig",
    "setup_logging",
    "BotMetrics",
    "find_opp",
    "find_opp_with_retries",
    "process_orders",
    "process_pair",
    "estimate_profit",
    "Account",
    "BatchResult",
    "DryrunHaltReason",
    "ProcessPairHaltReason",
    "ProcessPairReport",
    "ProcessPairReportStatus",
]
