"""
Batch orchestrator.

Runs the pair processor for every (orderbook, pair, take-order) triple in
turn, rotating accounts between pairs, and turns every outcome, halted or
not, into a report. No exception escapes a batch.
"""

import logging
import random
import time
from typing import Callable, List, Optional, Sequence, Tuple

from ..accounts import AccountPool
from ..config_schema import BotConfig
from ..constants import ErrorSeverity
from ..interfaces import ArbBinding, ChainClient, LiquiditySource, QuoteService, Signer
from ..metrics import BotMetrics
from ..orders import bundle_orders, quote_orders
from ..types import (
    Account,
    BatchResult,
    OrderDetails,
    ProcessPairHaltReason,
    ProcessPairReport,
    ProcessPairResult,
)
from ..utils import error_snapshot, get_logger, to_json
from .process_pair import process_pair

logger = get_logger(__name__)

# reason -> (severity, log level, message)
HALT_POLICY = {
    ProcessPairHaltReason.FAILED_TO_QUOTE: (
        ErrorSeverity.MEDIUM,
        logging.INFO,
        "failed to quote order",
    ),
    ProcessPairHaltReason.FAILED_TO_GET_GAS_PRICE: (
        ErrorSeverity.MEDIUM,
        logging.ERROR,
        "failed to get gas price",
    ),
    ProcessPairHaltReason.FAILED_TO_GET_POOLS: (
        ErrorSeverity.MEDIUM,
        logging.ERROR,
        "failed to get pool details",
    ),
    ProcessPairHaltReason.FAILED_TO_GET_ETH_PRICE: (
        ErrorSeverity.MEDIUM,
        logging.INFO,
        "failed to get eth price",
    ),
    ProcessPairHaltReason.TX_FAILED: (
        ErrorSeverity.MEDIUM,
        logging.WARNING,
        "transaction failed",
    ),
    ProcessPairHaltReason.TX_MINE_FAILED: (
        ErrorSeverity.MEDIUM,
        logging.WARNING,
        "transaction failed",
    ),
    ProcessPairHaltReason.UNEXPECTED_ERROR: (
        ErrorSeverity.HIGH,
        logging.ERROR,
        "unexpected error",
    ),
}


def classify_halt(reason: ProcessPairHaltReason) -> Tuple[ErrorSeverity, int, str]:
    """Severity, log level and message of a halt reason."""
    return HALT_POLICY.get(reason, HALT_POLICY[ProcessPairHaltReason.UNEXPECTED_ERROR])


def update_avg_gas_cost(avg_gas_cost: Optional[int], gas_cost: Optional[int]) -> Optional[int]:
    """Fold a paid gas cost into the running average as ``(avg + cost) // 2``."""
    if not gas_cost:
        return avg_gas_cost
    if avg_gas_cost is None:
        return gas_cost
    return (avg_gas_cost + gas_cost) // 2


async def process_orders(
    *,
    config: BotConfig,
    orders_details: Sequence[OrderDetails],
    chain: ChainClient,
    liquidity: LiquiditySource,
    quote_service: QuoteService,
    account_pool: AccountPool,
    arb: ArbBinding,
    relay_signer_factory: Optional[Callable[[Account], Signer]] = None,
    metrics: Optional[BotMetrics] = None,
    rng: Optional[random.Random] = None,
) -> BatchResult:
    """
    Process one round of orders.

    Orders are bundled and bulk quoted first; pairs left without output are
    not processed. Each remaining take-order is processed sequentially with
    the account at the head of the pool, which rotates after every pair.

    Args:
        config: Bot configuration
        orders_details: Orders delivered by the order source
        account_pool: Accounts lent out one pair at a time
        relay_signer_factory: Builds a private relay signer for an account
        metrics: Optional metrics sink
        rng: Random source for shuffling, for reproducible runs

    Returns:
        Every report of the round in processing order, with the running
        average gas cost of mined transactions
    """
    started = time.monotonic()
    reports: List[ProcessPairReport] = []
    avg_gas_cost: Optional[int] = None

    bundled = bundle_orders(
        orders_details, shuffle=config.shuffle, bundle=config.bundle, rng=rng
    )
    try:
        bundled = await quote_orders(
            bundled, config.quote_rpcs, quote_service, config.test_block_number
        )
    except Exception as e:
        logger.error(error_snapshot("BATCH_ABORTED: failed to quote orders", e))
        batch = BatchResult(reports=reports)
        if metrics is not None:
            metrics.record_batch(batch, time.monotonic() - started)
        return batch

    # pools fetched during this round, by "A/B" symbol pair
    fetched_pair_pools = set()

    for orderbook_pairs in bundled:
        for pair in orderbook_pairs:
            for take_order in pair.take_orders:
                order_pair = pair.with_take_order(take_order)
                account = account_pool.current()
                logger.debug(f"PAIR_START: {order_pair.pair} order {take_order.id}")

                try:
                    result = await process_pair(
                        config=config,
                        order_pair=order_pair,
                        chain=chain,
                        liquidity=liquidity,
                        quote_service=quote_service,
                        account=account,
                        arb=arb,
                        fetched_pair_pools=fetched_pair_pools,
                        relay_signer=(
                            relay_signer_factory(account) if relay_signer_factory else None
                        ),
                    )
                except Exception as e:
                    result = ProcessPairResult(
                        report=ProcessPairReport(
                            status=None,
                            token_pair=order_pair.pair,
                            buy_token=order_pair.buy_token,
                            sell_token=order_pair.sell_token,
                        ),
                        reason=ProcessPairHaltReason.UNEXPECTED_ERROR,
                        error=error_snapshot("", e),
                        account=account,
                    )

                avg_gas_cost = update_avg_gas_cost(avg_gas_cost, result.gas_cost)
                severity = _log_result(result)
                reports.append(result.report)

                if metrics is not None:
                    metrics.record_result(result, severity)
                if result.account is not None:
                    account_pool.settle(result.account)
                account_pool.rotate()

    batch = BatchResult(reports=reports, avg_gas_cost=avg_gas_cost)
    if metrics is not None:
        metrics.record_batch(batch, time.monotonic() - started)
    logger.info(
        f"BATCH_DONE: {len(reports)} pairs processed, "
        f"{sum(1 for r in reports if r.successful)} cleared"
    )
    return batch


def _log_result(result: ProcessPairResult) -> Optional[ErrorSeverity]:
    """Log a processed pair, copying a halt onto its report. Returns the halt severity."""
    report = result.report
    attributes = to_json(result.span_attributes)

    if not result.halted:
        status = report.status.name if report.status is not None else "UNKNOWN"
        logger.info(f"PAIR_DONE: {report.token_pair} {status}")
        logger.debug(f"{report.token_pair} details: {attributes}")
        return None

    report.reason = result.reason
    report.error = result.error
    severity, level, message = classify_halt(result.reason)
    if result.reason in (
        ProcessPairHaltReason.TX_FAILED,
        ProcessPairHaltReason.TX_MINE_FAILED,
    ):
        message = f"unsuccessful clear, {message}"
    logger.log(
        level,
        f"PAIR_HALTED: {report.token_pair} {result.reason.name} "
        f"[{severity.value}] {message}: {result.error}",
    )
    logger.debug(f"{report.token_pair} details: {attributes}")
    return severity
