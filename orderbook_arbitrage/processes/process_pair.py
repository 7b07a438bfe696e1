"""
Pair processor: the per-order state machine.

quote -> gas price -> pools -> native prices -> vault balance ->
opportunity search -> submission -> receipt settlement. Infrastructure failures halt the pair
with a ``ProcessPairHaltReason``; a missing opportunity is a normal
``NO_OPPORTUNITY`` report.
"""

import asyncio
from typing import Any, Dict, Optional, Set

from ..accounts import add_bounty_token, apply_receipt
from ..config_schema import BotConfig
from ..interfaces import ArbBinding, ChainClient, LiquiditySource, QuoteService, Signer
from ..orders import fetch_vault_balance, quote_single_order
from ..pricing import get_eth_price, get_market_quote, mark_fetched
from ..profit import get_total_income
from ..receipts import (
    get_actual_clear_amount,
    get_income,
    get_receipt_gas_cost,
    receipt_succeeded,
)
from ..types import (
    Account,
    OrderPairObject,
    ProcessPairHaltReason,
    ProcessPairReport,
    ProcessPairReportStatus,
    ProcessPairResult,
)
from ..utils import error_snapshot, format_units, get_logger, prefix_keys, to_json
from .dryrun import find_opp_with_retries

logger = get_logger(__name__)


async def process_pair(
    *,
    config: BotConfig,
    order_pair: OrderPairObject,
    chain: ChainClient,
    liquidity: LiquiditySource,
    quote_service: QuoteService,
    account: Account,
    arb: ArbBinding,
    fetched_pair_pools: Set[str],
    relay_signer: Optional[Signer] = None,
) -> ProcessPairResult:
    """
    Try to clear the pair's single take-order against market liquidity.

    Args:
        config: Bot configuration
        order_pair: Pair narrowed to one take-order
        chain: Chain reader used for gas price, block number and receipts
        liquidity: Pool registry and pathfinder
        quote_service: Order quoting backend
        account: Account whose signer estimates and submits the transaction
        arb: Arb contract encoder
        fetched_pair_pools: Pairs whose pools were already fetched this round,
            updated in place
        relay_signer: Optional private relay signer used for submission

    Returns:
        The pair's report, with a halt reason when processing stopped on
        an infrastructure failure. ``account`` on the result is the account
        after paying for any mined transaction.
    """
    pair = order_pair.pair
    span_attributes: Dict[str, Any] = {
        "details.orders": [t.id for t in order_pair.take_orders],
        "details.pair": pair,
    }
    result = ProcessPairResult(
        report=_report(order_pair, None),
        span_attributes=span_attributes,
        account=account,
    )

    def halt(reason: ProcessPairHaltReason, error: Any = None) -> ProcessPairResult:
        result.reason = reason
        if error is not None:
            result.error = error_snapshot("", error)
        return result

    from_token = order_pair.sell
    to_token = order_pair.buy
    block_pin = config.test_block_number
    gas_covered = config.gas_covered

    # quote
    try:
        quote = await quote_single_order(
            order_pair, config.quote_rpcs, quote_service, block_pin
        )
    except Exception as e:
        return halt(ProcessPairHaltReason.FAILED_TO_QUOTE, e)
    if quote.max_output == 0:
        result.report = _report(order_pair, ProcessPairReportStatus.ZERO_OUTPUT)
        return result

    span_attributes["details.quote"] = to_json(
        {
            "maxOutput": format_units(quote.max_output),
            "ratio": format_units(quote.ratio),
        }
    )

    # gas price
    try:
        gas_price = await chain.get_gas_price()
    except Exception as e:
        return halt(ProcessPairHaltReason.FAILED_TO_GET_GAS_PRICE, e)
    span_attributes["details.gasPrice"] = str(gas_price)

    # pools
    if pair not in fetched_pair_pools:
        try:
            await asyncio.wait_for(
                liquidity.fetch_pools(
                    from_token,
                    to_token,
                    set(config.pool_blacklist),
                    config.pool_fetch_timeout_ms,
                    block_pin,
                ),
                timeout=config.pool_fetch_timeout_ms / 1000,
            )
        except Exception as e:
            return halt(ProcessPairHaltReason.FAILED_TO_GET_POOLS, e)
        mark_fetched(
            fetched_pair_pools, order_pair.buy_token_symbol, order_pair.sell_token_symbol
        )

    try:
        market_quote = get_market_quote(config, liquidity, from_token, to_token, gas_price)
    except Exception as e:
        logger.debug(f"Market quote of {pair} unavailable: {e}")
        market_quote = None
    if market_quote:
        span_attributes["details.marketPrice"] = market_quote["price"]
        span_attributes["details.amountOut"] = market_quote["amount_out"]

    # native token prices
    try:
        input_to_eth_price = await get_eth_price(
            config, liquidity, to_token, gas_price, block_number=block_pin
        )
        output_to_eth_price = await get_eth_price(
            config, liquidity, from_token, gas_price, block_number=block_pin
        )
    except Exception as e:
        if gas_covered:
            return halt(ProcessPairHaltReason.FAILED_TO_GET_ETH_PRICE, e)
        input_to_eth_price = output_to_eth_price = 0
    else:
        if input_to_eth_price is None or output_to_eth_price is None:
            if gas_covered:
                return halt(ProcessPairHaltReason.FAILED_TO_GET_ETH_PRICE)
            # gas coverage disabled, prices are only informative
            input_to_eth_price = output_to_eth_price = 0
        else:
            native_symbol = config.native_wrapped_token.symbol
            mark_fetched(fetched_pair_pools, order_pair.buy_token_symbol, native_symbol)
            mark_fetched(fetched_pair_pools, order_pair.sell_token_symbol, native_symbol)
            span_attributes["details.inputToEthPrice"] = format_units(input_to_eth_price)
            span_attributes["details.outputToEthPrice"] = format_units(output_to_eth_price)

    # vault balance, the quoted max output stands in when it cannot be read
    try:
        vault_balance = await fetch_vault_balance(order_pair, chain)
    except Exception as e:
        span_attributes["details.vaultBalanceError"] = error_snapshot(
            "failed to get vault balance", e
        )
    else:
        order_pair.take_orders[0].vault_balance = vault_balance
        span_attributes["details.vaultBalance"] = str(vault_balance)

    # opportunity search
    search = await find_opp_with_retries(
        order_pair=order_pair,
        liquidity=liquidity,
        from_token=from_token,
        to_token=to_token,
        signer=account.signer,
        gas_price=gas_price,
        arb=arb,
        eth_price=input_to_eth_price,
        config=config,
    )
    if not search.ok:
        span_attributes.update(prefix_keys("details.", search.span_attributes))
        span_attributes["details.reason"] = search.reason.name
        result.report = _report(order_pair, ProcessPairReportStatus.NO_OPPORTUNITY)
        return result

    opportunity = search.value
    raw_tx = opportunity.raw_tx
    for key, value in search.span_attributes.items():
        if key in ("oppBlockNumber", "foundOpp"):
            span_attributes[key] = value
        else:
            span_attributes[f"details.{key}"] = value
    if opportunity.estimated_profit is not None:
        span_attributes["details.estimatedProfit"] = format_units(opportunity.estimated_profit)

    result.report = _report(order_pair, ProcessPairReportStatus.FOUND_OPPORTUNITY)
    span_attributes["foundOpp"] = True
    logger.info(
        f"OPPORTUNITY_FOUND: {pair} order {order_pair.take_orders[0].id} "
        f"max input {opportunity.maximum_input}"
    )

    try:
        block_number = await chain.get_block_number()
        span_attributes["details.blockNumber"] = block_number
        span_attributes["details.blockNumberDiff"] = block_number - opportunity.opp_block_number
    except Exception as e:
        # the opportunity can still be cleared
        span_attributes["details.blockNumberError"] = error_snapshot(
            "failed to get block number", e
        )

    # submission
    sender = relay_signer if relay_signer is not None else account.signer
    try:
        tx_hash = await sender.send_transaction(raw_tx)
    except Exception as e:
        span_attributes["details.rawTx"] = to_json({**raw_tx, "from": account.address})
        return halt(ProcessPairHaltReason.TX_FAILED, e)

    tx_url = f"{config.chain.explorer_url}/tx/{tx_hash}"
    span_attributes["details.txUrl"] = tx_url
    logger.info(f"TX_SUBMITTED: {tx_url}")

    # receipt
    try:
        receipt = await chain.wait_for_receipt(tx_hash)
    except Exception as e:
        partial_receipt = getattr(e, "receipt", None)
        gas_cost = get_receipt_gas_cost(partial_receipt)
        result.account = apply_receipt(account, partial_receipt)
        result.report = _report(
            order_pair, ProcessPairReportStatus.FOUND_OPPORTUNITY, tx_url=tx_url
        )
        result.report.actual_gas_cost = gas_cost
        result.gas_cost = gas_cost
        return halt(ProcessPairHaltReason.TX_MINE_FAILED, e)

    actual_gas_cost = get_receipt_gas_cost(receipt) or 0
    account = apply_receipt(account, receipt)
    result.account = account

    if not receipt_succeeded(receipt):
        logger.warning(f"TX_REVERTED: {tx_url}")
        result.report = _report(
            order_pair,
            ProcessPairReportStatus.FOUND_OPPORTUNITY,
            tx_url=tx_url,
            actual_gas_cost=actual_gas_cost,
            cleared_orders=[t.id for t in order_pair.take_orders],
            successful=False,
        )
        result.gas_cost = actual_gas_cost
        return halt(ProcessPairHaltReason.TX_MINE_FAILED, "transaction reverted")

    span_attributes["didClear"] = True
    cleared_amount = get_actual_clear_amount(raw_tx["to"], order_pair.orderbook, receipt)
    input_token_income = get_income(account.address, receipt, order_pair.buy_token)
    output_token_income = get_income(account.address, receipt, order_pair.sell_token)
    income = get_total_income(
        input_token_income,
        output_token_income,
        input_to_eth_price,
        output_to_eth_price,
        order_pair.buy_token_decimals,
        order_pair.sell_token_decimals,
    )
    net_profit = income - actual_gas_cost if income is not None else None

    if income is not None:
        span_attributes["details.income"] = format_units(income)
        span_attributes["details.netProfit"] = format_units(net_profit)
        span_attributes["details.actualGasCost"] = format_units(actual_gas_cost)
    if input_token_income:
        span_attributes["details.inputTokenIncome"] = format_units(
            input_token_income, order_pair.buy_token_decimals
        )
    if output_token_income:
        span_attributes["details.outputTokenIncome"] = format_units(
            output_token_income, order_pair.sell_token_decimals
        )

    result.report = _report(
        order_pair,
        ProcessPairReportStatus.FOUND_OPPORTUNITY,
        tx_url=tx_url,
        cleared_amount=cleared_amount,
        actual_gas_cost=actual_gas_cost,
        income=income,
        input_token_income=input_token_income,
        output_token_income=output_token_income,
        net_profit=net_profit,
        cleared_orders=[t.id for t in order_pair.take_orders],
        successful=True,
    )
    result.gas_cost = actual_gas_cost

    if input_token_income and input_token_income > 0:
        account = add_bounty_token(account, order_pair.buy)
    if output_token_income and output_token_income > 0:
        account = add_bounty_token(account, order_pair.sell)
    result.account = account

    logger.info(
        f"TX_CLEARED: {pair} cleared {cleared_amount}, net profit "
        f"{format_units(net_profit) if net_profit is not None else 'unknown'}"
    )
    return result


def _report(
    order_pair: OrderPairObject,
    status: Optional[ProcessPairReportStatus],
    **fields,
) -> ProcessPairReport:
    return ProcessPairReport(
        status=status,
        token_pair=order_pair.pair,
        buy_token=order_pair.buy_token,
        sell_token=order_pair.sell_token,
        **fields,
    )
