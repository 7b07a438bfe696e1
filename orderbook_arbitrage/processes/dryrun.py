"""
Opportunity search against external liquidity.

``dryrun`` proves a single fill size by gas estimation, ``find_opp``
bisects the fill size over a fixed number of hops and
``find_opp_with_retries`` runs ``find_opp`` for several bundling modes
concurrently and keeps the largest fill.
"""

import asyncio
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional, Tuple

from ..config_schema import BotConfig
from ..constants import GAS_COVERAGE_HEADROOM, GAS_LIMIT_MULTIPLIER, MAX_UINT256, ONE
from ..contracts import encode_route_data
from ..interfaces import ArbBinding, LiquiditySource, Signer
from ..pricing import visualize_route
from ..profit import estimate_profit
from ..types import (
    BundlingMode,
    DryrunHaltReason,
    DryrunOutcome,
    OpportunityData,
    OrderPairObject,
    TakeOrdersConfig,
    Token,
)
from ..utils import (
    error_snapshot,
    format_units,
    get_logger,
    is_insufficient_funds_error,
    scale_from_18,
    scale_to_18,
    to_json,
)

logger = get_logger(__name__)


def gas_limit_with_headroom(estimated_gas: int) -> int:
    """103% of the estimate, rounded up."""
    return -(-estimated_gas * GAS_LIMIT_MULTIPLIER // 100)


def gas_coverage_headroom(gas_coverage_percentage: str) -> int:
    """Configured gas coverage percentage plus 5%, rounded to a whole percent."""
    value = Decimal(gas_coverage_percentage) * Decimal(GAS_COVERAGE_HEADROOM)
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


async def _estimate_gas(
    signer: Signer,
    raw_tx: Dict[str, Any],
    span_attributes: Dict[str, Any],
    route_visual,
) -> Tuple[Optional[int], Optional[int], Optional[DryrunHaltReason]]:
    """Block number and gas estimate of ``raw_tx``, or the failure reason."""
    try:
        block_number = await signer.get_block_number()
        span_attributes["blockNumber"] = block_number
        estimated_gas = await signer.estimate_gas(raw_tx)
    except Exception as e:
        span_attributes["route"] = route_visual
        span_attributes["error"] = error_snapshot("", e)
        if is_insufficient_funds_error(e):
            return None, None, DryrunHaltReason.NO_WALLET_FUND
        return None, None, DryrunHaltReason.NO_OPPORTUNITY
    return block_number, estimated_gas, None


async def dryrun(
    *,
    mode: BundlingMode,
    order_pair: OrderPairObject,
    liquidity: LiquiditySource,
    from_token: Token,
    to_token: Token,
    signer: Signer,
    maximum_input: int,
    gas_price: int,
    arb: ArbBinding,
    eth_price: int,
    config: BotConfig,
) -> DryrunOutcome:
    """
    Check whether taking ``maximum_input`` of the order's output and selling
    it on the market is executable, by estimating gas for the transaction.

    Gas is estimated once with a zero minimum sender output; when gas
    coverage is enabled it is estimated again with a minimum sender output
    covering the gas cost, so the transaction only passes if the trade
    pays for itself.

    Args:
        mode: Bundling strategy of the take-orders list
        order_pair: Pair with the single take-order being tried
        from_token: Token sold on the market (the order's output)
        to_token: Token bought on the market (the order's input)
        maximum_input: Fill size in ``from_token`` native decimals
        eth_price: Buy token price used to convert gas cost into the token

    Returns:
        Success with the transaction ready to submit, or one of
        NO_ROUTE, NO_WALLET_FUND, NO_OPPORTUNITY with diagnostics
    """
    span_attributes: Dict[str, Any] = {"maxInput": str(maximum_input)}

    maximum_input_fixed = scale_to_18(maximum_input, order_pair.sell_token_decimals)
    if maximum_input_fixed == 0:
        span_attributes["error"] = "zero maximum input"
        return DryrunOutcome.failure(DryrunHaltReason.NO_OPPORTUNITY, span_attributes)

    pool_map = liquidity.get_pool_map(from_token, to_token)
    route = liquidity.find_best_route(
        pool_map, config.chain.id, from_token, maximum_input, to_token, gas_price
    )
    if route.no_way:
        span_attributes["route"] = "no-way"
        return DryrunOutcome.failure(DryrunHaltReason.NO_ROUTE, span_attributes)

    rate_fixed = scale_to_18(route.amount_out, order_pair.buy_token_decimals)
    price = rate_fixed * ONE // maximum_input_fixed
    span_attributes["marketPrice"] = format_units(price)

    route_visual = visualize_route(from_token, to_token, route.legs)
    route_code = liquidity.route_code(
        pool_map, route, from_token, to_token, arb.address, config.route_processor_address
    )

    take_orders_config = TakeOrdersConfig(
        minimum_input=1,
        maximum_input=maximum_input,
        maximum_io_ratio=MAX_UINT256 if config.max_ratio else price,
        orders=mode.select(order_pair.take_orders),
        data=encode_route_data(route_code),
    )
    raw_tx: Dict[str, Any] = {
        "data": arb.encode_arb(take_orders_config, 0),
        "to": arb.address,
        "gasPrice": gas_price,
    }

    block_number, estimated_gas, reason = await _estimate_gas(
        signer, raw_tx, span_attributes, route_visual
    )
    if reason is not None:
        return DryrunOutcome.failure(reason, span_attributes)

    gas_limit = gas_limit_with_headroom(estimated_gas)
    raw_tx["gas"] = gas_limit
    gas_cost = gas_limit * gas_price
    gas_cost_in_token = (
        eth_price * gas_cost // 10 ** (36 - order_pair.buy_token_decimals)
    )

    # zero coverage means a zero minimum sender output, already estimated above
    if config.gas_covered:
        headroom = gas_coverage_headroom(config.gas_coverage_percentage)
        raw_tx["data"] = arb.encode_arb(
            take_orders_config, gas_cost_in_token * headroom // 100
        )
        block_number, _, reason = await _estimate_gas(
            signer, raw_tx, span_attributes, route_visual
        )
        if reason is not None:
            return DryrunOutcome.failure(reason, span_attributes)

    opportunity = OpportunityData(
        raw_tx=raw_tx,
        maximum_input=maximum_input,
        gas_cost_in_token=gas_cost_in_token,
        take_orders_config=take_orders_config,
        price=price,
        route_visual=route_visual,
        opp_block_number=block_number,
        estimated_profit=estimate_profit(
            order_pair, eth_price, market_price=price, max_input=maximum_input_fixed
        ),
    )
    return DryrunOutcome.success(opportunity, {"oppBlockNumber": block_number})


async def find_opp(
    *,
    mode: BundlingMode,
    order_pair: OrderPairObject,
    liquidity: LiquiditySource,
    from_token: Token,
    to_token: Token,
    signer: Signer,
    vault_balance: int,
    gas_price: int,
    arb: ArbBinding,
    eth_price: int,
    config: BotConfig,
) -> DryrunOutcome:
    """
    Bisect the fill size over ``config.hops`` dryruns.

    Starts at the full vault balance. Hop ``i`` moves the size up by
    ``vault_balance // 2**i`` after a success and down by the same amount
    after a failure. A success on the first or the last hop is returned;
    NO_WALLET_FUND aborts at once. When the search ends on a failure the
    reason is NO_ROUTE if every hop failed for lack of a route, else
    NO_OPPORTUNITY, with each failed hop's diagnostics under ``hops``.
    """
    no_route = True
    maximum_input = vault_balance
    all_hops_attributes = []

    for i in range(1, config.hops + 1):
        outcome = await dryrun(
            mode=mode,
            order_pair=order_pair,
            liquidity=liquidity,
            from_token=from_token,
            to_token=to_token,
            signer=signer,
            maximum_input=maximum_input,
            gas_price=gas_price,
            arb=arb,
            eth_price=eth_price,
            config=config,
        )

        if outcome.ok:
            if i == 1 or i == config.hops:
                return outcome
            maximum_input += vault_balance // 2**i
            continue

        if outcome.reason is DryrunHaltReason.NO_WALLET_FUND:
            return DryrunOutcome.failure(DryrunHaltReason.NO_WALLET_FUND)

        if outcome.reason is not DryrunHaltReason.NO_ROUTE:
            no_route = False

        # raw error is kept for the first hop only, later ones repeat it
        if i != 1:
            outcome.span_attributes.pop("error", None)
        all_hops_attributes.append(to_json(outcome.span_attributes))

        maximum_input -= vault_balance // 2**i

    reason = DryrunHaltReason.NO_ROUTE if no_route else DryrunHaltReason.NO_OPPORTUNITY
    return DryrunOutcome.failure(reason, {"hops": all_hops_attributes})


async def find_opp_with_retries(
    *,
    order_pair: OrderPairObject,
    liquidity: LiquiditySource,
    from_token: Token,
    to_token: Token,
    signer: Signer,
    gas_price: int,
    arb: ArbBinding,
    eth_price: int,
    config: BotConfig,
    vault_balance: Optional[int] = None,
) -> DryrunOutcome:
    """
    Run ``find_opp`` concurrently for bundling modes 1..``config.retries``.

    All searches are awaited, a search that raised counts as
    NO_OPPORTUNITY. The success with the largest maximum input
    wins (first one on ties); otherwise NO_WALLET_FUND beats NO_ROUTE which
    beats NO_OPPORTUNITY, the latter carrying the first search's
    diagnostics.

    ``vault_balance`` defaults to the take-order's known vault balance, or
    its quoted max output rescaled to the sell token's decimals.
    """
    if vault_balance is None:
        vault_balance = resolve_vault_balance(order_pair)

    settled = await asyncio.gather(
        *(
            find_opp(
                mode=BundlingMode(i),
                order_pair=order_pair,
                liquidity=liquidity,
                from_token=from_token,
                to_token=to_token,
                signer=signer,
                vault_balance=vault_balance,
                gas_price=gas_price,
                arb=arb,
                eth_price=eth_price,
                config=config,
            )
            for i in range(1, config.retries + 1)
        ),
        return_exceptions=True,
    )
    outcomes = [_settle_mode(BundlingMode(i), o) for i, o in enumerate(settled, start=1)]

    choice: Optional[DryrunOutcome] = None
    for outcome in outcomes:
        if outcome.ok and (
            choice is None or choice.value.maximum_input < outcome.value.maximum_input
        ):
            choice = outcome
    if choice is not None:
        logger.debug(
            f"Best of {len(outcomes)} modes clears {choice.value.maximum_input} "
            f"of {order_pair.pair}"
        )
        return DryrunOutcome.success(choice.value, dict(choice.span_attributes))

    reasons = [outcome.reason for outcome in outcomes]
    if DryrunHaltReason.NO_WALLET_FUND in reasons:
        return DryrunOutcome.failure(DryrunHaltReason.NO_WALLET_FUND)
    if DryrunHaltReason.NO_ROUTE in reasons:
        return DryrunOutcome.failure(DryrunHaltReason.NO_ROUTE)
    return DryrunOutcome.failure(
        DryrunHaltReason.NO_OPPORTUNITY, dict(outcomes[0].span_attributes)
    )


def _settle_mode(mode: BundlingMode, outcome) -> DryrunOutcome:
    if isinstance(outcome, DryrunOutcome):
        return outcome
    if not isinstance(outcome, Exception):
        raise outcome
    logger.debug(f"Search in mode {mode.name} raised: {outcome}")
    return DryrunOutcome.failure(
        DryrunHaltReason.NO_OPPORTUNITY,
        {"mode": mode.name, "error": error_snapshot("", outcome)},
    )


def resolve_vault_balance(order_pair: OrderPairObject) -> int:
    take_order = order_pair.take_orders[0]
    if take_order.vault_balance is not None:
        return take_order.vault_balance
    return scale_from_18(take_order.quote.max_output, order_pair.sell_token_decimals)
