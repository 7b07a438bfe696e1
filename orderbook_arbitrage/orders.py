"""
Order bundling and quoting.

Orders delivered by the order source are grouped per orderbook and per
token pair, then quoted in bulk so that pairs with nothing to take are
dropped before any pair is processed. Output vault balances are read
per pair right before its opportunity search.
"""

import asyncio
import random
from typing import Dict, List, Optional, Sequence, Tuple

from .exceptions import QuoteError
from .interfaces import ChainClient, QuoteService
from .types import (
    BundledOrders,
    OrderDetails,
    OrderPairObject,
    Quote,
    QuoteTarget,
    TakeOrder,
    TakeOrderDetails,
)
from .utils import get_logger, shuffle_array

logger = get_logger(__name__)


def bundle_orders(
    orders_details: Sequence[OrderDetails],
    shuffle: bool = True,
    bundle: bool = True,
    rng: Optional[random.Random] = None,
) -> List[List[BundledOrders]]:
    """
    Group orders by orderbook and by (buy token, sell token) pair.

    Every (input, output) combination of an order with distinct tokens
    yields one take-order entry. With ``bundle`` disabled each entry gets
    its own group.

    Returns:
        One list of pair groups per orderbook
    """
    bundled: Dict[str, List[BundledOrders]] = {}
    for details in orders_details:
        order = details.order
        orderbook = details.orderbook.lower()
        for output_index, output in enumerate(order.valid_outputs):
            for input_index, input_ in enumerate(order.valid_inputs):
                if output.token.lower() == input_.token.lower():
                    continue

                take_order = TakeOrderDetails(
                    id=details.order_hash,
                    take_order=TakeOrder(
                        order=order,
                        input_io_index=input_index,
                        output_io_index=output_index,
                    ),
                )
                pairs = bundled.setdefault(orderbook, [])
                existing = _find_pair(pairs, input_.token, output.token) if bundle else None
                if existing is not None:
                    existing.take_orders.append(take_order)
                    continue

                pairs.append(
                    BundledOrders(
                        orderbook=orderbook,
                        buy_token=input_.token.lower(),
                        buy_token_decimals=input_.decimals,
                        buy_token_symbol=details.symbol_of(input_.token),
                        sell_token=output.token.lower(),
                        sell_token_decimals=output.decimals,
                        sell_token_symbol=details.symbol_of(output.token),
                        take_orders=[take_order],
                    )
                )

    result = list(bundled.values())
    if shuffle:
        # pairs keep their order when every take-order is its own group
        if bundle:
            result = [shuffle_array(pairs, rng) for pairs in result]
        result = shuffle_array(result, rng)
    return result


def _find_pair(
    pairs: List[BundledOrders], buy_token: str, sell_token: str
) -> Optional[BundledOrders]:
    for pair in pairs:
        if pair.buy_token == buy_token.lower() and pair.sell_token == sell_token.lower():
            return pair
    return None


async def quote_single_order(
    order_pair: OrderPairObject,
    rpcs: Sequence[str],
    quote_service: QuoteService,
    block_number: Optional[int] = None,
) -> Quote:
    """
    Quote the pair's single take-order, trying each rpc in order.

    The quote is stored on the take-order and returned. A failure reason
    returned by the quote service is final; transport errors move on to
    the next rpc and only the last one is raised.

    Raises:
        QuoteError: If the order could not be quoted
    """
    take_order = order_pair.take_orders[0]
    target = QuoteTarget(order_pair.orderbook, take_order.take_order)

    for i, rpc in enumerate(rpcs):
        try:
            result = (await quote_service.quote([target], rpc, block_number))[0]
        except Exception as e:
            if i == len(rpcs) - 1:
                raise QuoteError(
                    f"failed to quote order {take_order.id}: {e}",
                    rpc=rpc,
                    order_hash=take_order.id,
                ) from e
            logger.debug(f"Quote of {take_order.id} failed on rpc #{i}, trying next: {e}")
            continue

        if isinstance(result, str):
            raise QuoteError(
                f"failed to quote order, reason: {result}",
                rpc=rpc,
                order_hash=take_order.id,
            )
        take_order.quote = result
        return result

    raise QuoteError("no rpc available to quote with", order_hash=take_order.id)


async def quote_orders(
    bundled_orders: List[List[BundledOrders]],
    rpcs: Sequence[str],
    quote_service: QuoteService,
    block_number: Optional[int] = None,
) -> List[List[BundledOrders]]:
    """
    Quote every take-order of every pair in one call per rpc.

    Take-orders that failed to quote or have zero max output are dropped,
    the rest are sorted by ratio ascending, and pairs left empty are
    removed.

    Raises:
        QuoteError: If every rpc failed
    """
    entries: List[Tuple[BundledOrders, TakeOrderDetails]] = [
        (pair, take_order)
        for orderbook_pairs in bundled_orders
        for pair in orderbook_pairs
        for take_order in pair.take_orders
    ]
    targets = [QuoteTarget(pair.orderbook, t.take_order) for pair, t in entries]

    results = None
    for i, rpc in enumerate(rpcs):
        try:
            results = await quote_service.quote(targets, rpc, block_number)
            break
        except Exception as e:
            if i == len(rpcs) - 1:
                raise QuoteError(f"failed to quote orders: {e}", rpc=rpc) from e
            logger.debug(f"Bulk quote failed on rpc #{i}, trying next: {e}")
    if results is None:
        raise QuoteError("no rpc available to quote with")

    for (_pair, take_order), result in zip(entries, results):
        if result is not None and not isinstance(result, str):
            take_order.quote = result

    filtered = []
    for orderbook_pairs in bundled_orders:
        kept = []
        for pair in orderbook_pairs:
            pair.take_orders = sorted(
                (t for t in pair.take_orders if t.quote and t.quote.max_output > 0),
                key=lambda t: t.quote.ratio,
            )
            if pair.take_orders:
                kept.append(pair)
        filtered.append(kept)

    logger.info(
        f"QUOTED_ORDERS: {len(targets)} take orders, "
        f"{sum(len(p.take_orders) for ob in filtered for p in ob)} with output"
    )
    return filtered


async def fetch_vault_balance(order_pair: OrderPairObject, chain: ChainClient) -> int:
    """Combined balance of the output vaults of the pair's take-orders."""
    calls = []
    for t in order_pair.take_orders:
        order = t.take_order.order
        output = order.valid_outputs[t.take_order.output_io_index]
        calls.append(
            chain.get_vault_balance(
                order_pair.orderbook, order.owner, output.token, output.vault_id
            )
        )
    balances = await asyncio.gather(*calls, return_exceptions=True)
    for balance in balances:
        if isinstance(balance, BaseException):
            raise balance
    return sum(balances)
