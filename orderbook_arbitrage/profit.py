"""
Profit arithmetic for candidate fills.

Everything here is pure integer math on 18-decimal fixed point values,
truncating toward zero like the contracts do, so estimates match what the
chain would compute to the wei.
"""

from typing import Optional, Union

from .constants import MAX_UINT256, ONE
from .types import BundledOrders, OrderPairObject, TakeOrderDetails
from .utils import div_trunc


def estimate_profit(
    order_pair: OrderPairObject,
    input_to_eth_price: int,
    output_to_eth_price: Optional[int] = None,
    opposing_orders: Optional[Union[BundledOrders, TakeOrderDetails]] = None,
    market_price: Optional[int] = None,
    max_input: int = 0,
) -> Optional[int]:
    """
    Estimate the profit of filling ``max_input`` of the pair's order.

    Args:
        order_pair: Pair holding the order being taken; its quote must be set
        input_to_eth_price: Price of the order's input token in native token
        output_to_eth_price: Price of the order's output token in native token
        opposing_orders: Counter orders, either a whole pair group from another
            orderbook or a single take-order of the same orderbook
        market_price: Market price of the order's output in its input token
        max_input: Fill size, 18-decimal fixed point

    Returns:
        Profit in native token, or None when neither a market price nor
        opposing orders are given
    """
    ratio = order_pair.take_orders[0].quote.ratio

    if market_price is not None:
        market_amount_out = div_trunc(max_input * market_price, ONE)
        order_input = div_trunc(max_input * ratio, ONE)
        return div_trunc((market_amount_out - order_input) * input_to_eth_price, ONE)

    if opposing_orders is None:
        return None

    if isinstance(opposing_orders, BundledOrders):
        return _estimate_inter_orderbook(
            ratio, opposing_orders, input_to_eth_price, output_to_eth_price, max_input
        )
    return _estimate_intra_orderbook(
        order_pair.take_orders[0],
        opposing_orders,
        input_to_eth_price,
        output_to_eth_price,
    )


def _estimate_inter_orderbook(
    ratio: int,
    opposing: BundledOrders,
    input_to_eth_price: int,
    output_to_eth_price: int,
    max_input: int,
) -> int:
    order_output = max_input
    order_input = div_trunc(max_input * ratio, ONE)

    opposing_max_input = MAX_UINT256 if ratio == 0 else div_trunc(max_input * ratio, ONE)
    opposing_max_io_ratio = MAX_UINT256 if ratio == 0 else div_trunc(ONE * ONE, ratio)

    opposing_input = 0
    opposing_output = 0
    # opposing take-orders are sorted by ratio ascending
    for take_order in opposing.take_orders:
        quote = take_order.quote
        if opposing_max_input <= 0:
            break
        if opposing_max_io_ratio >= quote.ratio:
            max_out = min(opposing_max_input, quote.max_output)
            opposing_output += max_out
            opposing_input += div_trunc(max_out * quote.ratio, ONE)
            opposing_max_input -= max_out

    output_profit = div_trunc(max(order_output - opposing_input, 0) * output_to_eth_price, ONE)
    input_profit = div_trunc(max(opposing_output - order_input, 0) * input_to_eth_price, ONE)
    return output_profit + input_profit


def _estimate_intra_orderbook(
    order: TakeOrderDetails,
    opposing: TakeOrderDetails,
    input_to_eth_price: int,
    output_to_eth_price: int,
) -> int:
    quote = order.quote
    opposing_quote = opposing.quote

    order_max_input = div_trunc(quote.max_output * quote.ratio, ONE)
    opposing_max_input = div_trunc(opposing_quote.max_output * opposing_quote.ratio, ONE)

    if opposing_quote.ratio == 0:
        order_output = quote.max_output
        opposing_output = opposing_quote.max_output
    else:
        order_output = min(quote.max_output, opposing_max_input)
        opposing_output = min(order_max_input, opposing_quote.max_output)

    order_input = div_trunc(order_output * quote.ratio, ONE)
    opposing_input = div_trunc(opposing_output * opposing_quote.ratio, ONE)

    output_profit = div_trunc(max(order_output - opposing_input, 0) * output_to_eth_price, ONE)
    input_profit = div_trunc(max(opposing_output - order_input, 0) * input_to_eth_price, ONE)
    return output_profit + input_profit


def get_total_income(
    input_token_income: Optional[int],
    output_token_income: Optional[int],
    input_token_price: int,
    output_token_price: int,
    input_token_decimals: int,
    output_token_decimals: int,
) -> Optional[int]:
    """
    Total income of a clear in native token, 18-decimal fixed point.

    Incomes are in each token's native decimals, prices are 18-decimal
    fixed point. Returns None when neither token produced income.
    """
    if not input_token_income and not output_token_income:
        return None
    total = 0
    if input_token_income:
        total += input_token_price * input_token_income // 10**input_token_decimals
    if output_token_income:
        total += output_token_price * output_token_income // 10**output_token_decimals
    return total
