"""
Market prices from the liquidity source.

Prices are 18-decimal fixed point. The native-token price of a token is
what one whole token routes to in the chain's wrapped native token.
"""

import asyncio
from typing import Any, Dict, List, Optional, Set

from .config_schema import BotConfig
from .constants import ONE
from .interfaces import LiquiditySource
from .types import RouteLeg, Token
from .utils import format_units, get_logger, scale_to_18

logger = get_logger(__name__)


def visualize_route(from_token: Token, to_token: Token, legs: List[RouteLeg]) -> List[str]:
    """
    Render route legs as one line per path, largest portion first.

    Each line reads ``"40.00%   --->   OUT/IN (pool address) >> ..."``.
    """
    start = from_token.address.lower()
    end = to_token.address.lower()

    paths: List[List[RouteLeg]] = [
        [leg]
        for leg in legs
        if leg.token_from.address.lower() == start and leg.token_to.address.lower() == end
    ]
    for leg in legs:
        if leg.token_from.address.lower() != start or leg.token_to.address.lower() == end:
            continue
        path = [leg]
        while path[-1].token_to.address.lower() != end:
            next_leg = next(
                (
                    e
                    for e in legs
                    if e.token_from.address.lower() == path[-1].token_to.address.lower()
                ),
                None,
            )
            # incomplete route, render what is known
            if next_leg is None or len(path) > len(legs):
                break
            path.append(next_leg)
        paths.append(path)

    paths.sort(key=lambda p: p[0].absolute_portion, reverse=True)

    def symbol(token: Token, fallback: Token) -> str:
        if token.symbol:
            return token.symbol
        if token.address.lower() == fallback.address.lower():
            return fallback.symbol
        return "unknownSymbol"

    return [
        f"{path[0].absolute_portion * 100:05.2f}%   --->   "
        + " >> ".join(
            f"{symbol(e.token_to, to_token)}/{symbol(e.token_from, from_token)} "
            f"({e.pool_name} {e.pool_address})"
            for e in path
        )
        for path in paths
    ]


async def get_eth_price(
    config: BotConfig,
    liquidity: LiquiditySource,
    token: Token,
    gas_price: int,
    fetch_pools: bool = False,
    block_number: Optional[int] = None,
) -> Optional[int]:
    """
    Price of one whole ``token`` in the chain's wrapped native token.

    Cached pools are tried first; when they yield no route the pools are
    fetched once and the lookup is repeated.

    Returns:
        Price as 18-decimal fixed point, or None when there is no route
    """
    native = config.native_wrapped_token
    if token.address.lower() == native.address.lower():
        return ONE

    if fetch_pools:
        await asyncio.wait_for(
            liquidity.fetch_pools(
                token,
                native,
                set(config.pool_blacklist),
                config.eth_price_timeout_ms,
                block_number,
            ),
            timeout=config.eth_price_timeout_ms / 1000,
        )

    pool_map = liquidity.get_pool_map(token, native)
    route = liquidity.find_best_route(
        pool_map, config.chain.id, token, 10**token.decimals, native, gas_price
    )
    if route.no_way:
        if not fetch_pools:
            return await get_eth_price(
                config, liquidity, token, gas_price, True, block_number
            )
        logger.debug(f"No route from {token.symbol or token.address} to native token")
        return None
    return scale_to_18(route.amount_out, native.decimals)


def get_market_quote(
    config: BotConfig,
    liquidity: LiquiditySource,
    from_token: Token,
    to_token: Token,
    gas_price: int,
) -> Optional[Dict[str, Any]]:
    """Market price of one whole ``from_token`` in ``to_token``, for diagnostics."""
    pool_map = liquidity.get_pool_map(from_token, to_token)
    route = liquidity.find_best_route(
        pool_map, config.chain.id, from_token, 10**from_token.decimals, to_token, gas_price
    )
    if route.no_way:
        return None
    price = scale_to_18(route.amount_out, to_token.decimals)
    return {"price": format_units(price), "amount_out": str(route.amount_out)}


def mark_fetched(fetched_pair_pools: Set[str], symbol_a: str, symbol_b: str) -> None:
    """Record that pools of a pair are cached, in both directions."""
    fetched_pair_pools.add(f"{symbol_a}/{symbol_b}")
    fetched_pair_pools.add(f"{symbol_b}/{symbol_a}")
