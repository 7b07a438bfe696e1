"""Shared fixtures: tokens, orders, config and fake collaborators."""

from unittest.mock import AsyncMock, Mock

import pytest
from eth_abi import encode

from orderbook_arbitrage.config_schema import validate_bot_config
from orderbook_arbitrage.constants import ONE, ROUTE_NO_WAY
from orderbook_arbitrage.contracts import ArbContract
from orderbook_arbitrage.receipts import TRANSFER_TOPIC
from orderbook_arbitrage.types import (
    IO,
    Account,
    BundledOrders,
    Evaluable,
    Order,
    Quote,
    Route,
    RouteLeg,
    TakeOrder,
    TakeOrderDetails,
)

ORDERBOOK = "0x" + "11" * 20
ARB = "0x" + "22" * 20
ROUTE_PROCESSOR = "0x" + "33" * 20
POOL = "0x" + "44" * 20
OWNER = "0x" + "55" * 20
SIGNER = "0x" + "66" * 20
TOKEN_A = "0x" + "aa" * 20
TOKEN_B = "0x" + "bb" * 20
WETH = "0x" + "ee" * 20

TX_HASH = "0x" + "ab" * 32


def make_order(inputs, outputs, nonce=b"\x00" * 32):
    """Order with (token, decimals) inputs and outputs."""
    return Order(
        owner=OWNER,
        evaluable=Evaluable(interpreter=OWNER, store=OWNER, bytecode=b"\x01"),
        valid_inputs=tuple(IO(token, decimals, 1) for token, decimals in inputs),
        valid_outputs=tuple(IO(token, decimals, 1) for token, decimals in outputs),
        nonce=nonce,
    )


def make_pair(
    max_output=ONE,
    ratio=15 * 10**17,
    buy_decimals=18,
    sell_decimals=18,
    order_hash="0x01",
):
    """Pair buying TOKEN_A for TOKEN_B with a single quoted take-order."""
    order = make_order([(TOKEN_A, buy_decimals)], [(TOKEN_B, sell_decimals)])
    return BundledOrders(
        orderbook=ORDERBOOK,
        buy_token=TOKEN_A,
        buy_token_decimals=buy_decimals,
        buy_token_symbol="AAA",
        sell_token=TOKEN_B,
        sell_token_decimals=sell_decimals,
        sell_token_symbol="BBB",
        take_orders=[
            TakeOrderDetails(
                id=order_hash,
                take_order=TakeOrder(order=order, input_io_index=0, output_io_index=0),
                quote=Quote(max_output=max_output, ratio=ratio),
            )
        ],
    )


def transfer_log(token, sender, recipient, value):
    def topic(address):
        return b"\x00" * 12 + bytes.fromhex(address[2:])

    return {
        "address": token,
        "topics": [TRANSFER_TOPIC, topic(sender), topic(recipient)],
        "data": encode(["uint256"], [value]),
    }


class FakeLiquidity:
    """
    Pathfinder returning ``amount_out(token_in, amount_in, token_out)``;
    a None amount means there is no route.
    """

    def __init__(self, amount_out=None):
        self.amount_out = amount_out or (lambda token_in, amount_in, token_out: amount_in)
        self.fetch_pools = AsyncMock(return_value=None)
        self.route_calls = []

    def get_pool_map(self, token_a, token_b):
        return {"pair": (token_a.address, token_b.address)}

    def find_best_route(
        self, pool_map, chain_id, token_in, amount_in, token_out, gas_price, pool_filter=None
    ):
        self.route_calls.append((token_in.address, amount_in, token_out.address))
        amount_out = self.amount_out(token_in, amount_in, token_out)
        if amount_out is None:
            return Route(status=ROUTE_NO_WAY)
        return Route(
            status="Success",
            amount_out=amount_out,
            legs=[RouteLeg(token_in, token_out, "UniswapV2", POOL, 1.0)],
        )

    def route_code(self, pool_map, route, token_in, token_out, recipient, route_processor):
        return b"\x01\x02\x03"


def market_amount_out(token_in, amount_in, token_out):
    """TOKEN_B trades at 2 TOKEN_A, TOKEN_A at 1 WETH, TOKEN_B at 2 WETH."""
    if token_in.address == TOKEN_B:
        return amount_in * 2
    return amount_in


@pytest.fixture
def config_dict():
    return {
        "chain": {
            "id": 137,
            "name": "polygon",
            "explorer_url": "https://polygonscan.com/",
            "native_wrapped_token": {"address": WETH, "decimals": 18, "symbol": "WETH"},
        },
        "rpc": ["https://rpc-1.example.org"],
        "arb_address": ARB,
        "route_processor_address": ROUTE_PROCESSOR,
        "hops": 5,
    }


@pytest.fixture
def make_config(config_dict):
    def factory(**overrides):
        return validate_bot_config({**config_dict, **overrides})

    return factory


@pytest.fixture
def config(make_config):
    return make_config()


@pytest.fixture
def pair():
    return make_pair()


@pytest.fixture
def arb():
    return ArbContract(ARB)


@pytest.fixture
def liquidity():
    return FakeLiquidity(market_amount_out)


@pytest.fixture
def signer():
    signer = Mock()
    signer.address = SIGNER
    signer.get_block_number = AsyncMock(return_value=100)
    signer.estimate_gas = AsyncMock(return_value=100_000)
    signer.send_transaction = AsyncMock(return_value=TX_HASH)
    return signer


@pytest.fixture
def account(signer):
    return Account(signer=signer, balance=ONE)


@pytest.fixture
def receipt():
    return {
        "status": 1,
        "effectiveGasPrice": 10**9,
        "gasUsed": 100_000,
        "logs": [
            transfer_log(TOKEN_B, ORDERBOOK, ARB, ONE),
            transfer_log(TOKEN_A, ARB, SIGNER, 5 * 10**17),
        ],
    }


@pytest.fixture
def chain(receipt):
    chain = Mock()
    chain.get_gas_price = AsyncMock(return_value=10**9)
    chain.get_block_number = AsyncMock(return_value=102)
    chain.get_vault_balance = AsyncMock(return_value=ONE)
    chain.wait_for_receipt = AsyncMock(return_value=receipt)
    return chain


@pytest.fixture
def quote_service():
    service = Mock()
    service.quote = AsyncMock(
        side_effect=lambda targets, rpc, block_number=None: [
            Quote(max_output=ONE, ratio=15 * 10**17) for _ in targets
        ]
    )
    return service
