"""
Core data types for the orderbook arbitrage pipeline.

All token amounts are plain Python ints. Quotes, prices and cross-token
arithmetic use 18-decimal fixed point; raw transaction amounts use the
token's native decimals.
"""

from dataclasses import asdict, dataclass, field, replace
from enum import IntEnum
from typing import Any, Dict, List, Optional, Tuple

from .constants import ROUTE_NO_WAY
from .utils import format_units


class DryrunHaltReason(IntEnum):
    """Why a dryrun (or a binary search over dryruns) found nothing."""

    NO_OPPORTUNITY = 1
    NO_WALLET_FUND = 2
    NO_ROUTE = 3


class ProcessPairHaltReason(IntEnum):
    """Infrastructure failures that stop processing of a single pair."""

    FAILED_TO_QUOTE = 1
    FAILED_TO_GET_GAS_PRICE = 2
    FAILED_TO_GET_ETH_PRICE = 3
    FAILED_TO_GET_POOLS = 4
    TX_FAILED = 5
    TX_MINE_FAILED = 6
    UNEXPECTED_ERROR = 7


class ProcessPairReportStatus(IntEnum):
    """Terminal outcome of processing a pair."""

    ZERO_OUTPUT = 1
    NO_OPPORTUNITY = 2
    FOUND_OPPORTUNITY = 3


class BundlingMode(IntEnum):
    """How the take-orders list of a trial transaction is synthesized.

    ``ALL`` passes every take-order of the pair, the other modes repeat the
    first take-order one, two or three times.
    """

    ALL = 0
    SINGLE = 1
    DUPLICATE_2 = 2
    DUPLICATE_3 = 3

    def select(self, take_orders: List["TakeOrderDetails"]) -> List["TakeOrder"]:
        if self is BundlingMode.ALL:
            return [t.take_order for t in take_orders]
        return [take_orders[0].take_order] * int(self)


@dataclass(frozen=True)
class Token:
    """An ERC-20 token descriptor."""

    address: str
    decimals: int
    symbol: str = ""


@dataclass(frozen=True)
class IO:
    """A valid input or output of an order: token, decimals and vault id."""

    token: str
    decimals: int
    vault_id: int

    def to_abi(self) -> Tuple[str, int, int]:
        return (self.token, self.decimals, self.vault_id)


@dataclass(frozen=True)
class Evaluable:
    interpreter: str
    store: str
    bytecode: bytes

    def to_abi(self) -> Tuple[str, str, bytes]:
        return (self.interpreter, self.store, self.bytecode)


@dataclass(frozen=True)
class Order:
    """
    An on-chain limit order.

    Attributes:
        owner: Order owner address
        evaluable: Interpreter, store and bytecode gating the order
        valid_inputs: Tokens the order accepts
        valid_outputs: Tokens the order gives out
        nonce: 32 byte nonce
    """

    owner: str
    evaluable: Evaluable
    valid_inputs: Tuple[IO, ...]
    valid_outputs: Tuple[IO, ...]
    nonce: bytes

    def to_abi(self) -> tuple:
        return (
            self.owner,
            self.evaluable.to_abi(),
            [io.to_abi() for io in self.valid_inputs],
            [io.to_abi() for io in self.valid_outputs],
            self.nonce,
        )


@dataclass(frozen=True)
class SignedContext:
    signer: str
    context: Tuple[int, ...] = ()
    signature: bytes = b""

    def to_abi(self) -> Tuple[str, List[int], bytes]:
        return (self.signer, list(self.context), self.signature)


@dataclass(frozen=True)
class TakeOrder:
    """An order plus the IO indexes it is taken on."""

    order: Order
    input_io_index: int
    output_io_index: int
    signed_context: Tuple[SignedContext, ...] = ()

    def to_abi(self) -> tuple:
        return (
            self.order.to_abi(),
            self.input_io_index,
            self.output_io_index,
            [c.to_abi() for c in self.signed_context],
        )


@dataclass
class Quote:
    """Best case output of an order and its io ratio, both 18-decimal fixed point."""

    max_output: int
    ratio: int


@dataclass(frozen=True)
class QuoteTarget:
    orderbook: str
    take_order: TakeOrder


@dataclass
class TakeOrderDetails:
    """
    A take-order entry of a bundled pair.

    Attributes:
        id: Order hash
        take_order: The struct passed to the orderbook
        quote: Latest quote, refreshed every round
        vault_balance: Output vault balance in native decimals, when known
    """

    id: str
    take_order: TakeOrder
    quote: Optional[Quote] = None
    vault_balance: Optional[int] = None


@dataclass
class OrderDetails:
    """A decoded order as delivered by the order source."""

    order_hash: str
    orderbook: str
    order: Order
    token_symbols: Dict[str, str] = field(default_factory=dict)

    def symbol_of(self, token: str) -> str:
        return self.token_symbols.get(token.lower(), "UnknownSymbol")


@dataclass
class BundledOrders:
    """
    Take-orders sharing an orderbook and a (buy token, sell token) pair.

    The bot buys the orders' output (``sell_token``) by giving them their
    input (``buy_token``). A group holding exactly one take-order is the
    unit of work of the pair processor.
    """

    orderbook: str
    buy_token: str
    buy_token_decimals: int
    buy_token_symbol: str
    sell_token: str
    sell_token_decimals: int
    sell_token_symbol: str
    take_orders: List[TakeOrderDetails] = field(default_factory=list)

    @property
    def pair(self) -> str:
        return f"{self.buy_token_symbol}/{self.sell_token_symbol}"

    @property
    def buy(self) -> Token:
        return Token(self.buy_token, self.buy_token_decimals, self.buy_token_symbol)

    @property
    def sell(self) -> Token:
        return Token(self.sell_token, self.sell_token_decimals, self.sell_token_symbol)

    def with_take_order(self, take_order: TakeOrderDetails) -> "BundledOrders":
        """Copy of this group narrowed to a single take-order."""
        return replace(self, take_orders=[take_order])


# a group narrowed to exactly one take-order
OrderPairObject = BundledOrders


@dataclass(frozen=True)
class RouteLeg:
    token_from: Token
    token_to: Token
    pool_name: str
    pool_address: str
    absolute_portion: float


@dataclass
class Route:
    """Best route returned by the liquidity source's pathfinder."""

    status: str
    amount_out: int = 0
    legs: List[RouteLeg] = field(default_factory=list)

    @property
    def no_way(self) -> bool:
        return self.status == ROUTE_NO_WAY


@dataclass
class TakeOrdersConfig:
    """Arguments of the orderbook's takeOrders call, wrapped by the arb contract."""

    minimum_input: int
    maximum_input: int
    maximum_io_ratio: int
    orders: List[TakeOrder]
    data: bytes = b""

    def to_abi(self) -> tuple:
        return (
            self.minimum_input,
            self.maximum_input,
            self.maximum_io_ratio,
            [o.to_abi() for o in self.orders],
            self.data,
        )


@dataclass
class OpportunityData:
    """
    A profitable fill proven by gas estimation.

    Attributes:
        raw_tx: Transaction fields ready to sign, ``gas`` already set
        maximum_input: Fill size in the sell token's native decimals
        gas_cost_in_token: Estimated gas cost denominated in the buy token
        take_orders_config: Struct encoded into ``raw_tx["data"]``
        price: Market price of the route, 18-decimal fixed point
        route_visual: Human readable route legs
        opp_block_number: Block number read right before gas estimation
        estimated_profit: Profit in native gas token, 18-decimal fixed point
    """

    raw_tx: Dict[str, Any]
    maximum_input: int
    gas_cost_in_token: int
    take_orders_config: TakeOrdersConfig
    price: int
    route_visual: List[str]
    opp_block_number: int
    estimated_profit: Optional[int] = None


@dataclass
class DryrunOutcome:
    """Result of a dryrun, a binary search or a multi-mode search.

    Exactly one of ``value`` and ``reason`` is set.
    """

    value: Optional[OpportunityData] = None
    reason: Optional[DryrunHaltReason] = None
    span_attributes: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.value is not None

    @classmethod
    def success(
        cls, value: OpportunityData, span_attributes: Optional[Dict[str, Any]] = None
    ) -> "DryrunOutcome":
        return cls(value=value, span_attributes=span_attributes or {})

    @classmethod
    def failure(
        cls, reason: DryrunHaltReason, span_attributes: Optional[Dict[str, Any]] = None
    ) -> "DryrunOutcome":
        return cls(reason=reason, span_attributes=span_attributes or {})


@dataclass(frozen=True)
class Account:
    """
    A signer with its locally tracked native balance and bounty tokens.

    Accounts are immutable; settlement produces a new value which the
    scheduler stores back in its pool.
    """

    signer: Any
    balance: int = 0
    bounty: Tuple[Token, ...] = ()

    @property
    def address(self) -> str:
        return self.signer.address


@dataclass
class ProcessPairReport:
    """Report of a processed pair. Amounts are 18-decimal fixed point ints."""

    status: Optional[ProcessPairReportStatus]
    token_pair: str
    buy_token: str
    sell_token: str
    tx_url: Optional[str] = None
    cleared_amount: Optional[int] = None
    actual_gas_cost: Optional[int] = None
    income: Optional[int] = None
    input_token_income: Optional[int] = None
    output_token_income: Optional[int] = None
    net_profit: Optional[int] = None
    cleared_orders: Optional[List[str]] = None
    successful: Optional[bool] = None
    reason: Optional[ProcessPairHaltReason] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize with amounts formatted as decimal strings."""
        data = asdict(self)
        if self.status is not None:
            data["status"] = self.status.name
        if self.reason is not None:
            data["reason"] = self.reason.name
        for key in (
            "actual_gas_cost",
            "income",
            "input_token_income",
            "output_token_income",
            "net_profit",
        ):
            if data[key] is not None:
                data[key] = format_units(data[key])
        if self.cleared_amount is not None:
            data["cleared_amount"] = str(self.cleared_amount)
        return {k: v for k, v in data.items() if v is not None}


@dataclass
class ProcessPairResult:
    """
    Outcome of the pair processor.

    Attributes:
        report: Report of the pair, possibly partial when halted
        reason: Halt reason, None when processing completed
        error: Serialized error that caused the halt
        gas_cost: Actual gas cost of a mined transaction
        span_attributes: Diagnostics gathered along the way
        account: The account as it stands after settlement
    """

    report: ProcessPairReport
    reason: Optional[ProcessPairHaltReason] = None
    error: Optional[str] = None
    gas_cost: Optional[int] = None
    span_attributes: Dict[str, Any] = field(default_factory=dict)
    account: Optional[Account] = None

    @property
    def halted(self) -> bool:
        return self.reason is not None


@dataclass
class BatchResult:
    reports: List[ProcessPairReport]
    avg_gas_cost: Optional[int] = None
