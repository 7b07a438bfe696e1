"""
Collaborator protocols consumed by the arbitrage pipeline.

The pipeline never constructs RPC clients, pathfinders or quoting
backends itself; it is handed objects satisfying these protocols, which
keeps every network touchpoint replaceable in tests.
"""

from typing import Any, Dict, List, Optional, Protocol, Set, Union, runtime_checkable

from .types import Quote, QuoteTarget, Route, TakeOrdersConfig, Token


@runtime_checkable
class QuoteService(Protocol):
    """Quotes orders against an orderbook on one RPC endpoint."""

    async def quote(
        self, targets: List[QuoteTarget], rpc: str, block_number: Optional[int] = None
    ) -> List[Union[Quote, str]]:
        """Quote each target; a string entry is the failure reason for that target."""
        ...


@runtime_checkable
class LiquiditySource(Protocol):
    """External AMM pool registry and pathfinding oracle."""

    async def fetch_pools(
        self,
        token_a: Token,
        token_b: Token,
        blacklist: Set[str],
        timeout_ms: int,
        block_number: Optional[int] = None,
    ) -> None:
        """Fetch and cache the pools trading ``token_a`` against ``token_b``."""
        ...

    def get_pool_map(self, token_a: Token, token_b: Token) -> Any:
        """Routable pool graph for the pair from the cached pools."""
        ...

    def find_best_route(
        self,
        pool_map: Any,
        chain_id: int,
        token_in: Token,
        amount_in: int,
        token_out: Token,
        gas_price: int,
        pool_filter: Optional[Any] = None,
    ) -> Route:
        """Best route for ``amount_in`` of ``token_in``, status ``NoWay`` when none."""
        ...

    def route_code(
        self,
        pool_map: Any,
        route: Route,
        token_in: Token,
        token_out: Token,
        recipient: str,
        route_processor: str,
    ) -> bytes:
        """Route processor calldata executing ``route`` for ``recipient``."""
        ...


@runtime_checkable
class ChainClient(Protocol):
    """Read access to the chain."""

    async def get_gas_price(self) -> int:
        ...

    async def get_block_number(self) -> int:
        ...

    async def wait_for_receipt(self, tx_hash: str) -> Dict[str, Any]:
        """Wait until ``tx_hash`` is mined; raises when the wait fails."""
        ...

    async def get_vault_balance(
        self, orderbook: str, owner: str, token: str, vault_id: int
    ) -> int:
        """Balance of an order owner's vault in the token's native decimals."""
        ...


@runtime_checkable
class Signer(Protocol):
    """A funded account able to estimate, sign and send transactions."""

    address: str

    async def get_block_number(self) -> int:
        ...

    async def estimate_gas(self, tx: Dict[str, Any]) -> int:
        ...

    async def send_transaction(self, tx: Dict[str, Any]) -> str:
        """Sign and broadcast ``tx``, returning its hash."""
        ...


@runtime_checkable
class ArbBinding(Protocol):
    """Calldata encoder of the deployed arb contract."""

    address: str

    def encode_arb(
        self, take_orders_config: TakeOrdersConfig, minimum_sender_output: int
    ) -> str:
        ...
