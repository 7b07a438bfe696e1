"""
Calldata encoding for the arb contract and the orderbook views it reads.

The arb contract takes orders from an orderbook and swaps the proceeds
through a route processor, paying the sender whatever is left above the
minimum sender output.
"""

from eth_abi import decode, encode
from web3 import Web3

from .types import TakeOrdersConfig

IO_TYPE = "(address,uint8,uint256)"
EVALUABLE_TYPE = "(address,address,bytes)"
ORDER_TYPE = f"(address,{EVALUABLE_TYPE},{IO_TYPE}[],{IO_TYPE}[],bytes32)"
SIGNED_CONTEXT_TYPE = "(address,uint256[],bytes)"
TAKE_ORDER_TYPE = f"({ORDER_TYPE},uint256,uint256,{SIGNED_CONTEXT_TYPE}[])"
TAKE_ORDERS_CONFIG_TYPE = f"(uint256,uint256,uint256,{TAKE_ORDER_TYPE}[],bytes)"

ARB_SIGNATURE = f"arb({TAKE_ORDERS_CONFIG_TYPE},uint256)"
ARB_SELECTOR = Web3.keccak(text=ARB_SIGNATURE)[:4]


def encode_route_data(route_code: bytes) -> bytes:
    """Wrap route processor calldata as the takeOrders ``data`` field."""
    return encode(["bytes"], [route_code])


class ArbContract:
    """Encoder for a deployed arb contract at ``address``."""

    def __init__(self, address: str):
        self.address = address

    def encode_arb(
        self, take_orders_config: TakeOrdersConfig, minimum_sender_output: int
    ) -> str:
        payload = encode(
            [TAKE_ORDERS_CONFIG_TYPE, "uint256"],
            [take_orders_config.to_abi(), minimum_sender_output],
        )
        return "0x" + (bytes(ARB_SELECTOR) + payload).hex()

    def __repr__(self) -> str:
        return f"ArbContract({self.address})"


VAULT_BALANCE_SIGNATURE = "vaultBalance(address,address,uint256)"
VAULT_BALANCE_SELECTOR = Web3.keccak(text=VAULT_BALANCE_SIGNATURE)[:4]


def encode_vault_balance(owner: str, token: str, vault_id: int) -> str:
    """Calldata of the orderbook's ``vaultBalance(owner, token, vaultId)`` view."""
    payload = encode(["address", "address", "uint256"], [owner, token, vault_id])
    return "0x" + (bytes(VAULT_BALANCE_SELECTOR) + payload).hex()


def decode_uint256(data: bytes) -> int:
    return decode(["uint256"], bytes(data))[0]
