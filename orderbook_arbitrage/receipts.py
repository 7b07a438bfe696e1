"""
Interpretation of mined transaction receipts.

Receipts may come straight from web3 (``HexBytes`` topics and data) or as
plain dicts with hex strings; both shapes are accepted.
"""

from typing import Any, Dict, Iterable, Optional, Tuple, Union

from eth_abi import decode
from eth_abi.exceptions import DecodingError
from web3 import Web3

from .utils import get_logger

logger = get_logger(__name__)

TRANSFER_TOPIC = Web3.keccak(text="Transfer(address,address,uint256)")
AFTER_CLEAR_TOPIC = Web3.keccak(
    text="AfterClear(address,(uint256,uint256,uint256,uint256))"
)

BytesLike = Union[str, bytes, bytearray]


def _to_bytes(value: BytesLike) -> bytes:
    if isinstance(value, str):
        return Web3.to_bytes(hexstr=value)
    return bytes(value)


def _as_int(value: BytesLike) -> int:
    """Addresses and topics compared as numbers, ignoring case and padding."""
    return int.from_bytes(_to_bytes(value), "big")


def _logs(receipt: Dict[str, Any]) -> Iterable[Dict[str, Any]]:
    return receipt.get("logs") or []


def receipt_succeeded(receipt: Dict[str, Any]) -> bool:
    return receipt.get("status") in (1, "0x1", "success")


def get_receipt_gas_cost(receipt: Optional[Dict[str, Any]]) -> Optional[int]:
    """Actual gas cost of a mined transaction: effectiveGasPrice * gasUsed."""
    if not receipt:
        return None
    gas_price = receipt.get("effectiveGasPrice")
    gas_used = receipt.get("gasUsed")
    if gas_price is None or gas_used is None:
        return None
    return int(gas_price) * int(gas_used)


def decode_transfer(log: Dict[str, Any]) -> Optional[Tuple[int, int, int]]:
    """Decode an ERC-20 Transfer log into (from, to, value), addresses as ints."""
    topics = log.get("topics") or []
    if len(topics) != 3 or _to_bytes(topics[0]) != TRANSFER_TOPIC:
        return None
    try:
        (value,) = decode(["uint256"], _to_bytes(log.get("data") or b""))
    except DecodingError:
        return None
    return _as_int(topics[1]), _as_int(topics[2]), value


def decode_after_clear(log: Dict[str, Any]) -> Optional[Tuple[int, int, int, int]]:
    """Decode an orderbook AfterClear log into its clear state change."""
    topics = log.get("topics") or []
    if not topics or _to_bytes(topics[0]) != AFTER_CLEAR_TOPIC:
        return None
    try:
        _sender, clear_state_change = decode(
            ["address", "(uint256,uint256,uint256,uint256)"],
            _to_bytes(log.get("data") or b""),
        )
    except DecodingError:
        return None
    return clear_state_change


def get_income(
    signer_address: str, receipt: Dict[str, Any], token: Optional[str] = None
) -> Optional[int]:
    """Amount of ``token`` transferred to the signer in this transaction."""
    signer = _as_int(signer_address)
    for log in _logs(receipt):
        if token and log.get("address") and _as_int(log["address"]) != _as_int(token):
            continue
        transfer = decode_transfer(log)
        if transfer is not None and transfer[1] == signer:
            return transfer[2]
    return None


def get_actual_clear_amount(
    to_address: str, orderbook: str, receipt: Dict[str, Any]
) -> Optional[int]:
    """
    Amount actually cleared by the transaction.

    When the transaction went through the arb contract this is the token
    amount the orderbook sent to it; when it targeted the orderbook
    directly it is the ``aliceOutput`` of the AfterClear event.
    """
    if to_address.lower() != orderbook.lower():
        recipient = _as_int(to_address)
        sender = _as_int(orderbook)
        for log in _logs(receipt):
            transfer = decode_transfer(log)
            if transfer is not None and transfer[0] == sender and transfer[1] == recipient:
                return transfer[2]
        return None

    for log in _logs(receipt):
        clear_state_change = decode_after_clear(log)
        if clear_state_change is not None:
            return clear_state_change[0]
    logger.debug("No AfterClear event found in receipt")
    return None
