"""
web3 adapters for the chain collaborators.

``Web3ChainClient`` reads gas price, block number, vault balances and receipts;
``Web3Signer`` estimates, signs and broadcasts transactions for a local
account. Both wrap an ``AsyncWeb3`` instance.
"""

from typing import Any, Dict, Optional

from eth_account import Account as EthAccount
from eth_account.signers.local import LocalAccount
from web3 import AsyncWeb3
from web3.exceptions import TimeExhausted

from .config_schema import BotConfig
from .constants import DEFAULT_RECEIPT_TIMEOUT_S
from .contracts import decode_uint256, encode_vault_balance
from .exceptions import InsufficientFundsError, NetworkError, TransactionError
from .utils import get_logger, is_insufficient_funds_error

logger = get_logger(__name__)


def create_web3(rpc_url: str, timeout: int = 30) -> AsyncWeb3:
    """AsyncWeb3 instance over HTTP."""
    return AsyncWeb3(
        AsyncWeb3.AsyncHTTPProvider(rpc_url, request_kwargs={"timeout": timeout})
    )


def _prepare_tx(tx: Dict[str, Any], sender: str) -> Dict[str, Any]:
    prepared = dict(tx)
    prepared["from"] = AsyncWeb3.to_checksum_address(sender)
    if prepared.get("to"):
        prepared["to"] = AsyncWeb3.to_checksum_address(prepared["to"])
    return prepared


class Web3ChainClient:
    """Read access to the chain through one RPC endpoint."""

    def __init__(self, w3: AsyncWeb3, receipt_timeout: float = DEFAULT_RECEIPT_TIMEOUT_S):
        self.w3 = w3
        self.receipt_timeout = receipt_timeout

    @classmethod
    def from_config(cls, config: BotConfig) -> "Web3ChainClient":
        """Client on the first configured rpc with the configured receipt timeout."""
        return cls(create_web3(config.rpc[0]), receipt_timeout=config.receipt_timeout_s)

    async def get_gas_price(self) -> int:
        return int(await self.w3.eth.gas_price)

    async def get_block_number(self) -> int:
        return int(await self.w3.eth.block_number)

    async def get_vault_balance(
        self, orderbook: str, owner: str, token: str, vault_id: int
    ) -> int:
        try:
            result = await self.w3.eth.call(
                {
                    "to": AsyncWeb3.to_checksum_address(orderbook),
                    "data": encode_vault_balance(owner, token, vault_id),
                }
            )
        except Exception as e:
            raise NetworkError(f"failed to read vault {vault_id} of {owner}: {e}") from e
        return decode_uint256(result)

    async def wait_for_receipt(self, tx_hash: str) -> Dict[str, Any]:
        """
        Wait until ``tx_hash`` is mined.

        Raises:
            TransactionError: If the receipt did not arrive in time or the
                node failed to return it
        """
        try:
            receipt = await self.w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self.receipt_timeout
            )
        except TimeExhausted as e:
            raise TransactionError(
                f"transaction {tx_hash} not mined after {self.receipt_timeout}s",
                tx_hash=tx_hash,
            ) from e
        except Exception as e:
            raise TransactionError(
                f"failed to get receipt of {tx_hash}: {e}",
                tx_hash=tx_hash,
                receipt=getattr(e, "receipt", None),
            ) from e
        return dict(receipt)


class Web3Signer:
    """
    A local account estimating, signing and sending through ``w3``.

    Nonces are read from the pending block before every send, which holds
    as long as only one pair uses the account at a time.
    """

    def __init__(self, w3: AsyncWeb3, account: LocalAccount):
        self.w3 = w3
        self.account = account

    @classmethod
    def from_key(cls, w3: AsyncWeb3, private_key: str) -> "Web3Signer":
        return cls(w3, EthAccount.from_key(private_key))

    @property
    def address(self) -> str:
        return self.account.address

    def for_relay(self, rpc_url: str) -> "Web3Signer":
        """Signer sharing this account's key but submitting through ``rpc_url``."""
        return Web3Signer(create_web3(rpc_url), self.account)

    async def get_block_number(self) -> int:
        return int(await self.w3.eth.block_number)

    async def estimate_gas(self, tx: Dict[str, Any]) -> int:
        return int(await self.w3.eth.estimate_gas(_prepare_tx(tx, self.address)))

    async def send_transaction(self, tx: Dict[str, Any]) -> str:
        """
        Sign and broadcast ``tx``.

        Returns:
            The transaction hash as a 0x-prefixed hex string

        Raises:
            InsufficientFundsError: If the account cannot pay for gas
            NetworkError: If the node rejected the transaction
        """
        params = _prepare_tx(tx, self.address)
        try:
            params.setdefault(
                "nonce", await self.w3.eth.get_transaction_count(self.address, "pending")
            )
            params.setdefault("chainId", await self.w3.eth.chain_id)
            params.setdefault("value", 0)
            signed = self.account.sign_transaction(params)
            tx_hash = await self.w3.eth.send_raw_transaction(signed.raw_transaction)
        except Exception as e:
            if is_insufficient_funds_error(e):
                raise InsufficientFundsError(
                    f"{self.address} cannot pay for gas: {e}"
                ) from e
            raise NetworkError(f"failed to send transaction: {e}") from e

        tx_hash_hex = self.w3.to_hex(tx_hash)
        logger.debug(f"Sent transaction {tx_hash_hex} from {self.address}")
        return tx_hash_hex

    def __repr__(self) -> str:
        return f"Web3Signer({self.address})"


def relay_signer_factory(flashbot_rpc: Optional[str]):
    """Builds relay signers for accounts when a private relay is configured."""
    if not flashbot_rpc:
        return None

    relay_signers: Dict[str, Web3Signer] = {}

    def factory(account):
        if account.address not in relay_signers:
            relay_signers[account.address] = account.signer.for_relay(flashbot_rpc)
        return relay_signers[account.address]

    return factory
