"""Tests for the web3 chain adapters"""

from unittest.mock import AsyncMock, Mock

import pytest
from eth_abi import encode
from eth_account import Account as EthAccount
from web3 import Web3
from web3.exceptions import TimeExhausted

from orderbook_arbitrage.chain import (
    Web3ChainClient,
    Web3Signer,
    relay_signer_factory,
)
from orderbook_arbitrage.contracts import encode_vault_balance
from orderbook_arbitrage.exceptions import (
    InsufficientFundsError,
    NetworkError,
    TransactionError,
)

from conftest import ARB, ORDERBOOK, OWNER, TOKEN_B, TX_HASH

PRIVATE_KEY = "0x" + "01" * 32


async def resolved(value):
    return value


@pytest.fixture
def w3():
    w3 = Mock()
    w3.eth.estimate_gas = AsyncMock(return_value=120_000)
    w3.eth.get_transaction_count = AsyncMock(return_value=7)
    w3.eth.send_raw_transaction = AsyncMock(return_value=bytes.fromhex(TX_HASH[2:]))
    w3.eth.wait_for_transaction_receipt = AsyncMock()
    w3.to_hex = Web3.to_hex
    return w3


@pytest.fixture
def web3_signer(w3):
    return Web3Signer.from_key(w3, PRIVATE_KEY)


def raw_tx():
    return {"to": ARB, "data": "0x1234", "gasPrice": 10**9, "gas": 150_000}


class TestWeb3ChainClient:
    @pytest.mark.asyncio
    async def test_reads(self, w3):
        w3.eth.gas_price = resolved(10**9)
        w3.eth.block_number = resolved(123)
        client = Web3ChainClient(w3)

        assert await client.get_gas_price() == 10**9
        assert await client.get_block_number() == 123

    @pytest.mark.asyncio
    async def test_receipt(self, w3):
        w3.eth.wait_for_transaction_receipt.return_value = {"status": 1, "gasUsed": 5}

        receipt = await Web3ChainClient(w3, receipt_timeout=10).wait_for_receipt(TX_HASH)

        assert receipt == {"status": 1, "gasUsed": 5}
        w3.eth.wait_for_transaction_receipt.assert_awaited_once_with(TX_HASH, timeout=10)

    @pytest.mark.asyncio
    async def test_receipt_timeout(self, w3):
        w3.eth.wait_for_transaction_receipt.side_effect = TimeExhausted("not mined")

        with pytest.raises(TransactionError, match="not mined after") as exc_info:
            await Web3ChainClient(w3).wait_for_receipt(TX_HASH)

        assert exc_info.value.tx_hash == TX_HASH
        assert exc_info.value.receipt is None

    @pytest.mark.asyncio
    async def test_receipt_failure_keeps_partial_receipt(self, w3):
        error = ValueError("node dropped the connection")
        error.receipt = {"status": 0, "gasUsed": 5, "effectiveGasPrice": 2}
        w3.eth.wait_for_transaction_receipt.side_effect = error

        with pytest.raises(TransactionError) as exc_info:
            await Web3ChainClient(w3).wait_for_receipt(TX_HASH)

        assert exc_info.value.receipt == error.receipt


    @pytest.mark.asyncio
    async def test_vault_balance(self, w3):
        w3.eth.call = AsyncMock(return_value=encode(["uint256"], [7 * 10**17]))
        client = Web3ChainClient(w3)

        balance = await client.get_vault_balance(ORDERBOOK, OWNER, TOKEN_B, 1)

        assert balance == 7 * 10**17
        call = w3.eth.call.await_args.args[0]
        assert call["to"] == Web3.to_checksum_address(ORDERBOOK)
        assert call["data"] == encode_vault_balance(OWNER, TOKEN_B, 1)

    @pytest.mark.asyncio
    async def test_vault_balance_failure(self, w3):
        w3.eth.call = AsyncMock(side_effect=ValueError("execution reverted"))
        client = Web3ChainClient(w3)

        with pytest.raises(NetworkError, match="execution reverted"):
            await client.get_vault_balance(ORDERBOOK, OWNER, TOKEN_B, 1)

    def test_from_config(self, make_config):
        config = make_config(receipt_timeout_s=45)

        client = Web3ChainClient.from_config(config)

        assert client.receipt_timeout == 45
        assert client.w3.provider.endpoint_uri == config.rpc[0]


class TestWeb3Signer:
    def test_address(self, web3_signer):
        assert web3_signer.address == EthAccount.from_key(PRIVATE_KEY).address

    @pytest.mark.asyncio
    async def test_estimate_gas_checksums_addresses(self, w3, web3_signer):
        gas = await web3_signer.estimate_gas(raw_tx())

        assert gas == 120_000
        tx = w3.eth.estimate_gas.await_args.args[0]
        assert tx["to"] == Web3.to_checksum_address(ARB)
        assert tx["from"] == web3_signer.address

    @pytest.mark.asyncio
    async def test_send_transaction(self, w3, web3_signer):
        w3.eth.chain_id = resolved(137)

        tx_hash = await web3_signer.send_transaction(raw_tx())

        assert tx_hash == TX_HASH
        w3.eth.get_transaction_count.assert_awaited_once_with(web3_signer.address, "pending")
        raw = w3.eth.send_raw_transaction.await_args.args[0]
        assert isinstance(raw, bytes)
        assert EthAccount.recover_transaction(raw) == web3_signer.address

    @pytest.mark.asyncio
    async def test_insufficient_funds(self, w3, web3_signer):
        w3.eth.chain_id = resolved(137)
        w3.eth.send_raw_transaction.side_effect = ValueError(
            {"code": -32000, "message": "insufficient funds for gas * price + value"}
        )

        with pytest.raises(InsufficientFundsError):
            await web3_signer.send_transaction(raw_tx())

    @pytest.mark.asyncio
    async def test_rejected(self, w3, web3_signer):
        w3.eth.chain_id = resolved(137)
        w3.eth.send_raw_transaction.side_effect = ValueError("nonce too low")

        with pytest.raises(NetworkError, match="nonce too low"):
            await web3_signer.send_transaction(raw_tx())

    def test_for_relay(self, web3_signer):
        relay = web3_signer.for_relay("https://relay.example.org")

        assert relay.address == web3_signer.address
        assert relay.w3 is not web3_signer.w3
        assert relay.w3.provider.endpoint_uri == "https://relay.example.org"


class TestRelaySignerFactory:
    def test_disabled(self):
        assert relay_signer_factory(None) is None
        assert relay_signer_factory("") is None

    def test_cached_per_address(self):
        factory = relay_signer_factory("https://relay.example.org")
        account = Mock(address="0x01")
        account.signer.for_relay.return_value = "relay"

        assert factory(account) == "relay"
        assert factory(account) == "relay"
        account.signer.for_relay.assert_called_once_with("https://relay.example.org")
