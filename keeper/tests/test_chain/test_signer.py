"""Tests for the keeper signer and transaction sender."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from keeper.chain.rpc_client import RpcClientError
from keeper.chain.signer import KeeperSigner, TransactionSender
from keeper.config.schema import GasConfig

TEST_PRIVATE_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
ENGINE = "0x" + "11" * 20


@pytest.fixture
def signer():
    return KeeperSigner(TEST_PRIVATE_KEY)


@pytest.fixture
def rpc():
    return MagicMock(
        estimate_gas=AsyncMock(return_value=100_000),
        estimate_fee_params=AsyncMock(return_value=(200_000_000, 1_000_000)),
        get_transaction_count=AsyncMock(return_value=5),
        send_raw_transaction=AsyncMock(side_effect=lambda raw: "0x" + raw[-4:].hex()),
    )


class TestKeeperSigner:
    def test_address_derived(self, signer):
        assert signer.address.startswith("0x")
        assert len(signer.address) == 42

    def test_repr_hides_key(self, signer):
        assert TEST_PRIVATE_KEY[2:] not in repr(signer)
        assert signer.address in repr(signer)

    def test_sign_returns_raw_bytes(self, signer):
        raw = signer.sign({
            "type": 2,
            "chainId": 421614,
            "nonce": 0,
            "to": "0x" + "11" * 20,
            "value": 0,
            "data": "0x",
            "gas": 21000,
            "maxFeePerGas": 10**8,
            "maxPriorityFeePerGas": 10**6,
        })
        assert isinstance(raw, bytes)
        # EIP-2718 typed envelope
        assert raw[0] == 2


class TestTransactionSender:
    @pytest.mark.asyncio
    async def test_builds_eip1559_tx(self, rpc, signer):
        sender = TransactionSender(rpc, signer, 421614, GasConfig(gas_limit_buffer=1.5))
        with patch.object(signer, "sign", wraps=signer.sign) as sign:
            await sender.submit(ENGINE, "0xdeadbeef")
        tx = sign.call_args.args[0]
        assert tx["type"] == 2
        assert tx["chainId"] == 421614
        assert tx["nonce"] == 5
        assert tx["gas"] == 150_000
        assert tx["maxFeePerGas"] == 200_000_000
        assert tx["maxPriorityFeePerGas"] == 1_000_000
        rpc.estimate_gas.assert_awaited_once_with(ENGINE, "0xdeadbeef", signer.address)

    @pytest.mark.asyncio
    async def test_fee_floors_when_unreported(self, rpc, signer):
        rpc.estimate_fee_params.return_value = (None, None)
        sender = TransactionSender(rpc, signer, 421614, GasConfig())
        with patch.object(signer, "sign", wraps=signer.sign) as sign:
            await sender.submit(ENGINE, "0x")
        tx = sign.call_args.args[0]
        assert tx["maxFeePerGas"] == 100_000_000  # 0.1 gwei
        assert tx["maxPriorityFeePerGas"] == 10_000_000  # 0.01 gwei

    @pytest.mark.asyncio
    async def test_local_nonce_ahead_of_node(self, rpc, signer):
        sender = TransactionSender(rpc, signer, 421614)
        with patch.object(signer, "sign", wraps=signer.sign) as sign:
            await sender.submit(ENGINE, "0x")
            await sender.submit(ENGINE, "0x")
        nonces = [c.args[0]["nonce"] for c in sign.call_args_list]
        assert nonces == [5, 6]

    @pytest.mark.asyncio
    async def test_concurrent_submits_distinct_nonces(self, rpc, signer):
        sender = TransactionSender(rpc, signer, 421614)
        with patch.object(signer, "sign", wraps=signer.sign) as sign:
            await asyncio.gather(sender.submit(ENGINE, "0x01"), sender.submit(ENGINE, "0x02"))
        nonces = sorted(c.args[0]["nonce"] for c in sign.call_args_list)
        assert nonces == [5, 6]

    @pytest.mark.asyncio
    async def test_send_failure_resyncs_nonce(self, rpc, signer):
        sender = TransactionSender(rpc, signer, 421614)
        await sender.submit(ENGINE, "0x")
        rpc.send_raw_transaction.side_effect = RpcClientError("nonce too low")
        with pytest.raises(RpcClientError):
            await sender.submit(ENGINE, "0x")

        rpc.send_raw_transaction.side_effect = None
        rpc.send_raw_transaction.return_value = "0xok"
        rpc.get_transaction_count.return_value = 9
        with patch.object(signer, "sign", wraps=signer.sign) as sign:
            await sender.submit(ENGINE, "0x")
        assert sign.call_args.args[0]["nonce"] == 9
