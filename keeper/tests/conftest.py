"""Shared test fixtures."""

from collections.abc import Callable
from pathlib import Path

import pytest
import yaml
from eth_abi import encode
from eth_utils import encode_hex
from web3 import AsyncHTTPProvider, AsyncWeb3

from keeper.chain.abi import AUCTION_FILLED_TOPIC, LIQUIDATION_STARTED_TOPIC, bytes32
from keeper.chain.auction_engine import AuctionEngine
from keeper.chain.rpc_client import RpcClient
from keeper.config.defaults import DEFAULT_MARKETS
from keeper.config.schema import KeeperConfig
from keeper.models.auction import Auction
from keeper.models.common import WAD, market_id_for

RPC_URL = "http://rpc.test"
ENGINE_ADDRESS = "0x" + "11" * 20
TRADER_ADDRESS = "0x" + "22" * 20
# Well-known throwaway key, never funded
TEST_PRIVATE_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
AUCTION_TUPLE = "(bytes32,bytes32,address,bytes32,int256,int256,uint256,uint256,uint256,uint256,bool)"


def auction_id(n: int) -> str:
    return "0x" + f"{n:064x}"


@pytest.fixture
def default_config() -> KeeperConfig:
    """Return a read-only KeeperConfig with default markets."""
    return KeeperConfig(markets=DEFAULT_MARKETS)


@pytest.fixture
def live_config() -> KeeperConfig:
    """Return a config with a signer and an engine address."""
    return KeeperConfig(
        rpc={"url": RPC_URL},
        contracts={"liquidation_engine": ENGINE_ADDRESS},
        signer={"private_key": TEST_PRIVATE_KEY},
        markets=DEFAULT_MARKETS,
    )


@pytest.fixture
def config_yaml_path(tmp_path: Path) -> Path:
    """Write a minimal valid config YAML and return its path."""
    data = {
        "keeper": {"min_profit_usd": 5.0, "poll_interval_ms": 2000},
        "gas": {"eth_price_usd": 2500.0},
    }
    path = tmp_path / "test_config.yaml"
    with open(path, "w") as f:
        yaml.dump(data, f)
    return path


@pytest.fixture
def make_auction() -> Callable[..., Auction]:
    def _make(n: int = 1, **overrides) -> Auction:
        fields = {
            "auction_id": auction_id(n),
            "position_id": auction_id(1000 + n),
            "trader": TRADER_ADDRESS,
            "market_id": market_id_for("XAU/USD"),
            "original_size": 2 * WAD,
            "remaining_size": 2 * WAD,
            "start_price": 2100 * WAD,
            "end_price": 1900 * WAD,
            "start_time": 1_700_000_000,
            "duration": 300,
            "is_active": True,
        }
        fields.update(overrides)
        return Auction(**fields)

    return _make


@pytest.fixture
def encode_auction() -> Callable[[Auction], str]:
    """Encode an Auction as getAuction() return data."""

    def _encode(a: Auction) -> str:
        raw = (
            bytes32(a.auction_id),
            bytes32(a.position_id),
            a.trader,
            bytes32(a.market_id),
            a.original_size,
            a.remaining_size,
            a.start_price,
            a.end_price,
            a.start_time,
            a.duration,
            a.is_active,
        )
        return encode_hex(encode([AUCTION_TUPLE], [raw]))

    return _encode


@pytest.fixture
def liquidation_log() -> Callable[..., dict]:
    def _log(n: int = 1, size: int = -3 * WAD, block: int = 100) -> dict:
        return {
            "address": ENGINE_ADDRESS,
            "topics": [
                LIQUIDATION_STARTED_TOPIC,
                auction_id(n),
                auction_id(1000 + n),
                encode_hex(encode(["address"], [TRADER_ADDRESS])),
            ],
            "data": encode_hex(
                encode(["int256", "uint256", "uint256"], [size, 2100 * WAD, 1900 * WAD])
            ),
            "blockNumber": hex(block),
            "transactionHash": "0x" + "ab" * 32,
        }

    return _log


@pytest.fixture
def filled_log() -> Callable[..., dict]:
    def _log(n: int = 1, filler: str = TRADER_ADDRESS, block: int = 101) -> dict:
        return {
            "address": ENGINE_ADDRESS,
            "topics": [
                AUCTION_FILLED_TOPIC,
                auction_id(n),
                encode_hex(encode(["address"], [filler])),
            ],
            "data": encode_hex(
                encode(["int256", "uint256", "uint256"], [WAD, 2000 * WAD, 5 * WAD])
            ),
            "blockNumber": hex(block),
            "transactionHash": "0x" + "cd" * 32,
        }

    return _log


@pytest.fixture
def w3() -> AsyncWeb3:
    """A real AsyncWeb3 that never connects; patch its eth methods per test."""
    return AsyncWeb3(AsyncHTTPProvider(RPC_URL))


@pytest.fixture
def chain_rpc(w3: AsyncWeb3) -> RpcClient:
    return RpcClient(RPC_URL, w3=w3)


@pytest.fixture
def engine_binding(chain_rpc: RpcClient) -> AuctionEngine:
    """An AuctionEngine with real ABI bindings and no sender."""
    return AuctionEngine(chain_rpc, ENGINE_ADDRESS)
