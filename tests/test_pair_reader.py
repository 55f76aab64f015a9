import os
import sys
from unittest.mock import MagicMock, patch

import pytest

# Add repo root to path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from addresses import make_address
from amm_router import quote_two_hop
from pair_reader import LivePair, connect

WETH = make_address("token:WETH")
ARB = make_address("token:ARB")
USDC = make_address("token:USDC")
POOL_A = make_address("pair:weth-arb")
POOL_B = make_address("pair:usdc-arb")


def mock_pair(token0, token1, reserve0, reserve1):
    contract = MagicMock()
    contract.functions.token0.return_value.call.return_value = token0.lower()
    contract.functions.token1.return_value.call.return_value = token1.lower()
    contract.functions.getReserves.return_value.call.return_value = [reserve0, reserve1, 1700000000]
    return contract


@pytest.fixture
def w3():
    contracts = {
        POOL_A: mock_pair(WETH, ARB, 997_000, 1_001_000),
        POOL_B: mock_pair(USDC, ARB, 1_051_050, 997_000),
    }
    mock = MagicMock()
    mock.eth.contract.side_effect = lambda address, abi: contracts[address]
    return mock


def test_live_pair_reads_checksummed_assets_once(w3):
    pair = LivePair(w3, POOL_A.lower())
    assert pair.address == POOL_A
    assert pair.assets() == (WETH, ARB)
    assert pair.assets() == (WETH, ARB)
    assert pair.contract.functions.token0.return_value.call.call_count == 1


def test_live_pair_reserves_are_fetched_every_time(w3):
    pair = LivePair(w3, POOL_A)
    assert pair.reserves() == (997_000, 1_001_000)
    pair.reserves()
    assert pair.contract.functions.getReserves.return_value.call.call_count == 2


def test_quote_through_live_pairs(w3):
    pool_a = LivePair(w3, POOL_A)
    pool_b = LivePair(w3, POOL_B)
    assert quote_two_hop(pool_a, pool_b, WETH, USDC, 1000) == 1050


def test_connect_fails_when_rpc_unreachable():
    with patch("pair_reader.Web3") as web3_cls:
        web3_cls.return_value.is_connected.return_value = False
        with pytest.raises(RuntimeError, match="not connected"):
            connect("https://rpc.invalid")


def test_connect_requires_alchemy_key(monkeypatch):
    monkeypatch.delenv("ALCHEMY_API_KEY", raising=False)
    with pytest.raises(RuntimeError, match="ALCHEMY_API_KEY"):
        connect("https://arb-mainnet.g.alchemy.com/v2/${ALCHEMY_API_KEY}")
