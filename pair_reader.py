import logging
from typing import Tuple

from web3 import Web3

from liquidator_config import DEFAULT_RPC_URL, normalize_rpc_url

logger = logging.getLogger("PairReader")

PAIR_ABI = [
    {"constant": True, "inputs": [], "name": "token0", "outputs": [{"name": "", "type": "address"}], "type": "function"},
    {"constant": True, "inputs": [], "name": "token1", "outputs": [{"name": "", "type": "address"}], "type": "function"},
    {
        "constant": True,
        "inputs": [],
        "name": "getReserves",
        "outputs": [
            {"name": "", "type": "uint112"},
            {"name": "", "type": "uint112"},
            {"name": "", "type": "uint32"},
        ],
        "type": "function",
    },
]


def connect(rpc_url: str = DEFAULT_RPC_URL) -> Web3:
    url = normalize_rpc_url(rpc_url)
    if not url:
        raise RuntimeError(f"rpc url unusable (missing ALCHEMY_API_KEY?): {rpc_url}")
    w3 = Web3(Web3.HTTPProvider(url, request_kwargs={"timeout": 30}))
    if not w3.is_connected():
        raise RuntimeError(f"RPC not connected: {url}")
    return w3


class LivePair:
    """Read-only view of a deployed V2 pair; reserves are fetched on every call."""

    def __init__(self, w3: Web3, address: str):
        self.address = Web3.to_checksum_address(address)
        self.contract = w3.eth.contract(address=self.address, abi=PAIR_ABI)
        self._assets = None

    def assets(self) -> Tuple[str, str]:
        # token0/token1 never change for a deployed pair
        if self._assets is None:
            self._assets = (
                Web3.to_checksum_address(self.contract.functions.token0().call()),
                Web3.to_checksum_address(self.contract.functions.token1().call()),
            )
        return self._assets

    def reserves(self) -> Tuple[int, int]:
        reserve0, reserve1, _ = self.contract.functions.getReserves().call()
        logger.debug(f"{self.address} reserves: {reserve0}, {reserve1}")
        return int(reserve0), int(reserve1)
