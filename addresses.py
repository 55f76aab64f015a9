from web3 import Web3


def same_address(a: str, b: str) -> bool:
    if not a or not b:
        return False
    return a.lower() == b.lower()


def make_address(label: str) -> str:
    # Deterministic stand-in for a deployed contract/EOA address.
    return Web3.to_checksum_address(Web3.keccak(text=label)[12:])


def checksum(address: str) -> str:
    return Web3.to_checksum_address(address)
