import os
from typing import Iterable, Set

from liquidator_config import ProtocolBindings


class AddressBlocked(RuntimeError):
    pass


def _parse(sources: Iterable[str]) -> Set[str]:
    addresses = set()
    for source in sources:
        if not source:
            continue
        for item in source.split(","):
            addr = item.strip().lower()
            if addr:
                addresses.add(addr)
    return addresses


def parse_allow_addresses(cli_value: str = "") -> Set[str]:
    return _parse([
        os.getenv("ALLOW_ADDRESSES", ""),
        os.getenv("ALLOW_POOLS", ""),
        cli_value or "",
    ])


def parse_ignore_addresses(cli_value: str = "") -> Set[str]:
    return _parse([
        os.getenv("IGNORE_ADDRESSES", ""),
        os.getenv("IGNORE_POOLS", ""),
        cli_value or "",
    ])


def is_allowed_address(address: str, allowed: Set[str], allow_any: bool) -> bool:
    if not allowed:
        return allow_any
    return address.lower() in allowed


def is_ignored_address(address: str, ignored: Set[str]) -> bool:
    return address.lower() in ignored


def check_addresses(addresses: Iterable[str], allowed: Set[str], ignored: Set[str]) -> None:
    for addr in addresses:
        if is_ignored_address(addr, ignored):
            raise AddressBlocked(f"{addr} is in ignore list")
        if not is_allowed_address(addr, allowed, allow_any=True):
            raise AddressBlocked(f"{addr} is not in allow list")


def check_bindings(bindings: ProtocolBindings, allowed: Set[str], ignored: Set[str]) -> None:
    check_addresses(bindings.as_dict().values(), allowed, ignored)
