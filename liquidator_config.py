import os
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional

from dotenv import load_dotenv
from web3 import Web3

load_dotenv()

DEFAULT_RPC_URL = os.getenv("ARBITRUM_RPC_URL", "https://arb1.arbitrum.io/rpc")


class ConfigError(ValueError):
    pass


class InitiatorPolicy(str, Enum):
    """Which ``initiator`` a lender may report on the callback.

    Lenders differ: some report the account that asked for the loan, others
    the receiver contract itself.
    """

    OWNER = "owner"
    SELF = "self"
    OWNER_OR_SELF = "owner_or_self"


def _normalize(role: str, value: str) -> str:
    value = (value or "").strip()
    if not Web3.is_address(value):
        raise ConfigError(f"{role}: invalid address {value!r}")
    return Web3.to_checksum_address(value)


@dataclass(frozen=True)
class ProtocolBindings:
    lender: str
    lending: str
    pool_collateral: str  # collateral <-> intermediate
    pool_target: str  # intermediate <-> debt asset

    def __post_init__(self) -> None:
        for role in ("lender", "lending", "pool_collateral", "pool_target"):
            object.__setattr__(self, role, _normalize(role, getattr(self, role)))
        addresses = [a.lower() for a in self.as_dict().values()]
        if len(set(addresses)) != len(addresses):
            raise ConfigError("protocol bindings must be four distinct addresses")

    def as_dict(self) -> dict:
        return {
            "lender": self.lender,
            "lending": self.lending,
            "pool_collateral": self.pool_collateral,
            "pool_target": self.pool_target,
        }


def load_bindings(env: Optional[Mapping[str, str]] = None) -> ProtocolBindings:
    env = os.environ if env is None else env
    missing = [
        name
        for name in (
            "FLASH_LENDER_ADDRESS",
            "LENDING_POOL_ADDRESS",
            "COLLATERAL_POOL_ADDRESS",
            "TARGET_POOL_ADDRESS",
        )
        if not env.get(name)
    ]
    if missing:
        raise ConfigError(f"missing configuration: {', '.join(missing)}")
    return ProtocolBindings(
        lender=env["FLASH_LENDER_ADDRESS"],
        lending=env["LENDING_POOL_ADDRESS"],
        pool_collateral=env["COLLATERAL_POOL_ADDRESS"],
        pool_target=env["TARGET_POOL_ADDRESS"],
    )


def load_initiator_policy(env: Optional[Mapping[str, str]] = None) -> InitiatorPolicy:
    env = os.environ if env is None else env
    raw = env.get("INITIATOR_POLICY", InitiatorPolicy.OWNER_OR_SELF.value).strip().lower()
    try:
        return InitiatorPolicy(raw)
    except ValueError:
        raise ConfigError(f"INITIATOR_POLICY must be one of {[p.value for p in InitiatorPolicy]}") from None


def normalize_rpc_url(url: str) -> str:
    alchemy_key = os.getenv("ALCHEMY_API_KEY")
    if "${ALCHEMY_API_KEY}" in url:
        if not alchemy_key:
            return ""
        return url.replace("${ALCHEMY_API_KEY}", alchemy_key)
    return url
