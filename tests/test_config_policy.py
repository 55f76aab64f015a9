import os
import sys

import pytest

# Add repo root to path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from addresses import make_address
from liquidator_config import (
    ConfigError,
    InitiatorPolicy,
    ProtocolBindings,
    load_bindings,
    load_initiator_policy,
    normalize_rpc_url,
)
from policy import AddressBlocked, check_bindings, parse_allow_addresses, parse_ignore_addresses
from profit_guard import evaluate

LENDER = make_address("flash-lender")
LENDING = make_address("lending-pool")
POOL_A = make_address("pool-a")
POOL_B = make_address("pool-b")


def env_for(**overrides):
    env = {
        "FLASH_LENDER_ADDRESS": LENDER.lower(),
        "LENDING_POOL_ADDRESS": LENDING,
        "COLLATERAL_POOL_ADDRESS": POOL_A,
        "TARGET_POOL_ADDRESS": POOL_B,
    }
    env.update(overrides)
    return env


def test_load_bindings_checksums_addresses():
    bindings = load_bindings(env_for())
    assert bindings.lender == LENDER
    assert bindings.pool_target == POOL_B


def test_load_bindings_reports_missing():
    env = env_for()
    del env["TARGET_POOL_ADDRESS"]
    with pytest.raises(ConfigError, match="TARGET_POOL_ADDRESS"):
        load_bindings(env)


def test_bindings_reject_bad_and_duplicate_addresses():
    with pytest.raises(ConfigError):
        load_bindings(env_for(LENDING_POOL_ADDRESS="0x1234"))
    with pytest.raises(ConfigError):
        ProtocolBindings(lender=LENDER, lending=LENDING, pool_collateral=POOL_A, pool_target=POOL_A.lower())


def test_bindings_are_frozen():
    bindings = load_bindings(env_for())
    with pytest.raises(Exception):
        bindings.lender = LENDING


def test_initiator_policy():
    assert load_initiator_policy({}) is InitiatorPolicy.OWNER_OR_SELF
    assert load_initiator_policy({"INITIATOR_POLICY": "SELF"}) is InitiatorPolicy.SELF
    with pytest.raises(ConfigError):
        load_initiator_policy({"INITIATOR_POLICY": "anyone"})


def test_normalize_rpc_url(monkeypatch):
    url = "https://arb-mainnet.g.alchemy.com/v2/${ALCHEMY_API_KEY}"
    monkeypatch.delenv("ALCHEMY_API_KEY", raising=False)
    assert normalize_rpc_url(url) == ""
    monkeypatch.setenv("ALCHEMY_API_KEY", "k3y")
    assert normalize_rpc_url(url) == "https://arb-mainnet.g.alchemy.com/v2/k3y"
    assert normalize_rpc_url("https://arb1.arbitrum.io/rpc") == "https://arb1.arbitrum.io/rpc"


def test_check_bindings_against_lists(monkeypatch):
    for name in ("ALLOW_ADDRESSES", "ALLOW_POOLS", "IGNORE_ADDRESSES", "IGNORE_POOLS"):
        monkeypatch.delenv(name, raising=False)
    bindings = load_bindings(env_for())

    check_bindings(bindings, set(), set())

    with pytest.raises(AddressBlocked):
        check_bindings(bindings, set(), parse_ignore_addresses(POOL_A))

    allowed = parse_allow_addresses(",".join([LENDER, LENDING, POOL_A]))
    with pytest.raises(AddressBlocked):
        check_bindings(bindings, allowed, set())

    monkeypatch.setenv("ALLOW_POOLS", POOL_B)
    check_bindings(bindings, parse_allow_addresses(",".join([LENDER, LENDING, POOL_A])), set())


def test_profit_guard():
    assert evaluate(1050, 1001, 0) == (True, 49)
    assert evaluate(1050, 1001, 49) == (True, 49)
    assert evaluate(1050, 1001, 50) == (False, None)
    assert evaluate(0, 1001, 0).ok is False
