"""Constant-product swap math and execution for V2 style pools.

Pools may list their two assets in either order, so the input/output slot is
always resolved by comparing asset identities, never by index.
"""
import logging
from dataclasses import dataclass
from typing import Tuple

from addresses import same_address
from collaborators import Pool
from ledger import Ledger
from liquidation_errors import EmptyReserves, PoolAssetMismatch, ZeroOutput

logger = logging.getLogger("AmmRouter")

# 0.3% proportional fee
FEE_NUMERATOR = 997
FEE_DENOMINATOR = 1000


@dataclass(frozen=True)
class SwapQuote:
    asset_in: str
    asset_out: str
    amount_in: int
    reserve_in: int
    reserve_out: int
    amount_out: int
    in_is_a: bool


def get_amount_out(amount_in: int, reserve_in: int, reserve_out: int) -> int:
    amount_in_with_fee = amount_in * FEE_NUMERATOR
    numerator = amount_in_with_fee * reserve_out
    denominator = (reserve_in * FEE_DENOMINATOR) + amount_in_with_fee
    return numerator // denominator


def resolve_direction(pool: Pool, asset_in: str) -> Tuple[bool, str]:
    """Return ``(in_is_a, asset_out)`` for ``asset_in`` on ``pool``."""
    asset_a, asset_b = pool.assets()
    if same_address(asset_in, asset_a):
        return True, asset_b
    if same_address(asset_in, asset_b):
        return False, asset_a
    raise PoolAssetMismatch(f"{asset_in} is not traded by pool {pool.address}")


def intermediate_asset(pool: Pool, target: str) -> str:
    _, other = resolve_direction(pool, target)
    return other


def quote(pool: Pool, asset_in: str, amount_in: int) -> SwapQuote:
    if amount_in <= 0:
        raise ZeroOutput(f"non-positive input {amount_in} of {asset_in}")
    in_is_a, asset_out = resolve_direction(pool, asset_in)
    reserve_a, reserve_b = pool.reserves()
    if reserve_a == 0 or reserve_b == 0:
        raise EmptyReserves(f"pool {pool.address} reserves are ({reserve_a}, {reserve_b})")

    reserve_in, reserve_out = (reserve_a, reserve_b) if in_is_a else (reserve_b, reserve_a)
    amount_out = get_amount_out(amount_in, reserve_in, reserve_out)
    if amount_out <= 0:
        raise ZeroOutput(f"{amount_in} of {asset_in} rounds to nothing on pool {pool.address}")

    return SwapQuote(
        asset_in=asset_in,
        asset_out=asset_out,
        amount_in=amount_in,
        reserve_in=reserve_in,
        reserve_out=reserve_out,
        amount_out=amount_out,
        in_is_a=in_is_a,
    )


def _require_asset(pool: Pool, asset: str) -> None:
    resolve_direction(pool, asset)


def quote_two_hop(pool_a: Pool, pool_b: Pool, collateral: str, target: str, amount_in: int) -> int:
    """Read-only preview of ``AmmRouter.route_two_hop``."""
    if amount_in <= 0:
        return 0
    intermediate = intermediate_asset(pool_b, target)
    _require_asset(pool_a, intermediate)
    try:
        first = quote(pool_a, collateral, amount_in)
    except ZeroOutput:
        return 0
    return quote(pool_b, intermediate, first.amount_out).amount_out


class AmmRouter:
    """Executes swaps on behalf of ``custody``, which holds the input funds."""

    def __init__(self, ledger: Ledger, custody: str):
        self.ledger = ledger
        self.custody = custody

    def quote(self, pool: Pool, asset_in: str, amount_in: int) -> SwapQuote:
        return quote(pool, asset_in, amount_in)

    def execute(self, pool: Pool, asset_in: str, amount_in: int) -> int:
        q = quote(pool, asset_in, amount_in)
        logger.info(
            f"Swap {q.amount_in} {q.asset_in} -> {q.amount_out} {q.asset_out} "
            f"on {pool.address} (reserves in={q.reserve_in} out={q.reserve_out})"
        )

        token = self.ledger.contract(q.asset_in)
        token.transfer(pool.address, q.amount_in, sender=self.custody)

        if q.in_is_a:
            amount_out_a, amount_out_b = 0, q.amount_out
        else:
            amount_out_a, amount_out_b = q.amount_out, 0
        pool.swap(amount_out_a, amount_out_b, recipient=self.custody, sender=self.custody)
        return q.amount_out

    def route_two_hop(self, pool_a: Pool, pool_b: Pool, collateral: str, target: str, amount_in: int) -> int:
        if amount_in <= 0:
            return 0
        intermediate = intermediate_asset(pool_b, target)
        _require_asset(pool_a, intermediate)

        try:
            received = self.execute(pool_a, collateral, amount_in)
        except ZeroOutput:
            # dust: nothing has moved yet
            logger.info(f"{amount_in} of {collateral} rounds to nothing on {pool_a.address}, skipping route")
            return 0
        return self.execute(pool_b, intermediate, received)
