"""Ledger-backed reference collaborators: ERC-20 tokens, a V2 pair, an
ERC-3156 style flash lender and a lending pool with per-owner positions.

All mutable state lives on the ``Ledger``, so it is rolled back together with
the liquidator's own writes when an atomic unit aborts.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Tuple, Type

from addresses import make_address, same_address
from amm_router import FEE_DENOMINATOR, FEE_NUMERATOR
from collaborators import FLASH_CALLBACK_SUCCESS
from flash_liquidator import FlashLiquidator
from ledger import Ledger
from liquidation_errors import (
    InsufficientAllowance,
    InsufficientBalance,
    InvariantViolation,
    ProtocolError,
)
from liquidator_config import InitiatorPolicy, ProtocolBindings

logger = logging.getLogger("SimChain")

BPS = 10_000


class SimToken:
    def __init__(self, ledger: Ledger, symbol: str, address: Optional[str] = None):
        self.ledger = ledger
        self.symbol = symbol
        self.address = address or make_address(f"token:{symbol}")
        ledger.register(self)

    def balance_of(self, holder: str) -> int:
        return self.ledger.read(self.address, ("balance", holder.lower()))

    def allowance(self, owner: str, spender: str) -> int:
        return self.ledger.read(self.address, ("allowance", owner.lower(), spender.lower()))

    def mint(self, to: str, amount: int) -> None:
        self.ledger.write(self.address, ("balance", to.lower()), self.balance_of(to) + amount)

    def approve(self, spender: str, amount: int, sender: str) -> bool:
        self.ledger.write(self.address, ("allowance", sender.lower(), spender.lower()), amount)
        return True

    def transfer(self, to: str, amount: int, sender: str) -> bool:
        self._move(sender, to, amount)
        return True

    def transfer_from(self, src: str, to: str, amount: int, sender: str) -> bool:
        allowed = self.allowance(src, sender)
        if allowed < amount:
            raise InsufficientAllowance(f"{self.symbol}: {sender} may spend {allowed} of {src}, needs {amount}")
        with self.ledger.atomic():
            self.ledger.write(self.address, ("allowance", src.lower(), sender.lower()), allowed - amount)
            self._move(src, to, amount)
        return True

    def _move(self, src: str, dst: str, amount: int) -> None:
        if amount < 0:
            raise ProtocolError(f"{self.symbol}: negative transfer")
        balance = self.balance_of(src)
        if balance < amount:
            raise InsufficientBalance(f"{self.symbol}: {src} holds {balance}, needs {amount}")
        with self.ledger.atomic():
            self.ledger.write(self.address, ("balance", src.lower()), balance - amount)
            self.ledger.write(self.address, ("balance", dst.lower()), self.balance_of(dst) + amount)


class SimPair:
    """Uniswap V2 pair: optimistic transfer out, then the fee-adjusted K check."""

    def __init__(self, ledger: Ledger, token0: str, token1: str, address: Optional[str] = None):
        self.ledger = ledger
        self.token0 = token0
        self.token1 = token1
        self.address = address or make_address(f"pair:{token0}:{token1}")
        ledger.register(self)

    def assets(self) -> Tuple[str, str]:
        return self.token0, self.token1

    def reserves(self) -> Tuple[int, int]:
        return self.ledger.read(self.address, "reserve0"), self.ledger.read(self.address, "reserve1")

    def sync(self) -> None:
        self._update(
            self.ledger.contract(self.token0).balance_of(self.address),
            self.ledger.contract(self.token1).balance_of(self.address),
        )

    def swap(self, amount0_out: int, amount1_out: int, recipient: str, sender: str) -> None:
        if amount0_out <= 0 and amount1_out <= 0:
            raise ProtocolError("INSUFFICIENT_OUTPUT_AMOUNT")
        reserve0, reserve1 = self.reserves()
        if amount0_out >= reserve0 or amount1_out >= reserve1:
            raise ProtocolError("INSUFFICIENT_LIQUIDITY")

        token0 = self.ledger.contract(self.token0)
        token1 = self.ledger.contract(self.token1)
        with self.ledger.atomic():
            if amount0_out > 0:
                token0.transfer(recipient, amount0_out, sender=self.address)
            if amount1_out > 0:
                token1.transfer(recipient, amount1_out, sender=self.address)

            balance0 = token0.balance_of(self.address)
            balance1 = token1.balance_of(self.address)
            amount0_in = max(balance0 - (reserve0 - amount0_out), 0)
            amount1_in = max(balance1 - (reserve1 - amount1_out), 0)
            if amount0_in <= 0 and amount1_in <= 0:
                raise ProtocolError("INSUFFICIENT_INPUT_AMOUNT")

            fee = FEE_DENOMINATOR - FEE_NUMERATOR
            adjusted0 = balance0 * FEE_DENOMINATOR - amount0_in * fee
            adjusted1 = balance1 * FEE_DENOMINATOR - amount1_in * fee
            if adjusted0 * adjusted1 < reserve0 * reserve1 * FEE_DENOMINATOR ** 2:
                raise InvariantViolation("K")
            self._update(balance0, balance1)

    def _update(self, balance0: int, balance1: int) -> None:
        self.ledger.write(self.address, "reserve0", balance0)
        self.ledger.write(self.address, "reserve1", balance1)


class SimFlashLender:
    """Lends its own balance; reports the calling contract as initiator."""

    def __init__(self, ledger: Ledger, fee_bps: int = 5, address: Optional[str] = None):
        self.ledger = ledger
        self.fee_bps = fee_bps
        self.address = address or make_address("flash-lender")
        ledger.register(self)

    @property
    def paused(self) -> bool:
        return bool(self.ledger.read(self.address, "paused", False))

    def set_paused(self, paused: bool) -> None:
        self.ledger.write(self.address, "paused", paused)

    def max_loan(self, asset: str) -> int:
        return self.ledger.contract(asset).balance_of(self.address)

    def fee_for(self, asset: str, amount: int) -> int:
        # half-up rounding, as Aave's percentMul
        return (amount * self.fee_bps + BPS // 2) // BPS

    def issue(self, receiver: str, asset: str, amount: int, context: bytes, sender: str) -> bool:
        if self.paused or amount <= 0 or amount > self.max_loan(asset):
            logger.warning(f"Declined flash loan of {amount} {asset} to {receiver}")
            return False

        fee = self.fee_for(asset, amount)
        token = self.ledger.contract(asset)
        with self.ledger.atomic():
            token.transfer(receiver, amount, sender=self.address)
            ack = self.ledger.contract(receiver).on_funds_received(
                sender, asset, amount, fee, context, sender=self.address
            )
            if ack != FLASH_CALLBACK_SUCCESS:
                raise ProtocolError("flash loan callback failed")
            token.transfer_from(receiver, self.address, amount + fee, sender=self.address)
        logger.info(f"Flash loan of {amount} {asset} repaid with fee {fee}")
        return True


class SimLendingPool:
    def __init__(
        self,
        ledger: Ledger,
        debt_asset: str,
        primary_collateral: str,
        secondary_collateral: str,
        address: Optional[str] = None,
    ):
        self.ledger = ledger
        self._debt_asset = debt_asset
        self._collateral = (primary_collateral, secondary_collateral)
        self.address = address or make_address("lending-pool")
        ledger.register(self)

    def debt_asset(self) -> str:
        return self._debt_asset

    def collateral_assets(self) -> Tuple[str, str]:
        return self._collateral

    def total_debt_of(self, owner: str) -> int:
        return self.ledger.read(self.address, ("debt", owner.lower()))

    def collateral_of(self, owner: str, asset: str) -> int:
        return self.ledger.read(self.address, ("collateral", owner.lower(), asset.lower()))

    def is_delegate(self, owner: str, delegate: str) -> bool:
        return bool(self.ledger.read(self.address, ("delegate", owner.lower(), delegate.lower()), False))

    def approve_delegate(self, delegate: str, sender: str) -> None:
        self.ledger.write(self.address, ("delegate", sender.lower(), delegate.lower()), True)

    def deposit_collateral(self, asset: str, amount: int, sender: str) -> None:
        if not any(same_address(asset, c) for c in self._collateral):
            raise ProtocolError(f"{asset} is not accepted as collateral")
        with self.ledger.atomic():
            self.ledger.contract(asset).transfer(self.address, amount, sender=sender)
            self.ledger.write(
                self.address, ("collateral", sender.lower(), asset.lower()), self.collateral_of(sender, asset) + amount
            )

    def borrow(self, amount: int, sender: str) -> None:
        with self.ledger.atomic():
            self.ledger.contract(self._debt_asset).transfer(sender, amount, sender=self.address)
            self.ledger.write(self.address, ("debt", sender.lower()), self.total_debt_of(sender) + amount)

    def repay(self, asset: str, amount: int, on_behalf_of: str, sender: str) -> int:
        if not same_address(asset, self._debt_asset):
            raise ProtocolError(f"{asset} is not the debt asset")
        debt = self.total_debt_of(on_behalf_of)
        if debt == 0:
            raise ProtocolError(f"{on_behalf_of} has no debt")
        paid = min(amount, debt)
        with self.ledger.atomic():
            self.ledger.contract(asset).transfer_from(sender, self.address, paid, sender=self.address)
            self.ledger.write(self.address, ("debt", on_behalf_of.lower()), debt - paid)
        return paid

    def reclaim_all_collateral(self, owner: str, recipient: str, sender: str) -> None:
        if not (same_address(sender, owner) or self.is_delegate(owner, sender)):
            raise ProtocolError(f"{sender} may not withdraw for {owner}")
        if self.total_debt_of(owner) > 0:
            raise ProtocolError(f"{owner} still has outstanding debt")
        with self.ledger.atomic():
            for asset in self._collateral:
                amount = self.collateral_of(owner, asset)
                if amount > 0:
                    self.ledger.write(self.address, ("collateral", owner.lower(), asset.lower()), 0)
                    self.ledger.contract(asset).transfer(recipient, amount, sender=self.address)


@dataclass
class LiquidationScenario:
    ledger: Ledger
    owner: str
    debt_token: SimToken
    collateral_token: SimToken
    intermediate_token: SimToken
    secondary_token: SimToken
    lender: SimFlashLender
    lending: SimLendingPool
    pool_collateral: SimPair
    pool_target: SimPair
    liquidator: FlashLiquidator


def _seed_pair(pair: SimPair, amounts: dict) -> None:
    for token, amount in amounts.items():
        token.mint(pair.address, amount)
    pair.sync()


def build_liquidation_scenario(
    debt: int = 1000,
    collateral: int = 1000,
    secondary_collateral: int = 0,
    pool_collateral_reserves: Tuple[int, int] = (997_000, 1_001_000),
    pool_target_reserves: Tuple[int, int] = (997_000, 1_051_050),
    lender_liquidity: int = 1_000_000,
    fee_bps: int = 5,
    initiator_policy: InitiatorPolicy = InitiatorPolicy.OWNER_OR_SELF,
    approve_delegate: bool = True,
    lender_cls: Type[SimFlashLender] = SimFlashLender,
) -> LiquidationScenario:
    """Owner with ``debt`` USDC borrowed against ``collateral`` WETH.

    ``pool_collateral_reserves`` is (WETH, ARB); ``pool_target_reserves`` is
    (ARB, USDC), though that pair lists USDC first. The defaults turn 1000
    WETH into exactly 1050 USDC.
    """
    ledger = Ledger()
    owner = make_address("owner")

    usdc = SimToken(ledger, "USDC")
    weth = SimToken(ledger, "WETH")
    arb = SimToken(ledger, "ARB")
    wbtc = SimToken(ledger, "WBTC")

    lending = SimLendingPool(ledger, usdc.address, weth.address, wbtc.address)
    usdc.mint(lending.address, debt)
    weth.mint(owner, collateral)
    wbtc.mint(owner, secondary_collateral)
    if collateral:
        lending.deposit_collateral(weth.address, collateral, sender=owner)
    if secondary_collateral:
        lending.deposit_collateral(wbtc.address, secondary_collateral, sender=owner)
    if debt:
        lending.borrow(debt, sender=owner)

    lender = lender_cls(ledger, fee_bps=fee_bps)
    usdc.mint(lender.address, lender_liquidity)

    pool_collateral = SimPair(ledger, weth.address, arb.address)
    _seed_pair(pool_collateral, {weth: pool_collateral_reserves[0], arb: pool_collateral_reserves[1]})
    pool_target = SimPair(ledger, usdc.address, arb.address)
    _seed_pair(pool_target, {arb: pool_target_reserves[0], usdc: pool_target_reserves[1]})

    bindings = ProtocolBindings(
        lender=lender.address,
        lending=lending.address,
        pool_collateral=pool_collateral.address,
        pool_target=pool_target.address,
    )
    liquidator = FlashLiquidator(ledger, bindings, initiator_policy, address=make_address("flash-liquidator"))
    liquidator.initialize(owner)
    if approve_delegate:
        lending.approve_delegate(liquidator.address, sender=owner)

    return LiquidationScenario(
        ledger=ledger,
        owner=owner,
        debt_token=usdc,
        collateral_token=weth,
        intermediate_token=arb,
        secondary_token=wbtc,
        lender=lender,
        lending=lending,
        pool_collateral=pool_collateral,
        pool_target=pool_target,
        liquidator=liquidator,
    )
