"""Flash-loan liquidation orchestrator.

``start`` asks the flash lender for the debt asset; the lender re-enters
``on_funds_received`` on the same call stack, where the debt is repaid and the
reclaimed collateral is sold through two pools to settle the loan. The
whole sequence runs inside one ledger atomic unit, so any failure anywhere
leaves the ledger exactly as it was.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from eth_abi import decode as eth_abi_decode
from eth_abi import encode as eth_abi_encode
from eth_abi.exceptions import DecodingError

import profit_guard
from addresses import checksum, make_address, same_address
from amm_router import AmmRouter
from auth_gate import AuthorizationGate
from collaborators import FLASH_CALLBACK_SUCCESS
from ledger import Ledger
from lending_adapter import LendingAdapter
from liquidation_errors import (
    CallbackContextMismatch,
    ConversionFailed,
    InsufficientProfit,
    LoanRequestRejected,
    LoanTooLarge,
    ProtocolError,
    RoutingError,
    UnsupportedAsset,
)
from liquidator_config import InitiatorPolicy, ProtocolBindings

logger = logging.getLogger("FlashLiquidator")

CONTEXT_TYPES = ["address", "uint256", "uint256"]


class Phase(Enum):
    IDLE = "idle"
    LOAN_REQUESTED = "loan_requested"
    EXECUTING = "executing"
    SUCCESS = "success"
    ABORTED = "aborted"


@dataclass(frozen=True)
class LoanRequestContext:
    initiator_owner: str
    borrow_amount: int
    min_profit: int

    def encode(self) -> bytes:
        return eth_abi_encode(CONTEXT_TYPES, [self.initiator_owner, self.borrow_amount, self.min_profit])

    @classmethod
    def decode(cls, data: bytes) -> "LoanRequestContext":
        try:
            owner, borrow_amount, min_profit = eth_abi_decode(CONTEXT_TYPES, data)
        except DecodingError as e:
            raise CallbackContextMismatch(f"undecodable callback context: {e}") from e
        return cls(checksum(owner), borrow_amount, min_profit)


@dataclass(frozen=True)
class SettlementReport:
    borrow_amount: int
    fee: int
    amount_owed: int
    debt_repaid: int
    collateral_sold: int
    final_balance: int
    surplus: int


class _Execution:
    def __init__(self, context: LoanRequestContext):
        self.context = context
        self.report: Optional[SettlementReport] = None


class FlashLiquidator:
    def __init__(
        self,
        ledger: Ledger,
        bindings: ProtocolBindings,
        initiator_policy: InitiatorPolicy = InitiatorPolicy.OWNER_OR_SELF,
        address: Optional[str] = None,
    ):
        self.ledger = ledger
        self.bindings = bindings
        self.initiator_policy = InitiatorPolicy(initiator_policy)
        self.address = checksum(address) if address else make_address("flash-liquidator")

        self._lender = ledger.contract(bindings.lender)
        self._pool_collateral = ledger.contract(bindings.pool_collateral)
        self._pool_target = ledger.contract(bindings.pool_target)

        self.gate = AuthorizationGate(ledger, self.address, bindings.lender)
        self.lending = LendingAdapter(ledger, ledger.contract(bindings.lending), self.address)
        self.router = AmmRouter(ledger, self.address)

        self.phase = Phase.IDLE
        self._active: Optional[_Execution] = None
        ledger.register(self)

    # --- Identity ---

    def initialize(self, owner: str) -> None:
        self.gate.initialize(owner)

    @property
    def owner(self) -> Optional[str]:
        return self.gate.owner

    # --- Entry points ---

    def start(self, borrow_amount: int, min_profit: int, sender: str) -> SettlementReport:
        self.gate.require_owner(sender)
        if self._active is not None:
            raise LoanRequestRejected("a flash loan is already in flight")
        if borrow_amount <= 0 or min_profit < 0:
            raise LoanRequestRejected(f"invalid request: borrow={borrow_amount} min_profit={min_profit}")

        debt_asset = self.lending.debt_asset()
        max_loan = self._lender.max_loan(debt_asset)
        if borrow_amount > max_loan:
            raise LoanTooLarge(f"requested {borrow_amount}, lender offers at most {max_loan}")

        execution = _Execution(LoanRequestContext(checksum(sender), borrow_amount, min_profit))
        self._active = execution
        self._set_phase(Phase.LOAN_REQUESTED)
        try:
            with self.ledger.atomic():
                accepted = self._lender.issue(
                    self.address, debt_asset, borrow_amount, execution.context.encode(), sender=self.address
                )
                if not accepted:
                    raise LoanRequestRejected(f"lender declined {borrow_amount} of {debt_asset}")
                if execution.report is None:
                    raise LoanRequestRejected("lender returned without calling back")
            self._set_phase(Phase.SUCCESS)
        except Exception as e:
            self._set_phase(Phase.ABORTED)
            logger.error(f"Liquidation aborted: {type(e).__name__}: {e}")
            raise
        finally:
            self._active = None
            self.phase = Phase.IDLE

        logger.info(f"Liquidation settled: surplus {execution.report.surplus} to {execution.context.initiator_owner}")
        return execution.report

    def start_full(self, min_profit: int, sender: str) -> SettlementReport:
        """Borrow exactly the owner's outstanding debt."""
        self.gate.require_owner(sender)
        return self.start(self.lending.outstanding_debt(self.owner), min_profit, sender)

    def on_funds_received(self, initiator: str, token: str, amount: int, fee: int, context: bytes, sender: str) -> bytes:
        self.gate.require_lender(sender)
        request = LoanRequestContext.decode(context)
        if not self._initiator_accepted(initiator, request):
            raise CallbackContextMismatch(f"unexpected initiator {initiator}")
        if amount != request.borrow_amount:
            raise CallbackContextMismatch(f"received {amount}, requested {request.borrow_amount}")
        execution = self._active
        if execution is None or execution.context != request:
            raise CallbackContextMismatch("callback does not belong to the loan in flight")

        debt_asset = self.lending.debt_asset()
        if not same_address(token, debt_asset):
            raise UnsupportedAsset(f"received {token}, debt asset is {debt_asset}")

        self._set_phase(Phase.EXECUTING)
        with self.ledger.atomic():
            execution.report = self._liquidate(request, debt_asset, amount, fee)
        return FLASH_CALLBACK_SUCCESS

    # --- Sequence ---

    def _liquidate(self, request: LoanRequestContext, debt_asset: str, amount: int, fee: int) -> SettlementReport:
        owner = request.initiator_owner
        primary, secondary = self.lending.collateral_assets()

        logger.info(f"[1/5] repaying {amount} of debt for {owner}")
        repaid = self.lending.repay_debt(owner, debt_asset, amount)

        logger.info("[2/5] reclaiming collateral")
        self.lending.reclaim_collateral(owner)

        collateral = self.ledger.contract(primary).balance_of(self.address)
        if collateral > 0:
            logger.info(f"[3/5] converting {collateral} of {primary}")
            try:
                self.router.route_two_hop(self._pool_collateral, self._pool_target, primary, debt_asset, collateral)
            except (RoutingError, ProtocolError) as e:
                raise ConversionFailed(f"collateral conversion failed: {e}") from e
        else:
            logger.info("[3/5] no collateral to convert")

        debt_token = self.ledger.contract(debt_asset)
        final_balance = debt_token.balance_of(self.address)
        amount_owed = amount + fee
        check = profit_guard.evaluate(final_balance, amount_owed, request.min_profit)
        logger.info(f"[4/5] balance {final_balance}, owed {amount_owed}, min profit {request.min_profit}")
        if not check.ok:
            raise InsufficientProfit(
                f"final balance {final_balance} below owed {amount_owed} + min profit {request.min_profit}"
            )

        logger.info(f"[5/5] settling {amount_owed}, forwarding {check.surplus}")
        debt_token.approve(self.bindings.lender, amount_owed, sender=self.address)
        if check.surplus > 0:
            debt_token.transfer(owner, check.surplus, sender=self.address)
        self._forward_leftover(secondary, owner, skip=(debt_asset, primary))

        return SettlementReport(
            borrow_amount=amount,
            fee=fee,
            amount_owed=amount_owed,
            debt_repaid=repaid,
            collateral_sold=collateral,
            final_balance=final_balance,
            surplus=check.surplus,
        )

    def _forward_leftover(self, asset: str, owner: str, skip) -> None:
        if any(same_address(asset, other) for other in skip):
            return
        token = self.ledger.contract(asset)
        balance = token.balance_of(self.address)
        if balance > 0:
            token.transfer(owner, balance, sender=self.address)
            logger.info(f"Forwarded {balance} of {asset} to {owner}")

    def _initiator_accepted(self, initiator: str, request: LoanRequestContext) -> bool:
        is_owner = same_address(initiator, request.initiator_owner)
        is_self = same_address(initiator, self.address)
        if self.initiator_policy is InitiatorPolicy.OWNER:
            return is_owner
        if self.initiator_policy is InitiatorPolicy.SELF:
            return is_self
        return is_owner or is_self

    def _set_phase(self, phase: Phase) -> None:
        logger.info(f"{self.phase.value} -> {phase.value}")
        self.phase = phase
