import logging
from typing import Tuple

from collaborators import LendingProtocol
from ledger import Ledger
from liquidation_errors import ProtocolError, ReclaimFailed, RepaymentFailed

logger = logging.getLogger("LendingAdapter")


class LendingAdapter:
    """Debt/collateral calls against the lending protocol, made from ``custody``."""

    def __init__(self, ledger: Ledger, lending: LendingProtocol, custody: str):
        self.ledger = ledger
        self.lending = lending
        self.custody = custody

    def debt_asset(self) -> str:
        return self.lending.debt_asset()

    def collateral_assets(self) -> Tuple[str, str]:
        return self.lending.collateral_assets()

    def outstanding_debt(self, owner: str) -> int:
        return self.lending.total_debt_of(owner)

    def repay_debt(self, owner: str, asset: str, amount: int) -> int:
        try:
            token = self.ledger.contract(asset)
            # the pool never pulls more than the outstanding debt
            token.approve(self.lending.address, min(amount, self.outstanding_debt(owner)), sender=self.custody)
            repaid = self.lending.repay(asset, amount, on_behalf_of=owner, sender=self.custody)
        except ProtocolError as e:
            raise RepaymentFailed(f"repay of {amount} for {owner} failed: {e}") from e
        logger.info(f"Repaid {repaid} of {asset} for {owner}")
        return repaid

    def reclaim_collateral(self, owner: str) -> None:
        try:
            self.lending.reclaim_all_collateral(owner, recipient=self.custody, sender=self.custody)
        except ProtocolError as e:
            raise ReclaimFailed(f"collateral reclaim for {owner} failed: {e}") from e
        logger.info(f"Reclaimed collateral of {owner}")
