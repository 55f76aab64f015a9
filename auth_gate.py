import logging
from typing import Optional

from addresses import checksum, same_address
from ledger import Ledger
from liquidation_errors import AlreadyInitialized, Unauthorized, UnauthorizedLender

logger = logging.getLogger("AuthGate")

OWNER_SLOT = "owner"


class AuthorizationGate:
    """Owner binding and call-origin checks, stored under ``address`` on the ledger."""

    def __init__(self, ledger: Ledger, address: str, lender: str):
        self.ledger = ledger
        self.address = address
        self.lender = lender

    @property
    def owner(self) -> Optional[str]:
        return self.ledger.read(self.address, OWNER_SLOT, None)

    def initialize(self, owner: str) -> None:
        if self.owner is not None:
            raise AlreadyInitialized(f"owner already bound to {self.owner}")
        with self.ledger.atomic():
            self.ledger.write(self.address, OWNER_SLOT, checksum(owner))
        logger.info(f"Owner bound: {self.owner}")

    def is_owner(self, caller: str) -> bool:
        return same_address(caller, self.owner)

    def require_owner(self, caller: str) -> None:
        if not self.is_owner(caller):
            raise Unauthorized(f"{caller} is not the owner")

    def require_lender(self, caller: str) -> None:
        if not same_address(caller, self.lender):
            raise UnauthorizedLender(f"{caller} is not the configured lender")
