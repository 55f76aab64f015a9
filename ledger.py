"""In-process ledger with journaled atomic units.

Stands in for the chain's all-or-nothing execution: every write made inside
``atomic()`` is journaled, and the journal is replayed backwards when the unit
raises. Nested units fold their journal into the parent on success, so an
outer abort still undoes everything an inner unit committed.
"""
import logging
from contextlib import contextmanager
from typing import Any, Dict, Hashable, Iterator, List, Tuple

from liquidation_errors import UnknownContract

logger = logging.getLogger("Ledger")

_MISSING = object()

StorageKey = Tuple[str, Hashable]


class Ledger:
    def __init__(self) -> None:
        self._storage: Dict[StorageKey, Any] = {}
        self._journals: List[List[Tuple[StorageKey, Any]]] = []
        self._contracts: Dict[str, Any] = {}

    # --- Storage ---

    def read(self, address: str, key: Hashable, default: Any = 0) -> Any:
        return self._storage.get((address.lower(), key), default)

    def write(self, address: str, key: Hashable, value: Any) -> None:
        slot = (address.lower(), key)
        if self._journals:
            self._journals[-1].append((slot, self._storage.get(slot, _MISSING)))
        self._storage[slot] = value

    def snapshot(self) -> Dict[StorageKey, Any]:
        return dict(self._storage)

    @property
    def depth(self) -> int:
        return len(self._journals)

    @contextmanager
    def atomic(self) -> Iterator["Ledger"]:
        journal: List[Tuple[StorageKey, Any]] = []
        self._journals.append(journal)
        committed = False
        try:
            yield self
            committed = True
        finally:
            self._journals.pop()
            if committed:
                if self._journals:
                    self._journals[-1].extend(journal)
            else:
                self._undo(journal)

    def _undo(self, journal: List[Tuple[StorageKey, Any]]) -> None:
        for slot, previous in reversed(journal):
            if previous is _MISSING:
                self._storage.pop(slot, None)
            else:
                self._storage[slot] = previous
        if journal:
            logger.info(f"Rolled back {len(journal)} writes")

    # --- Contract registry ---

    def register(self, contract: Any) -> Any:
        self._contracts[contract.address.lower()] = contract
        return contract

    def contract(self, address: str) -> Any:
        try:
            return self._contracts[address.lower()]
        except KeyError:
            raise UnknownContract(f"no contract at {address}") from None
