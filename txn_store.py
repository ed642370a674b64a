"""
In-memory Transactional Key-Value Store Implementation

A key-value store with arbitrarily nested transactions. Every mutation made
inside a transaction records its inverse in an undo log, so the innermost
transaction can be rolled back exactly. A reverse index keeps the number of
keys holding each value, making value counts constant-time.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Union
from abc import ABC, abstractmethod
import logging


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RestoreSet:
    """
    Undo record: put a key back to the value it held before the mutation.

    Attributes:
        key: The mutated key
        value: The value the key held before the mutation
    """
    key: str
    value: str

    def replay(self, store: "TransactionalStore") -> None:
        store._apply_set(self.key, self.value, journal=None)


@dataclass(frozen=True)
class RestoreUnset:
    """Undo record: remove a key that did not exist before the mutation."""
    key: str

    def replay(self, store: "TransactionalStore") -> None:
        store._apply_unset(self.key, journal=None)


UndoRecord = Union[RestoreSet, RestoreUnset]
Frame = List[UndoRecord]  # undo records of one transaction, in mutation order


# Custom Exceptions
class StoreError(Exception):
    """Base class for store errors"""
    pass


class NoTransactionError(StoreError):
    """Raised by rollback or commit when no transaction is open"""

    def __init__(self, operation: str = "") -> None:
        self.operation = operation
        super().__init__(f"No transaction open for {operation}" if operation else "No transaction open")


class KeyValueStore(ABC):
    """Abstract base class for key-value store"""

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Map key to value"""
        pass

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Get value for key, or None if the key is absent"""
        pass

    @abstractmethod
    def unset(self, key: str) -> None:
        """Remove key if present"""
        pass

    @abstractmethod
    def count_equal_to(self, value: str) -> int:
        """Number of keys currently mapped to value"""
        pass

    @abstractmethod
    def begin(self) -> None:
        """Open a (possibly nested) transaction"""
        pass

    @abstractmethod
    def rollback(self) -> None:
        """Undo the innermost open transaction"""
        pass

    @abstractmethod
    def commit(self) -> None:
        """Make every open transaction permanent"""
        pass


class TransactionalStore(KeyValueStore):
    """
    Main transactional key-value store implementation.

    This implementation provides:
    - A primary key -> value mapping
    - A reverse index value -> number of keys holding it
    - An undo log with one frame per open transaction (innermost last)

    Commit closes all open transactions at once; rollback undoes only the
    innermost one.
    """

    def __init__(self) -> None:
        """Initialize an empty store with no open transaction"""
        self._data: Dict[str, str] = {}
        self._counts: Dict[str, int] = {}  # value -> positive count, zeros removed
        self._log: List[Frame] = []  # open transactions, innermost last

    # ---- index helpers ----
    def _increment(self, value: str) -> None:
        """Count one more key holding value"""
        self._counts[value] = self._counts.get(value, 0) + 1

    def _decrement(self, value: str) -> None:
        """Count one fewer key holding value, dropping the entry at zero"""
        remaining = self._counts[value] - 1
        if remaining:
            self._counts[value] = remaining
        else:
            del self._counts[value]

    def _journal(self) -> Optional[Frame]:
        """Frame that public mutations record into (None outside a transaction)"""
        return self._log[-1] if self._log else None

    # ---- mutation primitives ----
    def _apply_set(self, key: str, value: str, journal: Optional[Frame]) -> None:
        """
        Map key to value and keep the reverse index in step.

        If journal is given, the inverse of this mutation is appended to it
        before anything changes.
        """
        if key in self._data:
            old_value = self._data[key]
            if journal is not None:
                journal.append(RestoreSet(key, old_value))
            self._decrement(old_value)
        elif journal is not None:
            journal.append(RestoreUnset(key))
        self._data[key] = value
        self._increment(value)

    def _apply_unset(self, key: str, journal: Optional[Frame]) -> None:
        """Remove key if present, recording its inverse into journal if given"""
        if key not in self._data:
            return
        old_value = self._data.pop(key)
        if journal is not None:
            journal.append(RestoreSet(key, old_value))
        self._decrement(old_value)

    # ---- public API ----
    def set(self, key: str, value: str) -> None:
        """Map key to value, recording the inverse if a transaction is open"""
        logger.debug("SET %s %s (depth %d)", key, value, self.depth)
        self._apply_set(key, value, self._journal())

    def get(self, key: str) -> Optional[str]:
        """Current value for key, or None if the key is absent"""
        return self._data.get(key)

    def unset(self, key: str) -> None:
        """Remove key if present; absent keys are a no-op"""
        logger.debug("UNSET %s (depth %d)", key, self.depth)
        self._apply_unset(key, self._journal())

    def count_equal_to(self, value: str) -> int:
        """Number of keys currently holding value, read from the reverse index"""
        return self._counts.get(value, 0)

    def begin(self) -> None:
        """Open a new transaction nested inside any already open"""
        self._log.append([])
        logger.info("BEGIN (depth %d)", self.depth)

    def rollback(self) -> None:
        """Undo the innermost open transaction"""
        if not self._log:
            logger.warning("ROLLBACK attempted with no open transaction")
            raise NoTransactionError("rollback")

        frame = self._log.pop()
        # newest first, so repeated mutations of one key unwind to the oldest value
        for record in reversed(frame):
            record.replay(self)
        logger.info("ROLLBACK undid %d record(s) (depth %d)", len(frame), self.depth)

    def commit(self) -> None:
        """Make every open transaction permanent"""
        if not self._log:
            logger.warning("COMMIT attempted with no open transaction")
            raise NoTransactionError("commit")

        closed = len(self._log)
        self._log.clear()
        logger.info("COMMIT closed %d transaction(s)", closed)

    # ---- introspection ----
    @property
    def depth(self) -> int:
        """Number of open transactions"""
        return len(self._log)

    @property
    def in_transaction(self) -> bool:
        """True while at least one transaction is open"""
        return bool(self._log)

    def snapshot(self) -> Dict[str, str]:
        """Copy of the current key -> value mapping"""
        return dict(self._data)

    def __len__(self) -> int:
        """Number of keys present"""
        return len(self._data)

    def __contains__(self, key: object) -> bool:
        """True if key is present"""
        return key in self._data
