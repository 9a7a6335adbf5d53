"""
In-memory Transactional Key-Value Store Implementation

A single-process store mapping variable names to string values, with a
reverse index for counting values and nested transaction blocks that can be
rolled back one at a time or committed all at once.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional
from enum import Enum
from abc import ABC, abstractmethod
import logging


logger = logging.getLogger(__name__)


class PriorStateKind(Enum):
    """Whether a variable was set or unset before a block touched it"""
    SET = "set"
    UNSET = "unset"


@dataclass(frozen=True)
class PriorState:
    """
    The state of a variable immediately before its first mutation in a block.

    Attributes:
        kind: SET if the variable held a value, UNSET if it was absent
        value: The value held (None when kind is UNSET)
    """
    kind: PriorStateKind
    value: Optional[str] = None

    @classmethod
    def of(cls, value: Optional[str]) -> "PriorState":
        if value is None:
            return cls(PriorStateKind.UNSET)
        return cls(PriorStateKind.SET, value)


@dataclass
class UndoFrame:
    """
    Undo log for one open transaction block.

    Attributes:
        prior_states: Variable name -> state before the block first modified it
    """
    prior_states: Dict[str, PriorState] = field(default_factory=dict)

    def capture(self, name: str, current: Optional[str]) -> None:
        """Record the prior state of name, unless already recorded in this block"""
        if name not in self.prior_states:
            self.prior_states[name] = PriorState.of(current)

    def inherit(self, inner: "UndoFrame") -> None:
        """Adopt prior states from a nested block for names not yet recorded here"""
        for name, prior in inner.prior_states.items():
            self.prior_states.setdefault(name, prior)

    def __len__(self) -> int:
        return len(self.prior_states)


# Custom Exceptions
class InvalidArgumentError(ValueError):
    """Raised when a required variable name or value is None"""
    pass


class Store(ABC):
    """Abstract base class for a transactional key-value store"""

    @abstractmethod
    def set(self, name: str, value: str) -> None:
        """Associate value with name in the current transaction block"""
        pass

    @abstractmethod
    def get(self, name: str) -> Optional[str]:
        """Get the value of name, or None if it is unset"""
        pass

    @abstractmethod
    def unset(self, name: str) -> None:
        """Remove name; a no-op if it has no value"""
        pass

    @abstractmethod
    def number_of_values_equal_to(self, value: str) -> int:
        """Count the variables currently set to value"""
        pass

    @abstractmethod
    def begin_transaction(self) -> None:
        """Open a new, possibly nested, transaction block"""
        pass

    @abstractmethod
    def rollback_transaction(self) -> bool:
        """Undo the innermost block; False if none is open"""
        pass

    @abstractmethod
    def commit_all_open_transactions(self) -> bool:
        """Make every open block permanent; False if none is open"""
        pass


class TransactionalStore(Store):
    """
    Hash-map backed transactional store.

    This implementation provides:
    - Constant time set, get, unset and value counting
    - Nested transaction blocks backed by per-block undo frames
    - Rollback in time proportional to the variables the block modified
    - Commit of all open blocks at once, without replay

    Reads always see the live maps, so changes made in a block are visible
    to it and to any block nested inside it.

    Not thread-safe: callers sharing a store must hold a single lock around
    every call.
    """

    def __init__(self):
        """Initialize an empty store with no open transactions"""
        self.variables: Dict[str, str] = {}  # name -> value
        self.value_counts: Dict[str, int] = {}  # value -> number of names holding it
        self._undo_stack: List[UndoFrame] = []  # innermost block last

    @property
    def transaction_depth(self) -> int:
        """Number of currently open transaction blocks"""
        return len(self._undo_stack)

    @property
    def in_transaction(self) -> bool:
        return bool(self._undo_stack)

    def __len__(self) -> int:
        return len(self.variables)

    def __contains__(self, name: object) -> bool:
        return name in self.variables

    def _capture_prior_state(self, name: str) -> None:
        """Let the innermost open block record name before it is modified"""
        if self._undo_stack:
            self._undo_stack[-1].capture(name, self.variables.get(name))

    def _discard(self, name: str) -> None:
        """Remove name and release its count, without touching the undo stack"""
        value = self.variables.pop(name, None)
        if value is None:
            return
        remaining = self.value_counts[value] - 1
        if remaining:
            self.value_counts[value] = remaining
        else:
            del self.value_counts[value]

    def set(self, name: str, value: str) -> None:
        """Associate value with name in the current transaction block"""
        if name is None or value is None:
            raise InvalidArgumentError("Neither name nor value may be None")

        self._capture_prior_state(name)
        # Drop the old value first so its count stays accurate
        self._discard(name)
        self.variables[name] = value
        self.value_counts[value] = self.value_counts.get(value, 0) + 1

    def get(self, name: str) -> Optional[str]:
        """Get the value of name, or None if it is unset"""
        if name is None:
            raise InvalidArgumentError("name may not be None")
        return self.variables.get(name)

    def unset(self, name: str) -> None:
        """Remove name; a no-op if it has no value"""
        if name is None:
            raise InvalidArgumentError("name may not be None")

        self._capture_prior_state(name)
        self._discard(name)

    def number_of_values_equal_to(self, value: str) -> int:
        """Count the variables currently set to value"""
        if value is None:
            raise InvalidArgumentError("value may not be None")
        return self.value_counts.get(value, 0)

    def begin_transaction(self) -> None:
        """Open a new, possibly nested, transaction block"""
        self._undo_stack.append(UndoFrame())
        logger.debug("Transaction started (depth %d)", len(self._undo_stack))

    def rollback_transaction(self) -> bool:
        """
        Undo the innermost block by replaying its prior states.

        Replay goes through set/unset, so the count index stays consistent.
        The enclosing block first inherits the inner prior states it has not
        recorded itself, otherwise it would capture the values being undone.
        """
        if not self._undo_stack:
            logger.debug("Rollback requested with no open transaction")
            return False

        frame = self._undo_stack.pop()
        if self._undo_stack:
            self._undo_stack[-1].inherit(frame)
        for name, prior in frame.prior_states.items():
            if prior.kind is PriorStateKind.SET:
                self.set(name, prior.value)  # type: ignore
            else:
                self.unset(name)

        logger.debug(
            "Transaction rolled back: %d variables restored (depth %d)",
            len(frame), len(self._undo_stack)
        )
        return True

    def commit_all_open_transactions(self) -> bool:
        """Make every open block permanent; False if none is open"""
        if not self._undo_stack:
            logger.debug("Commit requested with no open transaction")
            return False

        depth = len(self._undo_stack)
        self._undo_stack.clear()
        logger.debug("Committed %d open transactions", depth)
        return True
