# store.py

import abc
import logging
import threading
from dataclasses import dataclass
from typing import Dict, Optional

from .errors import ConditionFailed
from .record import UNLOCKED, LockRecord

logger = logging.getLogger(__name__)

# Marks "leave the Value attribute as it is" in conditional_update.
UNSET = object()


@dataclass(frozen=True)
class Condition:
    """
    Predicate over the current lock record, checked atomically by the store.

    A missing record always satisfies it. Otherwise it holds when the record is
    owned by session_id, or (allow_unlocked) when nobody owns it, or (stale_before)
    when somebody else owns it but has not written since stale_before.
    """
    session_id: int
    allow_unlocked: bool = False
    stale_before: Optional[int] = None

    @classmethod
    def acquire(cls, session_id: int, stale_before: Optional[int] = None) -> "Condition":
        return cls(session_id, allow_unlocked=True, stale_before=stale_before)

    @classmethod
    def release(cls, session_id: int) -> "Condition":
        return cls(session_id)

    def holds(self, record: Optional[LockRecord]) -> bool:
        if record is None:
            return True
        holder = record.holder_id
        if self.allow_unlocked and (holder is None or holder == UNLOCKED):
            return True
        if holder == self.session_id:
            return True
        if self.stale_before is not None:
            return holder != self.session_id and record.last_write < self.stale_before
        return False


class ConditionalStore(abc.ABC):
    """
    Storage for lock records offering one atomic conditional write per key.
    """

    @abc.abstractmethod
    def conditional_update(self, name: str, condition: Condition, holder_id: int,
                           last_write: int, value=UNSET) -> LockRecord:
        """
        Atomically check `condition` against the record stored under `name` and, if
        it holds, write holder_id, last_write and (when given) value.

        Returns the record as written. Raises ConditionFailed when the condition is
        false and StoreError on any other failure.
        """

    @abc.abstractmethod
    def get(self, name: str) -> Optional[LockRecord]:
        """Current record for `name`, or None. For diagnostics only."""

    def ensure_ready(self, timeout: float = 10.0) -> None:
        """Make sure the backing resource exists and is usable."""


class MemoryStore(ConditionalStore):
    """
    In-process store. Every lock name lives in one dict behind one threading.Lock,
    so it serializes Mutex clients running in different threads of this process.
    """

    def __init__(self):
        self._records: Dict[str, LockRecord] = {}
        self._guard = threading.Lock()

    def conditional_update(self, name, condition, holder_id, last_write, value=UNSET):
        with self._guard:
            current = self._records.get(name)
            if not condition.holds(current):
                logger.debug("Condition failed on '%s' (current holder %s)",
                             name, current.holder_id if current else None)
                raise ConditionFailed(name)
            if value is UNSET:
                value = current.value if current else None
            record = LockRecord(name, holder_id, last_write, value)
            self._records[name] = record
            return record

    def get(self, name):
        with self._guard:
            return self._records.get(name)
