"""
insmod/rmmod queue operations.

The two queues are mutually exclusive: adding a value to one removes it from
the other. There is no file locking; two concurrent invocations both load the
same state and the later save wins.
"""

import logging
import re
from enum import Enum

from .queue_store import QueueState, QueueStore, WILDCARD

logger = logging.getLogger(__name__)

# Kernel module directory names; keeps entries safe inside "..." in the queue file
_VALID_NAME = re.compile(r"^(?!\.+$)[A-Za-z0-9_.+-]+$")


class Outcome(Enum):
    ADDED = "added"
    ALREADY_QUEUED = "already_queued"


def validate_entry(value: str) -> str:
    """Return value if it is the wildcard or a valid module name."""
    if value == WILDCARD or _VALID_NAME.match(value or ""):
        return value
    raise ValueError(f"Invalid module name: {value!r}")


class QueueManager:
    """Mutates queue state through a QueueStore, persisting after each change."""

    def __init__(self, store: QueueStore):
        self.store = store
        self._state = store.load()

    @property
    def state(self) -> QueueState:
        """Snapshot of the current queues."""
        return self._state.copy()

    def _enqueue(self, value: str, queue: str, other: str, label: str) -> Outcome:
        validate_entry(value)

        if value in getattr(self._state, queue):
            logger.info(f"{value} already queued for {label}")
            return Outcome.ALREADY_QUEUED

        # Adopt the new state only once it is on disk
        updated = self._state.copy()
        getattr(updated, queue).append(value)
        if value in getattr(updated, other):
            getattr(updated, other).remove(value)
            logger.debug(f"Removed {value} from the opposite queue")

        self.store.save(updated)
        self._state = updated
        logger.info(f"Queued {value} for {label}")
        return Outcome.ADDED

    def enqueue_insmod(self, value: str = WILDCARD) -> Outcome:
        """Queue a module (or every module) to be loaded on next boot."""
        return self._enqueue(value, "ins_queue", "rem_queue", "insmod")

    def enqueue_rmmod(self, value: str = WILDCARD) -> Outcome:
        """Queue a module (or every module) to be unloaded on next boot."""
        return self._enqueue(value, "rem_queue", "ins_queue", "rmmod")

    def reset(self) -> None:
        """Clear both queues."""
        cleared = QueueState()
        self.store.save(cleared)
        self._state = cleared
        logger.info("Module queues cleared")
