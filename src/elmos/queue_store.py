"""
Persistent insmod/rmmod queue state.

The queue file is sourced by the emulator launch scripts, so its shape is a
fixed contract: a marker comment followed by two bash array assignments,
MODULE_INS and MODULE_REM, each entry double-quoted and space-separated.
"""

import logging
import re
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

logger = logging.getLogger(__name__)

HEADER = "# Auto-generated module state"
INS_VAR = "MODULE_INS"
REM_VAR = "MODULE_REM"
WILDCARD = "*"

_ASSIGNMENT = re.compile(r"^\s*(MODULE_INS|MODULE_REM)=\((.*)\)\s*$")


class PersistenceError(Exception):
    """The queue state file could not be read or written."""


@dataclass
class QueueState:
    """Ordered, duplicate-free insmod and rmmod queues."""

    ins_queue: List[str] = field(default_factory=list)
    rem_queue: List[str] = field(default_factory=list)

    def copy(self) -> "QueueState":
        return QueueState(list(self.ins_queue), list(self.rem_queue))


def _format_array(values: List[str]) -> str:
    return "(" + " ".join(f'"{v}"' for v in values) + ")"


def _unique(values: List[str]) -> List[str]:
    seen = set()
    result = []
    for value in values:
        if value and value not in seen:
            seen.add(value)
            result.append(value)
    return result


def serialize_state(state: QueueState) -> str:
    """Render queue state in the sourced-shell format."""
    lines = [
        HEADER,
        f"{INS_VAR}={_format_array(state.ins_queue)}",
        f"{REM_VAR}={_format_array(state.rem_queue)}",
    ]
    return "\n".join(lines) + "\n"


def parse_state(text: str) -> QueueState:
    """Parse a queue file.

    Comments, blank lines and unrelated assignments are ignored. Empty
    entries (older writers emitted ("" ) for an empty array) are dropped.
    """
    state = QueueState()

    for line in text.splitlines():
        match = _ASSIGNMENT.match(line)
        if not match:
            continue

        var, body = match.groups()
        try:
            values = shlex.split(body)
        except ValueError as e:
            logger.warning(f"Ignoring malformed {var} line: {e}")
            continue

        if var == INS_VAR:
            state.ins_queue = _unique(values)
        else:
            state.rem_queue = _unique(values)

    return state


class QueueStore:
    """Loads and saves QueueState at a fixed path."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def load(self) -> QueueState:
        """
        Load queue state.

        Returns:
            Stored state, or an empty state if the file does not exist yet
        """
        if not self.path.exists():
            logger.debug(f"Queue file not found, starting empty: {self.path}")
            return QueueState()

        try:
            text = self.path.read_text(errors="replace")
        except OSError as e:
            logger.error(f"Failed to read queue state: {e}")
            raise PersistenceError(f"Cannot read queue file {self.path}: {e}") from e

        state = parse_state(text)
        logger.debug(
            f"Loaded queue state from {self.path}: "
            f"{len(state.ins_queue)} insmod, {len(state.rem_queue)} rmmod"
        )
        return state

    def save(self, state: QueueState) -> None:
        """
        Rewrite the queue file in full.

        Raises:
            PersistenceError: If the file cannot be written
        """
        # Write atomically using a temporary file
        tmp_file = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_file.write_text(serialize_state(state))
            tmp_file.replace(self.path)
        except OSError as e:
            if tmp_file.exists():
                tmp_file.unlink()
            logger.error(f"Failed to save queue state: {e}")
            raise PersistenceError(f"Cannot write queue file {self.path}: {e}") from e

        logger.debug(f"Saved queue state to {self.path}")
