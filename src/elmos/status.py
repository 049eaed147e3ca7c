"""
Module dashboard: build state and queue membership per module.
"""

from dataclasses import dataclass
from typing import List

import click

from .module_registry import ModuleRegistry
from .queue_store import QueueStore, WILDCARD

ROW_FORMAT = "  {:<15} {:<8} {:<12} {:<12}"
# Header spacing is fixed; scripts parse it as printed
HEADER = "  NAME             BUILT    QUEUE:INS    QUEUE:REM"
RULE = "  " + "-" * 50


@dataclass
class StatusRow:
    name: str
    built: bool
    queued_for_insmod: bool
    queued_for_rmmod: bool


class StatusReporter:
    """Joins the registry, built artifacts and queue state. Read-only."""

    def __init__(self, registry: ModuleRegistry, store: QueueStore):
        self.registry = registry
        self.store = store

    def report(self) -> List[StatusRow]:
        state = self.store.load()
        all_ins = WILDCARD in state.ins_queue
        all_rem = WILDCARD in state.rem_queue

        return [
            StatusRow(
                name=module.name,
                built=module.is_built,
                queued_for_insmod=all_ins or module.name in state.ins_queue,
                queued_for_rmmod=all_rem or module.name in state.rem_queue,
            )
            for module in self.registry.iter_modules()
        ]


def format_status_table(rows: List[StatusRow], color: bool = False) -> str:
    """Render rows in the documented column layout.

    Columns are padded before styling so alignment survives ANSI codes.
    """

    def cell(text: str, width: int, fg: str) -> str:
        padded = f"{text:<{width}}"
        return click.style(padded, fg=fg) if color and text.strip() else padded

    lines = [HEADER, RULE]
    for row in rows:
        line = "  {} {} {} {}".format(
            f"{row.name:<15}",
            cell("[X]" if row.built else "[ ]", 8, "green" if row.built else None),
            cell("insmod" if row.queued_for_insmod else "", 12, "green"),
            cell("rmmod" if row.queued_for_rmmod else "", 12, "red"),
        )
        lines.append(line.rstrip())
    return "\n".join(lines)
