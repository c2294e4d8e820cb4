from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgressRecord:
    iteration: int
    nodes: int
    open_nodes: int
    lower_bound: float
    upper_bound: float
    gap: float
    ratio: float
    elapsed: float
    remaining: float
    marker: str = ""


class ProgressObserver(Protocol):
    def on_progress(self, record: ProgressRecord) -> None:
        ...


def _fmt(value: float, width: int = 12) -> str:
    if value == float("inf"):
        return f"{'inf':>{width}}"
    if value == float("-inf"):
        return f"{'-inf':>{width}}"
    return f"{value:>{width}.4e}"


class LoggingProgressObserver:
    """Writes the progress table through ``logging`` at ``level``."""

    HEADER = (
        f"{'Iter':>8} {'Nodes':>8} {'Open':>7} {'Lower Bound':>12} "
        f"{'Upper Bound':>12} {'Gap':>10} {'Ratio':>10} {'Time':>8} {'Left':>8}"
    )

    def __init__(self, log: logging.Logger | None = None, level: int = logging.INFO):
        self.log = log or logger
        self.level = level
        self._header_written = False

    def on_progress(self, record: ProgressRecord) -> None:
        if not self._header_written:
            self.log.log(self.level, self.HEADER)
            self.log.log(self.level, "-" * len(self.HEADER))
            self._header_written = True
        self.log.log(
            self.level,
            f"{record.iteration:>8} {record.nodes:>8} {record.open_nodes:>7} "
            f"{_fmt(record.lower_bound)} {_fmt(record.upper_bound)} "
            f"{_fmt(record.gap, 10)} {_fmt(record.ratio, 10)} "
            f"{record.elapsed:>7.1f}s {record.remaining:>7.1f}s {record.marker}",
        )


class RecordingProgressObserver:
    """Keeps every record in memory."""

    def __init__(self):
        self.records: List[ProgressRecord] = []

    def on_progress(self, record: ProgressRecord) -> None:
        self.records.append(record)
