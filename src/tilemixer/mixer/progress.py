"""Progress accounting for long tile runs."""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable

from tilemixer.config import PROGRESS_INTERVAL_SECONDS

logger = logging.getLogger(__name__)


def format_duration(ms: int) -> str:
    """Render milliseconds as e.g. ``2h 03m 04s`` or ``850ms``."""
    if ms < 1000:
        return f"{ms}ms"
    seconds = ms // 1000
    hours, seconds = divmod(seconds, 3600)
    minutes, seconds = divmod(seconds, 60)
    if hours:
        return f"{hours}h {minutes:02d}m {seconds:02d}s"
    if minutes:
        return f"{minutes}m {seconds:02d}s"
    return f"{seconds}s"


@dataclass(frozen=True)
class ProgressReport:
    """Snapshot of a run's progress."""

    steps_done: int
    total_steps: int
    percent: float
    elapsed_ms: int
    remaining_ms: int | None

    def format(self) -> str:
        text = (
            f"{self.steps_done}/{self.total_steps} {self.percent:.2f}%"
            f" [elapsed {format_duration(self.elapsed_ms)}"
        )
        if self.remaining_ms is not None and self.steps_done < self.total_steps:
            text += f", ~{format_duration(self.remaining_ms)} remaining"
        return text + "]"


class ProgressSink(ABC):
    """Receives progress reports."""

    @abstractmethod
    def inform(self, report: ProgressReport) -> None:
        """Called at most once per reporting interval."""

    def finish(self, report: ProgressReport) -> None:
        """Called once when the run is over."""
        self.inform(report)


class LoggingProgressSink(ProgressSink):
    """Writes reports to the log at INFO level."""

    def __init__(self, label: str = "Merging") -> None:
        self.label = label

    def inform(self, report: ProgressReport) -> None:
        logger.info("%s %s", self.label, report.format())

    def finish(self, report: ProgressReport) -> None:
        logger.info("%s finished %s", self.label, report.format())


class Progress:
    """Thread-safe step counter that reports to a sink periodically.

    Args:
        total_steps: Number of steps expected
        sink: Receiver of reports (logs by default)
        interval_seconds: Minimum time between two reports
        clock: Monotonic time source in seconds
    """

    def __init__(
        self,
        total_steps: int,
        sink: ProgressSink | None = None,
        interval_seconds: float = PROGRESS_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.total_steps = total_steps
        self.sink = sink or LoggingProgressSink()
        self.interval_seconds = interval_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._steps_done = 0
        self._started = clock()
        self._last_report = self._started

    @property
    def steps_done(self) -> int:
        with self._lock:
            return self._steps_done

    def step_done(self) -> int:
        """Count one finished step; returns the new total."""
        with self._lock:
            self._steps_done += 1
            now = self._clock()
            if now - self._last_report >= self.interval_seconds:
                self._last_report = now
                self.sink.inform(self._report(now))
            return self._steps_done

    def finish(self) -> ProgressReport:
        with self._lock:
            report = self._report(self._clock())
            self.sink.finish(report)
        return report

    def _report(self, now: float) -> ProgressReport:
        done = self._steps_done
        total = self.total_steps
        elapsed_ms = int((now - self._started) * 1000)
        percent = 100.0 * done / total if total else 100.0
        remaining_ms = None
        if done > 0:
            remaining_ms = int(elapsed_ms / done * max(total - done, 0))
        return ProgressReport(done, total, percent, elapsed_ms, remaining_ms)
