"""Bounded worker pool and shared-directory guard for tile tasks."""

from __future__ import annotations

import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable

from tilemixer.config import WORKER_SCALE_FACTOR
from tilemixer.core.errors import ConfigurationError

logger = logging.getLogger(__name__)


def default_worker_count() -> int:
    """A small multiple of the CPU count (tile work is mostly I/O)."""
    return max((os.cpu_count() or 1) * WORKER_SCALE_FACTOR, 1)


class CallerRunsExecutor:
    """Thread pool with direct hand-off and caller-runs back-pressure.

    A task is handed to a worker only if one is free; otherwise the
    submitting thread runs it inline. Nothing is ever queued, so at most
    ``max_workers`` tasks (plus the caller's own) are in flight no matter
    how fast tasks are produced.

    Exceptions escaping a task are logged and do not affect other tasks.
    """

    def __init__(self, max_workers: int | None = None, thread_name_prefix: str = "tilemixer") -> None:
        if max_workers is None:
            max_workers = default_worker_count()
        if max_workers < 1:
            raise ConfigurationError(f"max_workers must be at least 1, got {max_workers}")
        self._max_workers = max_workers
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix=thread_name_prefix)
        self._idle = threading.Condition()
        self._in_flight = 0
        self._shutdown = False
        self.inline_count = 0

    @property
    def max_workers(self) -> int:
        return self._max_workers

    @property
    def in_flight(self) -> int:
        with self._idle:
            return self._in_flight

    def execute(self, fn: Callable[..., Any], *args: Any) -> bool:
        """Run ``fn(*args)`` on a free worker, or inline if none is free.

        Returns:
            True if the task was handed to a worker, False if it ran inline
        """
        with self._idle:
            if self._shutdown:
                raise RuntimeError("Cannot execute after shutdown")
            admitted = self._in_flight < self._max_workers
            if admitted:
                self._in_flight += 1

        if not admitted:
            self.inline_count += 1
            self._run(fn, args)
            return False

        try:
            self._pool.submit(self._run_and_release, fn, args)
        except BaseException:
            self._release()
            raise
        return True

    def await_termination(self, timeout: float | None = None) -> bool:
        """Block until every handed-off task has finished.

        Returns:
            True if the pool drained, False if ``timeout`` expired first
        """
        with self._idle:
            return self._idle.wait_for(lambda: self._in_flight == 0, timeout)

    def shutdown(self, wait: bool = True) -> None:
        with self._idle:
            self._shutdown = True
        self._pool.shutdown(wait=wait)

    def _run(self, fn: Callable[..., Any], args: tuple[Any, ...]) -> None:
        try:
            fn(*args)
        except Exception:
            logger.exception("Unhandled error in task %s", getattr(fn, "__name__", fn))

    def _run_and_release(self, fn: Callable[..., Any], args: tuple[Any, ...]) -> None:
        try:
            self._run(fn, args)
        finally:
            self._release()

    def _release(self) -> None:
        with self._idle:
            self._in_flight -= 1
            self._idle.notify_all()

    def __enter__(self) -> CallerRunsExecutor:
        return self

    def __exit__(self, *args) -> None:
        self.shutdown(wait=True)


class DirectoryGuard:
    """Serializes check-then-create of output directories across threads.

    Directories already ensured are remembered, so repeat calls for the
    same parent skip the filesystem entirely.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._known: set[Path] = set()
        self.created_count = 0

    def ensure(self, directory: Path) -> None:
        """Create ``directory`` (and missing parents) unless it already exists.

        Raises:
            OSError: If the directory cannot be created
        """
        with self._lock:
            if directory in self._known:
                return
            if not directory.is_dir():
                directory.mkdir(parents=True)
                self.created_count += 1
                logger.debug("Created %s", directory)
            self._known.add(directory)
