"""
Background execution of export and import passes.

Each pass runs as one :class:`TransferTask` on a daemon thread and can be
cancelled cooperatively: the task sets an event that the pass checks
between rows.  A :class:`TransferManager` keeps at most one task per
direction in flight; starting a new export (or import) cancels and waits
for the previous one first.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, Optional

from .config import TransferConfig
from .exporter import export_tags
from .importer import import_tags
from .models import Direction
from .store import TagStore

logger = logging.getLogger(__name__)

Work = Callable[[threading.Event], Any]


class TransferTask:
    """A cancellable unit of work running on its own thread.

    *work* receives the task's cancellation event and returns the pass
    result, which becomes available through :attr:`result` once the task
    has finished.
    """

    def __init__(self, direction: Direction, work: Work):
        self.direction = direction
        self._work = work
        self._cancel_event = threading.Event()
        self._done = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.result: Any = None
        self.error: Optional[BaseException] = None

    def start(self) -> None:
        if self._thread is not None:
            raise RuntimeError(f"{self.direction.value} task already started")
        self._thread = threading.Thread(
            target=self._run,
            daemon=True,
            name=f"tag-csv-{self.direction.value}",
        )
        self._thread.start()

    def _run(self) -> None:
        try:
            self.result = self._work(self._cancel_event)
        except Exception as e:
            self.error = e
            logger.exception("%s task failed", self.direction.value.capitalize())
        finally:
            self._done.set()

    def cancel(self) -> None:
        """Ask the task to stop at the next row boundary."""
        self._cancel_event.set()

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the task to finish.  Returns True if it has finished."""
        if self._thread is None:
            return self._done.is_set()
        return self._done.wait(timeout)

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_event.is_set()

    @property
    def is_running(self) -> bool:
        return self._thread is not None and not self._done.is_set()

    def status(self) -> Dict[str, Any]:
        """Return a JSON-friendly snapshot of the task state."""
        d: Dict[str, Any] = {
            'direction': self.direction.value,
            'running': self.is_running,
            'cancel_requested': self.cancel_requested,
        }
        if self.result is not None:
            d['result'] = self.result.to_dict()
        if self.error is not None:
            d['error'] = str(self.error)
        return d


class TransferManager:
    """Owns at most one in-flight :class:`TransferTask` per direction."""

    def __init__(self, join_timeout: Optional[float] = None):
        self._tasks: Dict[Direction, TransferTask] = {}
        self._lock = threading.Lock()
        self._join_timeout = join_timeout

    def start(self, direction: Direction, work: Work) -> TransferTask:
        """Cancel any running task for *direction*, then start *work*."""
        with self._lock:
            previous = self._tasks.get(direction)
            if previous is not None and previous.is_running:
                logger.info("Cancelling previous %s task", direction.value)
                previous.cancel()
                previous.join(self._join_timeout)
            task = TransferTask(direction, work)
            self._tasks[direction] = task
            task.start()
            return task

    def start_export(self, store: TagStore, config: TransferConfig) -> TransferTask:
        return self.start(
            Direction.EXPORT, lambda cancel: export_tags(store, config, cancel),
        )

    def start_import(self, store: TagStore, config: TransferConfig) -> TransferTask:
        return self.start(
            Direction.IMPORT, lambda cancel: import_tags(store, config, cancel),
        )

    def get(self, direction: Direction) -> Optional[TransferTask]:
        with self._lock:
            return self._tasks.get(direction)

    def cancel(self, direction: Direction) -> bool:
        """Cancel the running task for *direction*.

        Returns:
            True if a running task was asked to stop.
        """
        task = self.get(direction)
        if task is None or not task.is_running:
            return False
        task.cancel()
        return True

    def shutdown(self, timeout: Optional[float] = None) -> None:
        """Cancel every running task and wait for them to finish."""
        with self._lock:
            tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        for task in tasks:
            task.join(timeout)
