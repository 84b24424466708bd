"""Background process listing for pyrevive."""

import logging
import threading
from collections.abc import Callable
from queue import Queue

from pyrevive.models import ProcessEntry
from pyrevive.processes import list_processes

logger = logging.getLogger(__name__)


class ProcessMonitor:
    """
    Polls the process list in a daemon thread and pushes it to a Queue.

    A failed poll is logged and the loop keeps running.
    """

    def __init__(
        self,
        update_queue: Queue[list[ProcessEntry]],
        poll_rate: float = 2.0,
        collect: Callable[[], list[ProcessEntry]] = list_processes,
    ) -> None:
        """
        Initialize the ProcessMonitor.

        Args:
            update_queue: Thread-safe queue to push listings to.
            poll_rate: How often to poll (in seconds). Default 2.0s.
            collect: Produces one listing.
        """
        self._queue = update_queue
        self._poll_rate = max(0.1, poll_rate)
        self._collect = collect
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def poll_rate(self) -> float:
        return self._poll_rate

    @poll_rate.setter
    def poll_rate(self, value: float) -> None:
        self._poll_rate = max(0.1, value)  # Minimum 0.1 seconds

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the monitoring thread."""
        if self.is_running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._poll_loop,
            daemon=True,
            name="ProcessMonitor",
        )
        self._thread.start()

    def stop(self, timeout: float | None = 5.0) -> None:
        """
        Stop the monitoring thread.

        Args:
            timeout: How long to wait for thread to stop (seconds).
        """
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None

    def _poll_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self._queue.put(self._collect())
            except Exception:
                logger.exception("process listing failed")

            self._stop_event.wait(timeout=self._poll_rate)
