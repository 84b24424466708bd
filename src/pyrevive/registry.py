"""In-memory registry of saved snapshots."""

import logging
import threading
import time
from collections.abc import Iterator

from pyrevive.models import ProcessDescriptor, SnapshotRecord, SnapshotSummary

logger = logging.getLogger(__name__)


class SnapshotRegistry:
    """
    Saved descriptors keyed by original pid, most recently saved first.

    A single lock guards every operation so the registry may be shared
    between the event loop and worker threads.
    """

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._records: list[SnapshotRecord] = []
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def insert(self, original_pid: int, descriptor: ProcessDescriptor) -> SnapshotRecord:
        """
        Add a record at the front.

        An existing record for the same pid is kept; whether duplicates are
        wanted is still undecided, so they are only logged.
        """
        record = SnapshotRecord(
            original_pid=original_pid,
            descriptor=descriptor,
            saved_at=time.time(),
        )
        with self._lock:
            if any(r.original_pid == original_pid for r in self._records):
                logger.warning("registry already holds a record for pid %d", original_pid)
            self._records.insert(0, record)
        return record

    def lookup(self, original_pid: int) -> SnapshotRecord | None:
        with self._lock:
            for record in self._records:
                if record.original_pid == original_pid:
                    return record
        return None

    def remove(self, original_pid: int) -> SnapshotRecord | None:
        """Delete the first record for pid. Returns it, or None if absent."""
        with self._lock:
            for index, record in enumerate(self._records):
                if record.original_pid == original_pid:
                    return self._records.pop(index)
        return None

    def list_summaries(self) -> Iterator[SnapshotSummary]:
        """Project the current records into summaries, in registry order."""
        with self._lock:
            records = list(self._records)
        for record in records:
            descriptor = record.descriptor
            yield SnapshotSummary(
                original_pid=record.original_pid,
                display_name=descriptor.display_name,
                terminal_path=descriptor.terminal_path,
                executable_path=descriptor.executable_path,
                saved_at=record.saved_at,
            )
