"""Snapshot and restore operations over a shared registry."""

import asyncio
import logging
from collections.abc import Callable

from pyrevive.config import Settings
from pyrevive.helper import HelperClient
from pyrevive.launcher import ProcessSpawner
from pyrevive.models import RestoreResult, SnapshotRecord, SnapshotResult, SnapshotSummary
from pyrevive.orchestrator import RestoreOrchestrator, validate_pid
from pyrevive.processes import terminate_process_tree
from pyrevive.procfs import DescriptorExtractor
from pyrevive.registry import SnapshotRegistry

logger = logging.getLogger(__name__)


class SnapshotService:
    """
    The snapshot-and-kill and restore operations.

    A snapshot runs: capture descriptor, helper snapshot, kill the original,
    insert the record. These steps are not atomic; other requests may run
    while the helper is busy.
    """

    def __init__(
        self,
        registry: SnapshotRegistry,
        extractor: DescriptorExtractor,
        helper: HelperClient,
        orchestrator: RestoreOrchestrator,
        terminate: Callable[[int, float], str | None] = terminate_process_tree,
        termination_timeout: float = 3.0,
    ) -> None:
        self._registry = registry
        self._extractor = extractor
        self._helper = helper
        self._orchestrator = orchestrator
        self._terminate = terminate
        self._termination_timeout = termination_timeout

    @classmethod
    def from_settings(
        cls, settings: Settings, spawner: ProcessSpawner | None = None
    ) -> "SnapshotService":
        """Wire up a service and its collaborators from settings."""
        registry = SnapshotRegistry()
        helper = HelperClient(
            settings.helper_path,
            use_sudo=settings.use_sudo,
            snapshot_timeout=settings.snapshot_timeout,
            restore_timeout=settings.restore_timeout,
        )
        orchestrator = RestoreOrchestrator(
            registry,
            helper,
            spawner=spawner,
            display=settings.restore_display,
            xauthority=settings.restore_xauthority,
            restore_user=settings.restore_user,
            headless_log_path=settings.headless_log_path,
        )
        return cls(
            registry,
            DescriptorExtractor(settings.proc_root),
            helper,
            orchestrator,
            termination_timeout=settings.termination_timeout,
        )

    @property
    def registry(self) -> SnapshotRegistry:
        return self._registry

    @property
    def helper(self) -> HelperClient:
        return self._helper

    async def snapshot(self, pid: int) -> SnapshotResult:
        """
        Snapshot pid through the helper, kill it and save its descriptor.

        Raises:
            ValidationError: pid is not a positive integer.
            HelperError: The helper failed; nothing was killed or saved.
        """
        validate_pid(pid)

        # Metadata must be read before the process is killed.
        descriptor = self._extractor.capture(pid)

        outcome = await self._helper.snapshot(pid)

        termination_error = await asyncio.to_thread(
            self._terminate, pid, self._termination_timeout
        )

        record = self._registry.insert(pid, descriptor)
        logger.info("saved snapshot of pid %d (%s)", pid, descriptor.display_name)
        return SnapshotResult(record=record, outcome=outcome, termination_error=termination_error)

    async def restore(self, original_pid: int, new_pid: int = 0) -> RestoreResult:
        return await self._orchestrator.restore(original_pid, new_pid)

    def saved(self) -> list[SnapshotSummary]:
        return list(self._registry.list_summaries())

    def forget(self, original_pid: int) -> SnapshotRecord | None:
        """Drop a saved record without asking the helper to release it."""
        validate_pid(original_pid, "original pid")
        record = self._registry.remove(original_pid)
        if record is not None:
            logger.info("forgot snapshot of pid %d", original_pid)
        return record
