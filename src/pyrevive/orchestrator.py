"""Restore orchestration: relaunch a saved process, then hand it to the helper."""

import logging
from collections.abc import Callable, Mapping, Sequence

from pyrevive.errors import ValidationError
from pyrevive.helper import HelperClient, parse_restored_pid
from pyrevive.launcher import (
    LAUNCH_STRATEGIES,
    LaunchRequest,
    ProcessSpawner,
    Strategy,
    build_launch_environment,
    default_environment,
    launch,
)
from pyrevive.models import LaunchAttempt, RestoreResult, SnapshotRecord
from pyrevive.registry import SnapshotRegistry

logger = logging.getLogger(__name__)


def validate_pid(value: int, name: str = "pid", allow_zero: bool = False) -> int:
    """Return value if it is a usable pid, else raise ValidationError."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"invalid {name}: {value!r}")
    if value < 0 or (value == 0 and not allow_zero):
        raise ValidationError(f"invalid {name}: {value!r}")
    return value


def resolve_command(record: SnapshotRecord) -> tuple[str, tuple[str, ...]] | None:
    """Program and arguments to relaunch a record with, or None if unknown."""
    descriptor = record.descriptor
    if descriptor.argv:
        return descriptor.argv[0], descriptor.argv[1:]
    if descriptor.executable_path:
        return descriptor.executable_path, ()
    return None


class RestoreOrchestrator:
    """
    Runs one restore request from registry lookup to registry removal.

    The relaunch is optional and may fail at every step; the helper restore
    call always happens, with new pid 0 when nothing was relaunched.
    """

    def __init__(
        self,
        registry: SnapshotRegistry,
        helper: HelperClient,
        spawner: ProcessSpawner | None = None,
        display: str | None = None,
        xauthority: str | None = None,
        restore_user: str | None = None,
        headless_log_path: str = "/tmp/restore.out",
        strategies: Sequence[Strategy] = LAUNCH_STRATEGIES,
        environment: Callable[[], Mapping[str, str]] = default_environment,
    ) -> None:
        """
        Initialize the RestoreOrchestrator.

        Args:
            registry: Store of saved records.
            helper: Client for the privileged helper.
            spawner: Starts relaunched processes. Defaults to ProcessSpawner().
            display: DISPLAY override for relaunched programs.
            xauthority: XAUTHORITY override for relaunched programs.
            restore_user: User for the sudo terminal strategy, if any.
            headless_log_path: Output file for the headless strategy.
            strategies: Launch strategies in priority order.
            environment: Returns the ambient environment to layer onto.
        """
        self._registry = registry
        self._helper = helper
        self._spawner = spawner if spawner is not None else ProcessSpawner()
        self._display = display
        self._xauthority = xauthority
        self._restore_user = restore_user
        self._headless_log_path = headless_log_path
        self._strategies = tuple(strategies)
        self._environment = environment

    def build_request(self, record: SnapshotRecord) -> LaunchRequest | None:
        command = resolve_command(record)
        if command is None:
            return None
        program, args = command
        return LaunchRequest(
            program=program,
            args=args,
            cwd=record.descriptor.working_directory or "/",
            env=build_launch_environment(
                self._environment(), display=self._display, xauthority=self._xauthority
            ),
            user=self._restore_user,
            headless_log_path=self._headless_log_path,
        )

    def relaunch(self, record: SnapshotRecord) -> list[LaunchAttempt]:
        """Run the launch strategies for a record. Never raises."""
        request = self.build_request(record)
        if request is None:
            logger.warning("pid %d: no argv or executable, not relaunching", record.original_pid)
            return []
        return launch(request, self._spawner, self._strategies)

    async def restore(self, original_pid: int, new_pid: int = 0) -> RestoreResult:
        """
        Restore a snapshotted process.

        Args:
            original_pid: Pid the snapshot was taken from.
            new_pid: Existing process to restore into; 0 lets the
                orchestrator relaunch the saved command.

        Raises:
            ValidationError: Bad pids, or no record and no new pid.
            HelperError: The helper failed. The record is kept for a retry.
        """
        validate_pid(original_pid, "original pid")
        validate_pid(new_pid, "new pid", allow_zero=True)

        record = self._registry.lookup(original_pid)
        if record is None and new_pid == 0:
            raise ValidationError(
                f"no saved snapshot for pid {original_pid} and no new pid given"
            )

        attempts: list[LaunchAttempt] = []
        if record is not None and new_pid == 0:
            attempts = self.relaunch(record)
            for attempt in attempts:
                if attempt.succeeded:
                    new_pid = attempt.pid
                    break
        spawned = any(attempt.succeeded for attempt in attempts)

        outcome = await self._helper.restore(original_pid, new_pid)

        if record is not None:
            self._registry.remove(original_pid)

        reported = new_pid
        if reported == 0:
            reported = parse_restored_pid(outcome.stdout) or 0
        logger.info(
            "restored pid %d -> %d (spawned=%s)", original_pid, reported, spawned
        )
        return RestoreResult(
            original_pid=original_pid,
            new_pid=reported,
            outcome=outcome,
            spawned=spawned,
            attempts=tuple(attempts),
        )
