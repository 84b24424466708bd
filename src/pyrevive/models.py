"""Data models for pyrevive."""

from dataclasses import dataclass, field


@dataclass(slots=True, frozen=True)
class ProcessDescriptor:
    """Immutable description of a process, captured before it is killed."""

    pid: int
    argv: tuple[str, ...] | None
    executable_path: str
    working_directory: str
    terminal_path: str
    display_name: str
    captured_at: float = field(compare=False)


@dataclass(slots=True, frozen=True)
class SnapshotRecord:
    """A descriptor held for a process the helper has snapshotted."""

    original_pid: int
    descriptor: ProcessDescriptor
    saved_at: float


@dataclass(slots=True, frozen=True)
class SnapshotSummary:
    """Lightweight view of a SnapshotRecord for listings."""

    original_pid: int
    display_name: str
    terminal_path: str
    executable_path: str
    saved_at: float


@dataclass(slots=True, frozen=True)
class HelperOutcome:
    """Captured result of a successful helper invocation."""

    command: tuple[str, ...]
    stdout: str
    stderr: str
    exit_status: int


@dataclass(slots=True, frozen=True)
class LaunchAttempt:
    """Result of one launch strategy."""

    strategy: str
    pid: int = 0
    argv: tuple[str, ...] = ()
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.pid > 0


@dataclass(slots=True, frozen=True)
class SnapshotResult:
    """Result of a snapshot-and-kill request."""

    record: SnapshotRecord
    outcome: HelperOutcome
    termination_error: str | None = None


@dataclass(slots=True, frozen=True)
class RestoreResult:
    """Result of a restore request."""

    original_pid: int
    new_pid: int
    outcome: HelperOutcome
    spawned: bool = False
    attempts: tuple[LaunchAttempt, ...] = ()

    @property
    def strategy(self) -> str | None:
        """Name of the strategy that relaunched the process, if any."""
        for attempt in self.attempts:
            if attempt.succeeded:
                return attempt.strategy
        return None


@dataclass(slots=True, frozen=True)
class ProcessEntry:
    """A running process as shown to the operator."""

    pid: int
    name: str
    terminal: str
    is_gui: bool
