"""Launch strategies used to relaunch a saved process."""

import logging
import os
import shlex
import shutil
import subprocess
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType

from pyrevive.models import LaunchAttempt

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class TerminalCandidate:
    """A terminal emulator and how it takes a command to run."""

    binary: str
    build_args: Callable[[str, Sequence[str]], list[str]]

    def command(self, binary_path: str, program: str, args: Sequence[str]) -> list[str]:
        return [binary_path, *self.build_args(program, args)]


# Priority order
TERMINAL_CANDIDATES: tuple[TerminalCandidate, ...] = (
    TerminalCandidate("terminator", lambda p, a: ["-x", p, *a]),
    TerminalCandidate("gnome-terminal", lambda p, a: ["--", p, *a]),
    TerminalCandidate("konsole", lambda p, a: ["-e", p, *a]),
    # xfce4-terminal -e takes a single command string
    TerminalCandidate("xfce4-terminal", lambda p, a: ["-e", shlex.join([p, *a])]),
    TerminalCandidate("xterm", lambda p, a: ["-hold", "-e", p, *a]),
)


def build_launch_environment(
    base: Mapping[str, str],
    display: str | None = None,
    xauthority: str | None = None,
) -> Mapping[str, str]:
    """Layer the display overrides onto a copy of base. base is not modified."""
    env = dict(base)
    if display:
        env["DISPLAY"] = display
    if xauthority:
        env["XAUTHORITY"] = xauthority
    return MappingProxyType(env)


@dataclass(slots=True, frozen=True)
class LaunchRequest:
    """Everything a strategy needs to relaunch one program."""

    program: str
    args: tuple[str, ...]
    cwd: str
    env: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    user: str | None = None
    headless_log_path: str = "/tmp/restore.out"


class ProcessSpawner:
    """Starts detached children. Nothing waits on them afterwards."""

    def which(self, binary: str) -> str | None:
        return shutil.which(binary)

    def spawn_detached(self, argv: Sequence[str], cwd: str, env: Mapping[str, str]) -> int:
        """Start argv in its own session with all standard streams discarded."""
        process = subprocess.Popen(
            list(argv),
            cwd=cwd,
            env=dict(env),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
        )
        return process.pid

    def spawn_logged(
        self, argv: Sequence[str], cwd: str, env: Mapping[str, str], log_path: str
    ) -> int:
        """Start argv in its own session, appending stdout and stderr to log_path."""
        with open(log_path, "ab", buffering=0) as log:
            process = subprocess.Popen(
                list(argv),
                cwd=cwd,
                env=dict(env),
                stdin=subprocess.DEVNULL,
                stdout=log,
                stderr=subprocess.STDOUT,
                start_new_session=True,
            )
        # The child keeps its own copy of the log descriptor.
        return process.pid


def _launch_in_terminals(
    name: str,
    request: LaunchRequest,
    spawner: ProcessSpawner,
    wrap: Callable[[list[str]], list[str]],
) -> LaunchAttempt:
    errors: list[str] = []
    for candidate in TERMINAL_CANDIDATES:
        binary_path = spawner.which(candidate.binary)
        if binary_path is None:
            logger.debug("%s: %s not installed", name, candidate.binary)
            continue
        argv = wrap(candidate.command(binary_path, request.program, request.args))
        try:
            pid = spawner.spawn_detached(argv, request.cwd, request.env)
        except OSError as exc:
            logger.warning("%s: %s failed: %s", name, candidate.binary, exc)
            errors.append(f"{candidate.binary}: {exc}")
            continue
        logger.info("%s: launched %s pid=%d", name, " ".join(argv), pid)
        return LaunchAttempt(strategy=name, pid=pid, argv=tuple(argv))

    error = "; ".join(errors) if errors else "no terminal emulator found"
    return LaunchAttempt(strategy=name, error=error)


def interactive_terminal(request: LaunchRequest, spawner: ProcessSpawner) -> LaunchAttempt:
    """Open the program in the first terminal emulator that starts."""
    return _launch_in_terminals("terminal", request, spawner, lambda argv: argv)


def privileged_terminal(request: LaunchRequest, spawner: ProcessSpawner) -> LaunchAttempt:
    """Same as interactive_terminal, switched to request.user through sudo."""
    if not request.user:
        return LaunchAttempt(strategy="sudo-terminal", error="no restore user configured")
    user = request.user
    return _launch_in_terminals(
        "sudo-terminal",
        request,
        spawner,
        lambda argv: ["sudo", "-u", user, "--", *argv],
    )


def headless(request: LaunchRequest, spawner: ProcessSpawner) -> LaunchAttempt:
    """Run the program directly with its output appended to the headless log."""
    argv = [request.program, *request.args]
    try:
        pid = spawner.spawn_logged(argv, request.cwd, request.env, request.headless_log_path)
    except OSError as exc:
        logger.warning("headless launch of %s failed: %s", request.program, exc)
        return LaunchAttempt(strategy="headless", argv=tuple(argv), error=str(exc))
    logger.info("headless: launched %s pid=%d", " ".join(argv), pid)
    return LaunchAttempt(strategy="headless", pid=pid, argv=tuple(argv))


Strategy = Callable[[LaunchRequest, ProcessSpawner], LaunchAttempt]

LAUNCH_STRATEGIES: tuple[Strategy, ...] = (
    interactive_terminal,
    privileged_terminal,
    headless,
)


def launch(
    request: LaunchRequest,
    spawner: ProcessSpawner,
    strategies: Sequence[Strategy] = LAUNCH_STRATEGIES,
) -> list[LaunchAttempt]:
    """
    Try each strategy in order until one starts a process.

    Returns every attempt made; the last one succeeded unless all failed.
    """
    attempts: list[LaunchAttempt] = []
    for strategy in strategies:
        attempt = strategy(request, spawner)
        attempts.append(attempt)
        if attempt.succeeded:
            break
    else:
        logger.warning("all launch strategies failed for %s", request.program)
    return attempts


def default_environment() -> Mapping[str, str]:
    """Snapshot of the ambient environment."""
    return MappingProxyType(dict(os.environ))
