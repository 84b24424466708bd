"""Shared fixtures for pyrevive tests."""

import os
from collections.abc import Callable
from pathlib import Path

import pytest

from pyrevive.errors import HelperError
from pyrevive.models import HelperOutcome

# Mimics the real helper's mock mode
MOCK_HELPER_BODY = """
case "$1" in
  snapshot) echo "OK snapshot $2 (mock)"; echo "MOCK: snapshot $2" >&2 ;;
  restore) echo "OK restore $2 -> $3 (mock)"; echo "MOCK: restore $2 -> $3" >&2 ;;
  *) echo "unknown command" >&2; exit 2 ;;
esac
"""


class HelperScript:
    """A shell script standing in for the privileged helper."""

    def __init__(self, path: Path, calls_path: Path) -> None:
        self.path = str(path)
        self._calls_path = calls_path

    def calls(self) -> list[list[str]]:
        """Argument lists the script has been invoked with."""
        if not self._calls_path.exists():
            return []
        return [line.split() for line in self._calls_path.read_text().splitlines()]


class FakeSpawner:
    """Records launch calls instead of starting processes."""

    def __init__(
        self,
        installed: tuple[str, ...] = (),
        fail_when: Callable[[list[str]], bool] | None = None,
        headless_fails: bool = False,
    ) -> None:
        self.installed = set(installed)
        self.fail_when = fail_when
        self.headless_fails = headless_fails
        self.calls: list[tuple[str, list[str], str, dict[str, str]]] = []
        self._next_pid = 4000

    def which(self, binary: str) -> str | None:
        return f"/usr/bin/{binary}" if binary in self.installed else None

    def spawn_detached(self, argv, cwd, env) -> int:
        argv = list(argv)
        self.calls.append(("detached", argv, cwd, dict(env)))
        if self.fail_when is not None and self.fail_when(argv):
            raise OSError(f"cannot start {argv[0]}")
        self._next_pid += 1
        return self._next_pid

    def spawn_logged(self, argv, cwd, env, log_path) -> int:
        argv = list(argv)
        self.calls.append(("logged", argv, cwd, dict(env)))
        if self.headless_fails:
            raise FileNotFoundError(2, "No such file or directory", argv[0])
        self._next_pid += 1
        return self._next_pid


class FakeHelper:
    """In-process stand-in for HelperClient."""

    def __init__(self, stdout: str | None = None, error: HelperError | None = None) -> None:
        self.stdout = stdout
        self.error = error
        self.snapshot_calls: list[int] = []
        self.restore_calls: list[tuple[int, int]] = []
        self.helper_path = "/opt/snapshot_user"
        self.use_sudo = False

    def _outcome(self, command: tuple[str, ...], stdout: str) -> HelperOutcome:
        return HelperOutcome(command=command, stdout=stdout, stderr="", exit_status=0)

    async def snapshot(self, pid: int) -> HelperOutcome:
        self.snapshot_calls.append(pid)
        if self.error is not None:
            raise self.error
        return self._outcome(
            (self.helper_path, "snapshot", str(pid)), self.stdout or f"OK snapshot {pid}\n"
        )

    async def restore(self, original_pid: int, new_pid: int) -> HelperOutcome:
        self.restore_calls.append((original_pid, new_pid))
        if self.error is not None:
            raise self.error
        stdout = self.stdout
        if stdout is None:
            stdout = f"OK restore {original_pid} -> {new_pid}\n"
        return self._outcome(
            (self.helper_path, "restore", str(original_pid), str(new_pid)), stdout
        )


@pytest.fixture
def make_helper(tmp_path: Path) -> Callable[..., HelperScript]:
    """Write an executable helper script; body defaults to the mock helper."""

    def _make(body: str = MOCK_HELPER_BODY, name: str = "snapshot_user") -> HelperScript:
        path = tmp_path / name
        calls_path = tmp_path / f"{name}.calls"
        path.write_text(f'#!/bin/sh\necho "$@" >> "{calls_path}"\n{body}\n')
        path.chmod(0o755)
        return HelperScript(path, calls_path)

    return _make


@pytest.fixture
def make_proc(tmp_path: Path) -> Callable[..., str]:
    """
    Build a fake /proc entry and return the fake proc root.

    Links that are None are not created, as if unreadable.
    """
    root = tmp_path / "proc"
    root.mkdir()

    def _make(
        pid: int,
        cmdline: bytes | None = None,
        exe: str | None = None,
        cwd: str | None = None,
        fd0: str | None = None,
        fd1: str | None = None,
    ) -> str:
        entry = root / str(pid)
        (entry / "fd").mkdir(parents=True)
        if cmdline is not None:
            (entry / "cmdline").write_bytes(cmdline)
        for name, target in (("exe", exe), ("cwd", cwd), ("fd/0", fd0), ("fd/1", fd1)):
            if target is not None:
                os.symlink(target, entry / name)
        return str(root)

    return _make
