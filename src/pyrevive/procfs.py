"""Descriptor extraction from the /proc filesystem."""

import logging
import os
import time

from pyrevive.models import ProcessDescriptor

logger = logging.getLogger(__name__)


def split_cmdline(raw: bytes) -> tuple[str, ...] | None:
    """Split a NUL-delimited argument list, dropping empty fragments."""
    parts = tuple(part for part in raw.decode("utf-8", errors="replace").split("\0") if part)
    return parts or None


def display_name_for(pid: int, argv: tuple[str, ...] | None, executable_path: str) -> str:
    """First argument, else the executable's base name, else a pid label."""
    if argv:
        return argv[0]
    if executable_path:
        return os.path.basename(executable_path)
    return f"pid:{pid}"


class DescriptorExtractor:
    """
    Builds ProcessDescriptors from per-process metadata under a proc root.

    Every read is independent and best-effort: a failed read substitutes
    a default instead of failing the capture.
    """

    def __init__(self, proc_root: str = "/proc") -> None:
        """
        Initialize the DescriptorExtractor.

        Args:
            proc_root: Directory holding one entry per pid. Default /proc.
        """
        self._proc_root = proc_root

    @property
    def proc_root(self) -> str:
        return self._proc_root

    def _path(self, pid: int, *parts: str) -> str:
        return os.path.join(self._proc_root, str(pid), *parts)

    def _readlink(self, pid: int, *parts: str) -> str:
        path = self._path(pid, *parts)
        try:
            return os.readlink(path)
        except OSError as exc:
            logger.debug("readlink %s failed: %s", path, exc)
            return ""

    def read_argv(self, pid: int) -> tuple[str, ...] | None:
        """Read the argument list, or None if unreadable or empty."""
        path = self._path(pid, "cmdline")
        try:
            with open(path, "rb") as f:
                raw = f.read()
        except OSError as exc:
            logger.warning("cannot read argv of pid %d: %s", pid, exc)
            return None
        return split_cmdline(raw)

    def read_executable(self, pid: int) -> str:
        return self._readlink(pid, "exe")

    def read_working_directory(self, pid: int) -> str:
        return self._readlink(pid, "cwd") or "/"

    def read_terminal(self, pid: int) -> str:
        """Terminal on stdin, falling back to stdout."""
        return self._readlink(pid, "fd", "0") or self._readlink(pid, "fd", "1")

    def capture(self, pid: int) -> ProcessDescriptor:
        """Capture a descriptor for pid. Never raises for unreadable metadata."""
        argv = self.read_argv(pid)
        executable_path = self.read_executable(pid)
        working_directory = self.read_working_directory(pid)
        terminal_path = self.read_terminal(pid)

        descriptor = ProcessDescriptor(
            pid=pid,
            argv=argv,
            executable_path=executable_path,
            working_directory=working_directory,
            terminal_path=terminal_path,
            display_name=display_name_for(pid, argv, executable_path),
            captured_at=time.time(),
        )
        logger.debug("captured %r", descriptor)
        return descriptor
