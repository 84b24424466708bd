"""Process enumeration and termination using psutil."""

import logging

import psutil

from pyrevive.models import ProcessEntry

logger = logging.getLogger(__name__)

GUI_MARKERS = ("DISPLAY", "WAYLAND_DISPLAY")


def is_gui_environment(environ: dict[str, str] | None) -> bool:
    """True if the environment points at a display server."""
    if not environ:
        return False
    return any(marker in environ for marker in GUI_MARKERS)


def list_processes() -> list[ProcessEntry]:
    """
    Collect an entry for every running process.

    Handles AccessDenied and ZombieProcess errors gracefully: fields that
    cannot be read fall back to empty values, vanished processes are skipped.
    """
    entries: list[ProcessEntry] = []

    # environ and terminal come back as None when access is denied
    attrs = ["pid", "name", "terminal", "environ"]

    for proc in psutil.process_iter(attrs=attrs, ad_value=None):
        try:
            info = proc.info
            entries.append(
                ProcessEntry(
                    pid=info.get("pid", 0),
                    name=info.get("name") or "",
                    terminal=info.get("terminal") or "",
                    is_gui=is_gui_environment(info.get("environ")),
                )
            )
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            continue

    return entries


def terminate_process_tree(pid: int, timeout: float = 3.0) -> str | None:
    """
    Best-effort kill of pid: SIGTERM its children, then SIGKILL it.

    Returns:
        None on success or if the process is already gone, otherwise a
        description of what went wrong.
    """
    try:
        proc = psutil.Process(pid)
    except psutil.NoSuchProcess:
        return None
    except psutil.AccessDenied as exc:
        logger.warning("cannot access pid %d: %s", pid, exc)
        return f"access denied to pid {pid}"

    problems: list[str] = []

    try:
        children = proc.children()
    except (psutil.NoSuchProcess, psutil.ZombieProcess):
        children = []
    except psutil.AccessDenied as exc:
        problems.append(f"cannot list children: {exc}")
        children = []

    for child in children:
        try:
            child.terminate()
        except psutil.NoSuchProcess:
            continue
        except psutil.AccessDenied as exc:
            problems.append(f"cannot terminate child {child.pid}: {exc}")

    try:
        proc.kill()
        proc.wait(timeout=timeout)
    except psutil.NoSuchProcess:
        pass
    except psutil.AccessDenied as exc:
        problems.append(f"cannot kill {pid}: {exc}")
    except psutil.TimeoutExpired:
        problems.append(f"pid {pid} still running after {timeout:g}s")

    if problems:
        message = "; ".join(problems)
        logger.warning("terminating pid %d: %s", pid, message)
        return message
    return None
