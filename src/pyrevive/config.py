"""Configuration for pyrevive."""

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field

from pyrevive.errors import ConfigError

DEFAULT_SECRET = "local-secret-change-me"
DEFAULT_HEADLESS_LOG = "/tmp/restore.out"

# Files written by the helper and its kernel module
HELPER_LOG_PATHS = (
    ("helper", "/tmp/snapshot_user.log"),
    ("attach", "/tmp/snapshot_attach_log"),
    ("spawn", "/tmp/snapshot_spawn_log"),
    ("exec_err", "/tmp/snapshot_exec_err"),
)

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _float(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from exc
    if value <= 0:
        raise ConfigError(f"{name} must be positive, got {raw!r}")
    return value


def _first(environ: Mapping[str, str], *names: str) -> str | None:
    for name in names:
        value = environ.get(name)
        if value:
            return value
    return None


@dataclass(slots=True, frozen=True)
class Settings:
    """Static configuration, built once at start-up."""

    helper_path: str = field(default_factory=lambda: os.path.abspath("snapshot_user"))
    use_sudo: bool = False
    secret: str = DEFAULT_SECRET
    snapshot_timeout: float = 8.0
    restore_timeout: float = 20.0
    termination_timeout: float = 3.0
    restore_display: str | None = ":0"
    restore_xauthority: str | None = None
    restore_user: str | None = None
    headless_log_path: str = DEFAULT_HEADLESS_LOG
    proc_root: str = "/proc"
    poll_rate: float = 2.0
    log_file: str | None = "/tmp/pyrevive.log"
    log_level: str = "INFO"

    @property
    def diagnostic_paths(self) -> tuple[tuple[str, str], ...]:
        """Named paths the operator can read back for diagnostics."""
        return HELPER_LOG_PATHS + (("restore_out", self.headless_log_path),)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """
        Build settings from environment variables.

        Args:
            environ: Mapping to read from. Defaults to os.environ.

        Raises:
            ConfigError: If a numeric variable is malformed.
        """
        if environ is None:
            environ = os.environ

        home = environ.get("HOME")
        xauthority = _first(environ, "RESTORE_XAUTH", "XAUTHORITY")
        if xauthority is None and home:
            xauthority = os.path.join(home, ".Xauthority")

        helper_path = environ.get("SNAPSHOT_HELPER") or "snapshot_user"

        return cls(
            helper_path=os.path.abspath(helper_path),
            use_sudo=environ.get("SNAPSHOT_USE_SUDO", "").strip().lower() in _TRUE_VALUES,
            secret=environ.get("SNAPSHOT_SECRET") or DEFAULT_SECRET,
            snapshot_timeout=_float(environ, "SNAPSHOT_TIMEOUT", 8.0),
            restore_timeout=_float(environ, "RESTORE_TIMEOUT", 20.0),
            termination_timeout=_float(environ, "TERMINATION_TIMEOUT", 3.0),
            restore_display=_first(environ, "RESTORE_DISPLAY", "DISPLAY") or ":0",
            restore_xauthority=xauthority,
            restore_user=_first(environ, "RESTORE_USER", "USER"),
            headless_log_path=environ.get("RESTORE_OUTPUT") or DEFAULT_HEADLESS_LOG,
            proc_root=environ.get("PYREVIVE_PROC_ROOT") or "/proc",
            poll_rate=max(0.1, _float(environ, "PYREVIVE_POLL_RATE", 2.0)),
            log_file=environ.get("PYREVIVE_LOG_FILE") or "/tmp/pyrevive.log",
            log_level=(environ.get("PYREVIVE_LOG_LEVEL") or "INFO").upper(),
        )


def configure_logging(settings: Settings) -> None:
    """Send log records to the configured file; the terminal belongs to the UI."""
    handlers: list[logging.Handler] = []
    if settings.log_file:
        handlers.append(logging.FileHandler(settings.log_file))
    else:
        handlers.append(logging.NullHandler())
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        handlers=handlers,
        force=True,
    )
