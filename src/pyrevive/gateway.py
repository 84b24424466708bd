"""Request gateway: authentication and response payloads."""

import hmac
import logging
from typing import Any

from pyrevive.diagnostics import read_diagnostics
from pyrevive.errors import AuthenticationError, HelperError, PyreviveError, ValidationError
from pyrevive.models import SnapshotSummary
from pyrevive.processes import list_processes
from pyrevive.service import SnapshotService

logger = logging.getLogger(__name__)


def coerce_pid(value: Any, name: str = "pid", allow_zero: bool = False) -> int:
    """Turn a request value into a pid, or raise ValidationError."""
    if allow_zero and (value is None or (isinstance(value, str) and not value.strip())):
        return 0
    if isinstance(value, bool):
        raise ValidationError(f"invalid {name}: {value!r}")
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value.strip())
    if not isinstance(value, int) or value < 0 or (value == 0 and not allow_zero):
        raise ValidationError(f"invalid {name}: {value!r}")
    return value


def summary_payload(summary: SnapshotSummary) -> dict[str, Any]:
    return {
        "oldpid": summary.original_pid,
        "name": summary.display_name,
        "tty": summary.terminal_path,
        "exe": summary.executable_path,
        "saved_at": summary.saved_at,
    }


class SnapshotGateway:
    """
    Maps external requests onto SnapshotService calls.

    Every operation except health() requires the shared-secret token.
    Errors are raised unchanged; error_payload() turns them into responses.
    """

    def __init__(
        self,
        service: SnapshotService,
        secret: str,
        diagnostic_paths: tuple[tuple[str, str], ...] = (),
    ) -> None:
        self._service = service
        self._secret = secret
        self._diagnostic_paths = diagnostic_paths

    @property
    def service(self) -> SnapshotService:
        return self._service

    def authenticate(self, token: str | None) -> None:
        if not token or not hmac.compare_digest(token.encode(), self._secret.encode()):
            raise AuthenticationError("unauthorized")

    def health(self) -> dict[str, Any]:
        helper = self._service.helper
        return {"ok": True, "helper": helper.helper_path, "use_sudo": helper.use_sudo}

    def processes(self, token: str | None) -> dict[str, Any]:
        self.authenticate(token)
        return {
            "procs": [
                {"pid": p.pid, "name": p.name, "tty": p.terminal, "is_gui": p.is_gui}
                for p in list_processes()
            ]
        }

    def saved(self, token: str | None) -> dict[str, Any]:
        self.authenticate(token)
        return {"saved": [summary_payload(s) for s in self._service.saved()]}

    async def snapshot(self, token: str | None, pid: Any) -> dict[str, Any]:
        self.authenticate(token)
        result = await self._service.snapshot(coerce_pid(pid))
        record = result.record
        descriptor = record.descriptor
        return {
            "ok": True,
            "out": result.outcome.stdout.strip(),
            "kill_error": result.termination_error,
            "saved": {
                "oldpid": record.original_pid,
                "name": descriptor.display_name,
                "tty": descriptor.terminal_path,
                "exe": descriptor.executable_path,
            },
        }

    async def restore(self, token: str | None, oldpid: Any, newpid: Any = 0) -> dict[str, Any]:
        self.authenticate(token)
        result = await self._service.restore(
            coerce_pid(oldpid, "oldpid"),
            coerce_pid(newpid, "newpid", allow_zero=True),
        )
        return {
            "ok": True,
            "out": result.outcome.stdout.strip(),
            "spawned_pid": result.new_pid,
            "spawned": result.spawned,
            "strategy": result.strategy,
        }

    def forget(self, token: str | None, oldpid: Any) -> dict[str, Any]:
        self.authenticate(token)
        record = self._service.forget(coerce_pid(oldpid, "oldpid"))
        return {"ok": True, "removed": record is not None}

    def logs(self, token: str | None) -> dict[str, str]:
        self.authenticate(token)
        return read_diagnostics(self._diagnostic_paths)

    @staticmethod
    def error_payload(exc: PyreviveError) -> tuple[int, dict[str, Any]]:
        """HTTP-style status and body for a failed request."""
        if isinstance(exc, ValidationError):
            return 400, {"error": str(exc)}
        if isinstance(exc, AuthenticationError):
            return 401, {"error": "unauthorized"}
        if isinstance(exc, HelperError):
            return 500, {
                "error": f"{exc.operation} failed",
                "reason": exc.reason.value,
                "detail": exc.detail,
                "stdout": exc.stdout,
            }
        return 500, {"error": str(exc)}
