"""Client for the privileged snapshot helper."""

import asyncio
import logging
import re

from pyrevive.errors import HelperError, HelperFailure
from pyrevive.models import HelperOutcome

logger = logging.getLogger(__name__)

_RESTORED_PID = re.compile(r"-> ([0-9]+)")

# Bound on reading leftover output once the helper has exited or been killed
DRAIN_TIMEOUT = 1.0


def parse_restored_pid(stdout: str) -> int | None:
    """
    Extract the pid the helper restored into from its output.

    The helper prints e.g. "OK restore 1234 -> 5678". This is a loose
    convention, so absence is not an error.
    """
    match = _RESTORED_PID.search(stdout)
    if match is None:
        return None
    return int(match.group(1))


async def _drain(stream: asyncio.StreamReader, chunks: list[bytes]) -> None:
    while True:
        chunk = await stream.read(4096)
        if not chunk:
            return
        chunks.append(chunk)


async def _collect(readers: list[asyncio.Task]) -> None:
    """Let the readers finish, cancelling any still blocked after DRAIN_TIMEOUT."""
    _, pending = await asyncio.wait(readers, timeout=DRAIN_TIMEOUT)
    for task in pending:
        task.cancel()
    await asyncio.gather(*pending, return_exceptions=True)


def _text(chunks: list[bytes]) -> str:
    return b"".join(chunks).decode(errors="replace")


class HelperClient:
    """
    Runs the helper executable as a subprocess, one bounded attempt per call.

    Commands:
        snapshot <pid>
        restore <original_pid> <new_pid>
    """

    def __init__(
        self,
        helper_path: str,
        use_sudo: bool = False,
        snapshot_timeout: float = 8.0,
        restore_timeout: float = 20.0,
    ) -> None:
        """
        Initialize the HelperClient.

        Args:
            helper_path: Absolute path of the helper executable.
            use_sudo: Run the helper through sudo.
            snapshot_timeout: Budget for snapshot calls (seconds).
            restore_timeout: Budget for restore calls (seconds).
        """
        self._helper_path = helper_path
        self._use_sudo = use_sudo
        self._snapshot_timeout = snapshot_timeout
        self._restore_timeout = restore_timeout

    @property
    def helper_path(self) -> str:
        return self._helper_path

    @property
    def use_sudo(self) -> bool:
        return self._use_sudo

    def build_command(self, command: str, args: list[str]) -> tuple[str, ...]:
        """Full argv for a helper call, including the privilege wrapper."""
        argv = (self._helper_path, command, *args)
        if self._use_sudo:
            return ("sudo", *argv)
        return argv

    async def invoke(self, command: str, args: list[str], timeout: float) -> HelperOutcome:
        """
        Run the helper once.

        Raises:
            HelperError: On spawn failure, timeout, or non-zero exit.
        """
        argv = self.build_command(command, args)
        logger.info("helper: %s", " ".join(argv))

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            logger.warning("helper spawn failed: %s", exc)
            raise HelperError(HelperFailure.SPAWN_ERROR, argv, stderr=str(exc)) from exc

        stdout_chunks: list[bytes] = []
        stderr_chunks: list[bytes] = []
        readers = [
            asyncio.create_task(_drain(process.stdout, stdout_chunks)),
            asyncio.create_task(_drain(process.stderr, stderr_chunks)),
        ]

        try:
            await asyncio.wait_for(process.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()
            # A grandchild under sudo may still hold the pipes open.
            await _collect(readers)
            logger.warning("helper timed out after %.1fs: %s", timeout, " ".join(argv))
            raise HelperError(
                HelperFailure.TIMEOUT,
                argv,
                stdout=_text(stdout_chunks),
                stderr=_text(stderr_chunks),
                exit_status=process.returncode,
                message=f"helper {command} timed out after {timeout:g}s",
            ) from None

        await _collect(readers)
        out = _text(stdout_chunks)
        err = _text(stderr_chunks)
        exit_status = process.returncode
        logger.info("helper exit=%s stdout=%r stderr=%r", exit_status, out.strip(), err.strip())

        if exit_status != 0:
            logger.warning("helper %s failed with exit status %s", command, exit_status)
            raise HelperError(
                HelperFailure.NONZERO_EXIT,
                argv,
                stdout=out,
                stderr=err,
                exit_status=exit_status,
            )
        return HelperOutcome(command=argv, stdout=out, stderr=err, exit_status=exit_status)

    async def snapshot(self, pid: int) -> HelperOutcome:
        return await self.invoke("snapshot", [str(pid)], self._snapshot_timeout)

    async def restore(self, original_pid: int, new_pid: int) -> HelperOutcome:
        return await self.invoke(
            "restore", [str(original_pid), str(new_pid)], self._restore_timeout
        )
