"""Read-back of diagnostic files written by the helper and relaunched programs."""

import logging
from collections.abc import Iterable

logger = logging.getLogger(__name__)


def read_text(path: str, limit: int | None = None) -> str:
    """Contents of path, or "" if it cannot be read. limit keeps the tail."""
    try:
        with open(path, encoding="utf-8", errors="replace") as f:
            text = f.read()
    except OSError as exc:
        logger.debug("cannot read %s: %s", path, exc)
        return ""
    if limit is not None and len(text) > limit:
        return text[-limit:]
    return text


def read_diagnostics(paths: Iterable[tuple[str, str]], limit: int | None = None) -> dict[str, str]:
    """Read every named diagnostic file."""
    return {name: read_text(path, limit) for name, path in paths}
