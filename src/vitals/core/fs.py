"""Filesystem primitives that never raise.

Every probe the ingestion layer makes against the data directory (exists,
stat, listdir, read) goes through :func:`fs_call`, which captures ``OSError``
into an :class:`FsResult`. Callers decide the fallback with
:meth:`FsResult.unwrap_or`, so "permission denied" and "not found" both
degrade to an empty answer in one place instead of nested try/except blocks.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class FsError(Exception):
    """A filesystem operation failed (permission, missing path, I/O)."""

    def __init__(self, op: str, path: str | Path, cause: BaseException | None = None) -> None:
        self.op = op
        self.path = str(path)
        self.cause = cause
        super().__init__(f"{op} failed for {self.path}: {cause}")


@dataclass(frozen=True)
class FsResult(Generic[T]):
    """Either a value or an FsError, never both."""

    value: T | None = None
    error: FsError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap_or(self, default: T) -> T:
        """Return the value, or ``default`` when the call failed."""
        if self.error is not None:
            logger.debug("Filesystem fallback: %s", self.error)
            return default
        return self.value  # type: ignore[return-value]


def fs_call(op: str, path: str | Path, fn: Callable[[], T]) -> FsResult[T]:
    """Run ``fn`` and capture any OSError as an FsError result."""
    try:
        return FsResult(value=fn())
    except OSError as exc:
        return FsResult(error=FsError(op, path, exc))


# ---------------------------------------------------------------------------
# Primitives
# ---------------------------------------------------------------------------

def is_dir(path: str | Path) -> bool:
    return fs_call("is_dir", path, lambda: Path(path).is_dir()).unwrap_or(False)


def exists(path: str | Path) -> bool:
    return fs_call("exists", path, lambda: Path(path).exists()).unwrap_or(False)


def list_dir(path: str | Path) -> list[os.DirEntry]:
    """Directory entries sorted by name; empty on any error."""

    def _scan() -> list[os.DirEntry]:
        with os.scandir(path) as it:
            return sorted(it, key=lambda e: e.name)

    return fs_call("list_dir", path, _scan).unwrap_or([])


def stat(path: str | Path) -> os.stat_result | None:
    return fs_call("stat", path, lambda: os.stat(path)).unwrap_or(None)


def read_text(path: str | Path) -> str:
    """Read a UTF-8 text file; empty string on any error."""
    return fs_call(
        "read_text", path, lambda: Path(path).read_text(encoding="utf-8", errors="replace")
    ).unwrap_or("")
