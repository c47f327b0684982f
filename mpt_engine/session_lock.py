"""
SessionLockManager - cross-process locks for session_id handling.

Turns of one session must be serialized; the service takes this lock
around load -> advance -> generate -> commit. Default implementation
uses filesystem locks (fcntl).
"""

from __future__ import annotations

import hashlib
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import fcntl

from mpt_engine.settings import settings


class SessionLockManager:
    """Acquire per-session locks across processes."""

    def __init__(self, lock_dir: Optional[str] = None):
        self._lock_dir = Path(
            lock_dir
            or os.getenv("MPT_SESSION_LOCK_DIR")
            or settings.get_nested("locks.dir", "/tmp/mpt_engine_session_locks")
        ).resolve()
        self._lock_dir.mkdir(parents=True, exist_ok=True)

    @property
    def lock_dir(self) -> Path:
        return self._lock_dir

    def _lock_path(self, session_id: str) -> Path:
        digest = hashlib.sha256(session_id.encode("utf-8")).hexdigest()
        return self._lock_dir / f"{digest}.lock"

    @contextmanager
    def lock(self, session_id: str) -> Iterator[None]:
        """Context manager for session lock."""
        path = self._lock_path(session_id)
        with open(path, "a", encoding="utf-8") as handle:
            fcntl.flock(handle, fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(handle, fcntl.LOCK_UN)

    def release(self, session_id: str) -> None:
        """Remove the lock file of a closed session. Call while holding lock()."""
        self._lock_path(session_id).unlink(missing_ok=True)
