"""
Atomic file writing with fsync, so the account file is never half-written.

Pattern:
  1. Write to a temporary file in the same directory (created with *mode*)
  2. Call fsync to flush to disk
  3. Rename atomically (atomic on POSIX filesystems)

A crash during the write leaves the previous file intact.
"""
from __future__ import annotations

import os
import tempfile
from pathlib import Path


def atomic_write_bytes(path: Path, content: bytes, mode: int = 0o600) -> None:
    """
    Atomically replace *path* with *content*.

    The temp file is chmod'ed to *mode* before any data is written, so the
    secret never exists on disk with wider permissions.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    # Same directory as the target so the rename never crosses filesystems
    fd, temp_path = tempfile.mkstemp(
        prefix=f".{path.name}.",
        suffix=".tmp",
        dir=str(path.parent),
    )

    try:
        os.fchmod(fd, mode)
        with os.fdopen(fd, "wb") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())

        os.replace(temp_path, path)
    except BaseException:
        try:
            os.unlink(temp_path)
        except OSError:
            pass
        raise
