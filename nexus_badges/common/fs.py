"""Filesystem helpers."""

from __future__ import annotations

import contextlib
import os
import tempfile
import typing as typ

if typ.TYPE_CHECKING:
    from pathlib import Path


def write_atomic(path: Path, payload: bytes) -> None:
    """Replace ``path`` with ``payload`` via a synced temp file and rename.

    The temporary file lives in the target directory so the final
    ``os.replace`` never crosses a filesystem boundary; readers see either
    the old content or the new content.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{path.name}.", suffix=".tmp", dir=path.parent
    )
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(tmp_name)
        raise
