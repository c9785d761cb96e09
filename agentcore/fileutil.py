#!/usr/bin/env python3
"""Crash-safe file writes.

Everything the agent persists (state, tokens, downloaded config) goes through
`write_file_atomic()`, which uses the temp file + fsync + rename pattern:

- the temp file lives in the *same* directory as the target, so the final
  `os.replace()` is a single metadata operation on one filesystem
- the temp file is fsynced before the rename; on SD cards / eMMC the page
  cache would otherwise hold the data long after we think it is written
- on any failure the temp file is removed and the target is left untouched

Example:
    # Secret (owner read/write only)
    write_file_atomic("config.json", data, 0o600)

    # Public readable file
    write_file_atomic("public.txt", data, 0o644)
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Optional, Union


logger = logging.getLogger("agentcore")

PathLike = Union[str, os.PathLike]

DIR_MODE = 0o755
DEFAULT_FILE_MODE = 0o600


class AtomicWriteError(RuntimeError):
    """Raised when an atomic write fails.

    `phase` names the step that failed. The underlying OSError is available
    as `cause` (and as `__cause__`).
    """

    phase = "write"

    def __init__(self, path: PathLike, cause: Optional[BaseException] = None):
        self.path = Path(path)
        self.cause = cause
        msg = f"failed to {self.phase} ({self.path})"
        if cause is not None:
            msg += f": {cause}"
        super().__init__(msg)


class DirectoryCreateError(AtomicWriteError):
    phase = "create directory"


class TempFileCreateError(AtomicWriteError):
    phase = "create temp file"


class TempFileWriteError(AtomicWriteError):
    phase = "write temp file"


class TempFileSyncError(AtomicWriteError):
    phase = "sync temp file"


class PermissionSetError(AtomicWriteError):
    phase = "set permissions"


class TempFileCloseError(AtomicWriteError):
    phase = "close temp file"


class RenameError(AtomicWriteError):
    phase = "rename temp file"


def _write_all(fd: int, data: bytes) -> None:
    # os.write may write less than asked for and counts bytes, not items.
    view = memoryview(data).cast("B")
    while view:
        written = os.write(fd, view)
        view = view[written:]


def _make_dirs(directory: Path) -> None:
    """Create `directory` and every missing ancestor with DIR_MODE."""
    missing = []
    current = directory
    while not current.is_dir():
        missing.append(current)
        if current.parent == current:
            break
        current = current.parent
    for d in reversed(missing):
        d.mkdir(mode=DIR_MODE, exist_ok=True)


def _discard_temp(fd: Optional[int], tmp_path: str) -> None:
    """Best-effort cleanup of a temp file after a failed write."""
    if fd is not None:
        try:
            os.close(fd)
        except OSError as e:
            logger.debug("Failed to close temp file %s: %s", tmp_path, e)
    try:
        os.unlink(tmp_path)
    except OSError as e:
        logger.debug("Failed to remove temp file %s: %s", tmp_path, e)


def write_file_atomic(
    path: PathLike,
    data: bytes,
    perm: int = DEFAULT_FILE_MODE,
) -> None:
    """Atomically replace the contents of `path` with `data`.

    After a successful return the file holds exactly `data` with mode
    `perm`. If anything fails the previous content (or absence) of `path`
    is preserved and no temp file is left behind.

    Args:
        path: Target file path. Missing parent directories are created.
        data: Bytes to write.
        perm: File permission mode (e.g. 0o600 for secrets, 0o644 for
            readable files).

    Raises:
        AtomicWriteError: one of its subclasses, naming the failed phase.
    """
    target = Path(path)
    directory = target.parent

    try:
        _make_dirs(directory)
    except OSError as e:
        raise DirectoryCreateError(target, e) from e

    try:
        fd, tmp_path = tempfile.mkstemp(
            prefix=".tmp-", suffix=".tmp", dir=str(directory)
        )
    except OSError as e:
        raise TempFileCreateError(target, e) from e

    open_fd: Optional[int] = fd
    try:
        try:
            _write_all(fd, data)
        except OSError as e:
            raise TempFileWriteError(target, e) from e

        try:
            os.fsync(fd)
        except OSError as e:
            raise TempFileSyncError(target, e) from e

        try:
            os.chmod(tmp_path, perm)
        except OSError as e:
            raise PermissionSetError(target, e) from e

        # A failed close still releases the descriptor.
        open_fd = None
        try:
            os.close(fd)
        except OSError as e:
            raise TempFileCloseError(target, e) from e

        try:
            os.replace(tmp_path, str(target))
        except OSError as e:
            raise RenameError(target, e) from e
    except BaseException:
        _discard_temp(open_fd, tmp_path)
        raise


def write_text_atomic(
    path: PathLike,
    text: str,
    perm: int = DEFAULT_FILE_MODE,
    encoding: str = "utf-8",
) -> None:
    """Encode `text` and write it with `write_file_atomic()`."""
    write_file_atomic(path, text.encode(encoding), perm)


def write_json_atomic(
    path: PathLike,
    obj: Any,
    perm: int = DEFAULT_FILE_MODE,
) -> None:
    """Serialize `obj` as pretty JSON and write it atomically.

    Serialization happens before the filesystem is touched, so a value that
    is not JSON-serializable raises TypeError/ValueError and leaves `path`
    alone.
    """
    text = json.dumps(obj, indent=2, sort_keys=True, ensure_ascii=False)
    write_text_atomic(path, text + "\n", perm)


__all__ = [
    "AtomicWriteError",
    "DirectoryCreateError",
    "TempFileCreateError",
    "TempFileWriteError",
    "TempFileSyncError",
    "PermissionSetError",
    "TempFileCloseError",
    "RenameError",
    "write_file_atomic",
    "write_text_atomic",
    "write_json_atomic",
]
