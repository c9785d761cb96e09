#!/usr/bin/env python3
"""Small JSON state store for long-running agents.

Keeps an agent safe and incremental across restarts (last seen cursor, last
post time, etc.). Writes go through `write_json_atomic()`, so a power cut
mid-save leaves the previous state on disk instead of a truncated file.
"""

from __future__ import annotations

import copy
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from agentcore.fileutil import AtomicWriteError, PathLike, write_json_atomic


logger = logging.getLogger("agentcore")

DEFAULT_STATE: Dict[str, Any] = {"version": 1}
STATE_FILE_MODE = 0o600


class StateStore:
    """Load and save one JSON document."""

    def __init__(self, path: PathLike, default: Optional[Dict[str, Any]] = None):
        self.path = Path(path)
        self.default = default if default is not None else DEFAULT_STATE

    def _fresh(self) -> Dict[str, Any]:
        return copy.deepcopy(self.default)

    def load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return self._fresh()
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning("Failed to read state file %s: %s", self.path, e)
            return self._fresh()
        if not isinstance(data, dict):
            logger.warning(
                "Ignoring state file %s: expected a JSON object, got %s",
                self.path,
                type(data).__name__,
            )
            return self._fresh()
        return data

    def save(self, state: Dict[str, Any]) -> bool:
        """Persist `state`; return False (and keep the old file) on failure."""
        try:
            write_json_atomic(self.path, state, STATE_FILE_MODE)
        except AtomicWriteError as e:
            logger.warning("Failed to write state file %s: %s", self.path, e)
            return False
        return True


__all__ = ["StateStore", "DEFAULT_STATE"]
