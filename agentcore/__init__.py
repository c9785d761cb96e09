"""Durability primitives for agents on flaky edge hardware.

- agentcore.fileutil: crash-safe file writes (temp file + fsync + rename)
- agentcore.http_retry: bounded, cancellable HTTP retries with backoff
- agentcore.state_store: JSON state persisted with atomic writes

All modules log to the "agentcore" logger; configuring handlers is left to
the application.
"""

from agentcore.fileutil import (
    AtomicWriteError,
    write_file_atomic,
    write_json_atomic,
    write_text_atomic,
)
from agentcore.http_retry import (
    MAX_ATTEMPTS,
    RequestCancelledError,
    RetryConfig,
    RetryingExecutor,
    do_request_with_retry,
)
from agentcore.state_store import StateStore

__all__ = [
    "AtomicWriteError",
    "write_file_atomic",
    "write_json_atomic",
    "write_text_atomic",
    "MAX_ATTEMPTS",
    "RequestCancelledError",
    "RetryConfig",
    "RetryingExecutor",
    "do_request_with_retry",
    "StateStore",
]
