#!/usr/bin/env python3
"""Bounded, cancellable retries for HTTP requests.

`RetryingExecutor.execute()` sends a prepared request through a caller
configured `requests.Session` and retries on server errors (5xx) and
transport errors, up to `MAX_ATTEMPTS` total attempts.

Backoff is linear in the attempt number: after failed attempt N the executor
waits `N * retry_delay_unit_s` (1 unit before attempt 2, 2 units before
attempt 3). The wait is `threading.Event.wait()` on the request's cancel
event, so cancelling from another thread wakes it immediately.

Response bodies:
- the returned response is left open (`stream=True` by default); closing it
  is the caller's job
- every response that is retried or abandoned is closed here

Env vars (loaded from `.env` by `RetryConfig.from_env()`):
- RETRY_DELAY_UNIT_S (optional, default: 1.0)
"""

from __future__ import annotations

import logging
import os
import threading
import time
from dataclasses import dataclass
from typing import Any, Optional, Union

import requests
from dotenv import load_dotenv


logger = logging.getLogger("agentcore")

MAX_ATTEMPTS = 3
DEFAULT_RETRY_DELAY_UNIT_S = 1.0
DEFAULT_TIMEOUT_S = 30.0


class RequestCancelledError(RuntimeError):
    """Raised when the cancel event fires before the next attempt."""

    def __init__(self, url: Optional[str], attempts: int):
        self.url = url
        self.attempts = attempts
        super().__init__(
            f"Request to {url} cancelled after {attempts} attempt(s)"
        )


@dataclass(frozen=True)
class RetryConfig:
    """Timing knobs for `RetryingExecutor`.

    Tests inject a small `retry_delay_unit_s` instead of patching globals.
    """

    retry_delay_unit_s: float = DEFAULT_RETRY_DELAY_UNIT_S
    timeout_s: float = DEFAULT_TIMEOUT_S

    def __post_init__(self) -> None:
        if self.retry_delay_unit_s <= 0:
            raise ValueError(
                "retry_delay_unit_s must be positive, "
                f"got {self.retry_delay_unit_s!r}"
            )

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number `attempt` (1-based)."""
        return self.retry_delay_unit_s * max(1, int(attempt))

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "RetryConfig":
        """Build a config from RETRY_DELAY_UNIT_S (`.env` is loaded first)."""
        load_dotenv(dotenv_path)
        unit = float(
            os.getenv("RETRY_DELAY_UNIT_S", str(DEFAULT_RETRY_DELAY_UNIT_S))
        )
        return cls(retry_delay_unit_s=unit)


def should_retry(status_code: int) -> bool:
    return status_code >= 500


def _wait(cancel_event: Optional[threading.Event], delay_s: float) -> bool:
    """Sleep for `delay_s`; return True if cancelled first."""
    if cancel_event is None:
        time.sleep(delay_s)
        return False
    return cancel_event.wait(delay_s)


class RetryingExecutor:
    """Send requests with bounded retries and cancellable backoff."""

    def __init__(self, config: Optional[RetryConfig] = None):
        self.config = config or RetryConfig()

    def execute(
        self,
        session: requests.Session,
        request: Union[requests.Request, requests.PreparedRequest],
        cancel_event: Optional[threading.Event] = None,
        **send_kwargs: Any,
    ) -> requests.Response:
        """Perform `request`, retrying qualifying failures.

        Args:
            session: Configured session (adapters, headers, proxies).
            request: Request to send; a plain `requests.Request` is prepared
                through the session first.
            cancel_event: Cancellation signal, checked before each attempt
                and while waiting between attempts.
            **send_kwargs: Forwarded to `Session.send`. `timeout` defaults to
                `config.timeout_s` and `stream` to True.

        Returns:
            The first non-5xx response, or the last 5xx response once
            attempts are exhausted. Its body is still open.

        Raises:
            RequestCancelledError: cancel_event fired during the wait
                between attempts, or was already set before an attempt
                (including the first) was sent. Nothing is returned and the
                previous response, if any, has been closed.
            requests.RequestException: the final attempt failed in transport.
        """
        if isinstance(request, requests.Request):
            prepared = session.prepare_request(request)
        else:
            prepared = request

        send_kwargs.setdefault("timeout", self.config.timeout_s)
        send_kwargs.setdefault("stream", True)

        method = prepared.method
        url = prepared.url
        response: Optional[requests.Response] = None

        attempt = 0
        while True:
            attempt += 1
            if cancel_event is not None and cancel_event.is_set():
                raise RequestCancelledError(url, attempt - 1)

            try:
                response = session.send(prepared.copy(), **send_kwargs)
            except requests.RequestException as e:
                if attempt >= MAX_ATTEMPTS:
                    raise
                response = None
                reason = str(e)
            else:
                if (
                    not should_retry(response.status_code)
                    or attempt >= MAX_ATTEMPTS
                ):
                    return response
                reason = f"HTTP {response.status_code}"

            delay_s = self.config.delay_for(attempt)
            logger.warning(
                "Request failed (%s %s) attempt %s/%s: %s; "
                "retrying in %.2fs",
                method,
                url,
                attempt,
                MAX_ATTEMPTS,
                reason,
                delay_s,
            )

            try:
                cancelled = _wait(cancel_event, delay_s)
            finally:
                if response is not None:
                    response.close()
                    response = None
            if cancelled:
                logger.info(
                    "Request cancelled (%s %s) after %s attempt(s)",
                    method,
                    url,
                    attempt,
                )
                raise RequestCancelledError(url, attempt)


def do_request_with_retry(
    session: requests.Session,
    request: Union[requests.Request, requests.PreparedRequest],
    cancel_event: Optional[threading.Event] = None,
    config: Optional[RetryConfig] = None,
    **send_kwargs: Any,
) -> requests.Response:
    """One-shot helper around `RetryingExecutor(config).execute(...)`."""
    return RetryingExecutor(config).execute(
        session, request, cancel_event, **send_kwargs
    )


__all__ = [
    "MAX_ATTEMPTS",
    "DEFAULT_RETRY_DELAY_UNIT_S",
    "RequestCancelledError",
    "RetryConfig",
    "RetryingExecutor",
    "do_request_with_retry",
    "should_retry",
]
