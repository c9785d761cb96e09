"""Shared fixtures: a scripted requests transport and a local HTTP server."""

from __future__ import annotations

import io
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Callable, Dict, List, Optional

import pytest
import requests
from requests.adapters import BaseAdapter


BASE_URL = "http://agent.test"


class TrackingBody(io.BytesIO):
    """Response body that counts close() calls."""

    def __init__(self, data: bytes = b""):
        super().__init__(data)
        self.close_calls = 0

    def close(self) -> None:
        self.close_calls += 1
        super().close()


class ScriptedAdapter(BaseAdapter):
    """Transport that replays a script of status codes / exception types.

    The last script entry repeats once the script runs out.
    """

    def __init__(
        self,
        script: List[Any],
        on_response: Optional[Callable[[requests.Response], None]] = None,
    ):
        super().__init__()
        self.script = list(script)
        self.on_response = on_response
        self.call_times: List[float] = []
        self.requests: List[requests.PreparedRequest] = []
        self.send_kwargs: List[Dict[str, Any]] = []
        self.bodies: List[TrackingBody] = []

    @property
    def attempts(self) -> int:
        return len(self.call_times)

    def send(self, request, **kwargs):
        self.call_times.append(time.monotonic())
        self.requests.append(request)
        self.send_kwargs.append(kwargs)

        step = self.script[min(self.attempts, len(self.script)) - 1]
        if isinstance(step, type) and issubclass(step, BaseException):
            raise step(f"scripted failure on attempt {self.attempts}")

        body = TrackingBody(b"payload")
        resp = requests.Response()
        resp.status_code = step
        resp.raw = body
        resp.request = request
        resp.url = request.url
        resp.encoding = "utf-8"
        self.bodies.append(body)
        if self.on_response is not None:
            self.on_response(resp)
        return resp

    def close(self) -> None:
        pass


@pytest.fixture
def scripted_session():
    """Return a factory building a Session backed by a ScriptedAdapter."""
    sessions = []

    def make(script, on_response=None):
        adapter = ScriptedAdapter(script, on_response=on_response)
        session = requests.Session()
        session.mount(BASE_URL, adapter)
        sessions.append(session)
        return session, adapter

    yield make

    for session in sessions:
        session.close()


@pytest.fixture
def failing_server():
    """Local HTTP server that fails the first N requests with 500.

    Yields a dict with `url`, a `hits` counter and a mutable `fail_first`.
    """
    state = {"hits": 0, "fail_first": 0}
    lock = threading.Lock()

    class Handler(BaseHTTPRequestHandler):
        def do_GET(self):
            with lock:
                state["hits"] += 1
                fail = state["hits"] <= state["fail_first"]
            body = b"error" if fail else b"success"
            self.send_response(500 if fail else 200)
            self.send_header("Content-Type", "text/plain")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def log_message(self, format, *args):
            pass

    server = ThreadingHTTPServer(("127.0.0.1", 0), Handler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    host, port = server.server_address[:2]
    state["url"] = f"http://{host}:{port}/"
    try:
        yield state
    finally:
        server.shutdown()
        server.server_close()
        thread.join(timeout=5)
