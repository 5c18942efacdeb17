import json
import threading
import time
from collections import deque
from typing import Any, Callable, Dict, List, Optional

import pytest
import requests
from requests.adapters import HTTPAdapter
from requests.structures import CaseInsensitiveDict

from aqara.config import ClientBuilder

APP_ID = "app-test"
KEY_ID = "K.test"
APP_KEY = "SecretAppKey"
BASE_URL = "https://test.local/v3.0/open/api"

_REASONS = {200: "OK", 400: "Bad Request", 401: "Unauthorized", 429: "Too Many Requests",
            500: "Internal Server Error", 502: "Bad Gateway"}


def envelope(result: Any = None, code: int = 0, message: str = "Success", request_id: str = "req-1") -> Dict[str, Any]:
    out = {"code": code, "requestId": request_id, "message": message}
    if result is not None:
        out["result"] = result
    return out


def token_result(n: int, expires_in: int = 3600) -> Dict[str, Any]:
    return {
        "openId": "open-1",
        "accessToken": f"tok-{n}",
        "refreshToken": f"rt-{n}",
        "expiresIn": expires_in,
    }


class Recorded:
    def __init__(self, request: requests.PreparedRequest, body: Dict[str, Any]):
        self.url = request.url
        self.method = request.method
        self.headers = CaseInsensitiveDict(request.headers)
        self.body = body
        self.intent = body.get("intent")
        self.data = body.get("data")


class ScriptedAdapter(HTTPAdapter):
    """Transport adapter answering from a script instead of the network.

    A reply is ``(status, payload)`` or ``(status, payload, headers)``;
    ``payload`` may be a dict (sent as JSON) or raw bytes. Exceptions are
    raised from ``send`` like a real adapter would.
    """

    def __init__(self, handler: Optional[Callable] = None):
        super().__init__()
        self.handler = handler
        self.queue = deque()
        self.requests: List[Recorded] = []
        self._lock = threading.Lock()

    def reply(self, *replies) -> None:
        self.queue.extend(replies)

    def intents(self) -> List[str]:
        with self._lock:
            return [r.intent for r in self.requests]

    def send(self, request, stream=False, timeout=None, verify=True, cert=None, proxies=None):
        body = json.loads(request.body) if request.body else {}
        recorded = Recorded(request, body)
        with self._lock:
            self.requests.append(recorded)
            queued = self.queue.popleft() if self.queue else None
        reply = queued if queued is not None else self._handle(recorded)
        if isinstance(reply, BaseException):
            raise reply
        return self._build_response(request, *reply)

    def _handle(self, recorded: Recorded):
        if self.handler is None:
            return 200, envelope()
        return self.handler(recorded)

    @staticmethod
    def _build_response(request, status, payload, headers=None):
        resp = requests.Response()
        resp.status_code = status
        resp.reason = _REASONS.get(status, "")
        if isinstance(payload, (bytes, bytearray)):
            resp._content = bytes(payload)
        else:
            resp._content = json.dumps(payload).encode("utf-8")
        resp.headers = CaseInsensitiveDict(headers or {})
        resp.encoding = "utf-8"
        resp.url = request.url
        resp.request = request
        return resp


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ThreadRecordingClock(FakeClock):
    """FakeClock that remembers which threads read it.

    TokenManager reads the clock under its lock right before deciding to
    refresh or to wait, so a thread seen here while a refresh is running
    is committed to that refresh.
    """

    def __init__(self, now: float = 1_000_000.0):
        super().__init__(now)
        self._threads = set()
        self._lock = threading.Lock()

    def __call__(self) -> float:
        with self._lock:
            self._threads.add(threading.get_ident())
        return self.now

    def wait_for_threads(self, count: int, timeout: float = 5.0) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            with self._lock:
                if len(self._threads) >= count:
                    return True
            time.sleep(0.005)
        return False


@pytest.fixture
def adapter():
    return ScriptedAdapter()


@pytest.fixture
def http(adapter):
    s = requests.Session()
    s.trust_env = False
    s.mount("https://", adapter)
    s.mount("http://", adapter)
    yield s
    s.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def builder(http, clock):
    return (
        ClientBuilder()
        .credentials(APP_ID, KEY_ID, APP_KEY)
        .base_url(BASE_URL)
        .session(http)
        .clock(clock)
    )


@pytest.fixture
def client(builder):
    """Client with a static access token."""
    with builder.access_token("static-token").build() as c:
        yield c
