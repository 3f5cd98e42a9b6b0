"""
Pytest configuration and fixtures for the realtime client tests.
"""

import asyncio
import json
import time
from typing import Any, Callable, List, Optional

import pytest
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK
from websockets.frames import Close

from intrinio_realtime import RealtimeClient, RealtimeSettings


class FakeWebSocket:
    """In-memory websocket: records outbound frames, replays queued inbound ones"""

    def __init__(self):
        self.sent: List[dict] = []
        self.events: List[str] = []
        self.inbox: asyncio.Queue = asyncio.Queue()
        self.closed = False
        self.close_calls = 0
        self.failing_sends = 0

    async def send(self, data: str) -> None:
        if self.failing_sends > 0:
            self.failing_sends -= 1
            self.events.append("send_failed")
            raise OSError("broken pipe")
        self.sent.append(json.loads(data))
        self.events.append("send")

    async def recv(self) -> Any:
        item = await self.inbox.get()
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self) -> None:
        self.close_calls += 1
        self.events.append("close")
        if not self.closed:
            self.closed = True
            self.inbox.put_nowait(
                ConnectionClosedOK(Close(1000, ""), Close(1000, ""), rcvd_then_sent=True)
            )

    def push(self, frame: Any) -> None:
        self.inbox.put_nowait(frame if isinstance(frame, (str, bytes)) else json.dumps(frame))

    def drop(self, code: int = 1011, reason: str = "internal error") -> None:
        """Peer closes with a close frame carrying `code`"""
        if code in (1000, 1001):
            exc = ConnectionClosedOK(Close(code, reason), None)
        else:
            exc = ConnectionClosedError(Close(code, reason), None)
        self.inbox.put_nowait(exc)

    def events_of(self, event: str) -> List[dict]:
        return [m for m in self.sent if m.get("event") == event]


class FakeDialer:
    def __init__(self):
        self.urls: List[str] = []
        self.sockets: List[FakeWebSocket] = []
        self.error: Optional[BaseException] = None

    async def __call__(self, url: str) -> FakeWebSocket:
        self.urls.append(url)
        if self.error is not None:
            raise self.error
        ws = FakeWebSocket()
        self.sockets.append(ws)
        return ws

    @property
    def ws(self) -> FakeWebSocket:
        return self.sockets[-1]


class FakeAuthenticator:
    def __init__(self, token: str = "test-token"):
        self.token = token
        self.error: Optional[Exception] = None
        self.calls: List[tuple] = []

    async def fetch_token(self, auth_url: str, username: str, password: str) -> str:
        self.calls.append((auth_url, username, password))
        if self.error is not None:
            raise self.error
        return self.token


async def wait_until(predicate: Callable[[], bool], timeout: float = 1.0) -> None:
    """Poll until predicate() is true or fail the test"""
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            pytest.fail("condition not met before timeout")
        await asyncio.sleep(0.01)


@pytest.fixture
def settings() -> RealtimeSettings:
    return RealtimeSettings(
        _env_file=None,
        heartbeat_interval=3.0,
        write_timeout=0.5,
        read_timeout=5.0,
        auth_timeout=1.0,
        drain_timeout=1.0,
    )


@pytest.fixture
def dialer() -> FakeDialer:
    return FakeDialer()


@pytest.fixture
def authenticator() -> FakeAuthenticator:
    return FakeAuthenticator()


@pytest.fixture
def make_client(settings, dialer, authenticator):
    """Factory for clients wired to the fakes"""

    def factory(provider: str = "iex", **kwargs) -> RealtimeClient:
        kwargs.setdefault("settings", settings)
        client = RealtimeClient(
            "user",
            "secret",
            provider,
            authenticator=authenticator,
            connect_factory=dialer,
            **kwargs
        )
        return client

    return factory


@pytest.fixture
async def client(make_client):
    client = make_client()
    yield client
    await client.disconnect()


@pytest.fixture
def errors() -> List[Exception]:
    return []


@pytest.fixture
def records() -> list:
    return []
