"""공통 픽스처 - 가짜 WebSocket 연결"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK

_CLOSE = object()


class FakeWebSocket:
    """websockets 연결 대역 - recv/ping/close만 흉내"""

    def __init__(self):
        self.incoming: asyncio.Queue = asyncio.Queue()
        self.closed = False
        self.close_calls = 0
        self.pings = 0
        self.answer_pings = True

    def feed(self, *messages) -> None:
        for m in messages:
            self.incoming.put_nowait(m)

    def drop(self) -> None:
        """서버 측 비정상 종료"""
        self.incoming.put_nowait(ConnectionClosedError(None, None))

    async def recv(self):
        if self.closed and self.incoming.empty():
            raise ConnectionClosedOK(None, None)
        item = await self.incoming.get()
        if item is _CLOSE:
            raise ConnectionClosedOK(None, None)
        if isinstance(item, Exception):
            raise item
        return item

    async def ping(self):
        self.pings += 1
        waiter = asyncio.get_running_loop().create_future()
        if self.answer_pings:
            waiter.set_result(0.001)
        return waiter

    async def close(self):
        self.close_calls += 1
        if not self.closed:
            self.closed = True
            self.incoming.put_nowait(_CLOSE)


async def _wait_until(predicate, timeout: float = 1.0) -> None:
    async def poll():
        while not predicate():
            await asyncio.sleep(0.001)
    await asyncio.wait_for(poll(), timeout)


@pytest.fixture
def fake_ws():
    return FakeWebSocket()


@pytest.fixture
def connect_mock(fake_ws):
    with patch("websockets.connect", new=AsyncMock(return_value=fake_ws)) as mock:
        yield mock


@pytest.fixture
def wait_until():
    return _wait_until
