"""WebSocket 연결 모듈 - 단일 연결의 수신 루프, keepalive, 종료 신호"""

from __future__ import annotations

import asyncio
import inspect
import logging
from enum import Enum
from typing import Any, Awaitable, Callable

import websockets
from websockets.exceptions import ConnectionClosed

from binance_stream.config import Config
from binance_stream.errors import DecodeError, StreamConnectionError, StreamError

logger = logging.getLogger(__name__)

MessageHandler = Callable[[Any], Awaitable[None] | None]
ErrorHandler = Callable[[Exception], Awaitable[None] | None]


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"
    ERROR = "error"


async def call_handler(fn: Callable, *args) -> None:
    """일반 함수/코루틴 함수 모두 호출"""
    result = fn(*args)
    if inspect.isawaitable(result):
        await result


class WsConnection:
    """바이낸스 WebSocket 단일 연결

    start()가 연결 후 (done, stop) 이벤트를 반환한다. stop.set()으로 종료를 요청하고,
    수신 루프가 어떤 이유로든 끝나면 done이 한 번 set 된다.
    핸들러는 수신 루프에서 순서대로 await 되므로 느린 핸들러는 수신을 늦춘다.
    """

    def __init__(self, url: str, config: Config | None = None):
        self.url = url
        self.config = config or Config()
        self.state = ConnectionState.CLOSED
        self.done: asyncio.Event | None = None
        self.stop: asyncio.Event | None = None
        self._ws = None
        self._write_lock: asyncio.Lock | None = None
        self._failed = False
        self._tasks: list[asyncio.Task] = []

    def _connect_options(self) -> dict:
        # keepalive 사용 시 직접 ping, 아니면 라이브러리 ping/pong이 무응답 연결을 끊음
        if self.config.keepalive:
            return {"ping_interval": None, "ping_timeout": None}
        return {
            "ping_interval": self.config.ping_interval,
            "ping_timeout": self.config.ping_timeout,
        }

    async def start(self, handler: MessageHandler,
                    err_handler: ErrorHandler) -> tuple[asyncio.Event, asyncio.Event]:
        """연결 후 수신 루프 시작. 연결 실패 시 StreamConnectionError"""
        if self._ws is not None:
            raise StreamError(f"connection already started: {self.url}")

        self.state = ConnectionState.CONNECTING
        self.done = asyncio.Event()
        self.stop = asyncio.Event()
        self._write_lock = asyncio.Lock()
        try:
            self._ws = await websockets.connect(self.url, **self._connect_options())
        except Exception as e:
            self.state = ConnectionState.ERROR
            self.done.set()
            logger.error(f"[연결 실패] {self.url}: {e}")
            raise StreamConnectionError(f"failed to connect {self.url}: {e}") from e

        self.state = ConnectionState.OPEN
        logger.info(f"[연결] {self.url}")

        self._tasks.append(asyncio.create_task(self._read_loop(handler, err_handler)))
        self._tasks.append(asyncio.create_task(self._watch_stop()))
        if self.config.keepalive:
            self._tasks.append(asyncio.create_task(self._keepalive(err_handler)))
        return self.done, self.stop

    async def wait(self) -> None:
        """수신 루프 종료까지 대기"""
        await self.done.wait()

    async def close(self) -> None:
        """종료 요청 후 done까지 대기"""
        if self.stop is None:
            return
        self.stop.set()
        await self.done.wait()

    async def _fail(self, error: Exception, err_handler: ErrorHandler) -> None:
        """종료성 에러는 한 번만 보고"""
        if self._failed:
            return
        self._failed = True
        self.state = ConnectionState.ERROR
        logger.error(f"[연결 에러] {self.url}: {error}")
        await self._report(err_handler, error)

    async def _report(self, err_handler: ErrorHandler, error: Exception) -> None:
        """에러 핸들러 호출. 핸들러 자신이 던진 예외는 로그만 남기고 루프는 유지"""
        try:
            await call_handler(err_handler, error)
        except Exception:
            logger.exception(f"[에러 핸들러] {self.url}: {type(error).__name__} 보고 중 예외")

    async def _close_socket(self) -> None:
        async with self._write_lock:
            await self._ws.close()

    async def _read_loop(self, handler: MessageHandler, err_handler: ErrorHandler) -> None:
        try:
            while not self.stop.is_set():
                try:
                    message = await self._ws.recv()
                except ConnectionClosed as e:
                    if not self.stop.is_set():
                        await self._fail(
                            StreamConnectionError(f"connection closed: {e}"), err_handler)
                    break
                if self.stop.is_set():
                    break
                try:
                    await call_handler(handler, message)
                except DecodeError as e:
                    # 메시지 단위 에러 - 루프 계속
                    logger.debug(f"[디코드] {e}")
                    await self._report(err_handler, e)
        except Exception as e:
            await self._fail(e, err_handler)
        finally:
            await self._shutdown()

    async def _watch_stop(self) -> None:
        await self.stop.wait()
        if self.state is ConnectionState.OPEN:
            self.state = ConnectionState.CLOSING
        await self._close_socket()

    async def _keepalive(self, err_handler: ErrorHandler) -> None:
        """일정 주기로 ping 전송, 같은 주기 안에 pong 없으면 연결 에러"""
        interval = self.config.keepalive_interval
        while not self.stop.is_set():
            await asyncio.sleep(interval)
            try:
                async with self._write_lock:
                    pong_waiter = await self._ws.ping()
                await asyncio.wait_for(pong_waiter, timeout=interval)
            except asyncio.TimeoutError:
                await self._fail(
                    StreamConnectionError(f"keepalive: no pong within {interval}s"), err_handler)
                await self._close_socket()
                return
            except ConnectionClosed:
                return
            logger.debug(f"[keepalive] pong {self.url}")

    async def _shutdown(self) -> None:
        current = asyncio.current_task()
        for task in self._tasks:
            if task is not current:
                task.cancel()
        try:
            await self._close_socket()
        finally:
            if self.state is not ConnectionState.ERROR:
                self.state = ConnectionState.CLOSED
            self.done.set()
            logger.info(f"[종료] {self.url}")
