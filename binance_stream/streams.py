"""스트림 구독 모듈 - 스트림 종류별 URL/디코더 구성 및 구독 API

사용 방법은 두 가지:
- 콜백: ``done, stop = await ws_depth_serve("BTCUSDT", handler, err_handler)``
- 비동기 반복자: ``async with subscribe(depth_stream("BTCUSDT")) as sub: async for ev in sub``
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping

from binance_stream import decoders as dec
from binance_stream.config import Config
from binance_stream.endpoints import (
    ALL_ASSET_INDEX, ALL_BOOK_TICKER, ALL_MARK_PRICE,
    ALL_MARKETS_MINI_TICKER, ALL_MARKETS_TICKER,
    build_combined_url, build_stream_url, depth_suffix, kline_suffix,
    mark_price_suffix, paired_streams, stream_name, symbol_streams,
)
from binance_stream.errors import DecodeError, SubscriptionError
from binance_stream.transport import ErrorHandler, MessageHandler, WsConnection, call_handler

logger = logging.getLogger(__name__)

ServeEvents = tuple[asyncio.Event, asyncio.Event]   # (done, stop)


@dataclass(frozen=True)
class Stream:
    """구독 대상: 연결 URL + 메시지 디코더"""
    url: str
    decode: dec.Decoder

    def decode_message(self, raw: str | bytes) -> Any:
        return dec.decode_message(raw, self.decode)


def _cfg(config: Config | None) -> Config:
    return config or Config()


def _single(symbol: str, suffix: str, decoder, config: Config | None) -> Stream:
    url = build_stream_url(stream_name(symbol, suffix), _cfg(config))
    return Stream(url, dec.flat(decoder))


def _combined(streams: list[str], decoder, config: Config | None) -> Stream:
    return Stream(build_combined_url(streams, _cfg(config)), dec.combined(decoder))


# ── 오더북 ──

def partial_depth_stream(symbol: str, levels: str, *, update_100ms: bool = False,
                         config: Config | None = None) -> Stream:
    """partial depth (levels: 5/10/20)"""
    if not levels:
        raise SubscriptionError("partial depth requires levels")
    url = build_stream_url(stream_name(symbol, depth_suffix(levels, update_100ms)), _cfg(config))
    return Stream(url, dec.flat(dec.decode_partial_depth, symbol.upper()))


def combined_partial_depth_stream(symbol_levels: Mapping[str, str], *,
                                  config: Config | None = None) -> Stream:
    for symbol, levels in symbol_levels.items():
        if not levels:
            raise SubscriptionError(f"partial depth requires levels: {symbol}")
    streams = paired_streams(symbol_levels, depth_suffix)
    return _combined(streams, dec.decode_partial_depth, config)


def depth_stream(symbol: str, *, update_100ms: bool = False,
                 config: Config | None = None) -> Stream:
    return _single(symbol, depth_suffix(update_100ms=update_100ms), dec.decode_depth, config)


def combined_depth_stream(symbols: Iterable[str], *, update_100ms: bool = False,
                          config: Config | None = None) -> Stream:
    streams = symbol_streams(symbols, depth_suffix(update_100ms=update_100ms))
    return _combined(streams, dec.decode_depth, config)


# ── 캔들 ──

def kline_stream(symbol: str, interval: str, *, config: Config | None = None) -> Stream:
    return _single(symbol, kline_suffix(interval), dec.decode_kline, config)


def combined_kline_stream(symbol_intervals: Mapping[str, str], *,
                          config: Config | None = None) -> Stream:
    return _combined(paired_streams(symbol_intervals, kline_suffix), dec.decode_kline, config)


# ── 체결 ──

def agg_trade_stream(symbol: str, *, config: Config | None = None) -> Stream:
    return _single(symbol, "aggTrade", dec.decode_agg_trade, config)


def combined_agg_trade_stream(symbols: Iterable[str], *, config: Config | None = None) -> Stream:
    return _combined(symbol_streams(symbols, "aggTrade"), dec.decode_agg_trade, config)


def trade_stream(symbol: str, *, config: Config | None = None) -> Stream:
    return _single(symbol, "trade", dec.decode_trade, config)


def combined_trade_stream(symbols: Iterable[str], *, config: Config | None = None) -> Stream:
    """CombinedTradeEvent(stream, data) 전달"""
    url = build_combined_url(symbol_streams(symbols, "trade"), _cfg(config))
    return Stream(url, dec.decode_combined_trade)


# ── 티커 ──

def market_stat_stream(symbol: str, *, config: Config | None = None) -> Stream:
    return _single(symbol, "ticker", dec.decode_market_stat, config)


def combined_market_stat_stream(symbols: Iterable[str], *, config: Config | None = None) -> Stream:
    return _combined(symbol_streams(symbols, "ticker"), dec.decode_market_stat, config)


def all_markets_stat_stream(*, config: Config | None = None) -> Stream:
    url = build_stream_url(ALL_MARKETS_TICKER, _cfg(config))
    return Stream(url, dec.array_of(dec.decode_market_stat))


def all_mini_markets_stat_stream(*, config: Config | None = None) -> Stream:
    url = build_stream_url(ALL_MARKETS_MINI_TICKER, _cfg(config))
    return Stream(url, dec.array_of(dec.decode_mini_market_stat))


def book_ticker_stream(symbol: str, *, config: Config | None = None) -> Stream:
    return _single(symbol, "bookTicker", dec.decode_book_ticker, config)


def combined_book_ticker_stream(symbols: Iterable[str], *, config: Config | None = None) -> Stream:
    return _combined(symbol_streams(symbols, "bookTicker"), dec.decode_book_ticker, config)


def all_book_ticker_stream(*, config: Config | None = None) -> Stream:
    url = build_stream_url(ALL_BOOK_TICKER, _cfg(config))
    return Stream(url, dec.decode_book_ticker)


# ── 선물 ──

def mark_price_stream(symbol: str, *, every_second: bool = False,
                      config: Config | None = None) -> Stream:
    return _single(symbol, mark_price_suffix(every_second), dec.decode_mark_price, config)


def all_mark_price_stream(*, config: Config | None = None) -> Stream:
    url = build_stream_url(ALL_MARK_PRICE, _cfg(config))
    return Stream(url, dec.array_of(dec.decode_mark_price))


def combined_mark_price_for_all_stream(*, config: Config | None = None) -> Stream:
    """combined 엔드포인트의 !markPrice@arr - data가 배열"""
    url = build_combined_url([ALL_MARK_PRICE], _cfg(config))
    return Stream(url, dec.enveloped(dec.array_of(dec.decode_mark_price)))


def asset_index_stream(*, config: Config | None = None) -> Stream:
    url = build_stream_url(ALL_ASSET_INDEX, _cfg(config))
    return Stream(url, dec.array_of(dec.decode_asset_index))


# ── 유저 데이터 ──

def user_data_stream(listen_key: str, *, config: Config | None = None) -> Stream:
    """listen key 경로의 개인 스트림"""
    if not listen_key:
        raise SubscriptionError("empty listen key")
    return Stream(build_stream_url(listen_key, _cfg(config)), dec.decode_user_data)


# ── 콜백 구독 ──

async def serve(stream: Stream, handler: MessageHandler, err_handler: ErrorHandler,
                config: Config | None = None) -> ServeEvents:
    """스트림 연결 후 디코드된 이벤트를 handler로 전달. (done, stop) 반환

    디코드 에러는 err_handler로 보고되고 수신은 계속된다.
    연결 에러는 한 번 보고되고 구독이 끝난다.
    """
    conn = WsConnection(stream.url, _cfg(config))

    async def on_message(raw: str | bytes) -> None:
        await call_handler(handler, stream.decode_message(raw))

    return await conn.start(on_message, err_handler)


async def ws_partial_depth_serve(symbol: str, levels: str, handler: MessageHandler,
                                 err_handler: ErrorHandler, *, update_100ms: bool = False,
                                 config: Config | None = None) -> ServeEvents:
    stream = partial_depth_stream(symbol, levels, update_100ms=update_100ms, config=config)
    return await serve(stream, handler, err_handler, config)


async def ws_combined_partial_depth_serve(symbol_levels: Mapping[str, str],
                                          handler: MessageHandler, err_handler: ErrorHandler,
                                          *, config: Config | None = None) -> ServeEvents:
    return await serve(combined_partial_depth_stream(symbol_levels, config=config),
                       handler, err_handler, config)


async def ws_depth_serve(symbol: str, handler: MessageHandler, err_handler: ErrorHandler, *,
                         update_100ms: bool = False,
                         config: Config | None = None) -> ServeEvents:
    stream = depth_stream(symbol, update_100ms=update_100ms, config=config)
    return await serve(stream, handler, err_handler, config)


async def ws_combined_depth_serve(symbols: Iterable[str], handler: MessageHandler,
                                  err_handler: ErrorHandler, *, update_100ms: bool = False,
                                  config: Config | None = None) -> ServeEvents:
    stream = combined_depth_stream(symbols, update_100ms=update_100ms, config=config)
    return await serve(stream, handler, err_handler, config)


async def ws_kline_serve(symbol: str, interval: str, handler: MessageHandler,
                         err_handler: ErrorHandler, *,
                         config: Config | None = None) -> ServeEvents:
    return await serve(kline_stream(symbol, interval, config=config), handler, err_handler, config)


async def ws_combined_kline_serve(symbol_intervals: Mapping[str, str], handler: MessageHandler,
                                  err_handler: ErrorHandler, *,
                                  config: Config | None = None) -> ServeEvents:
    return await serve(combined_kline_stream(symbol_intervals, config=config),
                       handler, err_handler, config)


async def ws_agg_trade_serve(symbol: str, handler: MessageHandler, err_handler: ErrorHandler,
                             *, config: Config | None = None) -> ServeEvents:
    return await serve(agg_trade_stream(symbol, config=config), handler, err_handler, config)


async def ws_combined_agg_trade_serve(symbols: Iterable[str], handler: MessageHandler,
                                      err_handler: ErrorHandler, *,
                                      config: Config | None = None) -> ServeEvents:
    return await serve(combined_agg_trade_stream(symbols, config=config),
                       handler, err_handler, config)


async def ws_trade_serve(symbol: str, handler: MessageHandler, err_handler: ErrorHandler,
                         *, config: Config | None = None) -> ServeEvents:
    return await serve(trade_stream(symbol, config=config), handler, err_handler, config)


async def ws_combined_trade_serve(symbols: Iterable[str], handler: MessageHandler,
                                  err_handler: ErrorHandler, *,
                                  config: Config | None = None) -> ServeEvents:
    return await serve(combined_trade_stream(symbols, config=config),
                       handler, err_handler, config)


async def ws_market_stat_serve(symbol: str, handler: MessageHandler, err_handler: ErrorHandler,
                               *, config: Config | None = None) -> ServeEvents:
    return await serve(market_stat_stream(symbol, config=config), handler, err_handler, config)


async def ws_combined_market_stat_serve(symbols: Iterable[str], handler: MessageHandler,
                                        err_handler: ErrorHandler, *,
                                        config: Config | None = None) -> ServeEvents:
    return await serve(combined_market_stat_stream(symbols, config=config),
                       handler, err_handler, config)


async def ws_all_markets_stat_serve(handler: MessageHandler, err_handler: ErrorHandler, *,
                                    config: Config | None = None) -> ServeEvents:
    return await serve(all_markets_stat_stream(config=config), handler, err_handler, config)


async def ws_all_mini_markets_stat_serve(handler: MessageHandler, err_handler: ErrorHandler, *,
                                         config: Config | None = None) -> ServeEvents:
    return await serve(all_mini_markets_stat_stream(config=config), handler, err_handler, config)


async def ws_book_ticker_serve(symbol: str, handler: MessageHandler, err_handler: ErrorHandler,
                               *, config: Config | None = None) -> ServeEvents:
    return await serve(book_ticker_stream(symbol, config=config), handler, err_handler, config)


async def ws_combined_book_ticker_serve(symbols: Iterable[str], handler: MessageHandler,
                                        err_handler: ErrorHandler, *,
                                        config: Config | None = None) -> ServeEvents:
    return await serve(combined_book_ticker_stream(symbols, config=config),
                       handler, err_handler, config)


async def ws_all_book_ticker_serve(handler: MessageHandler, err_handler: ErrorHandler, *,
                                   config: Config | None = None) -> ServeEvents:
    return await serve(all_book_ticker_stream(config=config), handler, err_handler, config)


async def ws_mark_price_serve(symbol: str, handler: MessageHandler, err_handler: ErrorHandler,
                              *, every_second: bool = False,
                              config: Config | None = None) -> ServeEvents:
    stream = mark_price_stream(symbol, every_second=every_second, config=config)
    return await serve(stream, handler, err_handler, config)


async def ws_all_mark_price_serve(handler: MessageHandler, err_handler: ErrorHandler, *,
                                  config: Config | None = None) -> ServeEvents:
    return await serve(all_mark_price_stream(config=config), handler, err_handler, config)


async def ws_combined_mark_price_for_all_serve(handler: MessageHandler,
                                               err_handler: ErrorHandler, *,
                                               config: Config | None = None) -> ServeEvents:
    return await serve(combined_mark_price_for_all_stream(config=config),
                       handler, err_handler, config)


async def ws_asset_index_serve(handler: MessageHandler, err_handler: ErrorHandler, *,
                               config: Config | None = None) -> ServeEvents:
    return await serve(asset_index_stream(config=config), handler, err_handler, config)


async def ws_user_data_serve(listen_key: str, handler: MessageHandler, err_handler: ErrorHandler,
                             *, config: Config | None = None) -> ServeEvents:
    return await serve(user_data_stream(listen_key, config=config), handler, err_handler, config)


# ── 반복자 구독 ──

class Subscription:
    """디코드된 이벤트를 순서대로 내주는 비동기 반복자

    연결 에러는 남은 이벤트를 모두 내준 뒤 반복자에서 raise 된다.
    디코드 에러는 on_error로 전달(없으면 WARNING 로그)되고 반복은 계속된다.
    stop() 이후에는 큐에 남은 이벤트를 버리고 반복을 끝낸다.
    """

    def __init__(self, stream: Stream, config: Config | None = None, on_error=None):
        self.stream = stream
        self.config = _cfg(config)
        self.on_error = on_error
        self._conn = WsConnection(stream.url, self.config)
        self._queue: asyncio.Queue | None = None
        self._error: Exception | None = None
        self._stopped = False

    @property
    def state(self):
        return self._conn.state

    async def open(self) -> "Subscription":
        self._queue = asyncio.Queue(maxsize=self.config.queue_size)
        await self._conn.start(self._on_message, self._on_error)
        return self

    async def stop(self) -> None:
        if self._conn.stop is None or self._stopped:
            return
        self._stopped = True
        self._conn.stop.set()
        # 큐가 가득 차 put에서 대기 중인 수신 루프를 풀어줌
        while not self._queue.empty():
            self._queue.get_nowait()
        await self._conn.wait()

    async def _on_message(self, raw: str | bytes) -> None:
        await self._queue.put(self.stream.decode_message(raw))

    async def _on_error(self, error: Exception) -> None:
        if not isinstance(error, DecodeError):
            self._error = error
        elif self.on_error is not None:
            await call_handler(self.on_error, error)
        else:
            logger.warning(f"[디코드] {self.stream.url}: {error}")

    async def __aenter__(self) -> "Subscription":
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> Any:
        if self._queue is None:
            raise RuntimeError("subscription is not open. Use 'async with' or await open().")
        while True:
            if self._stopped:
                raise StopAsyncIteration
            if not self._queue.empty():
                return self._queue.get_nowait()
            if self._conn.done.is_set():
                if self._error is not None:
                    error, self._error = self._error, None
                    raise error
                raise StopAsyncIteration

            getter = asyncio.ensure_future(self._queue.get())
            done_waiter = asyncio.ensure_future(self._conn.done.wait())
            try:
                finished, _ = await asyncio.wait(
                    {getter, done_waiter}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                for task in (getter, done_waiter):
                    if not task.done():
                        task.cancel()
            if getter in finished:
                return getter.result()


def subscribe(stream: Stream, config: Config | None = None, on_error=None) -> Subscription:
    """반복자 구독 생성 (async with 또는 await open()으로 연결)"""
    return Subscription(stream, config, on_error)
