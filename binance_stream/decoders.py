"""이벤트 디코더 모듈 - 원본 메시지 → 타입 이벤트 변환

단일 스트림(flat)은 메시지 자체가 이벤트 객체이고, combined stream은
{"stream": "<symbol>@<kind>", "data": {...}} 형태로 감싸져 온다.
combined 모드에서는 stream 이름에서 꺼낸 대문자 심볼이 data 안의 심볼보다 우선한다.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

from binance_stream.errors import DecodeError
from binance_stream.models import (
    PriceLevel, PartialDepthEvent, DepthEvent, Kline, KlineEvent,
    AggTradeEvent, TradeEvent, CombinedTradeEvent,
    MarketStatEvent, MiniMarketStatEvent, BookTickerEvent,
    MarkPriceEvent, AssetIndexEvent, AssetIndexRecord,
    UserDataEventType, UserDataEvent, OrderUpdate, AccountUpdate,
    BalanceUpdate, PositionUpdate, AccountConfigUpdate,
)

T = TypeVar("T")
Decoder = Callable[[Any], T]

_MISSING = object()


# ── 필드 접근 ──

def _obj(value: Any, what: str = "message") -> dict:
    if not isinstance(value, dict):
        raise DecodeError(f"{what}: expected object, got {type(value).__name__}")
    return value


def _list(value: Any, what: str) -> list:
    if not isinstance(value, list):
        raise DecodeError(f"{what}: expected array, got {type(value).__name__}")
    return value


def _field(data: dict, key: str, kind: type, default: Any = _MISSING) -> Any:
    if key not in data or data[key] is None:
        if default is _MISSING:
            raise DecodeError(f"missing field '{key}'")
        return default
    value = data[key]
    # bool은 int의 서브클래스
    if isinstance(value, bool) and kind is not bool:
        raise DecodeError(f"field '{key}': expected {kind.__name__}, got bool")
    if not isinstance(value, kind):
        raise DecodeError(f"field '{key}': expected {kind.__name__}, got {type(value).__name__}")
    return value


def _str(data: dict, key: str, default: Any = _MISSING) -> str:
    return _field(data, key, str, default)


def _int(data: dict, key: str, default: Any = _MISSING) -> int:
    return _field(data, key, int, default)


def _bool(data: dict, key: str, default: Any = _MISSING) -> bool:
    return _field(data, key, bool, default)


def _levels(data: dict, key: str) -> list[PriceLevel]:
    """[[price, qty], ...] → PriceLevel 목록"""
    levels = []
    for item in _list(data.get(key, []), key):
        if not isinstance(item, list) or len(item) < 2:
            raise DecodeError(f"field '{key}': malformed price level {item!r}")
        price, qty = item[0], item[1]
        if not isinstance(price, str) or not isinstance(qty, str):
            raise DecodeError(f"field '{key}': price level must be strings")
        levels.append(PriceLevel(price=price, quantity=qty))
    return levels


def _symbol(data: dict, symbol: str | None) -> str:
    return symbol if symbol is not None else _str(data, "s")


# ── combined stream 봉투 ──

@dataclass(frozen=True)
class Envelope:
    """combined stream 메시지 {stream, data}"""
    stream: str
    data: Any

    @property
    def symbol(self) -> str:
        """stream 이름의 첫 '@' 앞부분을 대문자로"""
        return self.stream.split("@", 1)[0].upper()

    @classmethod
    def parse(cls, message: Any) -> "Envelope":
        obj = _obj(message, "envelope")
        if "data" not in obj:
            raise DecodeError("envelope: missing field 'data'")
        return cls(stream=_str(obj, "stream"), data=obj["data"])


# ── 오더북 ──

def decode_partial_depth(data: Any, symbol: str | None = None) -> PartialDepthEvent:
    d = _obj(data)
    return PartialDepthEvent(
        symbol=(symbol or "").upper(),
        last_update_id=_int(d, "lastUpdateId"),
        bids=_levels(d, "bids"),
        asks=_levels(d, "asks"),
    )


def decode_depth(data: Any, symbol: str | None = None) -> DepthEvent:
    d = _obj(data)
    return DepthEvent(
        event=_str(d, "e", ""),
        time=_int(d, "E"),
        symbol=_symbol(d, symbol),
        last_update_id=_int(d, "u"),
        first_update_id=_int(d, "U"),
        previous_update_id=_int(d, "pu", None),
        bids=_levels(d, "b"),
        asks=_levels(d, "a"),
    )


# ── 캔들 ──

def decode_kline(data: Any, symbol: str | None = None) -> KlineEvent:
    d = _obj(data)
    k = _obj(d.get("k"), "k")
    kline = Kline(
        start_time=_int(k, "t"),
        end_time=_int(k, "T"),
        symbol=_str(k, "s", ""),
        interval=_str(k, "i"),
        first_trade_id=_int(k, "f", 0),
        last_trade_id=_int(k, "L", 0),
        open=_str(k, "o"),
        close=_str(k, "c"),
        high=_str(k, "h"),
        low=_str(k, "l"),
        volume=_str(k, "v"),
        trade_num=_int(k, "n", 0),
        is_final=_bool(k, "x"),
        quote_volume=_str(k, "q", ""),
        active_buy_volume=_str(k, "V", ""),
        active_buy_quote_volume=_str(k, "Q", ""),
    )
    return KlineEvent(
        event=_str(d, "e", ""),
        time=_int(d, "E"),
        symbol=_symbol(d, symbol),
        kline=kline,
    )


# ── 체결 ──

def decode_agg_trade(data: Any, symbol: str | None = None) -> AggTradeEvent:
    d = _obj(data)
    return AggTradeEvent(
        event=_str(d, "e", ""),
        time=_int(d, "E"),
        symbol=_symbol(d, symbol),
        agg_trade_id=_int(d, "a"),
        price=_str(d, "p"),
        quantity=_str(d, "q"),
        first_breakdown_trade_id=_int(d, "f", 0),
        last_breakdown_trade_id=_int(d, "l", 0),
        trade_time=_int(d, "T"),
        is_buyer_maker=_bool(d, "m"),
        placeholder=_bool(d, "M", False),
    )


def decode_trade(data: Any, symbol: str | None = None) -> TradeEvent:
    d = _obj(data)
    return TradeEvent(
        event=_str(d, "e", ""),
        time=_int(d, "E"),
        symbol=_symbol(d, symbol),
        trade_id=_int(d, "t"),
        price=_str(d, "p"),
        quantity=_str(d, "q"),
        buyer_order_id=_int(d, "b", 0),
        seller_order_id=_int(d, "a", 0),
        trade_time=_int(d, "T"),
        is_buyer_maker=_bool(d, "m"),
        placeholder=_bool(d, "M", False),
    )


def decode_combined_trade(message: Any) -> CombinedTradeEvent:
    env = Envelope.parse(message)
    return CombinedTradeEvent(stream=env.stream, data=decode_trade(env.data, env.symbol))


# ── 티커 ──

def decode_market_stat(data: Any, symbol: str | None = None) -> MarketStatEvent:
    d = _obj(data)
    return MarketStatEvent(
        event=_str(d, "e", ""),
        time=_int(d, "E"),
        symbol=_symbol(d, symbol),
        price_change=_str(d, "p"),
        price_change_percent=_str(d, "P"),
        weighted_avg_price=_str(d, "w"),
        prev_close_price=_str(d, "x", ""),
        last_price=_str(d, "c"),
        close_qty=_str(d, "Q"),
        bid_price=_str(d, "b", ""),
        bid_qty=_str(d, "B", ""),
        ask_price=_str(d, "a", ""),
        ask_qty=_str(d, "A", ""),
        open_price=_str(d, "o"),
        high_price=_str(d, "h"),
        low_price=_str(d, "l"),
        base_volume=_str(d, "v"),
        quote_volume=_str(d, "q"),
        open_time=_int(d, "O"),
        close_time=_int(d, "C"),
        first_id=_int(d, "F"),
        last_id=_int(d, "L"),
        count=_int(d, "n"),
    )


def decode_mini_market_stat(data: Any, symbol: str | None = None) -> MiniMarketStatEvent:
    d = _obj(data)
    return MiniMarketStatEvent(
        event=_str(d, "e", ""),
        time=_int(d, "E"),
        symbol=_symbol(d, symbol),
        last_price=_str(d, "c"),
        open_price=_str(d, "o"),
        high_price=_str(d, "h"),
        low_price=_str(d, "l"),
        base_volume=_str(d, "v"),
        quote_volume=_str(d, "q"),
    )


def decode_book_ticker(data: Any, symbol: str | None = None) -> BookTickerEvent:
    d = _obj(data)
    return BookTickerEvent(
        update_id=_int(d, "u"),
        symbol=_symbol(d, symbol),
        best_bid_price=_str(d, "b"),
        best_bid_qty=_str(d, "B"),
        best_ask_price=_str(d, "a"),
        best_ask_qty=_str(d, "A"),
    )


# ── 선물 ──

def decode_mark_price(data: Any, symbol: str | None = None) -> MarkPriceEvent:
    d = _obj(data)
    return MarkPriceEvent(
        event=_str(d, "e", ""),
        time=_int(d, "E"),
        symbol=_symbol(d, symbol),
        mark_price=_str(d, "p"),
        index_price=_str(d, "i", ""),
        estimated_settle_price=_str(d, "P", ""),
        funding_rate=_str(d, "r", ""),
        next_funding_time=_int(d, "T", 0),
    )


def decode_asset_index(data: Any, symbol: str | None = None) -> AssetIndexEvent:
    d = _obj(data)
    return AssetIndexEvent(
        event=_str(d, "e", ""),
        symbol=_symbol(d, symbol),
        time=_int(d, "E"),
        index=_str(d, "i"),
        bid_buffer=_str(d, "b"),
        ask_buffer=_str(d, "a"),
        bid_rate=_str(d, "B"),
        ask_rate=_str(d, "A"),
        auto_exchange_bid_buffer=_str(d, "q"),
        auto_exchange_ask_buffer=_str(d, "g"),
        auto_exchange_bid_rate=_str(d, "Q"),
        auto_exchange_ask_rate=_str(d, "G"),
    )


def decode_asset_index_record(data: Any) -> AssetIndexRecord:
    """REST /fapi/v1/assetIndex 배열 원소"""
    d = _obj(data, "asset index record")
    return AssetIndexRecord(
        symbol=_str(d, "symbol"),
        time=_int(d, "time"),
        index=_str(d, "index"),
        bid_buffer=_str(d, "bidBuffer"),
        ask_buffer=_str(d, "askBuffer"),
        bid_rate=_str(d, "bidRate"),
        ask_rate=_str(d, "askRate"),
        auto_exchange_bid_buffer=_str(d, "autoExchangeBidBuffer"),
        auto_exchange_ask_buffer=_str(d, "autoExchangeAskBuffer"),
        auto_exchange_bid_rate=_str(d, "autoExchangeBidRate"),
        auto_exchange_ask_rate=_str(d, "autoExchangeAskRate"),
    )


# ── 유저 데이터 ──

def _decode_order_update(o: dict) -> OrderUpdate:
    return OrderUpdate(
        id=_int(o, "i"),
        symbol=_str(o, "s"),
        client_order_id=_str(o, "c", ""),
        side=_str(o, "S"),
        type=_str(o, "o"),
        time_in_force=_str(o, "f", ""),
        volume=_str(o, "q"),
        org_price=_str(o, "p"),
        avg_price=_str(o, "ap", ""),
        stop_price=_str(o, "sp", ""),
        execution_type=_str(o, "x"),
        status=_str(o, "X"),
        latest_volume=_str(o, "l", ""),
        filled_volume=_str(o, "z", ""),
        latest_price=_str(o, "L", ""),
        fee_asset=_str(o, "N", ""),
        fee_cost=_str(o, "n", ""),
        transaction_time=_int(o, "T", 0),
        trade_id=_int(o, "t", 0),
        bid_notional=_str(o, "b", ""),
        ask_notional=_str(o, "a", ""),
        is_maker=_bool(o, "m", False),
        is_reduce_only=_bool(o, "R", False),
        org_order_type=_str(o, "ot", ""),
        position_side=_str(o, "ps", ""),
        activation_price=_str(o, "AP", ""),
        realized_profit=_str(o, "rp", ""),
    )


def _decode_account_update(a: dict) -> AccountUpdate:
    balances = [
        BalanceUpdate(
            asset=_str(b, "a"),
            wallet_balance=_str(b, "wb"),
            cross_wallet_balance=_str(b, "cw", ""),
            balance_change=_str(b, "bc", ""),
        )
        for b in (_obj(x, "balance") for x in _list(a.get("B", []), "B"))
    ]
    positions = [
        PositionUpdate(
            symbol=_str(p, "s"),
            position_amount=_str(p, "pa"),
            entry_price=_str(p, "ep"),
            accumulated_realized=_str(p, "cr", ""),
            unrealized_pnl=_str(p, "up", ""),
            margin_type=_str(p, "mt", ""),
            isolated_wallet=_str(p, "iw", ""),
            position_side=_str(p, "ps", ""),
        )
        for p in (_obj(x, "position") for x in _list(a.get("P", []), "P"))
    ]
    return AccountUpdate(reason=_str(a, "m", ""), balances=balances, positions=positions)


def _decode_account_config_update(ac: dict) -> AccountConfigUpdate:
    return AccountConfigUpdate(symbol=_str(ac, "s"), leverage=_int(ac, "l"))


def decode_user_data(data: Any) -> UserDataEvent:
    """유저 데이터 이벤트 - e 값에 따라 payload 하나만 채움"""
    d = _obj(data)
    tag = _str(d, "e")
    try:
        event_type = UserDataEventType(tag)
    except ValueError:
        # 새 이벤트 타입은 payload 없이 전달
        event_type = tag

    payload = None
    if event_type is UserDataEventType.ORDER_TRADE_UPDATE:
        payload = _decode_order_update(_obj(d.get("o"), "o"))
    elif event_type is UserDataEventType.ACCOUNT_UPDATE:
        payload = _decode_account_update(_obj(d.get("a"), "a"))
    elif event_type is UserDataEventType.ACCOUNT_CONFIG_UPDATE:
        payload = _decode_account_config_update(_obj(d.get("ac"), "ac"))

    return UserDataEvent(
        event_type=event_type,
        time=_int(d, "E"),
        transaction_time=_int(d, "T", 0),
        account_update_time=_int(d, "u", 0),
        payload=payload,
    )


# ── 모드 조합 ──

def flat(decoder: Callable[..., T], symbol: str | None = None) -> Decoder:
    """단일 스트림: 메시지 자체를 디코드"""
    if symbol is None:
        return decoder
    return lambda message: decoder(message, symbol)


def combined(decoder: Callable[..., T]) -> Decoder:
    """combined stream: 봉투의 심볼로 덮어쓰기"""
    def decode(message: Any) -> T:
        env = Envelope.parse(message)
        return decoder(env.data, env.symbol)
    return decode


def enveloped(decoder: Decoder) -> Decoder:
    """combined stream이지만 심볼 없는 data (배열 등)"""
    return lambda message: decoder(Envelope.parse(message).data)


def array_of(decoder: Callable[..., T]) -> Callable[[Any], list[T]]:
    """전체 마켓 스트림: 봉투 없는 배열, 순서 유지"""
    def decode(message: Any) -> list[T]:
        return [decoder(item) for item in _list(message, "message")]
    return decode


def loads(raw: str | bytes) -> Any:
    try:
        return json.loads(raw)
    except (ValueError, TypeError) as e:
        raise DecodeError(f"invalid JSON: {e}", raw) from e


def decode_message(raw: str | bytes, decode: Decoder) -> Any:
    """원본 메시지 → 타입 이벤트. 실패 시 DecodeError (raw 포함)"""
    try:
        return decode(loads(raw))
    except DecodeError as e:
        if e.raw is None:
            e.raw = raw
        raise
