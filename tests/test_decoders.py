"""이벤트 디코더 테스트 - flat/combined 모드, 필드 매핑, 특수 규칙"""

import json

import pytest
from hypothesis import given, strategies as st, settings

from binance_stream import decoders as dec
from binance_stream.decoders import Envelope, decode_message
from binance_stream.errors import DecodeError
from binance_stream.models import PriceLevel


# ── 샘플 메시지 ──

TRADE_MSG = ('{"e":"trade","E":123456789,"s":"BNBBTC","t":12345,"p":"0.001","q":"100",'
             '"b":88,"a":50,"T":123456785,"m":true,"M":true}')

AGG_TRADE = {
    "e": "aggTrade", "E": 123456789, "s": "BTCUSDT", "a": 5933014,
    "p": "0.001", "q": "100", "f": 100, "l": 105, "T": 123456785,
    "m": True, "M": True,
}

DEPTH_DIFF = {
    "e": "depthUpdate", "E": 123456789, "T": 123456788, "s": "BTCUSDT",
    "U": 157, "u": 160, "pu": 149,
    "b": [["0.0024", "10"]],
    "a": [["0.0026", "100"], ["0.0027", "0"]],
}

PARTIAL_DEPTH = {
    "lastUpdateId": 160,
    "bids": [["0.0024", "10"]],
    "asks": [["0.0026", "100"]],
}

KLINE = {
    "e": "kline", "E": 123456789, "s": "BNBBTC",
    "k": {
        "t": 123400000, "T": 123460000, "s": "BNBBTC", "i": "1m",
        "f": 100, "L": 200, "o": "0.0010", "c": "0.0020", "h": "0.0025",
        "l": "0.0015", "v": "1000", "n": 100, "x": False, "q": "1.0000",
        "V": "500", "Q": "0.500", "B": "123456",
    },
}

TICKER = {
    "e": "24hrTicker", "E": 123456789, "s": "BTCUSDT",
    "p": "0.0015", "P": "250.00", "w": "0.0018", "x": "0.0009", "c": "0.0025",
    "Q": "10", "b": "0.0024", "B": "10", "a": "0.0026", "A": "100",
    "o": "0.0010", "h": "0.0025", "l": "0.0010", "v": "10000", "q": "18",
    "O": 0, "C": 86400000, "F": 0, "L": 18150, "n": 18151,
}

MINI_TICKER = {
    "e": "24hrMiniTicker", "E": 123456789, "s": "BTCUSDT",
    "c": "0.0025", "o": "0.0010", "h": "0.0025", "l": "0.0010",
    "v": "10000", "q": "18",
}

BOOK_TICKER = {
    "u": 400900217, "s": "BNBUSDT",
    "b": "25.35190000", "B": "31.21000000", "a": "25.36520000", "A": "40.66000000",
}

MARK_PRICE = {
    "e": "markPriceUpdate", "E": 1562305380000, "s": "BTCUSDT",
    "p": "11794.15000000", "i": "11784.62659091", "P": "11784.25641265",
    "r": "0.00038167", "T": 1562306400000,
}

ASSET_INDEX = {
    "e": "assetIndexUpdate", "E": 1686749230000, "s": "ADAUSD",
    "i": "0.27462452", "b": "0.10000000", "a": "0.10000000",
    "B": "0.24716207", "A": "0.30208698", "q": "0.05000000",
    "g": "0.05000000", "Q": "0.26089330", "G": "0.28835575",
}


def envelope(stream: str, data) -> str:
    return json.dumps({"stream": stream, "data": data})


# ── flat 모드 ──

class TestFlatDecoding:

    def test_trade_scenario(self):
        """trade 메시지 원문 그대로 디코드"""
        event = decode_message(TRADE_MSG, dec.decode_trade)
        assert event.event == "trade"
        assert event.time == 123456789
        assert event.symbol == "BNBBTC"
        assert event.trade_id == 12345
        assert event.price == "0.001"
        assert event.quantity == "100"
        assert event.buyer_order_id == 88
        assert event.seller_order_id == 50
        assert event.trade_time == 123456785
        assert event.is_buyer_maker is True
        assert event.placeholder is True

    def test_agg_trade(self):
        event = dec.decode_agg_trade(AGG_TRADE)
        assert event.agg_trade_id == 5933014
        assert event.first_breakdown_trade_id == 100
        assert event.last_breakdown_trade_id == 105
        assert event.is_buyer_maker is True
        assert event.placeholder is True

    def test_placeholder_defaults_false_when_absent(self):
        data = dict(AGG_TRADE)
        del data["M"]
        assert dec.decode_agg_trade(data).placeholder is False

    def test_placeholder_is_distinct_from_maker_flag(self):
        data = dict(AGG_TRADE, m=False, M=True)
        event = dec.decode_agg_trade(data)
        assert event.is_buyer_maker is False
        assert event.placeholder is True

    def test_depth_diff(self):
        event = dec.decode_depth(DEPTH_DIFF)
        assert event.event == "depthUpdate"
        assert event.symbol == "BTCUSDT"
        assert event.first_update_id == 157
        assert event.last_update_id == 160
        assert event.previous_update_id == 149
        assert event.bids == [PriceLevel("0.0024", "10")]
        assert event.asks == [PriceLevel("0.0026", "100"), PriceLevel("0.0027", "0")]

    def test_depth_without_pu_is_none(self):
        data = {k: v for k, v in DEPTH_DIFF.items() if k != "pu"}
        assert dec.decode_depth(data).previous_update_id is None

    def test_depth_with_explicit_zero_pu(self):
        data = dict(DEPTH_DIFF, pu=0)
        assert dec.decode_depth(data).previous_update_id == 0

    def test_partial_depth_uses_subscription_symbol(self):
        decode = dec.flat(dec.decode_partial_depth, "BTCUSDT")
        event = decode(PARTIAL_DEPTH)
        assert event.symbol == "BTCUSDT"
        assert event.last_update_id == 160
        assert event.bids[0].price == "0.0024"

    def test_kline(self):
        event = dec.decode_kline(KLINE)
        assert event.symbol == "BNBBTC"
        k = event.kline
        assert k.interval == "1m"
        assert k.start_time == 123400000
        assert k.end_time == 123460000
        assert (k.open, k.high, k.low, k.close) == ("0.0010", "0.0025", "0.0015", "0.0020")
        assert k.volume == "1000"
        assert k.trade_num == 100
        assert k.is_final is False
        assert k.active_buy_volume == "500"
        assert k.active_buy_quote_volume == "0.500"

    def test_market_stat(self):
        event = dec.decode_market_stat(TICKER)
        assert event.price_change_percent == "250.00"
        assert event.prev_close_price == "0.0009"
        assert event.close_qty == "10"
        assert event.close_time == 86400000
        assert event.last_id == 18150
        assert event.count == 18151

    def test_mini_market_stat(self):
        event = dec.decode_mini_market_stat(MINI_TICKER)
        assert event.event == "24hrMiniTicker"
        assert event.last_price == "0.0025"
        assert event.quote_volume == "18"

    def test_book_ticker(self):
        event = dec.decode_book_ticker(BOOK_TICKER)
        assert event.update_id == 400900217
        assert event.symbol == "BNBUSDT"
        assert event.best_bid_price == "25.35190000"
        assert event.best_ask_qty == "40.66000000"

    def test_mark_price(self):
        event = dec.decode_mark_price(MARK_PRICE)
        assert event.mark_price == "11794.15000000"
        assert event.index_price == "11784.62659091"
        assert event.estimated_settle_price == "11784.25641265"
        assert event.funding_rate == "0.00038167"
        assert event.next_funding_time == 1562306400000

    def test_asset_index(self):
        event = dec.decode_asset_index(ASSET_INDEX)
        assert event.symbol == "ADAUSD"
        assert event.index == "0.27462452"
        assert event.bid_rate == "0.24716207"
        assert event.auto_exchange_ask_buffer == "0.05000000"
        assert event.auto_exchange_ask_rate == "0.28835575"

    def test_prices_stay_strings(self):
        """가격/수량은 float 변환 없이 원본 문자열"""
        event = dec.decode_depth(dict(DEPTH_DIFF, b=[["0.10000000", "1.00000000"]]))
        assert event.bids[0].price == "0.10000000"
        assert event.bids[0].quantity == "1.00000000"


# ── 전체 마켓 배열 ──

class TestArrayDecoding:

    def test_all_mini_tickers_order_preserved(self):
        second = dict(MINI_TICKER, s="ETHUSDT", c="2500.1")
        raw = json.dumps([MINI_TICKER, second])
        events = decode_message(raw, dec.array_of(dec.decode_mini_market_stat))
        assert len(events) == 2
        assert [e.symbol for e in events] == ["BTCUSDT", "ETHUSDT"]
        assert events[1].last_price == "2500.1"

    def test_all_tickers(self):
        raw = json.dumps([TICKER, dict(TICKER, s="ETHUSDT")])
        events = decode_message(raw, dec.array_of(dec.decode_market_stat))
        assert [e.symbol for e in events] == ["BTCUSDT", "ETHUSDT"]

    def test_empty_array(self):
        assert decode_message("[]", dec.array_of(dec.decode_mark_price)) == []

    def test_object_instead_of_array_rejected(self):
        with pytest.raises(DecodeError):
            decode_message(json.dumps(MINI_TICKER), dec.array_of(dec.decode_mini_market_stat))

    def test_combined_mark_price_for_all(self):
        raw = envelope("!markPrice@arr", [MARK_PRICE, dict(MARK_PRICE, s="ETHUSDT")])
        events = decode_message(raw, dec.enveloped(dec.array_of(dec.decode_mark_price)))
        assert [e.symbol for e in events] == ["BTCUSDT", "ETHUSDT"]


# ── combined 모드 ──

class TestCombinedDecoding:

    def test_envelope_symbol(self):
        env = Envelope.parse({"stream": "btcusdt@depth@100ms", "data": {}})
        assert env.symbol == "BTCUSDT"

    @pytest.mark.parametrize("decoder,data,kind", [
        (dec.decode_depth, DEPTH_DIFF, "depth"),
        (dec.decode_kline, KLINE, "kline_1m"),
        (dec.decode_agg_trade, AGG_TRADE, "aggTrade"),
        (dec.decode_trade, json.loads(TRADE_MSG), "trade"),
        (dec.decode_market_stat, TICKER, "ticker"),
        (dec.decode_book_ticker, BOOK_TICKER, "bookTicker"),
        (dec.decode_mark_price, MARK_PRICE, "markPrice"),
        (dec.decode_partial_depth, PARTIAL_DEPTH, "depth5"),
    ])
    def test_envelope_symbol_overrides_data(self, decoder, data, kind):
        """봉투의 심볼이 data 안의 심볼보다 우선"""
        raw = envelope(f"btcusdt@{kind}", dict(data, s="someOtherSymbol"))
        event = decode_message(raw, dec.combined(decoder))
        assert event.symbol == "BTCUSDT"

    def test_envelope_symbol_when_data_has_none(self):
        data = {k: v for k, v in AGG_TRADE.items() if k != "s"}
        event = decode_message(envelope("ethusdt@aggTrade", data), dec.combined(dec.decode_agg_trade))
        assert event.symbol == "ETHUSDT"
        assert event.agg_trade_id == 5933014

    def test_combined_trade_keeps_stream(self):
        event = dec.decode_combined_trade(
            {"stream": "btcusdt@trade", "data": json.loads(TRADE_MSG)})
        assert event.stream == "btcusdt@trade"
        assert event.data.symbol == "BTCUSDT"
        assert event.data.trade_id == 12345

    def test_combined_flat_mapping_matches(self):
        """combined 디코드 결과는 심볼 외에 flat 결과와 동일"""
        flat = dec.decode_depth(DEPTH_DIFF)
        combined = dec.combined(dec.decode_depth)({"stream": "btcusdt@depth", "data": DEPTH_DIFF})
        assert combined == flat

    def test_envelope_missing_data(self):
        with pytest.raises(DecodeError):
            decode_message('{"stream": "btcusdt@trade"}', dec.combined(dec.decode_trade))

    @given(symbol=st.text(alphabet="abcdefghijklmnopqrstuvwxyz0123456789", min_size=1, max_size=12))
    @settings(max_examples=100)
    def test_envelope_symbol_uppercased(self, symbol):
        event = dec.combined(dec.decode_book_ticker)(
            {"stream": f"{symbol}@bookTicker", "data": BOOK_TICKER})
        assert event.symbol == symbol.upper()


# ── 디코드 에러 ──

class TestDecodeErrors:

    def test_malformed_json(self):
        with pytest.raises(DecodeError) as exc:
            decode_message("{not json", dec.decode_trade)
        assert exc.value.raw == "{not json"

    def test_missing_required_field(self):
        data = json.loads(TRADE_MSG)
        del data["t"]
        with pytest.raises(DecodeError, match="'t'"):
            decode_message(json.dumps(data), dec.decode_trade)

    def test_wrong_type(self):
        data = dict(AGG_TRADE, p=0.001)
        with pytest.raises(DecodeError):
            dec.decode_agg_trade(data)

    def test_bool_is_not_int(self):
        with pytest.raises(DecodeError):
            dec.decode_book_ticker(dict(BOOK_TICKER, u=True))

    def test_malformed_price_level(self):
        with pytest.raises(DecodeError):
            dec.decode_depth(dict(DEPTH_DIFF, b=[["0.1"]]))

    def test_non_object_message(self):
        with pytest.raises(DecodeError):
            decode_message("42", dec.decode_depth)

    def test_raw_attached(self):
        raw = json.dumps({"e": "trade"})
        with pytest.raises(DecodeError) as exc:
            decode_message(raw, dec.decode_trade)
        assert exc.value.raw == raw

    def test_bytes_message(self):
        event = decode_message(TRADE_MSG.encode(), dec.decode_trade)
        assert event.trade_id == 12345
