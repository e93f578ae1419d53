"""엔드포인트 선택 및 스트림 URL 생성 모듈"""

from __future__ import annotations

from typing import TYPE_CHECKING, Iterable, Mapping

from binance_stream.errors import SubscriptionError

if TYPE_CHECKING:
    from binance_stream.config import Config

# 선물 스트림 (depth diff에 pu 값 포함)
WS_MAIN_URL = "wss://fstream.binance.com/ws"
WS_TESTNET_URL = "wss://testnet.binance.vision/ws"
COMBINED_MAIN_URL = "wss://fstream.binance.com/stream?streams="
COMBINED_TESTNET_URL = "wss://testnet.binance.vision/stream?streams="
REST_MAIN_URL = "https://fapi.binance.com"
REST_TESTNET_URL = "https://testnet.binancefuture.com"

# 전체 마켓 스트림 이름
ALL_MARKETS_TICKER = "!ticker@arr"
ALL_MARKETS_MINI_TICKER = "!miniTicker@arr"
ALL_BOOK_TICKER = "!bookTicker"
ALL_MARK_PRICE = "!markPrice@arr"
ALL_ASSET_INDEX = "!assetIndex@arr"


def ws_endpoint(config: Config) -> str:
    """단일 스트림 기본 URL (테스트넷 여부에 따라)"""
    return WS_TESTNET_URL if config.use_testnet else WS_MAIN_URL


def combined_endpoint(config: Config) -> str:
    """combined stream 기본 URL (테스트넷 여부에 따라)"""
    return COMBINED_TESTNET_URL if config.use_testnet else COMBINED_MAIN_URL


def rest_endpoint(config: Config) -> str:
    """REST API 기본 URL"""
    return REST_TESTNET_URL if config.use_testnet else REST_MAIN_URL


# ── 스트림 이름 ──

def _require(value: str, what: str) -> str:
    if not value:
        raise SubscriptionError(f"empty {what}")
    return value


def stream_name(symbol: str, suffix: str) -> str:
    """'<소문자 심볼>@<suffix>' 형식"""
    return f"{_require(symbol, 'symbol').lower()}@{suffix}"


def depth_suffix(level: str = "", update_100ms: bool = False) -> str:
    """depth, depth{level}, depth{level}@100ms, depth@100ms"""
    suffix = f"depth{level}"
    return f"{suffix}@100ms" if update_100ms else suffix


def kline_suffix(interval: str) -> str:
    return f"kline_{_require(interval, 'kline interval')}"


def mark_price_suffix(every_second: bool = False) -> str:
    return "markPrice@1s" if every_second else "markPrice"


# ── URL ──

def build_stream_url(path: str, config: Config) -> str:
    """단일 스트림 URL: <ws endpoint>/<path>"""
    return f"{ws_endpoint(config)}/{_require(path, 'stream path')}"


def build_combined_url(streams: Iterable[str], config: Config) -> str:
    """combined stream URL. 스트림 목록이 비어 있으면 SubscriptionError"""
    names = [_require(s, "stream name") for s in streams]
    if not names:
        raise SubscriptionError("combined stream requires at least one stream")
    return f"{combined_endpoint(config)}{'/'.join(names)}"


def symbol_streams(symbols: Iterable[str], suffix: str) -> list[str]:
    """심볼 목록 → 동일 suffix 스트림 이름 목록"""
    return [stream_name(s, suffix) for s in symbols]


def paired_streams(pairs: Mapping[str, str], make_suffix) -> list[str]:
    """심볼→파라미터 매핑 → 스트림 이름 목록 (입력 순서 유지)"""
    return [stream_name(s, make_suffix(param)) for s, param in pairs.items()]
