"""데이터 모델 정의 - 바이낸스 WebSocket/REST 이벤트"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


# ── 오더북 관련 ──

@dataclass(frozen=True)
class PriceLevel:
    """호가 한 단계. 가격/수량은 거래소 문자열 그대로 유지"""
    price: str
    quantity: str


Bid = PriceLevel
Ask = PriceLevel


@dataclass(frozen=True)
class PartialDepthEvent:
    """partial depth 스냅샷 (depth5/10/20)"""
    symbol: str
    last_update_id: int          # lastUpdateId
    bids: list[PriceLevel] = field(default_factory=list)
    asks: list[PriceLevel] = field(default_factory=list)


@dataclass(frozen=True)
class DepthEvent:
    """depth diff 이벤트"""
    event: str                   # e
    time: int                    # E (ms)
    symbol: str                  # s
    last_update_id: int          # u
    first_update_id: int         # U
    previous_update_id: int | None   # pu, 선물 diff 스트림에만 존재
    bids: list[PriceLevel] = field(default_factory=list)   # b
    asks: list[PriceLevel] = field(default_factory=list)   # a


# ── 캔들 관련 ──

@dataclass(frozen=True)
class Kline:
    start_time: int              # t
    end_time: int                # T
    symbol: str                  # s
    interval: str                # i
    first_trade_id: int          # f
    last_trade_id: int           # L
    open: str                    # o
    close: str                   # c
    high: str                    # h
    low: str                     # l
    volume: str                  # v
    trade_num: int               # n
    is_final: bool               # x, 확정된 캔들
    quote_volume: str            # q
    active_buy_volume: str       # V
    active_buy_quote_volume: str  # Q


@dataclass(frozen=True)
class KlineEvent:
    event: str                   # e
    time: int                    # E
    symbol: str                  # s
    kline: Kline                 # k


# ── 체결 관련 ──

@dataclass(frozen=True)
class AggTradeEvent:
    event: str                   # e
    time: int                    # E
    symbol: str                  # s
    agg_trade_id: int            # a
    price: str                   # p
    quantity: str                # q
    first_breakdown_trade_id: int  # f
    last_breakdown_trade_id: int   # l
    trade_time: int              # T
    is_buyer_maker: bool         # m
    placeholder: bool = False    # M, m과 대소문자만 다른 필드


@dataclass(frozen=True)
class TradeEvent:
    event: str                   # e
    time: int                    # E
    symbol: str                  # s
    trade_id: int                # t
    price: str                   # p
    quantity: str                # q
    buyer_order_id: int          # b
    seller_order_id: int         # a
    trade_time: int              # T
    is_buyer_maker: bool         # m
    placeholder: bool = False    # M


@dataclass(frozen=True)
class CombinedTradeEvent:
    """combined trade 스트림 - 원본 stream 이름 유지"""
    stream: str
    data: TradeEvent


# ── 티커 관련 ──

@dataclass(frozen=True)
class MarketStatEvent:
    """24시간 롤링 티커"""
    event: str                   # e
    time: int                    # E
    symbol: str                  # s
    price_change: str            # p
    price_change_percent: str    # P
    weighted_avg_price: str      # w
    prev_close_price: str        # x
    last_price: str              # c
    close_qty: str               # Q
    bid_price: str               # b
    bid_qty: str                 # B
    ask_price: str               # a
    ask_qty: str                 # A
    open_price: str              # o
    high_price: str              # h
    low_price: str               # l
    base_volume: str             # v
    quote_volume: str            # q
    open_time: int               # O
    close_time: int              # C
    first_id: int                # F
    last_id: int                 # L
    count: int                   # n


@dataclass(frozen=True)
class MiniMarketStatEvent:
    event: str                   # e
    time: int                    # E
    symbol: str                  # s
    last_price: str              # c
    open_price: str              # o
    high_price: str              # h
    low_price: str               # l
    base_volume: str             # v
    quote_volume: str            # q


@dataclass(frozen=True)
class BookTickerEvent:
    """최우선 호가"""
    update_id: int               # u
    symbol: str                  # s
    best_bid_price: str          # b
    best_bid_qty: str            # B
    best_ask_price: str          # a
    best_ask_qty: str            # A


# ── 선물 관련 ──

@dataclass(frozen=True)
class MarkPriceEvent:
    event: str                   # e
    time: int                    # E
    symbol: str                  # s
    mark_price: str              # p
    index_price: str             # i
    estimated_settle_price: str  # P
    funding_rate: str            # r
    next_funding_time: int       # T


@dataclass(frozen=True)
class AssetIndexEvent:
    """멀티에셋 모드 자산 인덱스 (WebSocket)"""
    event: str                   # e
    symbol: str                  # s
    time: int                    # E
    index: str                   # i
    bid_buffer: str              # b
    ask_buffer: str              # a
    bid_rate: str                # B
    ask_rate: str                # A
    auto_exchange_bid_buffer: str  # q
    auto_exchange_ask_buffer: str  # g
    auto_exchange_bid_rate: str    # Q
    auto_exchange_ask_rate: str    # G


@dataclass(frozen=True)
class AssetIndexRecord:
    """자산 인덱스 REST 응답 (/fapi/v1/assetIndex)"""
    symbol: str
    time: int
    index: str
    bid_buffer: str
    ask_buffer: str
    bid_rate: str
    ask_rate: str
    auto_exchange_bid_buffer: str
    auto_exchange_ask_buffer: str
    auto_exchange_bid_rate: str
    auto_exchange_ask_rate: str


# ── 유저 데이터 관련 ──

class UserDataEventType(str, Enum):
    ORDER_TRADE_UPDATE = "ORDER_TRADE_UPDATE"
    ACCOUNT_UPDATE = "ACCOUNT_UPDATE"
    ACCOUNT_CONFIG_UPDATE = "ACCOUNT_CONFIG_UPDATE"
    LISTEN_KEY_EXPIRED = "listenKeyExpired"


@dataclass(frozen=True)
class OrderUpdate:
    id: int                      # i
    symbol: str                  # s
    client_order_id: str         # c
    side: str                    # S
    type: str                    # o
    time_in_force: str           # f
    volume: str                  # q
    org_price: str               # p
    avg_price: str               # ap
    stop_price: str              # sp
    execution_type: str          # x, NEW/TRADE...
    status: str                  # X
    latest_volume: str           # l
    filled_volume: str           # z
    latest_price: str            # L
    fee_asset: str               # N
    fee_cost: str                # n
    transaction_time: int        # T
    trade_id: int                # t
    bid_notional: str            # b
    ask_notional: str            # a
    is_maker: bool               # m
    is_reduce_only: bool         # R
    org_order_type: str          # ot
    position_side: str           # ps
    activation_price: str        # AP
    realized_profit: str         # rp


@dataclass(frozen=True)
class BalanceUpdate:
    asset: str                   # a
    wallet_balance: str          # wb
    cross_wallet_balance: str    # cw
    balance_change: str          # bc


@dataclass(frozen=True)
class PositionUpdate:
    symbol: str                  # s
    position_amount: str         # pa
    entry_price: str             # ep
    accumulated_realized: str    # cr
    unrealized_pnl: str          # up
    margin_type: str             # mt
    isolated_wallet: str         # iw
    position_side: str           # ps


@dataclass(frozen=True)
class AccountUpdate:
    reason: str                  # m
    balances: list[BalanceUpdate] = field(default_factory=list)    # B
    positions: list[PositionUpdate] = field(default_factory=list)  # P


@dataclass(frozen=True)
class AccountConfigUpdate:
    symbol: str                  # s
    leverage: int                # l


UserDataPayload = OrderUpdate | AccountUpdate | AccountConfigUpdate


@dataclass(frozen=True)
class UserDataEvent:
    """유저 데이터 이벤트 - event_type에 맞는 payload 하나만 보유

    listenKeyExpired와 알 수 없는 타입(MARGIN_CALL 등)은 payload가 None.
    알 수 없는 타입은 event_type에 원래 문자열이 그대로 남는다.
    """
    event_type: UserDataEventType | str    # e
    time: int                        # E
    transaction_time: int            # T
    account_update_time: int         # u
    payload: UserDataPayload | None = None

    @property
    def order_update(self) -> OrderUpdate | None:
        return self.payload if isinstance(self.payload, OrderUpdate) else None

    @property
    def account_update(self) -> AccountUpdate | None:
        return self.payload if isinstance(self.payload, AccountUpdate) else None

    @property
    def account_config_update(self) -> AccountConfigUpdate | None:
        return self.payload if isinstance(self.payload, AccountConfigUpdate) else None
