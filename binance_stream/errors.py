"""스트림 클라이언트 예외 정의"""


class StreamError(Exception):
    """binance_stream 예외 기본 클래스"""
    def __init__(self, message: str = "stream error"):
        self.message = message
        super().__init__(self.message)


class StreamConnectionError(StreamError):
    """소켓 연결 실패 또는 예기치 않은 종료 - 구독 종료"""


class DecodeError(StreamError):
    """메시지가 스트림 종류의 형식과 맞지 않음 - 해당 메시지만 폐기"""
    def __init__(self, message: str = "malformed message", raw: str | bytes | None = None):
        self.raw = raw
        super().__init__(message)


class SubscriptionError(StreamError, ValueError):
    """잘못된 구독 입력 (빈 심볼 목록 등) - 연결 전에 발생"""


class RestError(StreamError):
    """REST 응답 오류 (HTTP status != 200)"""
    def __init__(self, status: int, body: str = ""):
        self.status = status
        self.body = body
        super().__init__(f"HTTP {status}: {body}")
