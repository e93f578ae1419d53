"""설정 모듈 - config.yaml 로드 및 Config 데이터클래스"""

import logging
from dataclasses import dataclass, asdict, fields
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)


@dataclass
class Config:
    """스트림 클라이언트 설정 (config.yaml에서 로드)"""
    use_testnet: bool = False
    keepalive: bool = False
    keepalive_interval: float = 60.0     # 초, keepalive ping 주기 겸 pong 대기 한도
    ping_interval: float = 20.0          # keepalive 비활성 시 라이브러리 ping 주기
    ping_timeout: float = 20.0
    rest_timeout: float = 10.0
    queue_size: int = 1000               # Subscription 이벤트 큐 크기, 0이면 무제한
    log_level: str = "INFO"
    log_dir: str = ""                    # 비어 있으면 파일 로그 없음

    def __post_init__(self):
        for name in ("keepalive_interval", "ping_interval", "ping_timeout", "rest_timeout"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
        if self.queue_size < 0:
            raise ValueError(f"queue_size must be >= 0, got {self.queue_size}")

    @classmethod
    def from_yaml(cls, path: str) -> "Config":
        """YAML 파일에서 Config 생성. 파일이 없으면 기본값, 모르는 키는 경고 후 무시"""
        p = Path(path)
        if not p.exists():
            return cls()
        with open(p, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            logger.warning(f"[설정] 알 수 없는 키 무시: {', '.join(map(str, unknown))}")
        return cls(**{k: data[k] for k in data if k in known})

    def to_yaml(self, path: str) -> None:
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump(self.to_dict(), f, default_flow_style=False,
                           allow_unicode=True, sort_keys=False)

    def to_dict(self) -> dict:
        return asdict(self)
