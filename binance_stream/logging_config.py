"""로깅 설정 - stdout 핸들러 + 선택적 파일 핸들러"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

from binance_stream.config import Config

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_FILE = "binance_stream.log"


def setup_logging(config: Config) -> logging.Logger:
    """루트 로거에 stdout 핸들러 설치, log_dir 설정 시 파일 핸들러 추가"""
    level = getattr(logging, config.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
    )
    root = logging.getLogger()
    root.setLevel(level)

    if config.log_dir:
        # 디렉토리 생성 후 파일 핸들러 추가
        Path(config.log_dir).mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(
            Path(config.log_dir) / LOG_FILE, encoding="utf-8"
        )
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(file_handler)

    return root
