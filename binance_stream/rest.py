"""자산 인덱스 REST 조회 모듈 - /fapi/v1/assetIndex"""

from __future__ import annotations

import logging

import aiohttp

from binance_stream.config import Config
from binance_stream.decoders import decode_asset_index_record
from binance_stream.endpoints import rest_endpoint
from binance_stream.errors import DecodeError, RestError
from binance_stream.models import AssetIndexRecord

logger = logging.getLogger(__name__)


class AssetIndexService:
    """멀티에셋 모드 자산 인덱스 조회 (재시도 없음)"""

    PATH = "/fapi/v1/assetIndex"

    def __init__(self, config: Config | None = None):
        self.config = config or Config()

    @property
    def url(self) -> str:
        return f"{rest_endpoint(self.config)}{self.PATH}"

    async def fetch(self) -> list[AssetIndexRecord]:
        """전체 자산 인덱스 목록. HTTP 에러 시 RestError, 형식 오류 시 DecodeError"""
        async with aiohttp.ClientSession() as session:
            async with session.get(
                self.url,
                timeout=aiohttp.ClientTimeout(total=self.config.rest_timeout),
            ) as resp:
                if resp.status != 200:
                    body = await resp.text()
                    logger.warning(f"[자산인덱스] HTTP {resp.status}")
                    raise RestError(resp.status, body)
                data = await resp.json()

        if not isinstance(data, list):
            raise DecodeError(f"asset index: expected array, got {type(data).__name__}")
        records = [decode_asset_index_record(item) for item in data]
        logger.debug(f"[자산인덱스] {len(records)}건 조회")
        return records
