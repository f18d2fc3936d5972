"""
直接音檔網址下載（aiohttp）
"""

from typing import Optional

import aiohttp
from loguru import logger

from ..utils.errors import AssetFetchError


class HTTPFetcher:
    """
    以 aiohttp 下載直接音檔連結（.mp3 / .ogg ...）

    使用方式：
        fetcher = HTTPFetcher(max_bytes=10 * 1024 * 1024)
        data = await fetcher.fetch("https://example.com/hello.mp3")
    """

    def __init__(self, max_bytes: int = 10 * 1024 * 1024, session: Optional[aiohttp.ClientSession] = None):
        """
        Args:
            max_bytes: 單一音檔大小上限，入場音效應該都很短
            session: 可選的共用 ClientSession，未提供時每次下載建立一個
        """
        self.max_bytes = max_bytes
        self._session = session

    async def fetch(self, reference: str) -> bytes:
        if self._session is not None:
            return await self._fetch_with(self._session, reference)
        async with aiohttp.ClientSession() as session:
            return await self._fetch_with(session, reference)

    async def _fetch_with(self, session: aiohttp.ClientSession, reference: str) -> bytes:
        try:
            async with session.get(reference) as resp:
                if resp.status != 200:
                    raise AssetFetchError(f"HTTP {resp.status} for {reference}", reference=reference)

                length = int(resp.headers.get("Content-Length", 0) or 0)
                if length > self.max_bytes:
                    raise AssetFetchError(
                        f"{reference} is {length} bytes, limit is {self.max_bytes}",
                        reference=reference
                    )

                chunks = []
                received = 0
                async for chunk in resp.content.iter_chunked(64 * 1024):
                    received += len(chunk)
                    if received > self.max_bytes:
                        raise AssetFetchError(
                            f"{reference} exceeded {self.max_bytes} bytes",
                            reference=reference
                        )
                    chunks.append(chunk)

        except aiohttp.ClientError as e:
            raise AssetFetchError(f"HTTP fetch of {reference} failed: {e}", reference=reference)

        logger.debug(f"[HTTPFetcher] 下載完成: {received / 1024:.1f} KB")
        return b"".join(chunks)
