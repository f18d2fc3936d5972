"""
依網址選擇下載方式

直接音檔連結 → HTTPFetcher；其他網頁（YouTube 等）→ YTDLPFetcher
"""

from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from ..constants import DIRECT_AUDIO_EXTENSIONS
from .http import HTTPFetcher
from .yt_dlp import YTDLPFetcher


def is_direct_audio(reference: str) -> bool:
    """網址路徑是否以音檔副檔名結尾"""
    suffix = Path(urlparse(reference).path).suffix.lower()
    return suffix in DIRECT_AUDIO_EXTENSIONS


class AutoFetcher:
    def __init__(self, http: Optional[HTTPFetcher] = None, ytdlp: Optional[YTDLPFetcher] = None):
        self.http = http or HTTPFetcher()
        self.ytdlp = ytdlp or YTDLPFetcher()

    async def fetch(self, reference: str) -> bytes:
        if is_direct_audio(reference):
            return await self.http.fetch(reference)
        return await self.ytdlp.fetch(reference)
