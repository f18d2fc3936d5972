"""
yt-dlp 非同步音檔抓取

使用 asyncio.create_subprocess_exec 實現純 async 操作：
- 完全不阻塞事件循環
- 不佔用 ThreadPoolExecutor 線程
- 音訊直接輸出到 stdout，不經過暫存檔

只負責把網址轉成音檔 bytes；快取與超時由 AssetCache 處理。
"""

import asyncio
from typing import Optional
from loguru import logger

from ..constants import YTDLP_FETCH_TIMEOUT
from ..utils.errors import AssetFetchError, FetchTimeoutError


class YTDLPFetcher:
    """
    yt-dlp 音檔抓取器

    使用方式：
        fetcher = YTDLPFetcher()
        data = await fetcher.fetch("https://www.youtube.com/watch?v=xxx")
    """

    # 錯誤模式對應表
    ERROR_PATTERNS = {
        "age_restricted": [
            "sign in to confirm your age",
            "age-restricted",
            "inappropriate for some users"
        ],
        "copyright": [
            "copyright grounds",
            "blocked it",
            "content owner",
            "has blocked"
        ],
        "region_blocked": [
            "not available in your country"
        ],
        "private": [
            "private video",
            "sign in if you've been granted access"
        ],
        "unavailable": [
            "video unavailable",
            "this video is unavailable",
            "no longer available",
            "has been removed",
        ]
    }

    def __init__(self, executable: str = "yt-dlp", timeout: float = YTDLP_FETCH_TIMEOUT):
        """
        Args:
            executable: yt-dlp 執行檔
            timeout: 程序超時（秒），避免 yt-dlp 卡住時留下殭屍程序
        """
        self.executable = executable
        self.timeout = timeout

    async def fetch(self, reference: str) -> bytes:
        """
        下載最佳音訊並返回 bytes

        Raises:
            AssetFetchError: yt-dlp 失敗
            FetchTimeoutError: 程序超時
        """
        args = [
            self.executable,
            "--format", "bestaudio/best",
            "--output", "-",
            "--no-playlist",
            "--quiet",
            "--no-warnings",
            reference
        ]

        logger.debug(f"[yt-dlp] fetch 執行指令: {' '.join(args)}")

        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE
            )
        except OSError as e:
            raise AssetFetchError(f"failed to start yt-dlp: {e}", reference=reference)

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            self._kill(proc)
            raise FetchTimeoutError(reference, self.timeout)
        except asyncio.CancelledError:
            self._kill(proc)
            raise

        if proc.returncode != 0:
            error_msg = stderr.decode(errors="replace").strip() or f"未知錯誤 (returncode={proc.returncode})"
            error_type = self.detect_error_type(error_msg)
            logger.error(f"yt-dlp fetch 失敗 ({error_type}): {error_msg[:500]}")
            raise AssetFetchError(f"yt-dlp failed ({error_type}): {error_msg}", reference=reference)

        logger.debug(f"[yt-dlp] fetch 完成: {len(stdout)} bytes")
        return stdout

    def detect_error_type(self, error_msg: str) -> str:
        """
        根據錯誤訊息檢測錯誤類型
        """
        error_lower = error_msg.lower()

        for error_type, patterns in self.ERROR_PATTERNS.items():
            for pattern in patterns:
                if pattern in error_lower:
                    return error_type

        return "unknown"

    @staticmethod
    def _kill(proc: Optional[asyncio.subprocess.Process]) -> None:
        if proc is None or proc.returncode is not None:
            return
        try:
            proc.kill()
        except ProcessLookupError:
            pass
