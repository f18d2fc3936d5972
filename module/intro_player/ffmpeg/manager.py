"""
FFmpeg 管理器

優先順序：
1. 設定檔指定的路徑（FFMPEG_PATH）
2. 系統 PATH 中的 ffmpeg（Docker/Linux 已安裝的）

找到後以 `-version` 驗證一次，結果會被記住。
"""

import asyncio
import shutil
from typing import Optional
from loguru import logger


class FFmpegManager:
    """
    FFmpeg 管理器

    使用方式：
        manager = FFmpegManager(configured_path=settings.ffmpeg_path)
        path = await manager.ensure_ffmpeg()
        # path 會是絕對路徑，找不到返回 None
    """

    def __init__(self, configured_path: Optional[str] = None):
        """
        Args:
            configured_path: 使用者指定的 FFmpeg 路徑
        """
        self.configured_path = configured_path
        self._ffmpeg_path: Optional[str] = None

    @property
    def ffmpeg_path(self) -> Optional[str]:
        """取得 FFmpeg 路徑（如果已確認）"""
        return self._ffmpeg_path

    async def ensure_ffmpeg(self) -> Optional[str]:
        """
        確保 FFmpeg 可用，返回可執行路徑

        Returns:
            FFmpeg 執行路徑，失敗返回 None
        """
        if self._ffmpeg_path:
            return self._ffmpeg_path

        for label, candidate in self._candidates():
            if candidate and await self._verify(candidate):
                logger.info(f"使用{label} FFmpeg: {candidate}")
                self._ffmpeg_path = candidate
                return candidate

        logger.error("無法取得 FFmpeg，請安裝 ffmpeg 或設定 FFMPEG_PATH")
        return None

    def _candidates(self):
        yield "設定的", self.configured_path
        yield "系統", shutil.which("ffmpeg")

    @staticmethod
    async def _verify(path: str) -> bool:
        """執行 `ffmpeg -version` 驗證可執行"""
        try:
            proc = await asyncio.create_subprocess_exec(
                path, "-version",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.debug(f"FFmpeg 驗證失敗: {path} - {e}")
            return False

        try:
            stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=10)
        except asyncio.TimeoutError:
            proc.kill()
            logger.debug(f"FFmpeg 驗證超時: {path}")
            return False
        return proc.returncode == 0 and b"ffmpeg version" in stdout
