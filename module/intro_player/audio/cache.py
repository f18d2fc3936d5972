"""
遠端音檔快取

策略：
- 以音檔參照（網址）的 SHA-256 作為快取鍵，與播放事件無關
- 同一個尚未快取的音檔同時被要求時，只會下載一次
- 檔案先寫入暫存檔再改名，快取檔只寫一次
- 程式結束不刪除快取，下次啟動可以重用
"""

import asyncio
import hashlib
from pathlib import Path
from typing import Dict, Optional, Protocol
from urllib.parse import urlparse
from loguru import logger

from ..utils.errors import AssetFetchError, FetchTimeoutError


class AssetFetcher(Protocol):
    async def fetch(self, reference: str) -> bytes: ...


class AssetCache:
    """
    遠端音檔快取管理器

    使用方式：
        cache = AssetCache(cache_dir="./temp/intros", fetcher=AutoFetcher(), timeout=30)

        path = await cache.fetch("https://example.com/hello.mp3")
    """

    # 需要清理的媒體檔案副檔名
    MEDIA_EXTENSIONS = {".opus", ".webm", ".m4a", ".mp3", ".mp4", ".wav", ".ogg", ".flac", ".audio"}

    def __init__(self, cache_dir: str, fetcher: AssetFetcher, timeout: float = 30):
        """
        Args:
            cache_dir: 快取目錄路徑
            fetcher: 實際下載音檔的元件
            timeout: 單次下載超時（秒）
        """
        self.cache_dir = Path(cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.fetcher = fetcher
        self.timeout = timeout

        # 下載中的任務（以快取鍵為 key）
        self._inflight: Dict[str, asyncio.Task] = {}
        self._fetch_count = 0

        logger.debug(f"AssetCache 初始化: cache_dir={cache_dir}, timeout={timeout}s")

    # === 路徑與檢查 ===

    @staticmethod
    def key_for(reference: str) -> str:
        """快取鍵（參照的 SHA-256）"""
        return hashlib.sha256(reference.encode("utf-8")).hexdigest()

    def get_path(self, reference: str) -> Path:
        """
        取得音檔快取的完整路徑

        保留網址上的副檔名，讓 FFmpeg 比較好判斷格式
        """
        suffix = Path(urlparse(reference).path).suffix.lower()
        if suffix not in self.MEDIA_EXTENSIONS:
            suffix = ".audio"
        return self.cache_dir / f"{self.key_for(reference)}{suffix}"

    def exists(self, reference: str) -> bool:
        return self.get_path(reference).exists()

    def get(self, reference: str) -> Optional[Path]:
        """快取存在時返回路徑，否則 None"""
        path = self.get_path(reference)
        return path if path.exists() else None

    def is_fetching(self, reference: str) -> bool:
        task = self._inflight.get(self.key_for(reference))
        return task is not None and not task.done()

    @property
    def fetch_count(self) -> int:
        """實際呼叫下載器的次數"""
        return self._fetch_count

    # === 核心邏輯 ===

    async def fetch(self, reference: str) -> Path:
        """
        取得遠端音檔的本地路徑，必要時下載

        Raises:
            FetchTimeoutError: 下載超時
            AssetFetchError: 下載失敗
        """
        cached = self.get(reference)
        if cached:
            logger.debug(f"快取命中: {reference}")
            return cached

        key = self.key_for(reference)
        task = self._inflight.get(key)
        if task is None or task.done():
            task = asyncio.create_task(self._fetch_one(reference), name=f"fetch_{key[:12]}")
            self._inflight[key] = task
        else:
            logger.debug(f"等待進行中的下載: {reference}")

        # shield：單一等待者被取消時，不影響其他等待同一個下載的人
        return await asyncio.shield(task)

    async def _fetch_one(self, reference: str) -> Path:
        key = self.key_for(reference)
        target = self.get_path(reference)
        temp = target.with_name(target.name + ".part")
        self._fetch_count += 1

        try:
            logger.debug(f"開始下載音檔: {reference}")
            try:
                data = await asyncio.wait_for(self.fetcher.fetch(reference), timeout=self.timeout)
            except asyncio.TimeoutError:
                raise FetchTimeoutError(reference, self.timeout)
            except AssetFetchError:
                raise
            except Exception as e:
                raise AssetFetchError(f"fetch of {reference} failed: {e}", reference=reference)

            if not data:
                raise AssetFetchError(f"fetch of {reference} returned no data", reference=reference)

            temp.write_bytes(data)
            temp.replace(target)
            logger.debug(f"下載完成: {reference} ({len(data) / 1024:.1f} KB)")
            return target

        finally:
            self._safe_delete(temp)
            # cancel_all() 之後同一 key 可能已有新的下載任務
            if self._inflight.get(key) is asyncio.current_task():
                del self._inflight[key]

    # === 清理 ===

    def cancel_all(self) -> int:
        """
        取消所有下載任務

        Returns:
            被取消的任務數量
        """
        cancelled = 0
        for key, task in list(self._inflight.items()):
            if not task.done():
                task.cancel()
                cancelled += 1
        self._inflight.clear()

        if cancelled > 0:
            logger.debug(f"取消了 {cancelled} 個下載任務")
        return cancelled

    def clear_all(self) -> int:
        """
        清空所有快取

        Returns:
            被刪除的檔案數量
        """
        self.cancel_all()

        deleted = 0
        for file in self.cache_dir.iterdir():
            if file.is_file() and file.suffix.lower() in self.MEDIA_EXTENSIONS:
                if self._safe_delete(file):
                    deleted += 1

        logger.debug(f"已清空所有快取，共刪除 {deleted} 個檔案")
        return deleted

    def _safe_delete(self, file: Path) -> bool:
        """安全刪除檔案，失敗時僅記錄警告"""
        try:
            if file.exists():
                file.unlink()
                return True
        except OSError as e:
            logger.warning(f"刪除檔案失敗: {file} - {e}")
        return False
