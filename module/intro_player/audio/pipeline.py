"""
音訊管線

把 Intro 轉成可以交給語音連線播放的 discord.AudioSource：
- 本地音檔：sounds 目錄下的檔案
- 遠端音檔：透過 AssetCache 下載（有超時與快取）
- 套用 Intro 設定的音量（PCMVolumeTransformer），並限制在合法範圍內

產生的音源只能播放一次，每次播放都要重新 open()。
"""

from pathlib import Path
from typing import Callable, Optional

import discord
from loguru import logger

from ..constants import MAX_VOLUME, MIN_VOLUME
from ..core.models import Intro
from ..utils.errors import AudioPipelineError, DecodeError
from .cache import AssetCache

SourceFactory = Callable[[Path, float], discord.AudioSource]


def clamp_volume(volume: float, max_volume: float = MAX_VOLUME) -> float:
    """把音量限制在 [MIN_VOLUME, max_volume]"""
    try:
        value = float(volume)
    except (TypeError, ValueError):
        return 1.0
    if value != value:  # NaN
        return 1.0
    return max(MIN_VOLUME, min(value, max_volume))


class FFmpegSourceFactory:
    """
    以 FFmpeg 解碼音檔並套用音量

    使用方式：
        factory = FFmpegSourceFactory(ffmpeg_path="/usr/bin/ffmpeg")
        source = factory(Path("sounds/hello.mp3"), 0.8)
    """

    def __init__(self, ffmpeg_path: Optional[str] = None):
        self.ffmpeg_path = ffmpeg_path or "ffmpeg"

    def __call__(self, path: Path, volume: float) -> discord.AudioSource:
        pcm = discord.FFmpegPCMAudio(
            str(path),
            executable=self.ffmpeg_path,
            before_options="-nostdin",
            options="-vn -loglevel error",
        )
        return discord.PCMVolumeTransformer(pcm, volume=volume)


class AudioPipeline:
    """
    音訊管線

    使用方式：
        pipeline = AudioPipeline(sounds_dir="./sounds", cache=cache, source_factory=FFmpegSourceFactory(path))
        source = await pipeline.open(intro)
    """

    def __init__(
        self,
        sounds_dir: str,
        cache: AssetCache,
        source_factory: Optional[SourceFactory] = None,
        max_volume: float = MAX_VOLUME,
    ):
        self.sounds_dir = Path(sounds_dir)
        self.cache = cache
        self.source_factory = source_factory or FFmpegSourceFactory()
        self.max_volume = max_volume

    async def resolve_path(self, intro: Intro) -> Path:
        """
        取得音檔的本地路徑

        Raises:
            AssetFetchError / FetchTimeoutError: 遠端下載失敗
            DecodeError: 本地檔案不存在或檔名不合法
        """
        if intro.is_remote:
            return await self.cache.fetch(intro.filename)

        name = Path(intro.filename)
        if name.is_absolute() or ".." in name.parts:
            raise DecodeError(f"intro {intro.id} has an unsafe filename: {intro.filename}", intro.filename)

        path = self.sounds_dir / name
        if not path.is_file():
            raise DecodeError(f"intro {intro.id} file not found: {path}", intro.filename)
        return path

    async def open(self, intro: Intro) -> discord.AudioSource:
        """
        打開音源

        Raises:
            AudioPipelineError: 取得或建立音源失敗
        """
        path = await self.resolve_path(intro)
        volume = clamp_volume(intro.volume, self.max_volume)
        if volume != intro.volume:
            logger.debug(f"[AudioPipeline] intro {intro.id} 音量 {intro.volume} 限制為 {volume}")

        try:
            source = self.source_factory(path, volume)
        except AudioPipelineError:
            raise
        except Exception as e:
            raise DecodeError(f"failed to open {path}: {e}", intro.filename)

        logger.debug(f"[AudioPipeline] 已開啟 intro {intro.id} ({intro.name}) 音量 {volume}")
        return source
