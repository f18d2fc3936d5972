from .cache import AssetCache
from .pipeline import AudioPipeline, FFmpegSourceFactory, clamp_volume

__all__ = ["AssetCache", "AudioPipeline", "FFmpegSourceFactory", "clamp_volume"]
