from .auto import AutoFetcher, is_direct_audio
from .http import HTTPFetcher
from .yt_dlp import YTDLPFetcher

__all__ = ["AutoFetcher", "HTTPFetcher", "YTDLPFetcher", "is_direct_audio"]
