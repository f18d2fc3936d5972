from .manager import FFmpegManager

__all__ = ["FFmpegManager"]
