"""
執行期設定

讀取環境變數（.env 由 main.py 的 load_dotenv() 載入），
未設定的值使用 constants.py 的預設值。
"""

import os
from dataclasses import dataclass
from typing import Optional

from loguru import logger

from . import constants


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning(f"[設定] {name}={value!r} 不是數字，使用預設值 {default}")
        return default


def _env_optional_int(name: str, default: Optional[int]) -> Optional[int]:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    if value.lower() in ("none", "unlimited"):
        return None
    try:
        return int(value)
    except ValueError:
        logger.warning(f"[設定] {name}={value!r} 不是整數，使用預設值 {default}")
        return default


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.lower() in ("true", "1", "yes")


@dataclass
class Settings:
    """
    入場音效機器人設定

    使用方式：
        load_dotenv()
        settings = Settings.from_env()
    """

    bot_token: Optional[str] = None
    run_bot: bool = True

    database_path: str = constants.DATABASE_PATH
    sounds_dir: str = constants.SOUNDS_DIR
    cache_dir: str = constants.AUDIO_CACHE_DIR
    ffmpeg_path: Optional[str] = None

    fetch_timeout: float = constants.FETCH_TIMEOUT
    connect_timeout: float = constants.CONNECT_TIMEOUT
    idle_disconnect_timeout: float = constants.IDLE_DISCONNECT_TIMEOUT
    max_pending_events: Optional[int] = constants.MAX_PENDING_EVENTS
    max_volume: float = constants.MAX_VOLUME
    default_sound_delay: int = constants.DEFAULT_SOUND_DELAY

    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    credential_refresh_interval: float = constants.CREDENTIAL_REFRESH_INTERVAL
    credential_refresh_window: float = constants.CREDENTIAL_REFRESH_WINDOW

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            bot_token=os.getenv("DISCORD_BOT_TOKEN"),
            run_bot=_env_bool("RUN_BOT", True),
            database_path=os.getenv("DATABASE_PATH", constants.DATABASE_PATH),
            sounds_dir=os.getenv("SOUNDS_DIR", constants.SOUNDS_DIR),
            cache_dir=os.getenv("AUDIO_CACHE_DIR", constants.AUDIO_CACHE_DIR),
            ffmpeg_path=os.getenv("FFMPEG_PATH") or None,
            fetch_timeout=_env_float("FETCH_TIMEOUT", constants.FETCH_TIMEOUT),
            connect_timeout=_env_float("CONNECT_TIMEOUT", constants.CONNECT_TIMEOUT),
            idle_disconnect_timeout=_env_float(
                "IDLE_DISCONNECT_TIMEOUT", constants.IDLE_DISCONNECT_TIMEOUT
            ),
            max_pending_events=_env_optional_int(
                "MAX_PENDING_EVENTS", constants.MAX_PENDING_EVENTS
            ),
            max_volume=_env_float("MAX_VOLUME", constants.MAX_VOLUME),
            default_sound_delay=int(
                _env_float("DEFAULT_SOUND_DELAY", constants.DEFAULT_SOUND_DELAY)
            ),
            client_id=os.getenv("DISCORD_CLIENT_ID"),
            client_secret=os.getenv("DISCORD_CLIENT_SECRET"),
            credential_refresh_interval=_env_float(
                "CREDENTIAL_REFRESH_INTERVAL", constants.CREDENTIAL_REFRESH_INTERVAL
            ),
            credential_refresh_window=_env_float(
                "CREDENTIAL_REFRESH_WINDOW", constants.CREDENTIAL_REFRESH_WINDOW
            ),
        )

    @property
    def can_refresh_credentials(self) -> bool:
        """是否有足夠資訊向 Discord 更新使用者憑證"""
        return bool(self.client_id and self.client_secret)
