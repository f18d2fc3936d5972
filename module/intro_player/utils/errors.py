"""
入場音效統一錯誤系統

所有錯誤都繼承自 IntroError，包含：
- message: 技術性錯誤訊息（給開發者 / log）
- user_message: 使用者友善的訊息（給 Discord 顯示）

「沒有設定入場音效」與「冷卻中」不是錯誤，只是正常的略過結果，
請見 core/state.py 的 PlaybackOutcome。
"""

from typing import Optional


class IntroError(Exception):
    """入場音效錯誤基類"""

    def __init__(self, message: str, user_message: Optional[str] = None):
        self.message = message
        self.user_message = user_message or message
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message


class AudioPipelineError(IntroError):
    """音訊管線錯誤（取得或解碼音檔失敗）"""

    def __init__(self, message: str, reference: Optional[str] = None):
        self.reference = reference
        super().__init__(
            message=message,
            user_message="無法讀取入場音效"
        )


class AssetFetchError(AudioPipelineError):
    """遠端音檔下載失敗"""
    pass


class FetchTimeoutError(AssetFetchError):
    """遠端音檔下載超時"""

    def __init__(self, reference: str, timeout: float):
        self.timeout = timeout
        super().__init__(
            message=f"fetch of {reference} timed out after {timeout}s",
            reference=reference
        )


class DecodeError(AudioPipelineError):
    """音檔不存在或無法解碼"""
    pass


class VoiceConnectionError(IntroError):
    """語音連接錯誤"""

    def __init__(self, message: str):
        super().__init__(
            message=message,
            user_message="無法連接到語音頻道"
        )


class PlaybackError(IntroError):
    """播放中途失敗"""

    def __init__(self, message: str):
        super().__init__(
            message=message,
            user_message="播放時發生錯誤"
        )


class CredentialInvalidError(VoiceConnectionError):
    """
    憑證失效

    機器人憑證失效時，所有語音連線都會立即失敗，直到憑證被更新。
    """

    def __init__(self, message: str = "bot credential is invalid"):
        super().__init__(message)
        self.user_message = "機器人憑證已失效，請重新授權"


class StoreError(IntroError):
    """資料庫讀寫錯誤"""
    pass
