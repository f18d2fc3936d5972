# Utils module
from .errors import (
    IntroError,
    AudioPipelineError,
    AssetFetchError,
    FetchTimeoutError,
    DecodeError,
    VoiceConnectionError,
    PlaybackError,
    CredentialInvalidError,
    StoreError,
)
from .decorators import contain_errors, log_operation

__all__ = [
    # Errors
    "IntroError",
    "AudioPipelineError",
    "AssetFetchError",
    "FetchTimeoutError",
    "DecodeError",
    "VoiceConnectionError",
    "PlaybackError",
    "CredentialInvalidError",
    "StoreError",
    # Decorators
    "contain_errors",
    "log_operation",
]
