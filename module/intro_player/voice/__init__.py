from .transport import VoiceConnection, VoiceTransport
from .discord_transport import DiscordVoiceConnection, DiscordVoiceTransport

__all__ = [
    "VoiceConnection",
    "VoiceTransport",
    "DiscordVoiceConnection",
    "DiscordVoiceTransport",
]
