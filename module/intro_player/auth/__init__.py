from .credentials import (
    Credential,
    CredentialRefresher,
    CredentialStore,
    DiscordTokenRenewer,
    TokenRenewer,
    utcnow,
)
from .permissions import Permission

__all__ = [
    "Credential",
    "CredentialRefresher",
    "CredentialStore",
    "DiscordTokenRenewer",
    "TokenRenewer",
    "Permission",
    "utcnow",
]
