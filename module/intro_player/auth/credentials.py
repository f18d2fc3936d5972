"""
憑證更新

- 使用者憑證：定期檢查快到期的 OAuth token 並更新，失敗則標記為失效，
  由網頁端要求使用者重新登入
- 機器人憑證：失效時所有 GuildSession 連線都會立即失敗，直到恢復

CredentialRefresher 不會主動排程，由 cog 的 tasks.loop 定期呼叫 refresh_once()。
"""

from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Protocol, Tuple

import aiohttp
from loguru import logger

from ..constants import CREDENTIAL_REFRESH_WINDOW, DISCORD_TOKEN_URL
from ..utils.decorators import log_operation
from ..utils.errors import CredentialInvalidError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Credential:
    """使用者的 Discord OAuth 憑證"""
    owner: str
    access_token: str
    refresh_token: str
    expires_at: datetime
    valid: bool = True

    def expires_within(self, seconds: float, now: datetime) -> bool:
        return self.expires_at - now <= timedelta(seconds=seconds)


class CredentialStore(Protocol):
    async def list_credentials(self) -> List[Credential]: ...

    async def save_credential(self, credential: Credential) -> None: ...

    async def mark_credential_invalid(self, owner: str) -> None: ...


class TokenRenewer(Protocol):
    async def renew(self, credential: Credential) -> Credential:
        """
        Raises:
            CredentialInvalidError: 無法更新
        """
        ...


class DiscordTokenRenewer:
    """
    以 refresh_token 向 Discord 換新的 access_token

    使用方式：
        renewer = DiscordTokenRenewer(client_id, client_secret)
        credential = await renewer.renew(credential)
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        token_url: str = DISCORD_TOKEN_URL,
        timeout: float = 15,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.token_url = token_url
        self.timeout = timeout
        self._clock = clock

    async def renew(self, credential: Credential) -> Credential:
        data = {
            "grant_type": "refresh_token",
            "refresh_token": credential.refresh_token,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        }
        try:
            async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout)) as session:
                async with session.post(
                    self.token_url,
                    data=data,
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                ) as resp:
                    if resp.status != 200:
                        body = await resp.text()
                        raise CredentialInvalidError(
                            f"token refresh for {credential.owner} failed: HTTP {resp.status} {body[:200]}"
                        )
                    payload = await resp.json()
        except aiohttp.ClientError as e:
            raise CredentialInvalidError(f"token refresh for {credential.owner} failed: {e}")

        try:
            return Credential(
                owner=credential.owner,
                access_token=payload["access_token"],
                refresh_token=payload.get("refresh_token", credential.refresh_token),
                expires_at=self._clock() + timedelta(seconds=int(payload["expires_in"])),
                valid=True,
            )
        except (KeyError, TypeError, ValueError) as e:
            raise CredentialInvalidError(f"unexpected token response for {credential.owner}: {e}")


class CredentialRefresher:
    """
    憑證更新器

    使用方式：
        refresher = CredentialRefresher(store, renewer)
        renewed, failed = await refresher.refresh_once()

        if not refresher.is_bot_credential_valid:
            ...
    """

    def __init__(
        self,
        store: CredentialStore,
        renewer: Optional[TokenRenewer] = None,
        window: float = CREDENTIAL_REFRESH_WINDOW,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Args:
            store: 憑證儲存
            renewer: 更新器，None 時只檢查不更新（到期即標記失效）
            window: 到期前多久開始更新（秒）
            clock: 時鐘（測試用）
        """
        self.store = store
        self.renewer = renewer
        self.window = window
        self._clock = clock

        self._bot_valid = True
        self._bot_invalid_reason: Optional[str] = None
        self._last_run: Optional[datetime] = None

    # === 機器人憑證 ===

    @property
    def is_bot_credential_valid(self) -> bool:
        return self._bot_valid

    def invalidate_bot_credential(self, reason: str) -> None:
        if self._bot_valid:
            logger.error(f"[CredentialRefresher] 機器人憑證失效: {reason}")
        self._bot_valid = False
        self._bot_invalid_reason = reason

    def restore_bot_credential(self) -> None:
        if not self._bot_valid:
            logger.info("[CredentialRefresher] 機器人憑證已恢復")
        self._bot_valid = True
        self._bot_invalid_reason = None

    def credential_status(self) -> dict:
        return {
            "bot_valid": self._bot_valid,
            "bot_invalid_reason": self._bot_invalid_reason,
            "last_run": self._last_run.isoformat() if self._last_run else None,
        }

    # === 使用者憑證 ===

    @log_operation("檢查使用者憑證")
    async def refresh_once(self) -> Tuple[int, int]:
        """
        更新所有快到期的使用者憑證

        Returns:
            (更新成功數量, 標記失效數量)
        """
        now = self._clock()
        self._last_run = now
        renewed = 0
        failed = 0

        for credential in await self.store.list_credentials():
            if not credential.valid or not credential.expires_within(self.window, now):
                continue

            if self.renewer is None:
                if credential.expires_at <= now:
                    await self.store.mark_credential_invalid(credential.owner)
                    failed += 1
                continue

            try:
                fresh = await self.renewer.renew(credential)
            except Exception as e:
                logger.warning(f"[CredentialRefresher] 更新 {credential.owner} 的憑證失敗，標記為失效: {e}")
                await self.store.mark_credential_invalid(credential.owner)
                failed += 1
                continue

            await self.store.save_credential(replace(fresh, owner=credential.owner, valid=True))
            renewed += 1
            logger.debug(f"[CredentialRefresher] 已更新 {credential.owner} 的憑證，到期時間 {fresh.expires_at}")

        if renewed or failed:
            logger.info(f"[CredentialRefresher] 憑證更新完成: 成功 {renewed}，失效 {failed}")
        return renewed, failed
