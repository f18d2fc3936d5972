"""
非同步資料存取

把同步的 Database 包成核心元件需要的非同步介面，
實際查詢在 asyncio.to_thread 的背景執行緒執行，不阻塞事件循環。
"""

import asyncio
from typing import List

from ..auth.credentials import Credential
from ..core.models import Intro
from .database import Database


class IntroStore:
    """
    使用方式：
        store = IntroStore(Database(path))
        intros = await store.lookup_bindings(user_id, guild_id, channel_id)
        delay = await store.get_guild_delay(guild_id)
    """

    def __init__(self, database: Database):
        self.database = database

    # 給 IntroResolver / CooldownGate

    async def lookup_bindings(self, user_id: int, guild_id: int, channel_id: int) -> List[Intro]:
        return await asyncio.to_thread(self.database.lookup_bindings, user_id, guild_id, channel_id)

    async def get_guild_delay(self, guild_id: int) -> float:
        return float(await asyncio.to_thread(self.database.get_guild_delay, guild_id))

    # 給 cog（伺服器登記）

    async def register_guild(self, guild_id: int, name: str, default_delay: int = 0) -> None:
        await asyncio.to_thread(self.database.upsert_guild, guild_id, name, default_delay)

    async def register_channel(self, channel_id: int, guild_id: int, name: str) -> None:
        await asyncio.to_thread(self.database.upsert_channel, channel_id, guild_id, name)

    # 給 CredentialRefresher

    async def list_credentials(self) -> List[Credential]:
        return await asyncio.to_thread(self.database.list_credentials)

    async def save_credential(self, credential: Credential) -> None:
        await asyncio.to_thread(self.database.save_credential, credential)

    async def mark_credential_invalid(self, owner: str) -> None:
        await asyncio.to_thread(self.database.mark_credential_invalid, owner)
