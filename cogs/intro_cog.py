"""
入場音效 Cog

使用者加入語音頻道時播放他設定的入場音效：
- 語音狀態事件只做分派，不會等待播放
- 每個伺服器獨立的播放會話
- 背景定時更新使用者憑證
"""

# -------------------- Discord --------------------
import discord
from discord.ext import commands, tasks
from discord import app_commands

# -------------------- Module --------------------
from module.intro_player import (
    # Core
    CooldownGate,
    IntroResolver,
    SessionManager,
    VoiceEventListener,
    # Audio
    AssetCache,
    AudioPipeline,
    FFmpegSourceFactory,
    # Downloader
    AutoFetcher,
    # FFmpeg
    FFmpegManager,
    # Voice
    DiscordVoiceTransport,
    # Storage
    Database,
    IntroStore,
    # Auth
    CredentialRefresher,
    DiscordTokenRenewer,
    # Settings
    Settings,
    # Utils
    contain_errors,
)
from module.intro_player.constants import CREDENTIAL_REFRESH_INTERVAL, DISCORD_TOKEN_URL

# -------------------- Other --------------------
import os
from loguru import logger


class IntroCog(commands.Cog):
    """Discord 入場音效 Cog"""

    def __init__(self, bot: commands.Bot, settings: Settings | None = None):
        self.bot = bot
        self.settings = settings or Settings.from_env()

        # 核心組件（cog_load 時建立）
        self.database: Database | None = None
        self.store: IntroStore | None = None
        self.cache: AssetCache | None = None
        self.refresher: CredentialRefresher | None = None
        self.manager: SessionManager | None = None
        self.listener: VoiceEventListener | None = None

    async def cog_load(self):
        """Cog 載入時初始化"""
        settings = self.settings

        os.makedirs(settings.sounds_dir, exist_ok=True)
        db_dir = os.path.dirname(settings.database_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)

        self.database = Database(settings.database_path)
        self.database.ensure_schema()
        self.store = IntroStore(self.database)

        # FFmpeg 找不到時仍然載入，播放時會以 DecodeError 回報
        ffmpeg_path = await FFmpegManager(configured_path=settings.ffmpeg_path).ensure_ffmpeg()
        if not ffmpeg_path:
            logger.error("[IntroCog] FFmpeg 初始化失敗，入場音效將無法播放！")

        self.cache = AssetCache(
            cache_dir=settings.cache_dir,
            fetcher=AutoFetcher(),
            timeout=settings.fetch_timeout,
        )
        pipeline = AudioPipeline(
            sounds_dir=settings.sounds_dir,
            cache=self.cache,
            source_factory=FFmpegSourceFactory(ffmpeg_path or "ffmpeg"),
            max_volume=settings.max_volume,
        )

        renewer = None
        if settings.can_refresh_credentials:
            renewer = DiscordTokenRenewer(
                client_id=settings.client_id,
                client_secret=settings.client_secret,
                token_url=DISCORD_TOKEN_URL,
            )
        else:
            logger.info("[IntroCog] 未設定 DISCORD_CLIENT_ID / DISCORD_CLIENT_SECRET，只檢查憑證到期")
        self.refresher = CredentialRefresher(
            self.store,
            renewer,
            window=settings.credential_refresh_window,
        )

        self.manager = SessionManager(
            transport=DiscordVoiceTransport(self.bot, timeout=settings.connect_timeout),
            pipeline=pipeline,
            resolver=IntroResolver(self.store),
            cooldown=CooldownGate(self.store),
            credentials=self.refresher,
            idle_timeout=settings.idle_disconnect_timeout,
            max_pending=settings.max_pending_events,
        )
        self.listener = VoiceEventListener(
            self.manager,
            bot_user_id=lambda: self.bot.user.id if self.bot.user else None,
        )

        if settings.credential_refresh_interval != CREDENTIAL_REFRESH_INTERVAL:
            self.credential_refresh_loop.change_interval(seconds=settings.credential_refresh_interval)
        self.credential_refresh_loop.start()

        # 擴充在 on_ready 內載入時，不會再收到這次的 on_ready
        if self.bot.is_ready():
            await self._sync_guilds()

        logger.info("[IntroCog] 初始化完成")

    async def cog_unload(self):
        """Cog 卸載時清理資源"""
        if self.credential_refresh_loop.is_running():
            self.credential_refresh_loop.cancel()

        if self.manager:
            closed = await self.manager.shutdown()
            logger.debug(f"[IntroCog] 已關閉 {closed} 個伺服器會話")
        if self.cache:
            self.cache.cancel_all()
        if self.database:
            self.database.close()

        logger.info("[IntroCog] 已卸載，資源已清理")

    # ==================== 伺服器登記 ====================

    async def _sync_guilds(self):
        """把機器人所在的伺服器與語音頻道寫入資料庫"""
        for guild in self.bot.guilds:
            await self._register_guild(guild)
        logger.info(f"[IntroCog] 已同步 {len(self.bot.guilds)} 個伺服器")

    @contain_errors()
    async def _register_guild(self, guild: discord.Guild):
        await self.store.register_guild(guild.id, guild.name, self.settings.default_sound_delay)
        for channel in guild.voice_channels + guild.stage_channels:
            await self.store.register_channel(channel.id, guild.id, channel.name)

    # ==================== 斜線指令 ====================

    @app_commands.command(name="入場音效-狀態", description="查看入場音效播放器目前狀態（僅限管理員）")
    @app_commands.guild_only()
    @app_commands.default_permissions(administrator=True)
    async def show_status(self, interaction: discord.Interaction):
        """顯示各伺服器會話與憑證狀態"""
        if not self.manager or not self.refresher:
            await interaction.response.send_message("❌ 入場音效尚未初始化", ephemeral=True)
            return

        credential = self.refresher.credential_status()
        color = discord.Color.green() if credential["bot_valid"] else discord.Color.red()
        embed = discord.Embed(title="🔊 入場音效狀態", color=color)

        bot_state = "✅ 正常" if credential["bot_valid"] else f"❌ 失效：{credential['bot_invalid_reason']}"
        embed.add_field(name="機器人憑證", value=bot_state, inline=True)
        embed.add_field(name="上次憑證檢查", value=credential["last_run"] or "尚未執行", inline=True)
        embed.add_field(name="會話數量", value=str(len(self.manager)), inline=True)

        status = next(
            (s for s in self.manager.get_status() if s["guild_id"] == interaction.guild_id),
            None,
        )
        if status:
            outcomes = "\n".join(f"- {name}: {count}" for name, count in status["outcomes"].items())
            channel_id = status["channel_id"]
            lines = [
                f"狀態：`{status['state']}`",
                f"頻道：{f'<#{channel_id}>' if channel_id else '（未連線）'}",
                f"等待中：{status['pending']}（已丟棄 {status['dropped']}）",
            ]
            embed.add_field(name="本伺服器會話", value="\n".join(lines), inline=False)
            embed.add_field(name="處理結果", value=outcomes or "（無）", inline=False)
        else:
            embed.add_field(name="本伺服器會話", value="（尚未建立）", inline=False)

        await interaction.response.send_message(embed=embed, ephemeral=True)

    # ==================== 背景任務 ====================

    @tasks.loop(seconds=CREDENTIAL_REFRESH_INTERVAL)
    async def credential_refresh_loop(self):
        """定時更新快到期的使用者憑證"""
        try:
            await self.refresher.refresh_once()
        except Exception as e:
            logger.exception(f"[IntroCog] 憑證更新時發生錯誤: {e}")

    @credential_refresh_loop.before_loop
    async def before_credential_refresh(self):
        await self.bot.wait_until_ready()

    # ==================== 事件監聽 ====================

    @commands.Cog.listener()
    async def on_ready(self):
        """重新連上 Gateway 代表機器人憑證可用"""
        self.refresher.restore_bot_credential()
        await self._sync_guilds()

    @commands.Cog.listener()
    async def on_guild_join(self, guild: discord.Guild):
        logger.info(f"[IntroCog] 加入伺服器: {guild.name}")
        await self._register_guild(guild)

    @commands.Cog.listener()
    async def on_guild_remove(self, guild: discord.Guild):
        logger.info(f"[IntroCog] 離開伺服器: {guild.name}")
        await self.manager.remove_guild(guild.id)

    @commands.Cog.listener()
    @contain_errors()
    async def on_voice_state_update(
        self,
        member: discord.Member,
        before: discord.VoiceState,
        after: discord.VoiceState
    ):
        """監聽語音狀態變化，使用者加入語音頻道時分派事件"""
        self.listener.on_voice_state_update(member, before, after)


async def setup(bot: commands.Bot):
    """載入 Cog"""
    await bot.add_cog(IntroCog(bot))
