import discord
from discord.ext import commands

from loguru import logger
from datetime import datetime

import os
import sys
import traceback
from dotenv import load_dotenv

from module.intro_player import IntroError, Settings

version = "v1.0"
start_time = datetime.now()

# ─────────────────────────────────────────────────────────
#  初始化 Bot
# ─────────────────────────────────────────────────────────
# 入場音效只需要伺服器與語音狀態事件，不需要 Privileged Intents
intents = discord.Intents.none()
intents.guilds = True        # 伺服器與頻道資訊
intents.voice_states = True  # 使用者加入/離開語音頻道

bot = commands.Bot(
    command_prefix=commands.when_mentioned,
    intents=intents,
    help_command=None,
)

# ─────────────────────────────────────────────────────────
#  機器人啟動事件
# ─────────────────────────────────────────────────────────

@bot.event
async def on_ready():
    app_info = await bot.application_info()
    bot.owner_id = app_info.owner.id

    # 重新連線也會觸發 on_ready，擴充只載入一次
    if not bot.extensions:
        await load_all_extensions()

        logger.info("[初始化] 同步斜線指令")
        slash_command = await bot.tree.sync()
        logger.info(f"[初始化] 已同步 {len(slash_command)} 個斜線指令")

    activity = discord.Activity(type=discord.ActivityType.listening, name="入場音效")
    await bot.change_presence(activity=activity)

    logger.info(f"[初始化] {bot.user} | Ready! ({version}, 啟動於 {start_time:%Y-%m-%d %H:%M:%S})")


async def load_all_extensions():
    """自動載入 /cogs 資料夾中的所有 .py 模組"""
    cogs_dir = os.path.join(os.path.dirname(__file__), 'cogs')
    for filename in os.listdir(cogs_dir):
        if filename.endswith('.py') and not filename.startswith('_'):
            try:
                logger.info(f"[初始化] 載入 Extension: {filename[:-3]}")
                await bot.load_extension(f'cogs.{filename[:-3]}')
            except Exception as exc:
                logger.error(f"[初始化] 載入 Extension 失敗: {exc}\n{traceback.format_exc()}")
    logger.info("[初始化] Extension 載入完畢")

# ─────────────────────────────────────────────────────────
#  錯誤處理：斜線指令錯誤回報給擁有者
# ─────────────────────────────────────────────────────────

@bot.tree.error
async def on_app_command_error(interaction: discord.Interaction, error: discord.app_commands.AppCommandError):
    if interaction.guild:
        logger.error(f"{interaction.guild.name}-{interaction.user.name}({interaction.user.id}):{error}\n{traceback.format_exc()}")
    else:
        logger.error(f"{interaction.user.name}({interaction.user.id}):{error}\n{traceback.format_exc()}")

    original = getattr(error, "original", error)
    reply = original.user_message if isinstance(original, IntroError) else "執行指令時發生錯誤"
    if not interaction.response.is_done():
        await interaction.response.send_message(f"❌ {reply}", ephemeral=True)

    maintainer = bot.get_user(bot.owner_id) if bot.owner_id else None
    if maintainer is None:
        return

    embed = discord.Embed(title="斜線指令錯誤", description=str(error))
    embed.set_author(name=f"{interaction.user.name} ({interaction.user.id})", icon_url=interaction.user.display_avatar.url)
    embed.add_field(name="指令資料", value=str(interaction.data))
    embed.add_field(name="伺服器", value=interaction.guild.name if interaction.guild else "私人 Private")
    try:
        await maintainer.send(embed=embed)
    except discord.HTTPException as e:
        logger.warning(f"[錯誤回報] 無法私訊擁有者: {e}")

# ─────────────────────────────────────────────────────────
#  Loguru 記錄器設定
# ─────────────────────────────────────────────────────────

def set_logger():
    """設定 Loguru 的輸出行為（終端機 & 檔案）"""
    logger.remove()
    debug_mode = os.getenv('DEBUG', '').lower() in ('true', '1', 'yes')

    # 終端輸出
    logger.add(sys.stdout, level="DEBUG" if debug_mode else "INFO", colorize=True)

    # 檔案輸出（每 7 天輪替，保留 30 天，自動壓縮）
    logger.add(
        "./logs/system.log",
        rotation="7 days",
        retention="30 days",
        encoding="UTF-8",
        compression="zip",
        level="INFO",
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {message}"
    )

# ─────────────────────────────────────────────────────────
#  程式入口點
# ─────────────────────────────────────────────────────────

if __name__ == '__main__':
    load_dotenv()
    set_logger()

    settings = Settings.from_env()
    if not settings.run_bot:
        logger.info("RUN_BOT 已關閉，不啟動 Discord Bot")
        sys.exit(0)

    if not settings.bot_token:
        logger.critical("❌ DISCORD_BOT_TOKEN 尚未設定，請檢查 .env 或系統環境變數")
        sys.exit(1)

    try:
        bot.run(settings.bot_token, log_handler=None)
    except discord.LoginFailure as e:
        logger.critical(f"❗ 機器人憑證無效：{e}")
        sys.exit(1)
    except Exception as e:
        logger.critical(f"❗ 無法啟動 Discord Bot：{e}")
