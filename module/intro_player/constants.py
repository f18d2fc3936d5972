"""
入場音效常數設定

所有數值都可以在 Settings.from_env() 透過環境變數覆寫。
"""

# === 路徑 ===
SOUNDS_DIR = "./sounds"              # 本地音檔目錄
AUDIO_CACHE_DIR = "./temp/intros"    # 遠端音檔快取目錄
DATABASE_PATH = "./config/db.sqlite"

# === 下載 ===
FETCH_TIMEOUT = 30.0                 # 遠端音檔下載超時（秒）
YTDLP_FETCH_TIMEOUT = 60.0           # yt-dlp 程序超時（秒）

# === 語音連線 ===
CONNECT_TIMEOUT = 15.0               # 語音連線握手超時（秒）
IDLE_DISCONNECT_TIMEOUT = 30.0       # 播放結束後無新事件多久離開頻道（秒），0 表示立即離開

# === 佇列 ===
MAX_PENDING_EVENTS = 25              # 每個伺服器最多等待中的加入事件，None 表示不限制

# === 音量 ===
MIN_VOLUME = 0.0
MAX_VOLUME = 2.0

# === 冷卻 ===
DEFAULT_SOUND_DELAY = 0              # 新伺服器的預設冷卻秒數

# === 憑證 ===
CREDENTIAL_REFRESH_INTERVAL = 300.0  # 檢查憑證的間隔（秒）
CREDENTIAL_REFRESH_WINDOW = 3600.0   # 到期前多久開始更新（秒）
DISCORD_TOKEN_URL = "https://discord.com/api/v10/oauth2/token"

# === 媒體 ===
DIRECT_AUDIO_EXTENSIONS = {".mp3", ".ogg", ".opus", ".wav", ".flac", ".m4a", ".webm"}
