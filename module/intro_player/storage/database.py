"""
SQLite 資料庫

同步 API，一條連線搭配一把鎖，可以從 asyncio.to_thread 的背景執行緒呼叫。
非同步的讀取介面請用 store.IntroStore。
"""

import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

from loguru import logger

from ..auth.credentials import Credential
from ..auth.permissions import Permission
from ..core.models import Guild, Intro
from ..utils.errors import StoreError

SCHEMA_PATH = Path(__file__).with_name("schema.sql")


class Database:
    """
    入場音效資料庫

    使用方式：
        db = Database("./config/db.sqlite")
        db.ensure_schema()
        db.upsert_guild(7, "My Guild")
        intros = db.lookup_bindings(user_id, guild_id, channel_id)
    """

    def __init__(self, path: str):
        self.path = path
        if path != ":memory:":
            Path(path).parent.mkdir(parents=True, exist_ok=True)

        self._lock = threading.Lock()
        self.conn = sqlite3.connect(path, check_same_thread=False, timeout=5.0)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON;")
        if path != ":memory:":
            try:
                self.conn.execute("PRAGMA journal_mode=WAL;")
            except sqlite3.OperationalError as e:
                logger.warning(f"[Database] 無法啟用 WAL: {e}")

    @contextmanager
    def _cursor(self, commit: bool = False) -> Iterator[sqlite3.Cursor]:
        with self._lock:
            cursor = self.conn.cursor()
            try:
                yield cursor
                if commit:
                    self.conn.commit()
            except sqlite3.Error as e:
                if commit:
                    self.conn.rollback()
                raise StoreError(f"database error: {e}") from e
            finally:
                cursor.close()

    def ensure_schema(self) -> None:
        """建立資料表（已存在則略過）"""
        script = SCHEMA_PATH.read_text(encoding="utf-8")
        with self._lock:
            self.conn.executescript(script)
            self.conn.commit()
        logger.debug(f"[Database] 資料表已就緒: {self.path}")

    def close(self) -> None:
        with self._lock:
            self.conn.close()

    # === Guild / Channel ===

    def upsert_guild(self, guild_id: int, name: str, sound_delay: int = 0) -> None:
        """新增伺服器，已存在則只更新名稱（不覆蓋 sound_delay）"""
        with self._cursor(commit=True) as cur:
            cur.execute(
                """
                INSERT INTO Guild (id, name, sound_delay) VALUES (?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET name = excluded.name
                """,
                (guild_id, name, max(0, int(sound_delay))),
            )

    def get_guilds(self) -> List[Guild]:
        with self._cursor() as cur:
            cur.execute("SELECT id, name, sound_delay FROM Guild ORDER BY id")
            return [Guild(id=row["id"], name=row["name"], sound_delay=row["sound_delay"]) for row in cur.fetchall()]

    def get_guild(self, guild_id: int) -> Optional[Guild]:
        with self._cursor() as cur:
            cur.execute("SELECT id, name, sound_delay FROM Guild WHERE id = ?", (guild_id,))
            row = cur.fetchone()
        if row is None:
            return None
        return Guild(id=row["id"], name=row["name"], sound_delay=row["sound_delay"])

    def get_guild_delay(self, guild_id: int) -> int:
        """未登記的伺服器視為 0 秒"""
        guild = self.get_guild(guild_id)
        return guild.sound_delay if guild else 0

    def set_guild_delay(self, guild_id: int, sound_delay: int) -> None:
        if sound_delay < 0:
            raise ValueError("sound_delay must be >= 0")
        with self._cursor(commit=True) as cur:
            cur.execute("UPDATE Guild SET sound_delay = ? WHERE id = ?", (int(sound_delay), guild_id))
            if cur.rowcount < 1:
                logger.warning(f"[Database] 設定 sound_delay 時找不到伺服器 {guild_id}")

    def upsert_channel(self, channel_id: int, guild_id: int, name: str) -> None:
        with self._cursor(commit=True) as cur:
            cur.execute(
                """
                INSERT INTO Channel (id, guild_id, name) VALUES (?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET name = excluded.name
                """,
                (channel_id, guild_id, name),
            )

    # === Intro ===

    def insert_intro(self, name: str, volume: float, guild_id: int, filename: str) -> int:
        """
        Returns:
            新的 intro id
        """
        if volume < 0:
            raise ValueError("volume must be >= 0")
        with self._cursor(commit=True) as cur:
            cur.execute(
                "INSERT INTO Intro (name, volume, guild_id, filename) VALUES (?, ?, ?, ?)",
                (name, float(volume), guild_id, filename),
            )
            return cur.lastrowid

    def get_guild_intros(self, guild_id: int) -> List[Intro]:
        with self._cursor() as cur:
            cur.execute(
                "SELECT id, name, volume, guild_id, filename FROM Intro WHERE guild_id = ? ORDER BY id",
                (guild_id,),
            )
            return [self._row_to_intro(row) for row in cur.fetchall()]

    def insert_user_intro(self, user_id: int, guild_id: int, channel_id: int, intro_id: int) -> None:
        with self._cursor(commit=True) as cur:
            cur.execute(
                """
                INSERT OR IGNORE INTO UserIntro (user_id, intro_id, guild_id, channel_id)
                VALUES (?, ?, ?, ?)
                """,
                (user_id, intro_id, guild_id, channel_id),
            )
            if cur.rowcount < 1:
                logger.warning("[Database] 新增使用者入場音效時沒有資料被寫入")

    def delete_user_intro(self, user_id: int, guild_id: int, channel_id: int, intro_id: int) -> None:
        with self._cursor(commit=True) as cur:
            cur.execute(
                """
                DELETE FROM UserIntro
                WHERE user_id = ? AND guild_id = ? AND channel_id = ? AND intro_id = ?
                """,
                (user_id, guild_id, channel_id, intro_id),
            )
            if cur.rowcount < 1:
                logger.warning("[Database] 刪除使用者入場音效時沒有資料被刪除")

    def lookup_bindings(self, user_id: int, guild_id: int, channel_id: int) -> List[Intro]:
        """
        查詢 (使用者, 伺服器, 頻道) 的所有入場音效，依 id 排序
        """
        with self._cursor() as cur:
            cur.execute(
                """
                SELECT Intro.id, Intro.name, Intro.volume, Intro.guild_id, Intro.filename
                FROM UserIntro
                JOIN Intro ON Intro.id = UserIntro.intro_id
                WHERE UserIntro.user_id = ? AND UserIntro.guild_id = ? AND UserIntro.channel_id = ?
                ORDER BY Intro.id
                """,
                (user_id, guild_id, channel_id),
            )
            return [self._row_to_intro(row) for row in cur.fetchall()]

    @staticmethod
    def _row_to_intro(row: sqlite3.Row) -> Intro:
        return Intro(
            id=row["id"],
            name=row["name"],
            volume=float(row["volume"]),
            guild_id=row["guild_id"],
            filename=row["filename"],
        )

    # === 權限 ===

    def get_user_permissions(self, user_id: int, guild_id: int) -> Permission:
        with self._cursor() as cur:
            cur.execute(
                "SELECT permissions FROM UserPermission WHERE user_id = ? AND guild_id = ?",
                (user_id, guild_id),
            )
            row = cur.fetchone()
        return Permission(row["permissions"]) if row else Permission.NONE

    def set_user_permissions(self, user_id: int, guild_id: int, permissions: Permission) -> None:
        with self._cursor(commit=True) as cur:
            cur.execute(
                """
                INSERT INTO UserPermission (user_id, guild_id, permissions) VALUES (?, ?, ?)
                ON CONFLICT(user_id, guild_id) DO UPDATE SET permissions = excluded.permissions
                """,
                (user_id, guild_id, int(permissions)),
            )

    def get_all_user_permissions(self, guild_id: int) -> List[Tuple[int, Permission]]:
        with self._cursor() as cur:
            cur.execute("SELECT user_id, permissions FROM UserPermission WHERE guild_id = ?", (guild_id,))
            return [(row["user_id"], Permission(row["permissions"])) for row in cur.fetchall()]

    # === 憑證 ===

    def save_credential(self, credential: Credential) -> None:
        with self._cursor(commit=True) as cur:
            cur.execute(
                """
                INSERT INTO UserCredential (owner, access_token, refresh_token, expires_at, valid)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(owner) DO UPDATE SET
                    access_token = excluded.access_token,
                    refresh_token = excluded.refresh_token,
                    expires_at = excluded.expires_at,
                    valid = excluded.valid
                """,
                (
                    credential.owner,
                    credential.access_token,
                    credential.refresh_token,
                    credential.expires_at.isoformat(),
                    int(credential.valid),
                ),
            )

    def list_credentials(self) -> List[Credential]:
        with self._cursor() as cur:
            cur.execute("SELECT owner, access_token, refresh_token, expires_at, valid FROM UserCredential")
            return [
                Credential(
                    owner=row["owner"],
                    access_token=row["access_token"],
                    refresh_token=row["refresh_token"],
                    expires_at=datetime.fromisoformat(row["expires_at"]),
                    valid=bool(row["valid"]),
                )
                for row in cur.fetchall()
            ]

    def mark_credential_invalid(self, owner: str) -> None:
        with self._cursor(commit=True) as cur:
            cur.execute("UPDATE UserCredential SET valid = 0 WHERE owner = ?", (owner,))
            if cur.rowcount < 1:
                logger.warning(f"[Database] 標記憑證失效時找不到 {owner}")
