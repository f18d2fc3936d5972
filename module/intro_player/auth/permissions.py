"""
伺服器權限（位元旗標）
"""

import enum


class Permission(enum.IntFlag):
    NONE = 0
    UPLOAD_SOUNDS = 1
    DELETE_SOUNDS = 2

    @classmethod
    def all(cls) -> "Permission":
        return cls.UPLOAD_SOUNDS | cls.DELETE_SOUNDS

    def can(self, permission: "Permission") -> bool:
        """是否具備指定權限"""
        return bool(self & permission)
