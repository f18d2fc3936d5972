"""
入場音效裝飾器

提供自動化功能：
- contain_errors: 在伺服器邊界攔截錯誤（記錄後吞掉，回傳預設值）
- log_operation: 記錄操作的開始和結束
"""

from functools import wraps
from typing import Any, Awaitable, Callable, TypeVar, ParamSpec
from loguru import logger

from .errors import IntroError

P = ParamSpec('P')
T = TypeVar('T')


def contain_errors(default: Any = None):
    """
    裝飾器：錯誤不得跨出此邊界

    只用在事件監聽器與每個伺服器的工作迴圈入口，
    讓單一伺服器的錯誤不會影響其他伺服器。
    asyncio.CancelledError 不會被攔截。

    使用方式：
        @contain_errors(default=False)
        async def on_voice_state_update(self, member, before, after):
            ...
    """
    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except IntroError as e:
                logger.error(f"[{func.__name__}] 入場音效錯誤: {e.message}")
            except Exception as e:
                logger.exception(f"[{func.__name__}] 未預期錯誤: {e}")
            return default

        return wrapper
    return decorator


def log_operation(operation_name: str = None):
    """
    裝飾器：記錄操作的開始和結束

    使用方式：
        @log_operation("檢查憑證")
        async def refresh_once(self):
            ...
    """
    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        name = operation_name or func.__name__

        @wraps(func)
        async def wrapper(*args, **kwargs):
            logger.debug(f"開始: {name}")
            try:
                result = await func(*args, **kwargs)
                logger.debug(f"完成: {name}")
                return result
            except Exception as e:
                logger.error(f"失敗: {name} - {e}")
                raise

        return wrapper
    return decorator
