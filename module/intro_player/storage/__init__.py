from .database import Database
from .store import IntroStore

__all__ = ["Database", "IntroStore"]
