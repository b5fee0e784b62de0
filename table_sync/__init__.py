"""
表对象本地存储与远程服务双向同步系统
"""

__version__ = "0.1.0"

from .core.sync_service import SyncService
from .core.callbacks import SyncCallbacks
from .config.config import Config

__all__ = ["SyncService", "SyncCallbacks", "Config"]
