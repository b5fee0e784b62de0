"""配置模块"""

from .config import Config, ApiConfig, SessionConfig, SyncConfig, StoreConfig, MonitorConfig

__all__ = ["Config", "ApiConfig", "SessionConfig", "SyncConfig", "StoreConfig", "MonitorConfig"]
