"""根据配置创建本地存储"""

from loguru import logger

from ..config.config import StoreConfig
from .database import MySQLStore
from .redis_store import RedisStore
from .store import LocalStore, MemoryStore


def build_store(config: StoreConfig) -> LocalStore:
    """按 backend 创建存储实例"""
    if config.backend == "memory":
        store: LocalStore = MemoryStore()
    elif config.backend == "redis":
        store = RedisStore.from_config(config.redis_host, config.redis_port, config.redis_db)
    elif config.backend == "mysql":
        store = MySQLStore.from_config(config)
    else:
        raise ValueError(f"Unsupported store backend: {config.backend}")

    logger.info(f"Local store ready: {config.backend}")
    return store
