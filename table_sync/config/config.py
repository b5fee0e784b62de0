"""
配置管理模块
"""
import json
import os
from typing import Dict, Any, List, Optional
from dataclasses import dataclass, field, asdict
from pathlib import Path


STORE_BACKENDS = ("memory", "redis", "mysql")


@dataclass
class ApiConfig:
    """远程接口配置"""
    base_url: str = "http://localhost:3111/v1"
    timeout: int = 30


@dataclass
class SessionConfig:
    """会话凭证"""
    access_token: str = ""
    refresh_token: str = ""


@dataclass
class SyncConfig:
    """同步配置"""
    table_ids: List[int] = field(default_factory=list)
    # 需要交替拉取的表，必须是 table_ids 的子集
    parallel_table_ids: List[int] = field(default_factory=list)
    page_size: int = 50  # 每页对象数
    poll_interval: int = 60  # 轮询间隔（秒）
    sync_notifications: bool = False


@dataclass
class StoreConfig:
    """本地存储配置"""
    backend: str = "memory"

    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_db: int = 0

    mysql_host: str = "localhost"
    mysql_port: int = 3306
    mysql_user: str = "root"
    mysql_password: str = ""
    mysql_database: str = "table_sync"
    mysql_charset: str = "utf8mb4"
    mysql_pool_size: int = 5


@dataclass
class MonitorConfig:
    """监控配置"""
    enable_metrics: bool = True
    log_level: str = "INFO"
    log_file: str = "sync.log"
    log_max_size: str = "100MB"
    log_backup_count: int = 10


class Config:
    """配置管理器"""

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path or self._find_config_file()
        self._data: Dict[str, Any] = {}

        # 配置对象
        self.api: Optional[ApiConfig] = None
        self.session: Optional[SessionConfig] = None
        self.sync: Optional[SyncConfig] = None
        self.store: Optional[StoreConfig] = None
        self.monitor: Optional[MonitorConfig] = None

        # 加载配置
        self.load()

    def _find_config_file(self) -> str:
        """查找配置文件"""
        search_paths = [
            Path.cwd() / "config.json",
            Path.cwd() / "config" / "config.json",
            Path.home() / ".table_sync" / "config.json",
            Path("/etc/table_sync/config.json")
        ]

        for path in search_paths:
            if path.exists():
                return str(path)

        # 默认配置文件路径
        return str(Path.cwd() / "config.json")

    def load(self) -> None:
        """加载配置文件"""
        if not os.path.exists(self.config_path):
            self._create_default_config()

        with open(self.config_path, 'r', encoding='utf-8') as f:
            self._data = json.load(f)

        self._parse_config()

    def _parse_config(self) -> None:
        """解析配置"""
        self.api = ApiConfig(**self._data.get('api', {}))
        self.session = SessionConfig(**self._data.get('session', {}))
        self.sync = SyncConfig(**self._data.get('sync', {}))
        self.store = StoreConfig(**self._data.get('store', {}))
        self.monitor = MonitorConfig(**self._data.get('monitor', {}))

    def _create_default_config(self) -> None:
        """创建默认配置文件"""
        default_config = {
            "api": {
                "base_url": "http://localhost:3111/v1",
                "timeout": 30
            },
            "session": {
                "access_token": "",
                "refresh_token": ""
            },
            "sync": {
                "table_ids": [],
                "parallel_table_ids": [],
                "page_size": 50,
                "poll_interval": 60
            },
            "store": {
                "backend": "memory"
            },
            "monitor": {
                "enable_metrics": True,
                "log_level": "INFO",
                "log_file": "sync.log"
            }
        }

        config_dir = os.path.dirname(self.config_path)
        if config_dir:
            os.makedirs(config_dir, exist_ok=True)
        with open(self.config_path, 'w', encoding='utf-8') as f:
            json.dump(default_config, f, indent=4, ensure_ascii=False)

        self._data = default_config

    def save(self) -> None:
        """保存配置"""
        config_dict = {
            "api": asdict(self.api) if self.api else {},
            "session": asdict(self.session) if self.session else {},
            "sync": asdict(self.sync) if self.sync else {},
            "store": asdict(self.store) if self.store else {},
            "monitor": asdict(self.monitor) if self.monitor else {}
        }

        with open(self.config_path, 'w', encoding='utf-8') as f:
            json.dump(config_dict, f, indent=4, ensure_ascii=False)

        self._data = config_dict

    def validate(self) -> bool:
        """验证配置是否有效"""
        if not self.api or not self.api.base_url:
            raise ValueError("接口配置缺少 base_url")

        if not self.sync or not self.sync.table_ids:
            raise ValueError("同步配置缺少 table_ids")

        unknown = [tid for tid in self.sync.parallel_table_ids if tid not in self.sync.table_ids]
        if unknown:
            raise ValueError(f"parallel_table_ids 中的表不在 table_ids 中: {unknown}")

        if self.sync.page_size <= 0:
            raise ValueError("page_size 必须大于 0")

        if not self.store or self.store.backend not in STORE_BACKENDS:
            raise ValueError(f"不支持的存储后端: {self.store.backend if self.store else None}")

        return True

    def get(self, key: str, default: Any = None) -> Any:
        """获取配置值"""
        keys = key.split('.')
        value = self._data

        for k in keys:
            if isinstance(value, dict):
                value = value.get(k)
                if value is None:
                    return default
            else:
                return default

        return value

    def set(self, key: str, value: Any) -> None:
        """设置配置值"""
        keys = key.split('.')
        data = self._data

        for k in keys[:-1]:
            if k not in data:
                data[k] = {}
            data = data[k]

        data[keys[-1]] = value
        self._parse_config()

    def reload(self) -> None:
        """重新加载配置"""
        self.load()
