"""
同步模型定义
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class MutationKind(Enum):
    """本地变更类型"""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class SyncState(Enum):
    """同步服务状态"""
    IDLE = "idle"
    PUSHING = "pushing"
    PULLING = "pulling"


class PushAction(Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass
class SyncFailure:
    """单个对象的推送失败记录"""
    collection_id: Union[int, str]
    uuid: str
    action: str
    error: Exception

    def to_dict(self) -> Dict[str, Any]:
        return {
            'collection_id': self.collection_id,
            'uuid': self.uuid,
            'action': self.action,
            'error_type': type(self.error).__name__,
            'error_message': str(self.error)
        }


@dataclass
class SyncResult:
    """一轮同步的结果"""
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None

    pushed: int = 0
    push_failures: List[SyncFailure] = field(default_factory=list)

    pages_fetched: int = 0
    updated: int = 0
    deleted: int = 0
    pull_error: Optional[Exception] = None

    cancelled: bool = False
    # 同步过程中的意外错误（例如本地存储不可用）
    error: Optional[Exception] = None

    @property
    def success(self) -> bool:
        """推送和拉取都没有失败，且未被取消"""
        return (not self.push_failures and self.pull_error is None
                and self.error is None and not self.cancelled)

    @property
    def duration_seconds(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'cancelled': self.cancelled,
            'pushed': self.pushed,
            'push_failures': [f.to_dict() for f in self.push_failures],
            'pages_fetched': self.pages_fetched,
            'updated': self.updated,
            'deleted': self.deleted,
            'pull_error': str(self.pull_error) if self.pull_error else None,
            'error': str(self.error) if self.error else None,
            'duration_seconds': self.duration_seconds
        }
