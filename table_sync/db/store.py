"""
本地存储接口与内存实现
"""
import threading
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from table_api.types import Entity, PENDING_STATUSES, entity_from_dict


CollectionId = Union[int, str]


class LocalStore(ABC):
    """本地存储接口，按 (集合, uuid) 保存实体"""

    @abstractmethod
    def get(self, collection_id: CollectionId, uuid: str) -> Optional[Entity]:
        """读取实体，不存在时返回 None"""
        pass

    @abstractmethod
    def put(self, entity: Entity) -> None:
        """写入或覆盖实体"""
        pass

    @abstractmethod
    def delete(self, collection_id: CollectionId, uuid: str) -> None:
        """删除实体，不存在时不做任何事"""
        pass

    @abstractmethod
    def list(self, collection_id: CollectionId) -> List[Entity]:
        """列出集合中的全部实体"""
        pass

    @abstractmethod
    def list_pending(self, collection_id: Optional[CollectionId] = None) -> Iterator[Entity]:
        """按插入顺序列出待上传的实体"""
        pass

    def close(self) -> None:
        pass


class MemoryStore(LocalStore):
    """进程内存储，保存序列化后的字典以避免共享可变对象"""

    def __init__(self):
        self._lock = threading.Lock()
        self._records: "OrderedDict[Tuple[str, str], Dict[str, Any]]" = OrderedDict()

    @staticmethod
    def _key(collection_id: CollectionId, uuid: str) -> Tuple[str, str]:
        return str(collection_id), uuid

    def get(self, collection_id: CollectionId, uuid: str) -> Optional[Entity]:
        with self._lock:
            data = self._records.get(self._key(collection_id, uuid))
        return entity_from_dict(data) if data is not None else None

    def put(self, entity: Entity) -> None:
        with self._lock:
            # 覆盖时保留原插入位置
            self._records[self._key(entity.collection_id, entity.uuid)] = entity.to_dict()

    def delete(self, collection_id: CollectionId, uuid: str) -> None:
        with self._lock:
            self._records.pop(self._key(collection_id, uuid), None)

    def list(self, collection_id: CollectionId) -> List[Entity]:
        prefix = str(collection_id)
        with self._lock:
            records = [data for key, data in self._records.items() if key[0] == prefix]
        return [entity_from_dict(data) for data in records]

    def list_pending(self, collection_id: Optional[CollectionId] = None) -> Iterator[Entity]:
        with self._lock:
            records = [
                data for key, data in self._records.items()
                if (collection_id is None or key[0] == str(collection_id))
                and data['upload_status'] in PENDING_STATUSES
            ]
        for data in records:
            yield entity_from_dict(data)

    def snapshot(self) -> Dict[Tuple[str, str], Dict[str, Any]]:
        """返回全部记录的深拷贝，用于比较存储内容"""
        with self._lock:
            return {key: _deep_copy(data) for key, data in self._records.items()}

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


def _deep_copy(data: Dict[str, Any]) -> Dict[str, Any]:
    copied = dict(data)
    if isinstance(copied.get('properties'), dict):
        copied['properties'] = dict(copied['properties'])
    return copied
