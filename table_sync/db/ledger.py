"""
上传状态账本
"""
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, Optional, Tuple

from loguru import logger

from table_api.exceptions import LedgerError, NotFound
from table_api.types import Entity, TableObject, UploadStatus
from .models import MutationKind
from .store import CollectionId, LocalStore


class _EntityLock:
    """实体锁及其持有（含等待）者数量"""

    def __init__(self):
        self.lock = threading.RLock()
        self.holders = 0


class UploadLedger:
    """
    跟踪每个本地实体的上传状态

    状态转换::

        NEW ──推送成功──> UP_TO_DATE ──本地修改──> UPDATED ──推送成功──> UP_TO_DATE
                              │                      │
                              └──────本地删除────────┴──> DELETED ──推送成功──> (移除)

    NEW 状态的实体被本地删除时直接移除；NO_UPLOAD 实体不参与推送。
    """

    def __init__(self, store: LocalStore):
        self.store = store
        self._locks_guard = threading.Lock()
        self._locks: Dict[Tuple[str, str], _EntityLock] = {}

    @contextmanager
    def entity_lock(self, collection_id: CollectionId, uuid: str) -> Iterator[None]:
        """单个实体的互斥锁，保证读取-判断-写入的原子性；没有持有者时从表中移除"""
        key = (str(collection_id), uuid)
        with self._locks_guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = _EntityLock()
            entry.holders += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._locks_guard:
                entry.holders -= 1
                if entry.holders == 0:
                    del self._locks[key]

    def get(self, collection_id: CollectionId, uuid: str) -> Entity:
        entity = self.store.get(collection_id, uuid)
        if entity is None:
            raise NotFound(f"Entity {collection_id}/{uuid} is not tracked")
        return entity

    def record_local_mutation(self, entity: Entity, kind: MutationKind) -> Optional[Entity]:
        """
        记录本地变更并持久化

        Args:
            entity: 变更后的实体
            kind: 变更类型

        Returns:
            持久化后的实体；本地直接移除时返回 None

        Raises:
            NotFound: 修改或删除一个不存在的实体
            LedgerError: 修改一个已标记删除的实体
        """
        with self.entity_lock(entity.collection_id, entity.uuid):
            stored = self.store.get(entity.collection_id, entity.uuid)

            if kind == MutationKind.CREATE and stored is None:
                if entity.upload_status != UploadStatus.NO_UPLOAD:
                    entity.upload_status = UploadStatus.NEW
                self.store.put(entity)
                logger.debug(f"Recorded new entity {entity.collection_id}/{entity.uuid}")
                return entity

            if stored is None:
                raise NotFound(f"Entity {entity.collection_id}/{entity.uuid} is not tracked")

            if stored.upload_status == UploadStatus.DELETED:
                raise LedgerError(f"Entity {entity.collection_id}/{entity.uuid} is already marked as deleted")

            if kind == MutationKind.DELETE:
                return self._record_delete(stored)

            # CREATE 遇到已存在的实体按修改处理
            if stored.upload_status in (UploadStatus.UP_TO_DATE, UploadStatus.UPDATED):
                entity.upload_status = UploadStatus.UPDATED
            else:
                entity.upload_status = stored.upload_status
            if isinstance(entity, TableObject):
                entity.etag = stored.etag

            self.store.put(entity)
            logger.debug(f"Recorded update of {entity.collection_id}/{entity.uuid} "
                         f"({entity.upload_status.name})")
            return entity

    def _record_delete(self, stored: Entity) -> Optional[Entity]:
        if stored.upload_status in (UploadStatus.NEW, UploadStatus.NO_UPLOAD):
            # 服务端从未见过这个实体
            self.store.delete(stored.collection_id, stored.uuid)
            logger.debug(f"Removed local-only entity {stored.collection_id}/{stored.uuid}")
            return None

        stored.upload_status = UploadStatus.DELETED
        self.store.put(stored)
        logger.debug(f"Marked {stored.collection_id}/{stored.uuid} for deletion")
        return stored

    def entities_pending_upload(self, collection_id: Optional[CollectionId] = None) -> Iterator[Entity]:
        """
        惰性遍历待上传（NEW / UPDATED / DELETED）的实体

        再次调用会从头开始遍历
        """
        for entity in self.store.list_pending(collection_id):
            yield entity

    def mark_synchronized(self, entity: Entity, etag: Optional[str] = None) -> Entity:
        """推送成功，状态变为 UP_TO_DATE 并记录服务端版本标签"""
        with self.entity_lock(entity.collection_id, entity.uuid):
            entity.upload_status = UploadStatus.UP_TO_DATE
            if isinstance(entity, TableObject) and etag is not None:
                entity.etag = etag
            self.store.put(entity)
            return entity

    def mark_deleted(self, entity: Entity) -> None:
        """删除实体及其账本记录"""
        with self.entity_lock(entity.collection_id, entity.uuid):
            self.store.delete(entity.collection_id, entity.uuid)

    def pending_count(self, collection_id: Optional[CollectionId] = None) -> int:
        return sum(1 for _ in self.entities_pending_upload(collection_id))

    def get_stats(self) -> Dict[str, int]:
        return {'pending': self.pending_count()}
