"""
同步工作器
"""
import threading
from typing import List, Optional, Set, Tuple, Union

from loguru import logger

from table_api.client import NotificationsApi, TableObjectsApi, TablesApi
from table_api.exceptions import NotFound
from table_api.types import (
    NOTIFICATIONS, Entity, Notification, TableObjectRef, TablePage, UploadStatus,
)
from ..db.ledger import UploadLedger
from ..db.models import PushAction
from .callbacks import SyncCallbacks, safe_call
from .credential_guard import CredentialGuard


class SyncWorker:
    """同步工作器，处理单个实体的推送和单个对象引用的合并"""

    def __init__(self, guard: CredentialGuard,
                 ledger: UploadLedger,
                 table_objects_api: TableObjectsApi,
                 tables_api: TablesApi,
                 notifications_api: NotificationsApi,
                 callbacks: SyncCallbacks,
                 cancel_event: Optional[threading.Event] = None):
        self.guard = guard
        self.ledger = ledger
        self.store = ledger.store
        self.table_objects = table_objects_api
        self.tables = tables_api
        self.notifications = notifications_api
        self.callbacks = callbacks
        self.cancel_event = cancel_event or threading.Event()

    # ------------------------------------------------------------------
    # 推送
    # ------------------------------------------------------------------

    def push_entity(self, entity: Entity) -> Optional[PushAction]:
        """
        推送单个实体

        推送期间持有实体锁，请求、判断和写入对其他实体是原子的。

        Returns:
            执行的动作；实体已不再待上传时返回 None

        Raises:
            TableSyncError: 推送失败，实体状态保持不变
        """
        deleted: Optional[Entity] = None
        with self.ledger.entity_lock(entity.collection_id, entity.uuid):
            # 以存储中的最新状态为准
            current = self.store.get(entity.collection_id, entity.uuid)
            if current is None or not current.is_pending:
                return None

            if current.upload_status == UploadStatus.NEW:
                action = PushAction.CREATE
                self._push_create(current)
            elif current.upload_status == UploadStatus.UPDATED:
                action = PushAction.UPDATE
                if not self._push_update(current):
                    deleted = current
            else:
                action = PushAction.DELETE
                self._push_delete(current)

        if deleted is not None:
            safe_call(self.callbacks.on_entity_deleted, deleted)

        logger.info(f"Pushed {action.value} of {entity.collection_id}/{entity.uuid}")
        return action

    def _push_create(self, entity: Entity) -> None:
        if isinstance(entity, Notification):
            self.guard.call(lambda token: self.notifications.create_notification(token, entity))
            self.ledger.mark_synchronized(entity)
        else:
            created = self.guard.call(lambda token: self.table_objects.create_table_object(token, entity))
            self.ledger.mark_synchronized(entity, created.etag)

    def _push_update(self, entity: Entity) -> bool:
        """推送修改；服务端已删除该实体时清除本地实体并返回 False"""
        try:
            if isinstance(entity, Notification):
                self.guard.call(lambda token: self.notifications.update_notification(token, entity))
                self.ledger.mark_synchronized(entity)
            else:
                updated = self.guard.call(
                    lambda token: self.table_objects.update_table_object(token, entity.uuid, entity.properties)
                )
                self.ledger.mark_synchronized(entity, updated.etag)
            return True
        except NotFound:
            logger.warning(f"{entity.collection_id}/{entity.uuid} no longer exists on the server, "
                           f"removing local copy")
            self.ledger.mark_deleted(entity)
            return False

    def _push_delete(self, entity: Entity) -> None:
        try:
            if isinstance(entity, Notification):
                self.guard.call(lambda token: self.notifications.delete_notification(token, entity.uuid))
            else:
                self.guard.call(lambda token: self.table_objects.delete_table_object(token, entity.uuid))
        except NotFound:
            logger.debug(f"{entity.collection_id}/{entity.uuid} was already deleted on the server")
        self.ledger.mark_deleted(entity)

    # ------------------------------------------------------------------
    # 拉取
    # ------------------------------------------------------------------

    def fetch_table_page(self, table_id: int, page: int, count: Optional[int] = None) -> TablePage:
        return self.guard.call(lambda token: self.tables.get_table(token, table_id, page=page, count=count))

    def reconcile_ref(self, table_id: int, ref: TableObjectRef) -> Optional[str]:
        """
        合并表分页中的一个对象引用

        Returns:
            'updated'、'deleted'，没有变化时返回 None
        """
        outcome: Optional[Tuple[str, Entity]] = None
        with self.ledger.entity_lock(table_id, ref.uuid):
            local = self.store.get(table_id, ref.uuid)
            if local is not None and not self._overwritable(local):
                return None
            if local is not None and local.etag == ref.etag:
                return None

            try:
                remote = self.guard.call(lambda token: self.table_objects.get_table_object(token, ref.uuid))
            except NotFound:
                remote = None

            if self.cancel_event.is_set():
                return None

            if remote is None:
                if local is not None:
                    self.store.delete(table_id, ref.uuid)
                    outcome = ('deleted', local)
            else:
                if not remote.table_id:
                    remote.table_id = table_id
                remote.upload_status = UploadStatus.UP_TO_DATE
                self.store.put(remote)
                outcome = ('updated', remote)

        if outcome is None:
            return None
        self._notify(*outcome)
        return outcome[0]

    def remove_missing(self, collection_id: Union[int, str], seen_uuids: Set[str]) -> List[Entity]:
        """删除服务端已不存在的已同步实体，待上传的实体保留"""
        removed = []
        for entity in self.store.list(collection_id):
            if entity.uuid in seen_uuids or not self._overwritable(entity):
                continue
            with self.ledger.entity_lock(collection_id, entity.uuid):
                current = self.store.get(collection_id, entity.uuid)
                if current is None or not self._overwritable(current):
                    continue
                self.store.delete(collection_id, entity.uuid)
            removed.append(current)
            self._notify('deleted', current)
        return removed

    def pull_notifications(self) -> Tuple[int, int]:
        """
        用服务端通知列表替换本地已同步的通知

        Returns:
            (更新数, 删除数)
        """
        remote_notifications = self.guard.call(lambda token: self.notifications.get_notifications(token))
        if self.cancel_event.is_set():
            return 0, 0

        updated = 0
        for remote in remote_notifications:
            if self._merge_notification(remote):
                updated += 1

        removed = self.remove_missing(NOTIFICATIONS, {n.uuid for n in remote_notifications})
        return updated, len(removed)

    def _merge_notification(self, remote: Notification) -> bool:
        with self.ledger.entity_lock(NOTIFICATIONS, remote.uuid):
            local = self.store.get(NOTIFICATIONS, remote.uuid)
            if local is not None and not self._overwritable(local):
                return False
            if local is not None and local.same_content(remote):
                return False
            remote.upload_status = UploadStatus.UP_TO_DATE
            self.store.put(remote)

        self._notify('updated', remote)
        return True

    @staticmethod
    def _overwritable(entity: Entity) -> bool:
        """只有已同步的实体可以被拉取结果覆盖或删除"""
        return entity.upload_status == UploadStatus.UP_TO_DATE

    def _notify(self, outcome: str, entity: Entity) -> None:
        if outcome == 'updated':
            logger.debug(f"Pulled {entity.collection_id}/{entity.uuid}")
            safe_call(self.callbacks.on_entity_updated, entity)
        else:
            logger.debug(f"Removed {entity.collection_id}/{entity.uuid}, deleted on the server")
            safe_call(self.callbacks.on_entity_deleted, entity)
