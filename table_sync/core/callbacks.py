"""
同步回调
"""
from typing import Any, Callable, Optional, Union

from loguru import logger

from table_api.types import Entity
from ..db.models import SyncResult


class SyncCallbacks:
    """
    同步过程中通知上层的回调

    可以传入函数，也可以继承后覆盖 on_* 方法。同步服务通过 safe_call 调用，
    回调抛出的异常只记录日志，不会中断同步。
    """

    def __init__(self,
                 collection_changed: Optional[Callable[[Union[int, str], bool], Any]] = None,
                 entity_updated: Optional[Callable[[Entity], Any]] = None,
                 entity_deleted: Optional[Callable[[Entity], Any]] = None,
                 sync_finished: Optional[Callable[[SyncResult], Any]] = None):
        self._collection_changed = collection_changed
        self._entity_updated = entity_updated
        self._entity_deleted = entity_deleted
        self._sync_finished = sync_finished

    def on_collection_changed(self, collection_id: Union[int, str], changed: bool) -> None:
        """一个集合拉取完成，changed 表示是否有实体被更新或删除"""
        self._invoke(self._collection_changed, collection_id, changed)

    def on_entity_updated(self, entity: Entity) -> None:
        self._invoke(self._entity_updated, entity)

    def on_entity_deleted(self, entity: Entity) -> None:
        self._invoke(self._entity_deleted, entity)

    def on_sync_finished(self, result: SyncResult) -> None:
        self._invoke(self._sync_finished, result)

    @staticmethod
    def _invoke(callback: Optional[Callable[..., Any]], *args: Any) -> None:
        if callback is not None:
            callback(*args)


def safe_call(callback: Callable[..., Any], *args: Any) -> None:
    """调用子类覆盖的回调方法，异常只记录日志"""
    try:
        callback(*args)
    except Exception as e:
        logger.error(f"Sync callback {getattr(callback, '__name__', callback)} failed: {e}")
