"""
同步服务主类
"""
import threading
from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, List, Optional, Set

from loguru import logger

from table_api.client import (
    HttpTransport, NotificationsApi, SessionApi, TableObjectsApi, TablesApi, Transport,
)
from table_api.exceptions import TableSyncError
from table_api.types import NOTIFICATIONS, Entity, TablePage, UploadStatus
from ..config.config import Config
from ..db.factory import build_store
from ..db.ledger import UploadLedger
from ..db.models import PushAction, SyncFailure, SyncResult, SyncState
from ..db.store import LocalStore
from ..monitor.metrics import MetricsCollector
from .callbacks import SyncCallbacks, safe_call
from .credential_guard import CredentialGuard, Session
from .scheduler import sort_table_ids
from .sync_worker import SyncWorker


_PUSH_ACTIONS = {
    UploadStatus.NEW: PushAction.CREATE,
    UploadStatus.UPDATED: PushAction.UPDATE,
    UploadStatus.DELETED: PushAction.DELETE,
}


class _SyncPass:
    """正在执行的一轮同步，供后来的调用方等待结果"""

    def __init__(self):
        self.done = threading.Event()
        self.result = SyncResult()
        # 回调中再次请求同步时置位，本轮结束后补充执行一轮
        self.rerun_requested = False


class SyncService:
    """
    双向同步服务

    每轮同步先推送本地待上传的实体，再按调度顺序拉取各表分页并合并到本地。
    """

    def __init__(self, config: Config,
                 transport: Optional[Transport] = None,
                 store: Optional[LocalStore] = None,
                 callbacks: Optional[SyncCallbacks] = None,
                 session: Optional[Session] = None):
        self.config = config
        self.running = False
        self.state = SyncState.IDLE
        self._threads: List[threading.Thread] = []

        self._pass_lock = threading.Lock()
        self._current_pass: Optional[_SyncPass] = None
        self._rerun_requested = False
        self._cancel_event = threading.Event()
        self._stop_event = threading.Event()
        # 当前线程正在执行的一轮同步（含其回调）
        self._local = threading.local()

        # 初始化组件
        self._init_components(transport, store, callbacks, session)

        # 同步统计
        self.stats: Dict[str, Any] = {
            'passes': 0,
            'pushed': 0,
            'push_failed': 0,
            'pulled_updates': 0,
            'pulled_deletes': 0,
            'pull_failed': 0,
            'start_time': None,
            'last_sync': None,
            'last_result': None
        }

    def _init_components(self, transport: Optional[Transport], store: Optional[LocalStore],
                         callbacks: Optional[SyncCallbacks], session: Optional[Session]) -> None:
        """初始化组件"""
        # 验证配置
        self.config.validate()

        # 空的 MemoryStore 也是假值，只能按 None 判断
        if transport is None:
            transport = HttpTransport(self.config.api.base_url, timeout=self.config.api.timeout)
        if store is None:
            store = build_store(self.config.store)
        if callbacks is None:
            callbacks = SyncCallbacks()
        if session is None:
            session = Session(
                self.config.session.access_token,
                self.config.session.refresh_token or None
            )

        self.transport = transport
        self.store = store
        self.ledger = UploadLedger(self.store)
        self.callbacks = callbacks
        self.session = session
        self.session_api = SessionApi(self.transport)
        self.guard = CredentialGuard(
            self.session,
            self.session_api.renew_session,
            on_session_renewed=self._on_session_renewed
        )

        self.sync_worker = SyncWorker(
            self.guard,
            self.ledger,
            TableObjectsApi(self.transport),
            TablesApi(self.transport),
            NotificationsApi(self.transport),
            self.callbacks,
            cancel_event=self._cancel_event
        )

        # 初始化监控
        if self.config.monitor.enable_metrics:
            self.metrics = MetricsCollector(self.config.monitor)
        else:
            self.metrics = None

        logger.info("All components initialized successfully")

    def _on_session_renewed(self, session: Session) -> None:
        """把续期后的凭证写回内存中的配置，由应用决定是否保存"""
        self.config.session.access_token = session.current_credential()
        self.config.session.refresh_token = session.refresh_token or ""

    # ------------------------------------------------------------------
    # 触发方式
    # ------------------------------------------------------------------

    def sync(self) -> SyncResult:
        """
        执行一轮同步并等待结束

        已有同步在进行时不会再开一轮，而是等待并返回那一轮的结果。
        在同步回调中调用时不阻塞：返回当前这一轮的结果，并在其结束后补充执行一轮。
        """
        own_pass = getattr(self._local, 'sync_pass', None)
        if own_pass is not None:
            logger.debug("Sync requested from a sync callback, deferring")
            own_pass.rerun_requested = True
            return own_pass.result

        with self._pass_lock:
            sync_pass = self._current_pass
            owner = sync_pass is None
            if owner:
                sync_pass = self._current_pass = _SyncPass()
                self._cancel_event.clear()

        if not owner:
            logger.debug("Sync pass already running, waiting for its result")
            sync_pass.done.wait()
            return sync_pass.result

        self._local.sync_pass = sync_pass
        try:
            try:
                self._run_pass(sync_pass.result)
            finally:
                with self._pass_lock:
                    self._current_pass = None
                    rerun = self._rerun_requested
                    self._rerun_requested = False
                sync_pass.done.set()
            # 本轮释放后再通知结束，回调中可以安全地再次发起同步
            safe_call(self.callbacks.on_sync_finished, sync_pass.result)
        finally:
            self._local.sync_pass = None

        if (rerun or sync_pass.rerun_requested) and not self._cancel_event.is_set():
            logger.debug("Starting deferred sync pass")
            self._start_pass_thread()
        return sync_pass.result

    def trigger_sync(self) -> None:
        """
        外部触发同步，不阻塞

        同步进行中时只记录一次补充同步，当前一轮结束后执行，多次触发合并为一次。
        """
        with self._pass_lock:
            if self._current_pass is not None:
                self._rerun_requested = True
                return
        self._start_pass_thread()

    def cancel(self) -> None:
        """取消当前同步：进行中的请求会完成，之后不再开始新的步骤"""
        logger.info("Cancelling sync pass")
        self._cancel_event.set()
        with self._pass_lock:
            self._rerun_requested = False

    def _start_pass_thread(self) -> None:
        thread = threading.Thread(target=self._run_triggered_pass, name="SyncPassThread")
        thread.daemon = True
        thread.start()

    def _run_triggered_pass(self) -> None:
        try:
            self.sync()
        except Exception as e:
            logger.error(f"Error in triggered sync pass: {e}")

    # ------------------------------------------------------------------
    # 轮询
    # ------------------------------------------------------------------

    def start(self) -> None:
        """启动轮询同步"""
        if self.running:
            logger.warning("Sync service is already running")
            return

        logger.info("Starting sync service...")
        self.running = True
        self._stop_event.clear()
        self.stats['start_time'] = datetime.now()

        sync_thread = threading.Thread(target=self._sync_loop, name="SyncLoopThread")
        sync_thread.daemon = True
        sync_thread.start()
        self._threads.append(sync_thread)

        logger.info("Sync service started successfully")

    def stop(self) -> None:
        """停止轮询同步并取消进行中的同步"""
        logger.info("Stopping sync service...")
        self.running = False
        self._stop_event.set()
        self.cancel()

        # 等待线程结束
        for thread in self._threads:
            thread.join(timeout=5)
        self._threads = [t for t in self._threads if t.is_alive()]

        logger.info("Sync service stopped")

    def close(self) -> None:
        """停止服务并释放连接"""
        self.stop()
        self.store.close()
        self.transport.close()

    def _sync_loop(self) -> None:
        """轮询同步循环"""
        logger.info("Sync loop started")

        while self.running:
            try:
                self.sync()
            except Exception as e:
                logger.error(f"Error in sync loop: {e}")
                if self.metrics:
                    self.metrics.record_error('sync_loop', str(e))

            # 等待下次轮询，stop() 会立即唤醒
            self._stop_event.wait(self.config.sync.poll_interval)

    # ------------------------------------------------------------------
    # 一轮同步
    # ------------------------------------------------------------------

    def _cancelled(self, result: SyncResult) -> bool:
        if self._cancel_event.is_set():
            result.cancelled = True
        return result.cancelled

    def _run_pass(self, result: SyncResult) -> None:
        logger.info("Sync pass started")
        # 上一轮续期失败的记录只在那一轮内有效
        self.guard.clear_renewal_failure()

        try:
            self.state = SyncState.PUSHING
            self._push_phase(result)

            if not self._cancelled(result):
                self.state = SyncState.PULLING
                self._pull_phase(result)
        except Exception as e:
            # 例如本地存储不可用，本轮结果带上错误后照常结束
            logger.exception(f"Sync pass failed unexpectedly: {e}")
            result.error = e
            if self.metrics:
                self.metrics.record_error('sync_pass', str(e))
        finally:
            self.state = SyncState.IDLE
            result.finished_at = datetime.now()
            self._record_result(result)

    def _record_result(self, result: SyncResult) -> None:
        self.stats['passes'] += 1
        self.stats['pushed'] += result.pushed
        self.stats['push_failed'] += len(result.push_failures)
        self.stats['pulled_updates'] += result.updated
        self.stats['pulled_deletes'] += result.deleted
        if result.pull_error is not None:
            self.stats['pull_failed'] += 1
        self.stats['last_sync'] = result.finished_at
        self.stats['last_result'] = result.to_dict()

        if self.metrics:
            self.metrics.record_sync_duration(result.duration_seconds)
            try:
                self.metrics.update_ledger_stats(self.ledger.get_stats())
            except Exception as e:
                logger.warning(f"Failed to collect ledger stats: {e}")

        logger.info(f"Sync pass finished in {result.duration_seconds:.2f}s: "
                    f"pushed={result.pushed}, push_failed={len(result.push_failures)}, "
                    f"pages={result.pages_fetched}, updated={result.updated}, "
                    f"deleted={result.deleted}, cancelled={result.cancelled}")

    def _push_phase(self, result: SyncResult) -> None:
        """推送阶段：先推送表对象，再推送通知"""
        for entity in self.ledger.entities_pending_upload():
            if entity.collection_id == NOTIFICATIONS:
                continue
            if self._cancelled(result):
                return
            self._push_one(entity, result)

        if not self.config.sync.sync_notifications:
            return

        for entity in self.ledger.entities_pending_upload(NOTIFICATIONS):
            if self._cancelled(result):
                return
            self._push_one(entity, result)

    def _push_one(self, entity: Entity, result: SyncResult) -> None:
        action = _PUSH_ACTIONS[entity.upload_status].value
        try:
            performed = self.sync_worker.push_entity(entity)
        except TableSyncError as e:
            # 单个实体失败不影响其他实体，状态保持不变，下一轮重试
            logger.warning(f"Failed to push {action} of {entity.collection_id}/{entity.uuid}: {e}")
            result.push_failures.append(SyncFailure(entity.collection_id, entity.uuid, action, e))
            if self.metrics:
                self.metrics.record_sync('push', 'failed')
                self.metrics.record_error(type(e).__name__, str(e))
            return

        if performed is not None:
            result.pushed += 1
            if self.metrics:
                self.metrics.record_sync('push', 'success')

    def _pull_phase(self, result: SyncResult) -> None:
        """拉取阶段，任何请求失败都会中止本轮剩余的拉取"""
        try:
            self._pull_tables(result)
            if self.config.sync.sync_notifications and not self._cancelled(result):
                updated, deleted = self.sync_worker.pull_notifications()
                result.updated += updated
                result.deleted += deleted
                if not self._cancelled(result):
                    safe_call(self.callbacks.on_collection_changed, NOTIFICATIONS, bool(updated or deleted))
        except TableSyncError as e:
            logger.error(f"Pull aborted: {e}")
            result.pull_error = e
            if self.metrics:
                self.metrics.record_sync('pull', 'failed')
                self.metrics.record_error(type(e).__name__, str(e))

    def _pull_tables(self, result: SyncResult) -> None:
        table_ids = self.config.sync.table_ids
        page_size = self.config.sync.page_size

        # 第一页带回每个表的总页数
        first_pages: Dict[int, TablePage] = {}
        for table_id in table_ids:
            if self._cancelled(result) or table_id in first_pages:
                continue
            first_pages[table_id] = self.sync_worker.fetch_table_page(table_id, 1, page_size)
            result.pages_fetched += 1
        if self._cancelled(result):
            return

        table_id_pages = {table_id: page.pages for table_id, page in first_pages.items()}
        order = sort_table_ids(table_ids, self.config.sync.parallel_table_ids, table_id_pages)
        logger.debug(f"Fetch order: {order}")

        next_page: Dict[int, int] = defaultdict(int)
        seen: Dict[int, Set[str]] = defaultdict(set)
        changed: Dict[int, bool] = defaultdict(bool)
        finished: Set[int] = set()

        for table_id in order:
            if self._cancelled(result):
                return

            next_page[table_id] += 1
            page_number = next_page[table_id]
            if page_number == 1:
                page = first_pages[table_id]
            else:
                page = self.sync_worker.fetch_table_page(table_id, page_number, page_size)
                result.pages_fetched += 1

            for ref in page.table_objects:
                if self._cancelled(result):
                    return
                seen[table_id].add(ref.uuid)
                outcome = self.sync_worker.reconcile_ref(table_id, ref)
                if outcome == 'updated':
                    result.updated += 1
                elif outcome == 'deleted':
                    result.deleted += 1
                if outcome is not None:
                    changed[table_id] = True
                    if self.metrics:
                        self.metrics.record_sync('pull', 'success')

            if page_number >= table_id_pages[table_id]:
                self._finish_table(table_id, seen[table_id], changed[table_id], result)
                finished.add(table_id)

        # 没有分页的表也要清理本地残留
        for table_id in table_ids:
            if table_id in finished:
                continue
            if self._cancelled(result):
                return
            self._finish_table(table_id, seen[table_id], changed[table_id], result)
            finished.add(table_id)

    def _finish_table(self, table_id: int, seen_uuids: Set[str], changed: bool, result: SyncResult) -> None:
        """一个表的全部分页处理完毕，删除服务端已不存在的本地实体"""
        removed = self.sync_worker.remove_missing(table_id, seen_uuids)
        result.deleted += len(removed)
        logger.debug(f"Table {table_id} pulled, {len(seen_uuids)} objects listed, {len(removed)} removed")
        safe_call(self.callbacks.on_collection_changed, table_id, changed or bool(removed))

    # ------------------------------------------------------------------
    # 状态
    # ------------------------------------------------------------------

    def get_status(self) -> Dict[str, Any]:
        """获取服务状态"""
        uptime = None
        if self.stats['start_time']:
            uptime = (datetime.now() - self.stats['start_time']).total_seconds()

        status = {
            'running': self.running,
            'state': self.state.value,
            'uptime_seconds': uptime,
            'sync_stats': self.stats,
            'ledger_stats': self.ledger.get_stats(),
            'session_renewals': self.guard.renewals,
            'threads': [
                {
                    'name': t.name,
                    'alive': t.is_alive()
                }
                for t in self._threads
            ]
        }
        if self.metrics:
            status['health'] = self.metrics.get_health_status()
        return status

    def reload_config(self) -> None:
        """重新加载配置，表和轮询参数在下一轮同步生效"""
        logger.info("Reloading configuration...")
        self.config.reload()
        self.config.validate()
        logger.info("Configuration reloaded")
