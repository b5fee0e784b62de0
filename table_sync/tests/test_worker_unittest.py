"""
同步工作器测试
"""
import threading
import unittest
from unittest.mock import Mock

from table_api.client import NotificationsApi, TableObjectsApi, TablesApi
from table_api.exceptions import NotFound, ValidationError
from table_api.types import (
    NOTIFICATIONS, Notification, TableObject, TableObjectRef, UploadStatus,
)
from table_sync.core.callbacks import SyncCallbacks, safe_call
from table_sync.core.credential_guard import CredentialGuard, Session
from table_sync.core.sync_worker import SyncWorker
from table_sync.db.ledger import UploadLedger
from table_sync.db.models import MutationKind, PushAction, SyncFailure, SyncResult
from table_sync.db.store import MemoryStore


def not_found() -> NotFound:
    return NotFound("API Error 404: 2805: missing", status_code=404)


class WorkerTestCase(unittest.TestCase):
    """搭建工作器及其依赖"""

    def setUp(self):
        self.store = MemoryStore()
        self.ledger = UploadLedger(self.store)
        self.table_objects = Mock(spec=TableObjectsApi)
        self.tables = Mock(spec=TablesApi)
        self.notifications = Mock(spec=NotificationsApi)
        self.updated = []
        self.deleted = []
        self.callbacks = SyncCallbacks(
            entity_updated=lambda e: self.updated.append(e.uuid),
            entity_deleted=lambda e: self.deleted.append(e.uuid)
        )
        self.cancel_event = threading.Event()
        guard = CredentialGuard(Session("token", "refresh"), Mock())
        self.worker = SyncWorker(
            guard, self.ledger, self.table_objects, self.tables,
            self.notifications, self.callbacks, cancel_event=self.cancel_event
        )

    def put_synced(self, uuid: str = "u1", etag: str = "e1", **properties) -> TableObject:
        obj = TableObject(table_id=1, uuid=uuid, etag=etag, properties=dict(properties),
                          upload_status=UploadStatus.UP_TO_DATE)
        self.store.put(obj)
        return obj

    def remote(self, uuid: str = "u1", etag: str = "e2", **properties) -> TableObject:
        return TableObject(table_id=1, uuid=uuid, etag=etag, properties=dict(properties),
                           upload_status=UploadStatus.UP_TO_DATE)


class TestPushEntity(WorkerTestCase):
    """推送单个实体测试"""

    def test_push_create(self):
        obj = TableObject(table_id=1, uuid="u1", properties={"a": 1})
        self.ledger.record_local_mutation(obj, MutationKind.CREATE)
        self.table_objects.create_table_object.return_value = self.remote(etag="e1", a=1)

        action = self.worker.push_entity(obj)

        self.assertEqual(action, PushAction.CREATE)
        self.table_objects.create_table_object.assert_called_once()
        self.assertEqual(self.table_objects.create_table_object.call_args[0][0], "token")
        stored = self.store.get(1, "u1")
        self.assertEqual(stored.upload_status, UploadStatus.UP_TO_DATE)
        self.assertEqual(stored.etag, "e1")

    def test_push_uses_latest_stored_state(self):
        """以存储中的最新内容为准，而不是调用方手里的旧副本"""
        obj = self.put_synced(a=1)
        changed = self.store.get(1, "u1")
        changed.set_property("a", 2)
        self.ledger.record_local_mutation(changed, MutationKind.UPDATE)
        self.table_objects.update_table_object.return_value = self.remote(a=2)

        self.worker.push_entity(obj)

        self.table_objects.update_table_object.assert_called_once_with("token", "u1", {"a": 2})
        self.assertEqual(self.store.get(1, "u1").etag, "e2")

    def test_push_skips_entity_no_longer_pending(self):
        obj = self.put_synced()

        self.assertIsNone(self.worker.push_entity(obj))
        self.table_objects.update_table_object.assert_not_called()

    def test_push_failure_leaves_status(self):
        obj = self.put_synced()
        self.ledger.record_local_mutation(self.store.get(1, "u1"), MutationKind.UPDATE)
        self.table_objects.update_table_object.side_effect = ValidationError("bad", status_code=422)

        with self.assertRaises(ValidationError):
            self.worker.push_entity(obj)

        self.assertEqual(self.store.get(1, "u1").upload_status, UploadStatus.UPDATED)

    def test_update_not_found_clears_local(self):
        obj = self.put_synced()
        self.ledger.record_local_mutation(self.store.get(1, "u1"), MutationKind.UPDATE)
        self.table_objects.update_table_object.side_effect = not_found()

        self.assertEqual(self.worker.push_entity(obj), PushAction.UPDATE)

        self.assertIsNone(self.store.get(1, "u1"))
        self.assertEqual(self.deleted, ["u1"])

    def test_delete_not_found_treated_as_deleted(self):
        obj = self.put_synced()
        self.ledger.record_local_mutation(self.store.get(1, "u1"), MutationKind.DELETE)
        self.table_objects.delete_table_object.side_effect = not_found()

        self.assertEqual(self.worker.push_entity(obj), PushAction.DELETE)
        self.assertIsNone(self.store.get(1, "u1"))

    def test_push_notification(self):
        notification = Notification(time=1, interval=0, title="t", body="b", uuid="n1")
        self.ledger.record_local_mutation(notification, MutationKind.CREATE)

        self.worker.push_entity(notification)

        self.notifications.create_notification.assert_called_once()
        self.assertEqual(self.store.get(NOTIFICATIONS, "n1").upload_status, UploadStatus.UP_TO_DATE)


class TestReconcile(WorkerTestCase):
    """合并对象引用测试"""

    def test_new_remote_object_inserted(self):
        self.table_objects.get_table_object.return_value = self.remote(title="x")

        outcome = self.worker.reconcile_ref(1, TableObjectRef("u1", "e2"))

        self.assertEqual(outcome, "updated")
        self.assertEqual(self.store.get(1, "u1").properties, {"title": "x"})
        self.assertEqual(self.updated, ["u1"])

    def test_same_etag_skipped(self):
        self.put_synced(etag="e1")

        self.assertIsNone(self.worker.reconcile_ref(1, TableObjectRef("u1", "e1")))
        self.table_objects.get_table_object.assert_not_called()

    def test_pending_entity_not_overwritten(self):
        self.put_synced()
        self.ledger.record_local_mutation(self.store.get(1, "u1"), MutationKind.UPDATE)

        self.assertIsNone(self.worker.reconcile_ref(1, TableObjectRef("u1", "e9")))
        self.table_objects.get_table_object.assert_not_called()

    def test_missing_remote_object_removed(self):
        self.put_synced()
        self.table_objects.get_table_object.side_effect = not_found()

        self.assertEqual(self.worker.reconcile_ref(1, TableObjectRef("u1", "e9")), "deleted")
        self.assertIsNone(self.store.get(1, "u1"))
        self.assertEqual(self.deleted, ["u1"])

    def test_result_discarded_after_cancel(self):
        def fetch(token, uuid):
            self.cancel_event.set()
            return self.remote()

        self.table_objects.get_table_object.side_effect = fetch

        self.assertIsNone(self.worker.reconcile_ref(1, TableObjectRef("u1", "e2")))
        self.assertIsNone(self.store.get(1, "u1"))
        self.assertEqual(self.updated, [])

    def test_remove_missing_keeps_pending(self):
        self.put_synced("u1")
        self.put_synced("u2")
        self.ledger.record_local_mutation(TableObject(table_id=1, uuid="u3"), MutationKind.CREATE)

        removed = self.worker.remove_missing(1, {"u2"})

        self.assertEqual([e.uuid for e in removed], ["u1"])
        self.assertIsNotNone(self.store.get(1, "u2"))
        self.assertIsNotNone(self.store.get(1, "u3"))

    def test_pull_notifications(self):
        self.store.put(Notification(time=1, interval=0, title="old", body="b", uuid="gone",
                                    upload_status=UploadStatus.UP_TO_DATE))
        self.store.put(Notification(time=1, interval=0, title="same", body="b", uuid="same",
                                    upload_status=UploadStatus.UP_TO_DATE))
        self.notifications.get_notifications.return_value = [
            Notification(time=1, interval=0, title="same", body="b", uuid="same",
                         upload_status=UploadStatus.UP_TO_DATE),
            Notification(time=2, interval=0, title="new", body="b", uuid="new",
                         upload_status=UploadStatus.UP_TO_DATE),
        ]

        self.assertEqual(self.worker.pull_notifications(), (1, 1))
        self.assertEqual(self.updated, ["new"])
        self.assertEqual(self.deleted, ["gone"])


class TestCallbacksAndModels(unittest.TestCase):
    """回调与结果模型测试"""

    def test_safe_call_logs_errors(self):
        callbacks = SyncCallbacks(entity_updated=Mock(side_effect=RuntimeError("boom")))

        # 不应抛出
        safe_call(callbacks.on_entity_updated, TableObject(table_id=1))

    def test_missing_callbacks_are_ignored(self):
        SyncCallbacks().on_collection_changed(1, True)

    def test_sync_result(self):
        result = SyncResult()
        self.assertTrue(result.success)

        result.push_failures.append(SyncFailure(1, "u1", "update", ValidationError("bad")))
        data = result.to_dict()

        self.assertFalse(data['success'])
        self.assertEqual(data['push_failures'][0]['error_type'], "ValidationError")
        self.assertEqual(data['duration_seconds'], 0.0)


if __name__ == '__main__':
    unittest.main()
