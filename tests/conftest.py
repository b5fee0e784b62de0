"""测试共享的夹具：内存中的假服务端和同步服务"""

import math
import threading
from collections import OrderedDict
from typing import Any, Dict, List, Optional, Tuple

import pytest

from table_api.client.transport import Transport
from table_sync.config.config import Config
from table_sync.core.callbacks import SyncCallbacks
from table_sync.core.sync_service import SyncService
from table_sync.db.store import MemoryStore


def _error(status: int, code: int, message: str) -> Tuple[int, Dict[str, Any]]:
    return status, {'errors': [{'code': code, 'message': message}]}


class FakeServer(Transport):
    """
    按远程接口的路由和响应格式工作的内存服务端

    - fail(method, path, status) 让接下来的请求返回指定错误
    - expire_tokens() 让当前所有会话凭证过期
    """

    def __init__(self, access_token: str = "access-1", refresh_token: str = "refresh-1"):
        self._lock = threading.Lock()
        self.tables: Dict[int, str] = {}
        self.objects: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
        self.notifications: "OrderedDict[str, Dict[str, Any]]" = OrderedDict()
        self.valid_tokens = {access_token}
        self.refresh_token = refresh_token
        self.requests: List[Tuple[str, str, Optional[Dict[str, Any]], Optional[str]]] = []
        self._failures: Dict[Tuple[str, str], List[Tuple[int, Any]]] = {}
        self._etag_seq = 0
        self._token_seq = 1

    # ------------------------------------------------------------------
    # 测试辅助
    # ------------------------------------------------------------------

    def add_table(self, table_id: int, name: Optional[str] = None) -> None:
        self.tables[table_id] = name or f"Table{table_id}"

    def add_object(self, table_id: int, properties: Optional[Dict[str, Any]] = None,
                   uuid: Optional[str] = None) -> Dict[str, Any]:
        uuid = uuid or f"obj-{len(self.objects) + 1}"
        obj = {
            'uuid': uuid,
            'table_id': table_id,
            'file': False,
            'etag': self._next_etag(),
            'properties': dict(properties or {})
        }
        self.objects[uuid] = obj
        return obj

    def modify_object(self, uuid: str, **properties: Any) -> str:
        obj = self.objects[uuid]
        obj['properties'].update(properties)
        obj['etag'] = self._next_etag()
        return obj['etag']

    def add_notification(self, uuid: str, time: int = 1700000000, interval: int = 0,
                         title: str = "title", body: str = "body") -> Dict[str, Any]:
        notification = {'uuid': uuid, 'time': time, 'interval': interval, 'title': title, 'body': body}
        self.notifications[uuid] = notification
        return notification

    def fail(self, method: str, path: str, status: int, code: int = 1000,
             message: str = "Injected failure", times: int = 1) -> None:
        queue = self._failures.setdefault((method.upper(), path), [])
        queue.extend([_error(status, code, message)] * times)

    def expire_tokens(self) -> None:
        self.valid_tokens.clear()

    def table_fetches(self) -> List[Tuple[int, int]]:
        """按顺序返回 (表 ID, 页码) 形式的分页请求"""
        return [
            (int(path.rsplit('/', 1)[1]), params['page'])
            for method, path, params, _ in self.requests
            if method == 'GET' and path.startswith('/table/')
        ]

    def calls(self, method: str, prefix: str = "") -> List[str]:
        return [path for m, path, _, _ in self.requests if m == method.upper() and path.startswith(prefix)]

    def _next_etag(self) -> str:
        self._etag_seq += 1
        return f"etag-{self._etag_seq}"

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def send(self, method: str, path: str, credential: Optional[str] = None,
             body: Optional[Dict[str, Any]] = None,
             params: Optional[Dict[str, Any]] = None) -> Tuple[int, Any]:
        method = method.upper()
        with self._lock:
            self.requests.append((method, path, params, credential))

            queue = self._failures.get((method, path))
            if queue:
                return queue.pop(0)

            if path == '/session/renew':
                return self._renew(credential)
            if credential not in self.valid_tokens:
                return _error(401, 1301, "Access token expired")
            return self._route(method, path, body or {}, params or {})

    def _renew(self, credential: Optional[str]) -> Tuple[int, Any]:
        if credential != self.refresh_token:
            return _error(403, 1302, "Refresh token invalid")
        self._token_seq += 1
        token = f"access-{self._token_seq}"
        self.valid_tokens.add(token)
        return 200, {'access_token': token}

    def _route(self, method: str, path: str, body: Dict[str, Any],
               params: Dict[str, Any]) -> Tuple[int, Any]:
        parts = path.strip('/').split('/')

        if parts[0] == 'table' and method == 'GET':
            return self._get_table(int(parts[1]), params)

        if parts[0] == 'table_object':
            if len(parts) == 1 and method == 'POST':
                return self._create_object(body)
            obj = self.objects.get(parts[1])
            if obj is None:
                return _error(404, 2805, "Table object does not exist")
            if len(parts) == 3 and parts[2] == 'access' and method == 'DELETE':
                del self.objects[parts[1]]
                return 204, None
            if method == 'GET':
                return 200, dict(obj)
            if method == 'PUT':
                obj['properties'].update(body.get('properties', {}))
                obj['etag'] = self._next_etag()
                return 200, dict(obj)
            if method == 'DELETE':
                del self.objects[parts[1]]
                return 204, None

        if parts[0] == 'notifications' and method == 'GET':
            return 200, {'notifications': [dict(n) for n in self.notifications.values()]}

        if parts[0] == 'notification':
            if len(parts) == 1 and method == 'POST':
                self.notifications[body['uuid']] = dict(body)
                return 201, dict(body)
            if parts[1] not in self.notifications:
                return _error(404, 2812, "Notification does not exist")
            if method == 'PUT':
                self.notifications[parts[1]].update(body)
                return 200, dict(self.notifications[parts[1]])
            if method == 'DELETE':
                del self.notifications[parts[1]]
                return 204, None

        return _error(404, 1000, f"No route for {method} {path}")

    def _create_object(self, body: Dict[str, Any]) -> Tuple[int, Any]:
        if body.get('table_id') not in self.tables:
            return _error(404, 2804, "Table does not exist")
        if body.get('uuid') in self.objects:
            return _error(409, 2704, "Uuid already in use")
        obj = {
            'uuid': body['uuid'],
            'table_id': body['table_id'],
            'file': body.get('file', False),
            'etag': self._next_etag(),
            'properties': dict(body.get('properties', {}))
        }
        self.objects[obj['uuid']] = obj
        return 201, dict(obj)

    def _get_table(self, table_id: int, params: Dict[str, Any]) -> Tuple[int, Any]:
        if table_id not in self.tables:
            return _error(404, 2804, "Table does not exist")
        count = params.get('count') or 50
        page = params.get('page', 1)
        objects = [o for o in self.objects.values() if o['table_id'] == table_id]
        start = (page - 1) * count
        return 200, {
            'id': table_id,
            'app_id': 1,
            'name': self.tables[table_id],
            'pages': math.ceil(len(objects) / count),
            'table_objects': [{'uuid': o['uuid'], 'etag': o['etag']} for o in objects[start:start + count]]
        }


class RecordingCallbacks(SyncCallbacks):
    """记录所有回调参数"""

    def __init__(self):
        super().__init__()
        self.collections: List[Tuple[Any, bool]] = []
        self.updated: List[str] = []
        self.deleted: List[str] = []
        self.results: List[Any] = []

    def on_collection_changed(self, collection_id, changed):
        self.collections.append((collection_id, changed))

    def on_entity_updated(self, entity):
        self.updated.append(entity.uuid)

    def on_entity_deleted(self, entity):
        self.deleted.append(entity.uuid)

    def on_sync_finished(self, result):
        self.results.append(result)


@pytest.fixture
def server() -> FakeServer:
    fake = FakeServer()
    for table_id in (1, 2, 3):
        fake.add_table(table_id)
    return fake


@pytest.fixture
def config(tmp_path) -> Config:
    config = Config(str(tmp_path / "config.json"))
    config.session.access_token = "access-1"
    config.session.refresh_token = "refresh-1"
    config.sync.table_ids = [1, 2, 3]
    config.sync.parallel_table_ids = []
    config.sync.page_size = 2
    return config


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def callbacks() -> RecordingCallbacks:
    return RecordingCallbacks()


@pytest.fixture
def service(config, server, store, callbacks) -> SyncService:
    sync_service = SyncService(config, transport=server, store=store, callbacks=callbacks)
    yield sync_service
    sync_service.stop()
