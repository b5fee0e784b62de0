"""接口客户端基类"""

from typing import Any, Dict, Optional

from ..exceptions import error_from_response
from .transport import Transport


class BaseApi:
    """所有接口客户端共享的请求与错误分类逻辑"""

    def __init__(self, transport: Transport):
        self.transport = transport

    def _request(self, method: str, path: str, credential: Optional[str],
                 body: Optional[Dict[str, Any]] = None,
                 params: Optional[Dict[str, Any]] = None) -> Any:
        status, data = self.transport.send(method, path, credential, body=body, params=params)
        return self._check(status, data)

    def _upload(self, method: str, path: str, credential: Optional[str],
                data: bytes, content_type: str) -> Any:
        status, body = self.transport.upload(method, path, credential, data, content_type)
        return self._check(status, body)

    @staticmethod
    def _check(status: int, data: Any) -> Any:
        if 200 <= status < 300:
            return data if data is not None else {}
        raise error_from_response(status, data)
