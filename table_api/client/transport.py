"""HTTP 传输层"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple

import requests
from loguru import logger

from ..exceptions import NetworkFailure


class Transport(ABC):
    """传输接口"""

    @abstractmethod
    def send(self, method: str, path: str, credential: Optional[str] = None,
             body: Optional[Dict[str, Any]] = None,
             params: Optional[Dict[str, Any]] = None) -> Tuple[int, Any]:
        """
        发送请求

        Args:
            method: HTTP 方法
            path: 以 / 开头的接口路径
            credential: 放入 Authorization 头的凭证
            body: JSON 请求体
            params: 查询参数

        Returns:
            (状态码, 解析后的响应体)

        Raises:
            NetworkFailure: 网络错误时抛出
        """
        pass

    def upload(self, method: str, path: str, credential: Optional[str],
               data: bytes, content_type: str) -> Tuple[int, Any]:
        """以原始字节作为请求体发送，用于文件内容"""
        raise NotImplementedError(f"{type(self).__name__} does not support uploads")

    def close(self) -> None:
        """释放连接"""
        pass


class HttpTransport(Transport):
    """基于 requests 的传输实现"""

    def __init__(self, base_url: str, timeout: int = 30,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()

    def send(self, method: str, path: str, credential: Optional[str] = None,
             body: Optional[Dict[str, Any]] = None,
             params: Optional[Dict[str, Any]] = None) -> Tuple[int, Any]:
        return self._request(method, path, self._headers(credential), json=body, params=params)

    def upload(self, method: str, path: str, credential: Optional[str],
               data: bytes, content_type: str) -> Tuple[int, Any]:
        headers = self._headers(credential)
        headers['Content-Type'] = content_type
        return self._request(method, path, headers, data=data)

    @staticmethod
    def _headers(credential: Optional[str]) -> Dict[str, str]:
        headers = {}
        if credential:
            headers['Authorization'] = credential
        return headers

    def _request(self, method: str, path: str, headers: Dict[str, str], **kwargs) -> Tuple[int, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.request(
                method.upper(),
                url,
                headers=headers,
                timeout=self.timeout,
                **kwargs
            )
        except requests.RequestException as e:
            logger.warning(f"{method.upper()} {path} failed: {e}")
            raise NetworkFailure(f"Connection error to {url}: {e}") from e

        logger.debug(f"{method.upper()} {path} -> {response.status_code}")
        return response.status_code, self._decode(response)

    def _decode(self, response: requests.Response) -> Any:
        """解析响应体"""
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return {'raw_text': response.text}

    def close(self) -> None:
        self.session.close()
