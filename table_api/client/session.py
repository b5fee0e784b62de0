"""会话接口"""

from dataclasses import dataclass
from typing import Optional

from ..conv import get_str
from ..exceptions import AuthorizationDenied
from .base import BaseApi


@dataclass
class RenewedSession:
    access_token: str
    refresh_token: Optional[str] = None


class SessionApi(BaseApi):
    """会话续期"""

    def renew_session(self, refresh_token: str) -> RenewedSession:
        """
        用刷新凭证换取新的会话凭证

        Raises:
            AuthorizationDenied: 服务端没有返回新凭证
            ApiError / NetworkFailure: 请求失败
        """
        data = self._request('put', '/session/renew', refresh_token)
        access_token = get_str(data, 'access_token')
        if not access_token:
            raise AuthorizationDenied("Session renewal returned no access token")
        return RenewedSession(
            access_token=access_token,
            refresh_token=get_str(data, 'refresh_token') or None
        )
