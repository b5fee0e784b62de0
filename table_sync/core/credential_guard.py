"""
会话凭证守卫
"""
import threading
from typing import Callable, Optional, TypeVar

from loguru import logger

from table_api.client.session import RenewedSession
from table_api.exceptions import AuthorizationDenied, AuthorizationExpired, TableSyncError


T = TypeVar('T')


class Session:
    """当前会话凭证，所有请求共享同一个实例"""

    def __init__(self, access_token: str, refresh_token: Optional[str] = None):
        self._lock = threading.Lock()
        self._access_token = access_token
        self._refresh_token = refresh_token

    def current_credential(self) -> str:
        with self._lock:
            return self._access_token

    @property
    def refresh_token(self) -> Optional[str]:
        with self._lock:
            return self._refresh_token

    def replace(self, access_token: str, refresh_token: Optional[str] = None) -> None:
        """替换凭证；未提供新的刷新凭证时保留原值"""
        with self._lock:
            self._access_token = access_token
            if refresh_token:
                self._refresh_token = refresh_token


class CredentialGuard:
    """
    包装远程调用，凭证过期时续期一次并重放一次

    - 调用方显式传入凭证时不续期，过期错误作为 AuthorizationDenied 抛出
    - 续期失败时抛出 AuthorizationDenied，原始错误作为 __cause__
    - 重放的结果（成功或失败）直接返回，不再续期
    - 并发调用方共享同一次续期
    - 续期失败后不再用同一个刷新凭证重试，直到 clear_renewal_failure()
    """

    def __init__(self, session: Session,
                 renew_session: Callable[[str], RenewedSession],
                 on_session_renewed: Optional[Callable[[Session], None]] = None):
        self.session = session
        self._renew_session = renew_session
        self._on_session_renewed = on_session_renewed
        self._renew_lock = threading.Lock()
        # 续期失败的刷新凭证，清除前不再用它续期
        self._failed_refresh_token: Optional[str] = None
        self.renewals = 0
        self.renewal_failures = 0

    def clear_renewal_failure(self) -> None:
        """允许再次尝试之前失败过的续期"""
        with self._renew_lock:
            self._failed_refresh_token = None

    def call(self, operation: Callable[[str], T], access_token: Optional[str] = None) -> T:
        """
        执行远程调用

        Args:
            operation: 接收凭证并发起请求的函数
            access_token: 显式凭证，为空时使用当前会话凭证

        Returns:
            operation 的返回值
        """
        if access_token is not None:
            try:
                return operation(access_token)
            except AuthorizationExpired as e:
                raise self._denied(e) from e

        used_token = self.session.current_credential()
        try:
            return operation(used_token)
        except AuthorizationExpired as e:
            logger.info("Access token expired, renewing session")
            if not self._renew(used_token):
                raise self._denied(e) from e

        return operation(self.session.current_credential())

    def _renew(self, stale_token: str) -> bool:
        """续期会话，返回是否拿到了可用的新凭证"""
        with self._renew_lock:
            if self.session.current_credential() != stale_token:
                # 等待期间其他调用方已经完成续期
                return True

            refresh_token = self.session.refresh_token
            if not refresh_token:
                logger.warning("No refresh token available, cannot renew session")
                return False
            if refresh_token == self._failed_refresh_token:
                logger.debug("Session renewal already failed with this refresh token, skipping")
                return False

            try:
                renewed = self._renew_session(refresh_token)
            except TableSyncError as e:
                logger.error(f"Session renewal failed: {e}")
                self._failed_refresh_token = refresh_token
                self.renewal_failures += 1
                return False

            self.session.replace(renewed.access_token, renewed.refresh_token)
            self.renewals += 1
            logger.info("Session renewed")

        if self._on_session_renewed:
            try:
                self._on_session_renewed(self.session)
            except Exception as e:
                logger.error(f"Session renewed callback failed: {e}")
        return True

    @staticmethod
    def _denied(error: AuthorizationExpired) -> AuthorizationDenied:
        return AuthorizationDenied(str(error), status_code=error.status_code, errors=error.errors)
