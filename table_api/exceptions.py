"""错误类型定义"""

from typing import Any, Dict, List, Optional


class TableSyncError(Exception):
    """所有同步相关错误的基类"""
    pass


class NetworkFailure(TableSyncError):
    """网络或连接错误，属于瞬时错误，下一轮同步重试"""
    pass


class LedgerError(TableSyncError):
    """非法的本地状态变更"""
    pass


class ApiError(TableSyncError):
    """服务端返回非 2xx 响应"""

    def __init__(self, message: str, status_code: Optional[int] = None,
                 errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.status_code = status_code
        self.errors = errors or []

    @property
    def error_codes(self) -> List[int]:
        return [e.get('code') for e in self.errors if isinstance(e, dict)]


class AuthorizationError(ApiError):
    pass


class AuthorizationExpired(AuthorizationError):
    """会话凭证过期，可通过一次续期恢复"""
    pass


class AuthorizationDenied(AuthorizationError):
    """不可恢复的授权错误"""
    pass


class ValidationError(ApiError):
    """服务端拒绝了请求内容"""
    pass


class NotFound(ApiError):
    """对象不存在"""
    pass


class ServerError(ApiError):
    pass


_STATUS_ERRORS = {
    400: ValidationError,
    401: AuthorizationExpired,
    403: AuthorizationDenied,
    404: NotFound,
    409: ValidationError,
    422: ValidationError,
}


def error_from_response(status_code: int, body: Any) -> ApiError:
    """把非 2xx 响应转换为对应的错误类型"""
    errors: List[Dict[str, Any]] = []
    if isinstance(body, dict) and isinstance(body.get('errors'), list):
        errors = body['errors']

    if errors and isinstance(errors[0], dict) and errors[0].get('message'):
        detail = f"{errors[0].get('code')}: {errors[0]['message']}"
    else:
        detail = "no error details"

    error_cls = _STATUS_ERRORS.get(status_code, ServerError)
    return error_cls(f"API Error {status_code}: {detail}", status_code=status_code, errors=errors)
