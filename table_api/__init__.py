"""
表对象远程接口 Python SDK

提供表对象、表分页、通知和会话续期接口的访问
"""

__version__ = "0.1.0"

from .types import (
    TableObject, Notification, TableObjectRef, TablePage,
    UploadStatus, NOTIFICATIONS,
)
from .exceptions import (
    TableSyncError, ApiError, AuthorizationError, AuthorizationExpired,
    AuthorizationDenied, ValidationError, NotFound, ServerError,
    NetworkFailure, LedgerError,
)
from .client import Transport, HttpTransport

__all__ = [
    "TableObject",
    "Notification",
    "TableObjectRef",
    "TablePage",
    "UploadStatus",
    "NOTIFICATIONS",
    "TableSyncError",
    "ApiError",
    "AuthorizationError",
    "AuthorizationExpired",
    "AuthorizationDenied",
    "ValidationError",
    "NotFound",
    "ServerError",
    "NetworkFailure",
    "LedgerError",
    "Transport",
    "HttpTransport",
]
