"""远程接口客户端模块"""

from .transport import Transport, HttpTransport
from .table_objects import TableObjectsApi
from .tables import TablesApi
from .notifications import NotificationsApi
from .session import SessionApi, RenewedSession

__all__ = [
    "Transport",
    "HttpTransport",
    "TableObjectsApi",
    "TablesApi",
    "NotificationsApi",
    "SessionApi",
    "RenewedSession",
]
