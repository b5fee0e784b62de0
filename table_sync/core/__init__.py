"""同步核心模块"""

from .sync_service import SyncService
from .sync_worker import SyncWorker
from .credential_guard import CredentialGuard, Session
from .callbacks import SyncCallbacks
from .scheduler import sort_table_ids

__all__ = ["SyncService", "SyncWorker", "CredentialGuard", "Session", "SyncCallbacks", "sort_table_ids"]
