"""本地存储与账本模块"""

from .store import LocalStore, MemoryStore
from .ledger import UploadLedger
from .models import MutationKind, SyncState, SyncResult, SyncFailure
from .factory import build_store

__all__ = [
    "LocalStore",
    "MemoryStore",
    "UploadLedger",
    "MutationKind",
    "SyncState",
    "SyncResult",
    "SyncFailure",
    "build_store",
]
