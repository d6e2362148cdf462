"""Store module -- bounded request log and its remote mirror."""

from .models import ERROR, PENDING, RequestRecord, SizeInfo, TimingBreakdown
from .remote import RemoteStore
from .store import MAX_LOGS, RequestStore, StoreListener

__all__ = [
    "ERROR",
    "PENDING",
    "MAX_LOGS",
    "RequestRecord",
    "RequestStore",
    "RemoteStore",
    "SizeInfo",
    "StoreListener",
    "TimingBreakdown",
]
