from .clock import Clock, SystemClock
from .deferred_executor import DeferredExecutor, JobCallback
from .dispatcher import Dispatcher
from .quota_store import QuotaStore

__all__ = [
    "Clock",
    "SystemClock",
    "DeferredExecutor",
    "JobCallback",
    "Dispatcher",
    "QuotaStore",
]
