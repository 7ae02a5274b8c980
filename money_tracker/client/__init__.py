"""Client core: offline cache, API client and the transaction sync controller."""

from .app import TrackerApp
from .connectivity import ConnectivityMonitor
from .errors import (
    CacheError,
    ClientError,
    NetworkUnavailableError,
    RemoteServiceError,
    TransactionValidationError,
)
from .events import ConnectivityChanged, EventDispatcher, FormFieldChanged
from .local_cache import LocalCacheStore
from .remote import RemoteTransactionService
from .state import AppState
from .sync import Operation, OperationState, TransactionSyncController

__all__ = [
    "TrackerApp",
    "ConnectivityMonitor",
    "CacheError",
    "ClientError",
    "NetworkUnavailableError",
    "RemoteServiceError",
    "TransactionValidationError",
    "ConnectivityChanged",
    "EventDispatcher",
    "FormFieldChanged",
    "LocalCacheStore",
    "RemoteTransactionService",
    "AppState",
    "Operation",
    "OperationState",
    "TransactionSyncController",
]
