"""
FlowStore：單向資料流的響應式狀態容器。
"""

from .errors import (
    FlowStoreError, ActionError, ReducerError, MiddlewareError, SelectorError,
    SubscriptionError, PersistenceError, StoreError, ConfigurationError, ErrorHandler,
)
from .actions import Action, ActionCreator, create_action, init_store, restore_state
from .reducers import create_reducer, on, combine_reducers, with_restore
from .middleware import (
    BaseMiddleware, LoggerMiddleware, ThunkMiddleware, AwaitableMiddleware,
    ErrorMiddleware, PersistMiddleware, DevToolsMiddleware, AnalyticsMiddleware,
    global_error,
)
from .effects import Effect, create_effect, EffectsManager
from .subscriptions import Subscription, SubscriptionRegistry
from .store import Store, create_store
from .store_selectors import create_selector, select_path
from .persistence import MemoryAdapter, JsonFileAdapter, persist_store, restore_store
from .config import StoreConfig, load_config, configure_logging
from .immutable_utils import to_immutable, to_dict, to_pydantic, freeze, get_in, update_in

__version__ = "0.1.0"

__all__ = [
    # Errors
    "FlowStoreError", "ActionError", "ReducerError", "MiddlewareError", "SelectorError",
    "SubscriptionError", "PersistenceError", "StoreError", "ConfigurationError", "ErrorHandler",

    # Actions
    "Action", "ActionCreator", "create_action", "init_store", "restore_state",

    # Reducers
    "create_reducer", "on", "combine_reducers", "with_restore",

    # Middleware
    "BaseMiddleware", "LoggerMiddleware", "ThunkMiddleware", "AwaitableMiddleware",
    "ErrorMiddleware", "PersistMiddleware", "DevToolsMiddleware", "AnalyticsMiddleware",
    "global_error",

    # Effects
    "Effect", "create_effect", "EffectsManager",

    # Store
    "Store", "create_store", "Subscription", "SubscriptionRegistry",

    # Selectors
    "create_selector", "select_path",

    # Persistence
    "MemoryAdapter", "JsonFileAdapter", "persist_store", "restore_store",

    # Config
    "StoreConfig", "load_config", "configure_logging",

    # Immutable Utils
    "to_immutable", "to_dict", "to_pydantic", "freeze", "get_in", "update_in",
]
