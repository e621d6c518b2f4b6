"""
FlowStore 錯誤處理模組。

定義所有庫內異常的層級結構，以及一個可注入 Store 的集中式錯誤處理器。
"""

import logging
import sys
import traceback
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class FlowStoreError(Exception):
    """所有 FlowStore 異常的基礎類。"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.traceback = traceback.format_exc() if sys.exc_info()[0] is not None else ""

    def to_dict(self) -> Dict[str, Any]:
        """
        轉為可序列化的錯誤報告。

        Returns:
            包含錯誤類型、訊息與細節的字典
        """
        report = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": dict(self.details),
        }
        if self.__cause__ is not None:
            report["cause"] = repr(self.__cause__)
        if self.traceback:
            report["traceback"] = self.traceback
        return report

    def __str__(self) -> str:
        if not self.details:
            return self.message
        extra = ", ".join(f"{k}={v!r}" for k, v in self.details.items())
        return f"{self.message} ({extra})"


class ActionError(FlowStoreError):
    """與 Action 相關的錯誤。"""

    def __init__(self, message: str, action_type: Optional[str] = None, payload: Any = None, **kwargs: Any) -> None:
        super().__init__(message, {"action_type": action_type, "payload": payload, **kwargs})


class ReducerError(FlowStoreError):
    """Reducer 無法處理某個 (state, action) 組合時拋出，狀態保持不變。"""

    def __init__(self, message: str, reducer_name: str, action_type: Optional[str], state: Any = None, **kwargs: Any) -> None:
        super().__init__(message, {"reducer_name": reducer_name, "action_type": action_type, **kwargs})
        # 失敗時仍然有效的狀態，不放進 details 以免報告過大
        self.state = state


class MiddlewareError(FlowStoreError):
    """中介軟體在呼叫 next 之前拋出異常，reducer 不會被執行。"""

    def __init__(self, message: str, middleware_name: str, action_type: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(message, {"middleware_name": middleware_name, "action_type": action_type, **kwargs})


class SelectorError(FlowStoreError):
    """與 Selector 相關的錯誤。"""

    def __init__(self, message: str, selector_name: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(message, {"selector_name": selector_name, **kwargs})


class SubscriptionError(FlowStoreError):
    """訂閱者的 selector 或 callback 在狀態提交後失敗。"""

    def __init__(self, message: str, subscription_id: Optional[int] = None, **kwargs: Any) -> None:
        super().__init__(message, {"subscription_id": subscription_id, **kwargs})


class PersistenceError(FlowStoreError):
    """持久化 adapter 在 save 或 load 時失敗。"""

    def __init__(self, message: str, operation: str, **kwargs: Any) -> None:
        super().__init__(message, {"operation": operation, **kwargs})


class StoreError(FlowStoreError):
    """與 Store 相關的錯誤。"""

    def __init__(self, message: str, operation: str, **kwargs: Any) -> None:
        super().__init__(message, {"operation": operation, **kwargs})


class ConfigurationError(FlowStoreError):
    """配置相關的錯誤。"""

    def __init__(self, message: str, component: str, config_key: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(message, {"component": component, "config_key": config_key, **kwargs})


class ErrorHandler:
    """
    集中式錯誤處理器，記錄日誌並轉發給已註冊的處理函數。

    每個 Store 持有自己的處理器實例，由宿主應用顯式傳入。
    """

    def __init__(self, log_errors: bool = True) -> None:
        self.log_errors = log_errors
        self.handlers: List[Callable[[FlowStoreError, Any], None]] = []

    def register_handler(self, handler: Callable[[FlowStoreError, Any], None]) -> Callable[[], None]:
        """
        註冊一個處理函數。

        Args:
            handler: 接收 (error, action) 的函數

        Returns:
            取消註冊用的函數
        """
        self.handlers.append(handler)

        def unregister() -> None:
            if handler in self.handlers:
                self.handlers.remove(handler)

        return unregister

    def handle(self, error: Exception, action: Any = None) -> None:
        """
        處理一個錯誤。非 FlowStoreError 會先被包裝成 FlowStoreError。

        Args:
            error: 要處理的異常
            action: 觸發錯誤的 Action（可選）
        """
        if not isinstance(error, FlowStoreError):
            wrapped = FlowStoreError(str(error), {"original_type": type(error).__name__})
            wrapped.__cause__ = error
            error = wrapped

        if self.log_errors:
            action_type = getattr(action, "type", None)
            logger.error("%s while handling %s: %s", type(error).__name__, action_type, error)

        for handler in list(self.handlers):
            try:
                handler(error, action)
            except Exception:
                logger.exception("error handler %r failed", handler)
