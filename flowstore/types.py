"""
FlowStore 共用類型定義。
"""

import datetime
from typing import Any, Callable, Optional, Protocol, TypeVar, Union, runtime_checkable

from typing_extensions import TypedDict

S = TypeVar("S")  # 狀態類型
P = TypeVar("P")  # 負載類型

# 中介軟體鏈中的下一個環節
NextDispatch = Callable[[Any], Any]

# 函數式中介軟體：(state, action, next) -> Any
MiddlewareFunction = Callable[[Any, Any, NextDispatch], Any]

StateSelector = Callable[[Any], Any]
ResultSelector = Callable[..., Any]
EqualityFn = Callable[[Any, Any], bool]
SubscriberCallback = Callable[[Any], None]


class ActionContext(TypedDict, total=False):
    """BaseMiddleware.action_context 在一次 dispatch 內傳遞的上下文數據。"""

    action: Any
    prev_state: Any
    next_state: Any
    result: Any
    error: Optional[BaseException]
    timestamp: datetime.datetime
    error_timestamp: float
    session_id: str


@runtime_checkable
class Middleware(Protocol):
    """物件型中介軟體需要實現的協議。"""

    def __call__(self, state: Any, action: Any, next_dispatch: NextDispatch) -> Any: ...


@runtime_checkable
class PersistenceAdapter(Protocol):
    """
    外部注入的持久化協作者。

    save 失敗時拋出 PersistenceError；load 沒有已保存狀態時返回 None，
    反序列化失敗時拋出 PersistenceError（不與 None 混淆）。
    """

    def save(self, state: Any) -> None: ...

    def load(self) -> Optional[Any]: ...


MiddlewareLike = Union[Middleware, MiddlewareFunction, type]
