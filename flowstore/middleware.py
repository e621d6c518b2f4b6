"""
FlowStore 的中介軟體定義模組。

中介軟體以 (state, action, next) 的形式介入 dispatch 流程：
呼叫 next(action) 繼續傳遞（可傳入轉換後的 action），不呼叫則丟棄該 action。
最後一個 next 會執行 reducer 並提交新狀態。
"""

import asyncio
import contextlib
import datetime
import logging
import time
import uuid
from typing import Any, Callable, Generator, Iterable, List, Optional, Tuple

from immutables import Map

from .actions import Action, ActionCreator, create_action, restore_state
from .errors import PersistenceError, StoreError
from .types import ActionContext, NextDispatch, PersistenceAdapter

logger = logging.getLogger(__name__)


# ———— Base Middleware ————
class BaseMiddleware:
    """
    基礎中介類，定義所有中介可能實現的鉤子。

    子類可以只覆寫 on_next / on_complete / on_error，
    也可以直接覆寫 __call__ 來轉換或攔截 action。
    """

    store = None
    _current_context: Optional[ActionContext] = None

    def bind(self, store: Any) -> None:
        """在加入 Store 時呼叫，讓中介軟體可以讀取狀態或發出後續動作。"""
        self.store = store

    def __call__(self, state: Any, action: Any, next_dispatch: NextDispatch) -> Any:
        with self.action_context(action, state) as context:
            context['result'] = next_dispatch(action)
            context['next_state'] = self.store.state if self.store is not None else None
            return context['result']

    def on_next(self, action: Any, prev_state: Any) -> None:
        """
        在 action 發送給 reducer 之前調用。

        Args:
            action: 正在 dispatch 的 Action
            prev_state: dispatch 之前的 store.state
        """
        pass

    def on_complete(self, next_state: Any, action: Any) -> None:
        """
        在 reducer 處理完 action 並通知訂閱者之後調用。

        Args:
            next_state: dispatch 之後的最新 store.state
            action: 剛剛 dispatch 的 Action
        """
        pass

    def on_error(self, error: Exception, action: Any) -> None:
        """
        如果 dispatch 過程中拋出異常，則調用此鉤子。異常之後仍會繼續向上拋出。

        Args:
            error: 拋出的異常
            action: 導致異常的 Action
        """
        pass

    def teardown(self) -> None:
        """當 Store 清理資源時調用，用於清理中間件持有的資源。"""
        pass

    def create_context(self, action: Any, prev_state: Any) -> ActionContext:
        """建立一次 dispatch 的上下文數據，子類可以擴充欄位。"""
        return {
            'action': action,
            'prev_state': prev_state,
            'next_state': None,
            'result': None,
            'error': None,
        }

    @contextlib.contextmanager
    def action_context(self, action: Any, prev_state: Any) -> Generator[ActionContext, None, None]:
        """
        以上下文管理器的形式包住一次 dispatch 的生命週期，
        依序呼叫 on_next、on_complete 或 on_error。

        Yields:
            包含上下文數據的字典，可用於在上下文內部與外部之間傳遞數據
        """
        context = self.create_context(action, prev_state)
        self._current_context = context
        self.on_next(action, prev_state)
        try:
            yield context
            self.on_complete(context['next_state'], action)
        except Exception as err:
            context['error'] = err
            self.on_error(err, action)
            raise
        finally:
            self._current_context = None


def _action_type(action: Any) -> str:
    return getattr(action, 'type', None) or type(action).__name__


# ———— LoggerMiddleware ————
class LoggerMiddleware(BaseMiddleware):
    """
    日誌中介，記錄每個 action 發送前和發送後的 state。

    使用場景:
    - 偵錯時需要觀察每次 state 的變化。
    - 確保 action 的執行順序正確。
    """

    def __init__(self, log: Optional[logging.Logger] = None, level: int = logging.INFO):
        self.log = log or logger
        self.level = level

    def create_context(self, action: Any, prev_state: Any) -> ActionContext:
        context = super().create_context(action, prev_state)
        context['timestamp'] = datetime.datetime.now()
        return context

    def on_next(self, action: Any, prev_state: Any) -> None:
        self.log.log(self.level, "dispatching %s", _action_type(action))
        self.log.log(self.level, "state before %s: %s", _action_type(action), prev_state)

    def on_complete(self, next_state: Any, action: Any) -> None:
        started = self._current_context['timestamp'] if self._current_context else None
        elapsed = (datetime.datetime.now() - started).total_seconds() * 1000 if started else 0.0
        self.log.log(self.level, "state after %s (%.2fms): %s", _action_type(action), elapsed, next_state)

    def on_error(self, error: Exception, action: Any) -> None:
        self.log.error("error in %s: %s", _action_type(action), error)


# ———— ThunkMiddleware ————
class ThunkMiddleware(BaseMiddleware):
    """
    支援 dispatch 函數 (thunk)，thunk 以 (dispatch, get_state) 被呼叫，不會到達 reducer。

    thunk 內部的 dispatch 會在目前這次 dispatch 提交之後依序處理，
    所以在 thunk 內 dispatch 之後立即 get_state() 仍會看到舊狀態。

    範例:
        ```python
        def fetch_user(user_id):
            def thunk(dispatch, get_state):
                dispatch(request_user(user_id))
                try:
                    dispatch(request_user_success(api.fetch_user(user_id)))
                except ApiError as e:
                    dispatch(request_user_failure(str(e)))
            return thunk

        store.dispatch(fetch_user("user123"))
        ```
    """

    def __call__(self, state: Any, action: Any, next_dispatch: NextDispatch) -> Any:
        if callable(action) and not isinstance(action, (Action, ActionCreator)):
            if self.store is None:
                raise StoreError("ThunkMiddleware is not bound to a store", operation="thunk")
            return action(self.store.dispatch, self.store.get_state)
        return next_dispatch(action)


# ———— AwaitableMiddleware ————
class AwaitableMiddleware(BaseMiddleware):
    """
    支援 dispatch coroutine/future，完成後把返回的 Action 作為一次新的 dispatch 發出。

    - 任務被取消時不會發出任何後續 action。
    - 任務失敗時，若提供了 on_failure，則 dispatch on_failure(error) 的結果；
      否則只記錄日誌。

    範例:
        ```python
        async def fetch_data():
            await asyncio.sleep(1)
            return data_loaded({"result": "success"})

        task = store.dispatch(fetch_data())
        ```
    """

    def __init__(self, on_failure: Optional[Callable[[BaseException], Any]] = None):
        self.on_failure = on_failure
        self._tasks: List["asyncio.Future[Any]"] = []

    def __call__(self, state: Any, action: Any, next_dispatch: NextDispatch) -> Any:
        if asyncio.iscoroutine(action) or asyncio.isfuture(action):
            if self.store is None:
                raise StoreError("AwaitableMiddleware is not bound to a store", operation="await")
            task = asyncio.ensure_future(action)
            self._tasks.append(task)
            task.add_done_callback(self._on_done)
            return task
        return next_dispatch(action)

    def _on_done(self, fut: "asyncio.Future[Any]") -> None:
        if fut in self._tasks:
            self._tasks.remove(fut)
        if fut.cancelled():
            logger.debug("awaitable cancelled, no follow-up dispatch")
            return
        error = fut.exception()
        if error is not None:
            logger.error("awaitable failed: %s", error)
            if self.on_failure is not None:
                self.store.dispatch(self.on_failure(error))
            return
        result = fut.result()
        if result is not None:
            self.store.dispatch(result)

    def teardown(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()


# ———— ErrorMiddleware ————
global_error = create_action("[Error] GlobalError", lambda info: info)


class ErrorMiddleware(BaseMiddleware):
    """
    捕獲 dispatch 過程中的異常，dispatch 全域錯誤 Action 之後繼續拋出原異常。

    global_error 會在失敗的 dispatch 結束後作為一次獨立的 dispatch 被處理，
    reducer 可以據此轉入恢復狀態。

    使用場景:
    - 當需要統一處理所有異常並在狀態中記錄時。
    """

    def create_context(self, action: Any, prev_state: Any) -> ActionContext:
        context = super().create_context(action, prev_state)
        context['error_timestamp'] = time.time()
        return context

    def on_error(self, error: Exception, action: Any) -> None:
        if self.store is None or _action_type(action) == global_error.type:
            return
        error_info = {
            "error": str(error),
            "error_type": type(error).__name__,
            "action": _action_type(action),
            "timestamp": self._current_context['error_timestamp'] if self._current_context else time.time(),
        }
        self.store.dispatch(global_error(error_info))


# ———— PersistMiddleware ————
class PersistMiddleware(BaseMiddleware):
    """
    每次 dispatch 完成後，透過持久化 adapter 保存狀態（或指定 keys 的子狀態）。

    使用場景:
    - 當需要在應用重啟後恢復部分重要的 state 時，例如用戶偏好設定或緩存數據。
    """

    def __init__(self, adapter: PersistenceAdapter, keys: Optional[Iterable[str]] = None) -> None:
        """
        Args:
            adapter: 持久化 adapter
            keys: 需要持久化的 state 子鍵列表，None 表示保存整個 state
        """
        self.adapter = adapter
        self.keys = list(keys) if keys is not None else None
        self._last_saved = None

    def bind(self, store: Any) -> None:
        super().bind(store)
        config = getattr(store, "config", None)
        if self.keys is None and config is not None and config.persist_keys is not None:
            self.keys = list(config.persist_keys)

    def on_complete(self, next_state: Any, action: Any) -> None:
        if next_state is None or next_state is self._last_saved:
            return
        data = next_state
        if self.keys is not None and isinstance(next_state, Map):
            data = Map({k: next_state[k] for k in self.keys if k in next_state})
        try:
            self.adapter.save(data)
            self._last_saved = next_state
        except PersistenceError as err:
            logger.error("[PersistMiddleware] write failed after %s: %s", _action_type(action), err)


# ———— DevToolsMiddleware ————
class DevToolsMiddleware(BaseMiddleware):
    """
    記錄每次 action 與 state 快照，支援時間旅行調試。

    使用場景:
    - 當需要回溯 state 的變化歷史以進行調試時。
    """

    def __init__(self, max_history: Optional[int] = None) -> None:
        self.max_history = max_history
        self.history: List[Tuple[Any, Any, Any]] = []

    def on_complete(self, next_state: Any, action: Any) -> None:
        if self._current_context is None:
            return
        self.history.append((self._current_context['prev_state'], action, next_state))
        if self.max_history is not None and len(self.history) > self.max_history:
            del self.history[0]

    def get_history(self) -> List[Tuple[Any, Any, Any]]:
        """
        返回整個歷史快照列表。

        Returns:
            歷史快照列表，每項為 (prev_state, action, next_state)
        """
        return list(self.history)

    def jump_to(self, index: int) -> None:
        """以保留的恢復動作把 Store 狀態回到第 index 筆歷史之後的狀態。"""
        if self.store is None:
            raise StoreError("DevToolsMiddleware is not bound to a store", operation="jump_to")
        _, _, state = self.history[index]
        self.store.dispatch(restore_state(state))


# ———— AnalyticsMiddleware ————
class AnalyticsMiddleware(BaseMiddleware):
    """
    行為埋點中介，前後都會調用 callback(action, prev_state, next_state, session_id=...)。

    使用場景:
    - 當需要把用戶行為數據交給外部的分析服務時。
    """

    def __init__(self, callback: Callable[..., None]) -> None:
        self.callback = callback

    def create_context(self, action: Any, prev_state: Any) -> ActionContext:
        context = super().create_context(action, prev_state)
        context['session_id'] = uuid.uuid4().hex
        return context

    def on_next(self, action: Any, prev_state: Any) -> None:
        self.callback(action, prev_state, None, session_id=self._session_id())

    def on_complete(self, next_state: Any, action: Any) -> None:
        self.callback(action, None, next_state, session_id=self._session_id())

    def _session_id(self) -> Optional[str]:
        return self._current_context['session_id'] if self._current_context else None
