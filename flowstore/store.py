import collections
import inspect
import logging
import threading
from typing import Any, Deque, Generic, Iterable, List, Optional

from reactivex import Observable, Subject
from reactivex import operators as ops
from reactivex.disposable import Disposable

from .actions import Action, init_store
from .config import StoreConfig
from .effects import EffectsManager
from .errors import ErrorHandler, FlowStoreError, MiddlewareError, ReducerError, StoreError, SubscriptionError
from .immutable_utils import freeze
from .middleware import BaseMiddleware
from .reducers import Reducer, with_restore
from .subscriptions import SubscriptionRegistry
from .types import S, EqualityFn, MiddlewareLike, NextDispatch, StateSelector, SubscriberCallback

_UNSET = object()


class Store(Generic[S]):
    """
    狀態容器，持有唯一的當前狀態、根 reducer 與中介軟體鏈。

    所有狀態變更都經過 dispatch：中介軟體 → reducer → 提交 → 通知訂閱者，
    整個流程在一把可重入鎖之內原子地完成。在 dispatch 進行中再次呼叫
    dispatch（例如 thunk、ErrorMiddleware 或 effects）時，該 action 會排入
    佇列，在目前這次 dispatch 提交並通知完成之後才依序處理。
    """

    def __init__(
        self,
        reducer: Reducer,
        initial_state: Any = _UNSET,
        middlewares: Iterable[MiddlewareLike] = (),
        config: Optional[StoreConfig] = None,
        error_handler: Optional[ErrorHandler] = None,
    ):
        """
        Args:
            reducer: 根 reducer，(state, action) -> state
            initial_state: 初始狀態；省略時使用 reducer.initial_state，
                若沒有此屬性則以 (None, init_store()) 呼叫 reducer 求得
            middlewares: 依序套用的中介軟體
            config: Store 配置
            error_handler: 接收所有 dispatch 失敗的錯誤處理器
        """
        if not callable(reducer):
            raise StoreError("reducer must be callable", operation="create")

        self.config = config or StoreConfig()
        self.error_handler = error_handler or ErrorHandler()
        self.logger = logging.getLogger(f"{__name__}.{self.config.name}")
        self.logger.setLevel(self.config.log_level)

        self._reducer = with_restore(reducer)
        self._state = self._initial_state(reducer, initial_state)
        self._registry = SubscriptionRegistry()
        # 已提交的 action 流，供 effects 使用
        self._action_subject = Subject()
        # 狀態流，發送 (old_state, new_state)
        self._state_subject = Subject()
        self._middleware: List[Any] = []
        self._lock = threading.RLock()
        self._dispatching = False
        self._pending: Deque[Any] = collections.deque()
        self._effects_manager = EffectsManager(self)
        self._dispatch_chain = self._apply_middleware_chain()

        if middlewares:
            self.apply_middleware(*middlewares)

    def _initial_state(self, reducer: Reducer, initial_state: Any) -> Any:
        if initial_state is _UNSET:
            if hasattr(reducer, "initial_state"):
                initial_state = reducer.initial_state
            else:
                initial_state = reducer(None, init_store())
        return self._freeze(initial_state)

    def _freeze(self, state: Any) -> Any:
        # 只轉換可變容器，Map 與 pydantic 模型保持原樣
        if self.config.freeze_state:
            return freeze(state)
        return state

    # ———— 讀取 ————

    @property
    def state(self) -> S:
        """
        當前狀態的快照（不可變，呼叫者不應修改）。
        """
        return self._state

    def get_state(self) -> S:
        return self._state

    @property
    def lock(self) -> threading.RLock:
        """保護 dispatch 的可重入鎖；持有期間不會有其他執行緒提交狀態。"""
        return self._lock

    @property
    def action_stream(self) -> Observable:
        """已提交 action 的 Observable。"""
        return self._action_subject

    # ———— Dispatch ————

    def dispatch(self, action: Any) -> Any:
        """
        分發一個動作。

        Args:
            action: 要分發的 Action（或已註冊中介軟體能處理的其他值，例如 thunk）

        Returns:
            中介軟體鏈的返回值；一般 Action 返回該 Action 本身，
            被丟棄或排入佇列時返回 None。

        Raises:
            ReducerError: reducer 失敗，狀態保持不變
            MiddlewareError: 中介軟體失敗
            SubscriptionError: 狀態已提交，但有訂閱者失敗

        排入佇列的 action 逐一處理，失敗的會交給 error_handler，其後的照常執行；
        全部處理完之後拋出第一個失敗（本次 action 自己的失敗優先）。
        """
        with self._lock:
            if self._dispatching:
                self.logger.debug("queued %s behind running dispatch", getattr(action, "type", action))
                self._pending.append(action)
                return None

            self._dispatching = True
            errors: List[Exception] = []
            result = None
            try:
                try:
                    result = self._run(action)
                except Exception as err:
                    errors.append(err)
                # 單個排隊 action 失敗不影響其後的 action
                while self._pending:
                    try:
                        self._run(self._pending.popleft())
                    except Exception as err:
                        errors.append(err)
            finally:
                self._pending.clear()
                self._dispatching = False

        if errors:
            if len(errors) > 1:
                self.logger.warning("%d dispatches failed in one drain; raising the first", len(errors))
            raise errors[0]
        return result

    def _run(self, action: Any) -> Any:
        try:
            return self._dispatch_chain(action)
        except Exception as err:
            self.error_handler.handle(err, action)
            raise

    def _dispatch_core(self, action: Any) -> Any:
        """
        中介軟體鏈的末端：套用 reducer、提交狀態並通知訂閱者。
        """
        if not isinstance(action, Action):
            raise StoreError(
                f"cannot reduce {type(action).__name__}; dispatch Action instances "
                f"or add a middleware that handles them",
                operation="dispatch",
            )

        old_state = self._state
        try:
            new_state = self._reducer(old_state, action)
        except FlowStoreError:
            raise
        except Exception as err:
            raise ReducerError(
                f"reducer failed on {action.type}: {err}",
                reducer_name=getattr(self._reducer, "__name__", "reducer"),
                action_type=action.type,
                state=old_state,
            ) from err

        self._update_state(old_state, new_state, action)
        return action

    def _update_state(self, old_state: Any, new_state: Any, action: Action) -> None:
        """
        替換當前狀態並通知訂閱者，最後發佈到狀態流與 action 流。
        """
        self._state = new_state
        self.logger.debug("state committed")
        try:
            self._registry.notify(new_state)
        except SubscriptionError:
            if self.config.raise_subscriber_errors:
                raise
        finally:
            if new_state is not old_state:
                self._state_subject.on_next((old_state, new_state))
            self._action_subject.on_next(action)

    # ———— 中介軟體 ————

    def _apply_middleware_chain(self) -> NextDispatch:
        """
        構建中介軟體鏈，將中介軟體按順序包裹在核心 dispatch 外層。
        """
        dispatch = self._dispatch_core
        for mw in reversed(self._middleware):
            dispatch = self._wrap_middleware(mw, dispatch)
        return dispatch

    def _wrap_middleware(self, mw: Any, next_dispatch: NextDispatch) -> NextDispatch:
        name = getattr(mw, "__name__", type(mw).__name__)

        def dispatch(action: Any) -> Any:
            try:
                return mw(self._state, action, next_dispatch)
            except FlowStoreError:
                raise
            except Exception as err:
                raise MiddlewareError(
                    f"middleware {name} failed: {err}",
                    middleware_name=name,
                    action_type=getattr(action, "type", None),
                ) from err

        return dispatch

    def apply_middleware(self, *middlewares: MiddlewareLike) -> "Store[S]":
        """
        一次註冊多個中介軟體，並重建 dispatch 鏈。

        Args:
            *middlewares: 中介軟體類別、實例，或 (state, action, next) 函數
        """
        with self._lock:
            for m in middlewares:
                inst = m() if inspect.isclass(m) else m
                if not callable(inst):
                    raise StoreError(f"middleware {inst!r} is not callable", operation="apply_middleware")
                if hasattr(inst, "bind"):
                    inst.bind(self)
                self._middleware.append(inst)
            self._dispatch_chain = self._apply_middleware_chain()
        return self

    @property
    def middlewares(self) -> List[Any]:
        return list(self._middleware)

    # ———— 訂閱 ————

    def subscribe(self, selector: StateSelector, callback: SubscriberCallback,
                  equals: Optional[EqualityFn] = None) -> Disposable:
        """
        登記一個觀察者；selector 的結果變化時以新值呼叫 callback。

        callback 在觸發它的 dispatch 內同步執行，且在狀態完全提交之後。

        Args:
            selector: 從狀態派生值的函數
            callback: 接收新值的函數
            equals: 自訂比較函數，預設為值相等

        Returns:
            取消訂閱用的 Disposable（呼叫 dispose()）
        """
        with self._lock:
            return self._registry.add(selector, callback, self._state, equals)

    def select(self, selector: Optional[StateSelector] = None) -> Observable:
        """
        選擇狀態的一部分進行觀察。

        Args:
            selector: 一個函數，接收整個狀態並返回希望觀察的部分；
                省略時發送完整的 (old_state, new_state)。

        Returns:
            一個可觀察對象，只在選定部分變化時發送 (舊值, 新值)。
        """
        if selector is None:
            return self._state_subject

        return self._state_subject.pipe(
            ops.map(lambda pair: (selector(pair[0]), selector(pair[1]))),
            ops.filter(lambda pair: pair[0] != pair[1]),
        )

    # ———— Effects 與生命週期 ————

    def register_effects(self, *effects_modules: Any) -> "Store[S]":
        """
        註冊一個或多個效果模組。
        """
        self._effects_manager.add_effects(*effects_modules)
        return self

    def unregister_effects(self, *effects_modules: Any) -> "Store[S]":
        """
        卸載已註冊的效果模組實例。
        """
        self._effects_manager.remove_effects(*effects_modules)
        return self

    def teardown(self) -> None:
        """
        釋放訂閱、effects 與中介軟體持有的資源。
        """
        with self._lock:
            self._effects_manager.teardown()
            for mw in self._middleware:
                if isinstance(mw, BaseMiddleware):
                    mw.teardown()
            self._registry.clear()
            self._action_subject.on_completed()
            self._state_subject.on_completed()

    def __enter__(self) -> "Store[S]":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.teardown()


def create_store(
    reducer: Reducer,
    initial_state: Any = _UNSET,
    *,
    middlewares: Iterable[MiddlewareLike] = (),
    config: Optional[StoreConfig] = None,
    error_handler: Optional[ErrorHandler] = None,
) -> Store:
    """
    創建一個新的 Store 實例。

    Returns:
        Store: 新創建的 Store 實例。
    """
    return Store(reducer, initial_state, middlewares=middlewares, config=config, error_handler=error_handler)
