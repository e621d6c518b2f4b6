from typing import Any, Callable, Dict, Mapping, Tuple, Union

from immutables import Map

from .actions import Action, ActionCreator, restore_state
from .errors import ReducerError
from .immutable_utils import freeze
from .types import S

Reducer = Callable[[S, Action[Any]], S]
SliceAccessor = Callable[[Any, str], Any]

_MISSING = object()


def create_reducer(initial_state: S, *handlers) -> Reducer[S]:
    """
    創建一個 reducer 函式，用於處理狀態變更。

    Args:
        initial_state: 初始狀態。
        *handlers: 一系列 (action_type, handler_fn) 元組或使用 on 函式創建的處理器。

    Returns:
        一個 reducer 函式，根據 action 的類型執行對應的處理邏輯。
    """
    action_handlers = {}  # 儲存 action 類型與處理函式的對應關係

    for handler in handlers:
        if isinstance(handler, tuple) and len(handler) == 2:
            action_type, handler_fn = handler
            action_handlers[_action_type_of(action_type)] = handler_fn
        else:
            action_handlers.update(handler)

    def reducer(state: S = initial_state, action: Action = None) -> S:
        """
        根據 action 類型查找處理函式；沒有對應處理器時原樣返回 state。
        """
        if action is None:
            return state

        handler = action_handlers.get(action.type)
        if handler:
            return handler(state, action)
        return state

    reducer.initial_state = initial_state
    reducer.handlers = action_handlers

    return reducer


def on(action_creator_or_type, handler):
    """
    創建一個 action 類型與處理函式的映射。

    Args:
        action_creator_or_type: Action 創建器或 Action 類型字串。
        handler: 處理該 Action 的函式，接收 (state, action) 並返回新狀態。

    Returns:
        一個包含 {action_type: handler} 的字典。
    """
    return {_action_type_of(action_creator_or_type): handler}


def _action_type_of(action_creator_or_type) -> str:
    if isinstance(action_creator_or_type, ActionCreator) or (
        callable(action_creator_or_type) and hasattr(action_creator_or_type, 'type')
    ):
        return action_creator_or_type.type
    return str(action_creator_or_type)


def _default_accessor(state: Any, key: str) -> Any:
    if state is None:
        return _MISSING
    return state.get(key, _MISSING)


def combine_reducers(reducers: Dict[str, Union[Reducer, Tuple[Reducer, SliceAccessor]]]) -> Reducer[Map]:
    """
    將多個 slice reducer 組合成一個根 reducer。

    每次 dispatch 都會以 (子狀態, action) 呼叫每個子 reducer 恰好一次，
    再無損地組裝回同類型的 mapping（Map 或 dict）。沒有任何 slice 變化時
    返回原本的 state 對象；根狀態不是 mapping 時拋出 ReducerError。

    Args:
        reducers: slice 名稱到 reducer 的映射；值也可以是 (reducer, accessor) 元組，
            accessor 接收 (state, slice 名稱) 並返回該 slice 的子狀態。

    Returns:
        組合後的 reducer，帶有 initial_state 屬性（各 slice 初始狀態組成的 Map）。
    """
    entries = []
    for key, value in reducers.items():
        if isinstance(value, tuple):
            child, accessor = value
        else:
            child, accessor = value, _default_accessor
        entries.append((key, child, accessor))

    initial_state = Map({
        key: freeze(getattr(child, "initial_state", None)) for key, child, _ in entries
    })

    def combination(state: Map = initial_state, action: Action = None) -> Map:
        if state is None:
            state = initial_state
        elif not isinstance(state, (Map, Mapping)):
            raise ReducerError(
                f"combine_reducers needs a mapping root state, got {type(state).__name__}",
                reducer_name="combine_reducers",
                action_type=getattr(action, "type", None),
                state=state,
            )

        updates = {}
        for key, child, accessor in entries:
            prev_substate = accessor(state, key)
            if prev_substate is _MISSING:
                prev_substate = initial_state[key]
                changed = True
            else:
                changed = False
            next_substate = child(prev_substate, action)

            if changed or next_substate is not prev_substate:
                updates[key] = next_substate

        if not updates:
            return state
        return _merge_slices(state, updates)

    combination.initial_state = initial_state
    combination.reducers = {key: child for key, child, _ in entries}
    return combination


def _merge_slices(state: Mapping, updates: Dict[str, Any]) -> Mapping:
    # Map 以 mutate() 共享未變的子樹；其他 mapping 複製成新的 dict
    if isinstance(state, Map):
        mutation = state.mutate()
        for key, value in updates.items():
            mutation[key] = value
        return mutation.finish()
    merged = dict(state)
    merged.update(updates)
    return merged


def with_restore(reducer: Reducer[S]) -> Reducer[S]:
    """
    包裝一個根 reducer，使其處理保留的 restore_state 動作。

    恢復動作以 payload 整體替換狀態，而不是逐欄位合併，
    以免殘留過期的子結構。其他動作原樣交給被包裝的 reducer。
    """
    if getattr(reducer, 'handles_restore', False):
        return reducer

    def restorable(state: S, action: Action = None) -> S:
        if action is not None and action.type == restore_state.type:
            return action.payload
        return reducer(state, action)

    restorable.initial_state = getattr(reducer, 'initial_state', None)
    restorable.handles_restore = True
    restorable.__wrapped__ = reducer
    restorable.__name__ = getattr(reducer, '__name__', 'reducer')
    return restorable
