"""
FlowStore 的 Action 定義模組。

此模組提供 Action 類別以及創建 Action 的功能。
Actions 是描述狀態變更意圖的不可變對象，只攜帶數據，不攜帶行為。
"""
from typing import Any, Callable, Dict, Generic, Optional, Union

from .errors import ActionError
from .immutable_utils import freeze
from .types import P


class Action(Generic[P]):
    """
    表示一個有類型和可選負載的動作。

    泛型參數:
        P: 負載的類型

    屬性:
        type: 動作的類型字符串
        payload: 動作的負載數據（可選）
    """
    __slots__ = ('type', 'payload')

    def __init__(self, type: str, payload: Optional[P] = None):
        if not isinstance(type, str) or not type:
            raise ActionError("Action type must be a non-empty string", action_type=type, payload=payload)
        object.__setattr__(self, 'type', type)
        # dict / list / set 負載凍結為 Map / tuple / frozenset
        object.__setattr__(self, 'payload', freeze(payload))

    def __setattr__(self, name, value):
        raise AttributeError(f"Cannot modify immutable instance attribute '{name}'")

    def __delattr__(self, name):
        raise AttributeError(f"Cannot delete immutable instance attribute '{name}'")

    def __eq__(self, other):
        if not isinstance(other, Action):
            return NotImplemented
        return self.type == other.type and self.payload == other.payload

    def __hash__(self):
        try:
            return hash((self.type, self.payload))
        except TypeError:
            # 不可哈希的負載只按類型哈希，仍與 __eq__ 一致
            return hash(self.type)

    def __repr__(self):
        return f"Action(type='{self.type}', payload={self.payload!r})"


class ActionCreator(Generic[P]):
    """
    Action 生成器，呼叫時返回指定類型的 Action。

    範例:
        >>> increment = create_action("[Counter] Increment")
        >>> increment()  # Action(type="[Counter] Increment", payload=None)
        >>> add = create_action("[Counter] Add", lambda amount: amount)
        >>> add(5)  # Action(type="[Counter] Add", payload=5)
    """

    def __init__(self, action_type: str, prepare_fn: Optional[Callable[..., P]] = None):
        self.type = action_type
        self._prepare_fn = prepare_fn

    def __call__(self, *args: Any, **kwargs: Any) -> Action[P]:
        if self._prepare_fn:
            payload = self._prepare_fn(*args, **kwargs)
        elif len(args) == 1 and not kwargs:
            payload = args[0]
        elif args or kwargs:
            payload: Dict[Union[int, str], Any] = dict(zip(range(len(args)), args))
            payload.update(kwargs)
        else:
            # 無參數，無負載
            return Action(self.type)
        return Action(self.type, payload)

    def match(self, action: Any) -> bool:
        """判斷給定的 action 是否由此生成器產生。"""
        return isinstance(action, Action) and action.type == self.type

    def __repr__(self):
        return f"ActionCreator(type='{self.type}')"


def create_action(action_type: str, prepare_fn: Optional[Callable[..., Any]] = None) -> ActionCreator[Any]:
    """
    創建一個 Action 生成器。

    Args:
        action_type: Action 的類型標識符
        prepare_fn: 可選的預處理函數，用於在創建 Action 前處理輸入參數

    Returns:
        一個可調用的 ActionCreator，帶有 type 屬性
    """
    return ActionCreator(action_type, prepare_fn)


# 根 Actions
init_store = create_action("[Root] Init Store")
# 保留的恢復動作：reducer 以 payload 整體替換狀態
restore_state = create_action("[Root] Restore State", lambda state: state)
