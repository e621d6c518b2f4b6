"""
狀態樹的不可變轉換工具。

flowstore 的狀態以 immutables.Map 組成：mapping 變成 Map，序列變成 tuple，
集合變成 frozenset。pydantic 模型只有在明確呼叫 to_immutable 時才會被攤平，
freeze 則保留模型與已經不可變的值。
"""
from typing import Any, Sequence, Type, TypeVar

from immutables import Map
from pydantic import BaseModel

ModelT = TypeVar('ModelT', bound=BaseModel)


def to_immutable(obj: Any) -> Any:
    """遞迴地把 obj 轉成 Map / tuple / frozenset 組成的樹；pydantic 模型先 model_dump 再轉換。"""
    if isinstance(obj, BaseModel):
        obj = obj.model_dump()
    if isinstance(obj, (Map, dict)):
        return Map({key: to_immutable(value) for key, value in obj.items()})
    if isinstance(obj, (list, tuple)):
        return tuple(map(to_immutable, obj))
    if isinstance(obj, (set, frozenset)):
        return frozenset(map(to_immutable, obj))
    return obj


def to_pydantic(state: Any, model_class: Type[ModelT]) -> ModelT:
    """以 model_class 驗證一棵不可變狀態樹，返回模型實例。"""
    return model_class.model_validate(to_dict(state))


def to_dict(obj: Any) -> Any:
    """
    to_immutable 的反向轉換，得到可以交給 JSON 序列化的普通容器。

    Map 變成 dict，tuple 變成 list，frozenset 變成 set，模型以 model_dump 展開。
    """
    if isinstance(obj, BaseModel):
        return obj.model_dump()
    if isinstance(obj, Map):
        return {key: to_dict(value) for key, value in obj.items()}
    if isinstance(obj, tuple):
        return [to_dict(item) for item in obj]
    if isinstance(obj, frozenset):
        return set(map(to_dict, obj))
    return obj


def get_in(state: Map, path: Sequence[Any], default: Any = None) -> Any:
    """沿著路徑讀取巢狀 Map 中的值，路徑不存在時返回 default"""
    current = state
    for key in path:
        if not isinstance(current, Map) or key not in current:
            return default
        current = current[key]
    return current


def update_in(state: Map, path: Sequence[Any], value: Any) -> Map:
    """
    返回一個在 path 位置設為 value 的新 Map，其餘子樹與原 Map 共享。
    若值未變則返回原對象，方便下游做引用比較。
    """
    if not path:
        return value
    key, rest = path[0], path[1:]
    child = state.get(key, Map()) if rest else state.get(key)
    new_child = update_in(child, rest, value) if rest else value
    if key in state and state[key] is new_child:
        return state
    return state.set(key, new_child)


def freeze(obj: Any) -> Any:
    """只把可變容器 (dict / list / set) 轉成不可變形式，其他對象原樣返回"""
    if isinstance(obj, (dict, list, set)):
        return to_immutable(obj)
    return obj
