import time
from typing import Any, Callable, List, Optional, Tuple

from .errors import SelectorError
from .types import ResultSelector, StateSelector


def create_selector(
    *selectors: StateSelector,
    result_fn: Optional[ResultSelector] = None,
    deep: bool = False,
    ttl: Optional[float] = None,
    maxsize: int = 128,
) -> StateSelector:
    """
    創建一個複合選擇器，支援記憶化、深淺比較與TTL控制

    Args:
        *selectors: 多個輸入選擇器，這些函數會從 state 中提取對應的值
        result_fn: 處理輸出結果的函數，將多個選擇器的輸出進行處理
        deep: 是否以值相等比較輸入（預設為 False，即以引用比較）
        ttl: 快取有效時間（秒），若超過此時間則重新計算，預設為無限
        maxsize: 緩存的最大條目數，預設為128

    Returns:
        經過快取優化的 selector 函數
    """
    if not selectors:
        raise SelectorError("create_selector requires at least one input selector")
    for select in selectors:
        if not callable(select):
            raise SelectorError("input selectors must be callable", selector_name=repr(select))
    if maxsize < 1:
        raise SelectorError("maxsize must be at least 1", maxsize=maxsize)

    # 如果沒有 result_fn 且只有一個選擇器，直接返回該選擇器
    if not result_fn and len(selectors) == 1:
        return selectors[0]

    # 如果沒有提供 result_fn，預設為返回所有輸入值的元組
    if not result_fn:
        result_fn = lambda *args: args

    # (時間戳, 輸入值, 結果)
    cache: List[Tuple[float, Tuple[Any, ...], Any]] = []
    stats = {"hits": 0, "misses": 0}

    def selector(state: Any) -> Any:
        nonlocal cache

        inputs = tuple(select(state) for select in selectors)
        now = time.monotonic()

        if ttl is not None:
            # 清除過期項
            cache = [item for item in cache if now - item[0] <= ttl]

        for _, cached_inputs, cached_result in cache:
            if _inputs_match(inputs, cached_inputs, deep):
                stats["hits"] += 1
                return cached_result

        # 緩存未命中，計算新結果
        stats["misses"] += 1
        result = result_fn(*inputs)
        while len(cache) >= maxsize:
            cache.pop(0)
        cache.append((now, inputs, result))
        return result

    def cache_info():
        return (stats["hits"], stats["misses"], maxsize, len(cache))

    def cache_clear():
        cache.clear()
        stats["hits"] = stats["misses"] = 0

    selector.cache_info = cache_info  # type: ignore
    selector.cache_clear = cache_clear  # type: ignore

    return selector


def _inputs_match(inputs: Tuple[Any, ...], cached_inputs: Tuple[Any, ...], deep: bool) -> bool:
    if len(inputs) != len(cached_inputs):
        return False
    if deep:
        return all(a is b or a == b for a, b in zip(inputs, cached_inputs))
    return all(a is b for a, b in zip(inputs, cached_inputs))


def select_path(*path: Any, default: Any = None) -> Callable[[Any], Any]:
    """
    返回一個沿 path 讀取巢狀狀態的選擇器。

    例如 select_path("user", "name") 等同於 lambda s: s["user"]["name"]，
    但路徑不存在時返回 default。
    """
    def selector(state: Any) -> Any:
        current = state
        for key in path:
            try:
                current = current[key]
            except (KeyError, IndexError, TypeError):
                return default
        return current

    selector.path = path  # type: ignore
    return selector
