"""
Selector 範圍的訂閱登記表。

每個訂閱保存 (selector, last_value, callback)，狀態替換時只在
selector 結果變化時通知 callback。
"""

import itertools
import logging
import operator
from typing import Any, Dict, List, Optional

from reactivex.disposable import Disposable

from .errors import SubscriptionError
from .types import EqualityFn, StateSelector, SubscriberCallback

logger = logging.getLogger(__name__)


class Subscription:
    """一個登記中的訂閱項。"""

    __slots__ = ("id", "selector", "callback", "equals", "last_value", "active")

    def __init__(self, sub_id: int, selector: StateSelector, callback: SubscriberCallback,
                 equals: EqualityFn, last_value: Any) -> None:
        self.id = sub_id
        self.selector = selector
        self.callback = callback
        self.equals = equals
        self.last_value = last_value
        self.active = True

    def __repr__(self) -> str:
        return f"Subscription(id={self.id}, active={self.active}, last_value={self.last_value!r})"


class SubscriptionRegistry:
    """
    追蹤觀察者及其上一次看到的派生值。

    通知按照登記順序進行；相同 selector 的多個訂閱是互相獨立的項目。
    """

    def __init__(self) -> None:
        self._subscriptions: Dict[int, Subscription] = {}
        self._ids = itertools.count(1)

    def __len__(self) -> int:
        return len(self._subscriptions)

    def add(self, selector: StateSelector, callback: SubscriberCallback, state: Any,
            equals: Optional[EqualityFn] = None) -> Disposable:
        """
        登記一個觀察者，立即計算 selector(state) 作為 last_value，不觸發 callback。

        Args:
            selector: 從狀態派生值的函數
            callback: 派生值變化時以新值呼叫的函數
            state: 目前的狀態
            equals: 比較新舊值的函數，預設為值相等（operator.eq）

        Returns:
            取消訂閱用的 Disposable

        Raises:
            SubscriptionError: selector 在目前狀態上失敗，訂閱不會被登記
        """
        sub_id = next(self._ids)
        try:
            last_value = selector(state)
        except Exception as err:
            raise SubscriptionError(f"selector failed on subscribe: {err}", subscription_id=sub_id) from err
        sub = Subscription(sub_id, selector, callback, equals or operator.eq, last_value)
        self._subscriptions[sub.id] = sub
        logger.debug("subscription %d added", sub.id)
        return Disposable(lambda: self.remove(sub.id))

    def remove(self, sub_id: int) -> None:
        """移除一個訂閱；對已移除的 id 是空操作。"""
        sub = self._subscriptions.pop(sub_id, None)
        if sub is not None:
            # 正在進行的通知輪次會檢查此旗標
            sub.active = False
            logger.debug("subscription %d removed", sub_id)

    def clear(self) -> None:
        for sub in self._subscriptions.values():
            sub.active = False
        self._subscriptions.clear()

    def notify(self, new_state: Any) -> None:
        """
        以新狀態重新計算每個存活訂閱的 selector，值變化時呼叫 callback。

        單個訂閱者的失敗不會中斷本輪通知；本輪結束後以 SubscriptionError
        拋出第一個失敗。
        """
        errors: List[SubscriptionError] = []

        for sub in list(self._subscriptions.values()):
            if not sub.active:
                continue
            try:
                new_value = sub.selector(new_state)
                changed = not sub.equals(sub.last_value, new_value)
                sub.last_value = new_value
                if changed and sub.active:
                    sub.callback(new_value)
            except Exception as err:
                logger.exception("subscriber %d failed", sub.id)
                error = SubscriptionError(f"subscriber failed: {err}", subscription_id=sub.id)
                error.__cause__ = err
                errors.append(error)

        if errors:
            raise errors[0]
