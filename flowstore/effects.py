import functools
import inspect
import logging
from typing import Any, Dict, List

from reactivex import Observable
from reactivex import operators as ops
from reactivex.abc import DisposableBase

from .actions import Action

logger = logging.getLogger(__name__)


class Effect:
    """
    effect 方法的返回值，包住要訂閱的 Observable。
    """

    def __init__(self, source: Observable):
        """
        :param source: 由 action 流派生出來的 Observable。
        """
        self.source = source


def create_effect(effect_fn=None, *, dispatch: bool = True):
    """
    把 effect 模組上的方法標記為 Effect。

    Effect 接收已提交的 action 資料流；它發出的每個 Action 都會作為
    一次新的、獨立的 dispatch 送回 Store。

    用法：
      @create_effect
      def foo(self, action_stream): ...
    或
      @create_effect(dispatch=False)
      def bar(self, action_stream): ...

    :param effect_fn: 接收 action_stream 並返回 Observable 的方法。
    :param dispatch: 是否自動 dispatch 發出的 Action，默認為 True。
    :return: 標記後的方法；以 create_effect(dispatch=...) 形式呼叫時返回裝飾器。
    """
    if effect_fn is None:
        def decorator(fn):
            return create_effect(fn, dispatch=dispatch)
        return decorator

    @functools.wraps(effect_fn)
    def wrapper(*args, **kwargs):
        return Effect(effect_fn(*args, **kwargs))

    wrapper.is_effect = True
    wrapper.dispatch = dispatch
    return wrapper


class EffectsManager:
    """
    把 effect 模組接到 Store 的 action 流上，並記住每個模組的訂閱以便卸載。
    """

    def __init__(self, store):
        """
        :param store: 提供 action_stream 與 dispatch 的 Store。
        """
        self.store = store
        self._effects_modules: List[Any] = []
        self._subs_by_module: Dict[Any, List[DisposableBase]] = {}

    def add_effects(self, *effects_items):
        """
        添加效果模組。

        :param effects_items: 一個或多個 Effect 類別、實例或它們的列表。
        """
        for item in effects_items:
            for instance in self._process_effects_item(item):
                if instance not in self._effects_modules:
                    self._effects_modules.append(instance)
                    self._register_module(instance)

    def _process_effects_item(self, item):
        if isinstance(item, (list, tuple)):
            instances = []
            for sub in item:
                instances.extend(self._process_effects_item(sub))
            return instances
        if inspect.isclass(item):
            return [item()]
        return [item]

    def _register_module(self, module):
        subs = self._subs_by_module.setdefault(module, [])
        for name, member in inspect.getmembers(module):
            if not getattr(member, "is_effect", False):
                continue
            effect_instance = member(self.store.action_stream)
            if not isinstance(effect_instance, Effect):
                continue
            source = effect_instance.source
            if member.dispatch:
                source = source.pipe(ops.filter(lambda a: isinstance(a, Action)))
                on_next = self._dispatcher(module, name)
            else:
                on_next = lambda _: None
            subs.append(
                source.subscribe(
                    on_next=on_next,
                    on_error=functools.partial(self._on_error, module, name),
                )
            )
            logger.debug("registered effect %s.%s", type(module).__name__, name)

    def _dispatcher(self, module, name):
        def dispatcher(action):
            self.store.dispatch(action)
        dispatcher.__name__ = f"{type(module).__name__}.{name}"
        return dispatcher

    def _on_error(self, module, name, err):
        logger.error("effect %s.%s terminated: %s", type(module).__name__, name, err)

    def remove_effects(self, *modules):
        """
        取消指定模組實例的全部訂閱；其餘模組照常運作。
        """
        for module in modules:
            for sub in self._subs_by_module.pop(module, []):
                sub.dispose()
            if module in self._effects_modules:
                self._effects_modules.remove(module)

    def teardown(self):
        """
        卸載全部模組，Store teardown 時呼叫。
        """
        self.remove_effects(*list(self._effects_modules))
