from pathlib import Path

from flowstore import (
    DevToolsMiddleware,
    ErrorMiddleware,
    JsonFileAdapter,
    LoggerMiddleware,
    PersistMiddleware,
    StoreConfig,
    create_store,
    restore_state,
)
from counter_effects import CounterEffects
from counter_reducers import root_reducer

adapter = JsonFileAdapter(Path(__file__).with_name("user_state.json"))
devtools = DevToolsMiddleware(max_history=50)

# 創建Store，user slice 在每次 dispatch 後持久化
store = create_store(
    root_reducer,
    middlewares=[LoggerMiddleware, ErrorMiddleware, devtools, PersistMiddleware(adapter)],
    config=StoreConfig(name="counter", log_level="INFO", persist_keys=["user"]),
)

# 註冊Effects
store.register_effects(CounterEffects)


def restore_user() -> bool:
    """把上次保存的 user slice 放回目前的狀態"""
    saved = adapter.load()
    if saved is None or "user" not in saved:
        return False
    store.dispatch(restore_state(store.state.set("user", saved["user"])))
    return True
