import time
from typing import Optional

from immutables import Map
from pydantic import BaseModel, ConfigDict

from flowstore import combine_reducers, create_reducer, global_error, on
from counter_actions import (
    increment,
    decrement,
    reset,
    increment_by,
    load_count_request,
    load_count_success,
    load_count_failure,
    rename_user,
)

# ====== Model Definition ======
class CounterState(BaseModel):
    model_config = ConfigDict(frozen=True)

    count: int = 0
    loading: bool = False
    error: Optional[str] = None
    last_updated: Optional[float] = None

# ====== Handlers ======
def increment_handler(state: CounterState, action) -> CounterState:
    return state.model_copy(update={"count": state.count + 1, "last_updated": time.time()})

def decrement_handler(state: CounterState, action) -> CounterState:
    return state.model_copy(update={"count": state.count - 1, "last_updated": time.time()})

def reset_handler(state: CounterState, action) -> CounterState:
    return state.model_copy(update={"count": action.payload, "last_updated": time.time()})

def increment_by_handler(state: CounterState, action) -> CounterState:
    if not isinstance(action.payload, int):
        raise TypeError(f"increment_by expects an int, got {action.payload!r}")
    return state.model_copy(update={"count": state.count + action.payload, "last_updated": time.time()})

def load_count_request_handler(state: CounterState, action) -> CounterState:
    return state.model_copy(update={"loading": True, "error": None})

def load_count_success_handler(state: CounterState, action) -> CounterState:
    return state.model_copy(update={"loading": False, "count": action.payload, "last_updated": time.time()})

def load_count_failure_handler(state: CounterState, action) -> CounterState:
    return state.model_copy(update={"loading": False, "error": action.payload})

def global_error_handler(state: CounterState, action) -> CounterState:
    # 任何失敗都記錄在計數器的 error 欄位
    return state.model_copy(update={"error": action.payload["error"]})

# ====== Reducers ======
counter_reducer = create_reducer(
    CounterState(),
    on(increment, increment_handler),
    on(decrement, decrement_handler),
    on(reset, reset_handler),
    on(increment_by, increment_by_handler),
    on(load_count_request, load_count_request_handler),
    on(load_count_success, load_count_success_handler),
    on(load_count_failure, load_count_failure_handler),
    on(global_error, global_error_handler),
)

user_reducer = create_reducer(
    Map(name="guest", visits=0),
    on(rename_user, lambda state, action: state.set("name", action.payload)),
    # 與 counter 同時響應 increment
    on(increment, lambda state, action: state.set("visits", state["visits"] + 1)),
)

root_reducer = combine_reducers({"counter": counter_reducer, "user": user_reducer})
