from flowstore import create_selector

# 定義Selectors
get_counter_state = lambda state: state["counter"]
get_user_state = lambda state: state["user"]
get_count = create_selector(
    get_counter_state, result_fn=lambda counter: counter.count
)
get_loading = create_selector(
    get_counter_state, result_fn=lambda counter: counter.loading
)
get_error = create_selector(
    get_counter_state, result_fn=lambda counter: counter.error
)
# 复合选择器
get_counter_info = create_selector(
    get_count,
    get_user_state,
    result_fn=lambda count, user: {"count": count, "user": user["name"], "visits": user["visits"]},
)
