import json
import time

from flowstore import FlowStoreError, configure_logging
from counter_store import devtools, restore_user, store
from counter_actions import increment, increment_by, decrement, reset, load_count_request, rename_user
from counter_selectors import get_count, get_counter_info

if __name__ == "__main__":
    configure_logging("INFO")
    print("restored user:", restore_user())

    # 訂閱狀態變化
    subscription = store.subscribe(get_count, lambda count: print(f"计数变化: {count}"))

    store.select(get_counter_info).subscribe(
        on_next=lambda info_pair: print(
            f"計數器信息更新: {json.dumps(info_pair[1], ensure_ascii=False, indent=2)}"
        )
    )

    # 分發actions
    print("\n==== 開始測試基本操作 ====")
    store.dispatch(increment())
    store.dispatch(increment_by(5))
    store.dispatch(decrement())
    store.dispatch(reset(10))
    store.dispatch(rename_user("alice"))

    print("\n==== 開始測試錯誤處理 ====")
    try:
        store.dispatch(increment_by("many"))
    except FlowStoreError as err:
        print(f"dispatch failed: {err}")
    print("error recorded in state:", store.state["counter"].error)

    # 觸發異步action
    print("\n==== 開始測試異步操作 ====")
    store.dispatch(load_count_request())
    time.sleep(1.5)

    print("\n==== 時間旅行 ====")
    devtools.jump_to(0)
    print("count after jump:", store.state["counter"].count)

    subscription.dispose()
    store.teardown()

    # 打印最終狀態
    print("\n==== 最終狀態 ====")
    print(store.state)
