"""Tests for the middleware pipeline and bundled middlewares."""

import asyncio
import logging

import pytest
from immutables import Map

from flowstore import (
    AnalyticsMiddleware,
    AwaitableMiddleware,
    BaseMiddleware,
    DevToolsMiddleware,
    ErrorMiddleware,
    LoggerMiddleware,
    MemoryAdapter,
    PersistenceError,
    PersistMiddleware,
    ReducerError,
    StoreConfig,
    ThunkMiddleware,
    create_action,
    create_reducer,
    create_store,
    global_error,
    on,
)

increment = create_action("increment")
decrement = create_action("decrement")
boom = create_action("boom")
failed = create_action("failed", lambda message: message)


def explode(state, action):
    raise ValueError("cannot process")


def reducer():
    return create_reducer(
        Map(count=0, last_error=None),
        on(increment, lambda s, a: s.set("count", s["count"] + 1)),
        on(decrement, lambda s, a: s.set("count", s["count"] - 1)),
        on(boom, explode),
        on(global_error, lambda s, a: s.set("last_error", a.payload["action"])),
        on(failed, lambda s, a: s.set("last_error", a.payload)),
    )


class TestPipeline:
    def test_registration_order(self):
        order = []

        def first(state, action, next_dispatch):
            order.append("first")
            return next_dispatch(action)

        def second(state, action, next_dispatch):
            order.append("second")
            return next_dispatch(action)

        store = create_store(reducer(), middlewares=[first, second])
        store.dispatch(increment())
        assert order == ["first", "second"]

    def test_transform_action(self):
        def invert(state, action, next_dispatch):
            if action.type == increment.type:
                return next_dispatch(decrement())
            return next_dispatch(action)

        store = create_store(reducer(), middlewares=[invert])
        store.dispatch(increment())
        assert store.state["count"] == -1

    def test_short_circuit_drops_action(self):
        def swallow(state, action, next_dispatch):
            return None

        store = create_store(reducer(), middlewares=[swallow])
        values = []
        store.subscribe(lambda s: s["count"], values.append)
        assert store.dispatch(increment()) is None
        assert store.state["count"] == 0
        assert values == []

    def test_middleware_receives_current_state(self):
        seen = []

        def spy(state, action, next_dispatch):
            seen.append(state["count"])
            return next_dispatch(action)

        store = create_store(reducer(), middlewares=[spy])
        store.dispatch(increment())
        store.dispatch(increment())
        assert seen == [0, 1]


class TestBaseMiddleware:
    def test_hooks(self):
        events = []

        class Recorder(BaseMiddleware):
            def on_next(self, action, prev_state):
                events.append(("next", action.type, prev_state["count"]))

            def on_complete(self, next_state, action):
                events.append(("complete", action.type, next_state["count"]))

            def on_error(self, error, action):
                events.append(("error", action.type, type(error).__name__))

        store = create_store(reducer(), middlewares=[Recorder])
        store.dispatch(increment())
        with pytest.raises(ReducerError):
            store.dispatch(boom())

        assert events == [
            ("next", "increment", 0),
            ("complete", "increment", 1),
            ("next", "boom", 1),
            ("error", "boom", "ReducerError"),
        ]


class TestLoggerMiddleware:
    def test_logs_actions_and_states(self, caplog):
        caplog.set_level(logging.INFO, logger="flowstore.middleware")
        store = create_store(reducer(), middlewares=[LoggerMiddleware])
        store.dispatch(increment())

        messages = [r.getMessage() for r in caplog.records if r.name == "flowstore.middleware"]
        assert messages[0] == "dispatching increment"
        assert messages[1].startswith("state before increment")
        assert messages[2].startswith("state after increment")


class TestThunkMiddleware:
    def test_thunk_dispatches_follow_ups(self):
        store = create_store(reducer(), middlewares=[ThunkMiddleware])
        seen = []

        def thunk(dispatch, get_state):
            dispatch(increment())
            dispatch(increment())
            seen.append(get_state()["count"])
            return "done"

        assert store.dispatch(thunk) == "done"
        assert store.state["count"] == 2
        # follow-ups are processed after the thunk's dispatch completes
        assert seen == [0]

    def test_plain_actions_pass_through(self):
        store = create_store(reducer(), middlewares=[ThunkMiddleware])
        store.dispatch(increment())
        assert store.state["count"] == 1


class TestAwaitableMiddleware:
    def test_result_dispatched_as_new_dispatch(self):
        async def main():
            store = create_store(reducer(), middlewares=[AwaitableMiddleware])

            async def fetch():
                await asyncio.sleep(0)
                return increment()

            task = store.dispatch(fetch())
            assert store.state["count"] == 0
            await task
            await asyncio.sleep(0)
            return store.state["count"]

        assert asyncio.run(main()) == 1

    def test_cancelled_task_dispatches_nothing(self):
        async def main():
            store = create_store(reducer(), middlewares=[AwaitableMiddleware])

            async def slow():
                await asyncio.sleep(10)
                return increment()

            task = store.dispatch(slow())
            await asyncio.sleep(0)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
            await asyncio.sleep(0)
            return store.state["count"]

        assert asyncio.run(main()) == 0

    def test_failure_mapped_to_recovery_action(self):
        async def main():
            middleware = AwaitableMiddleware(on_failure=lambda err: failed(str(err)))
            store = create_store(reducer(), middlewares=[middleware])

            async def broken():
                raise ConnectionError("offline")

            task = store.dispatch(broken())
            with pytest.raises(ConnectionError):
                await task
            await asyncio.sleep(0)
            return store.state["last_error"]

        assert asyncio.run(main()) == "offline"


class TestErrorMiddleware:
    def test_dispatches_global_error_and_reraises(self):
        store = create_store(reducer(), middlewares=[ErrorMiddleware])
        with pytest.raises(ReducerError):
            store.dispatch(boom())
        assert store.state["last_error"] == "boom"
        assert store.state["count"] == 0


class TestPersistMiddleware:
    def test_saves_committed_state(self):
        adapter = MemoryAdapter()
        store = create_store(reducer(), middlewares=[PersistMiddleware(adapter)])
        store.dispatch(increment())
        assert adapter.load() == store.state

    def test_saves_selected_keys(self):
        adapter = MemoryAdapter()
        store = create_store(reducer(), middlewares=[PersistMiddleware(adapter, keys=["count"])])
        store.dispatch(increment())
        assert adapter.load() == Map(count=1)

    def test_keys_from_config(self):
        adapter = MemoryAdapter()
        store = create_store(
            reducer(),
            middlewares=[PersistMiddleware(adapter)],
            config=StoreConfig(persist_keys=["last_error"]),
        )
        store.dispatch(increment())
        assert adapter.load() == Map(last_error=None)

    def test_skips_unchanged_state(self):
        adapter = MemoryAdapter()
        store = create_store(reducer(), middlewares=[PersistMiddleware(adapter)])
        store.dispatch(increment())
        store.dispatch(create_action("noop")())
        assert adapter.save_count == 1

    def test_write_failure_is_logged_not_raised(self, caplog):
        class BrokenAdapter:
            def save(self, state):
                raise PersistenceError("disk full", operation="save")

            def load(self):
                return None

        store = create_store(reducer(), middlewares=[PersistMiddleware(BrokenAdapter())])
        store.dispatch(increment())
        assert store.state["count"] == 1
        assert any("write failed" in r.getMessage() for r in caplog.records)


class TestDevToolsMiddleware:
    def test_history_and_time_travel(self):
        devtools = DevToolsMiddleware()
        store = create_store(reducer(), middlewares=[devtools])
        store.dispatch(increment())
        store.dispatch(increment())

        history = devtools.get_history()
        assert [action.type for _, action, _ in history] == ["increment", "increment"]
        assert history[0][0]["count"] == 0
        assert history[1][2]["count"] == 2

        devtools.jump_to(0)
        assert store.state["count"] == 1

    def test_max_history(self):
        devtools = DevToolsMiddleware(max_history=2)
        store = create_store(reducer(), middlewares=[devtools])
        for _ in range(5):
            store.dispatch(increment())
        assert [s["count"] for _, _, s in devtools.get_history()] == [4, 5]


class TestAnalyticsMiddleware:
    def test_callback_before_and_after(self):
        calls = []

        def track(action, prev_state, next_state, session_id=None):
            calls.append((action.type, prev_state is not None, next_state is not None, session_id))

        store = create_store(reducer(), middlewares=[AnalyticsMiddleware(track)])
        store.dispatch(increment())

        assert [c[:3] for c in calls] == [("increment", True, False), ("increment", False, True)]
        assert calls[0][3] == calls[1][3] is not None
