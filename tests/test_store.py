"""Tests for Store dispatch, rollback and observation."""

import threading

import pytest
from immutables import Map

from flowstore import (
    ErrorHandler,
    LoggerMiddleware,
    MiddlewareError,
    ReducerError,
    Store,
    StoreConfig,
    StoreError,
    ThunkMiddleware,
    combine_reducers,
    create_action,
    create_reducer,
    create_store,
    on,
    restore_state,
)

increment = create_action("increment")
decrement = create_action("decrement")
boom = create_action("boom")
rename = create_action("rename", lambda name: name)
noop = create_action("noop")


def explode(state, action):
    raise ValueError("cannot process")


def counter_reducer():
    return create_reducer(
        Map(count=0),
        on(increment, lambda s, a: s.set("count", s["count"] + 1)),
        on(decrement, lambda s, a: s.set("count", s["count"] - 1)),
        on(boom, explode),
    )


class TestStoreBasics:
    def test_counter_scenario(self):
        store = create_store(counter_reducer(), {"count": 0})
        values = []
        store.subscribe(lambda s: s["count"], values.append)

        store.dispatch(increment())
        store.dispatch(increment())
        store.dispatch(decrement())

        assert store.get_state()["count"] == 1
        assert values == [1, 2, 1]

    def test_initial_state_defaults_to_reducer_initial(self):
        store = create_store(counter_reducer())
        assert store.state == Map(count=0)

    def test_initial_state_from_init_action(self):
        def reducer(state, action):
            return Map(ready=True) if state is None else state
        store = Store(reducer)
        assert store.state == Map(ready=True)

    def test_dict_initial_state_is_frozen(self):
        store = create_store(counter_reducer(), {"count": 0, "tags": ["a"]})
        assert isinstance(store.state, Map)
        assert store.state["tags"] == ("a",)

    def test_freeze_can_be_disabled(self):
        initial = {"count": 0}
        store = create_store(lambda s, a: s, initial, config=StoreConfig(freeze_state=False))
        assert store.state is initial

    def test_dispatch_returns_action(self):
        store = create_store(counter_reducer())
        action = increment()
        assert store.dispatch(action) is action

    def test_unknown_action_keeps_state_object(self):
        store = create_store(counter_reducer())
        before = store.state
        store.dispatch(noop())
        assert store.state is before

    def test_non_action_without_middleware_fails(self):
        store = create_store(counter_reducer())
        with pytest.raises(StoreError):
            store.dispatch(lambda dispatch, get_state: None)

    def test_reducer_must_be_callable(self):
        with pytest.raises(StoreError):
            Store("not a reducer")


class TestFailureSemantics:
    def test_reducer_failure_rolls_back(self):
        store = create_store(counter_reducer())
        store.dispatch(increment())
        before = store.state

        with pytest.raises(ReducerError) as excinfo:
            store.dispatch(boom())

        assert store.state is before
        assert isinstance(excinfo.value.__cause__, ValueError)
        assert excinfo.value.details["action_type"] == "boom"
        assert excinfo.value.state is before

    def test_reducer_failure_does_not_notify(self):
        store = create_store(counter_reducer())
        values = []
        store.subscribe(lambda s: s, values.append)
        with pytest.raises(ReducerError):
            store.dispatch(boom())
        assert values == []

    def test_middleware_failure_skips_reducer(self):
        reduced = []

        def reducer(state, action):
            reduced.append(action.type)
            return state

        def guard(state, action, next_dispatch):
            raise RuntimeError("denied")

        store = create_store(reducer, Map(), middlewares=[guard])
        with pytest.raises(MiddlewareError) as excinfo:
            store.dispatch(increment())

        assert reduced == []
        assert excinfo.value.details["middleware_name"] == "guard"
        assert isinstance(excinfo.value.__cause__, RuntimeError)

    def test_failures_reported_to_error_handler(self):
        handler = ErrorHandler(log_errors=False)
        reported = []
        handler.register_handler(lambda error, action: reported.append((type(error), action.type)))

        store = create_store(counter_reducer(), error_handler=handler)
        with pytest.raises(ReducerError):
            store.dispatch(boom())

        assert reported == [(ReducerError, "boom")]

    def test_store_usable_after_failure(self):
        store = create_store(counter_reducer())
        with pytest.raises(ReducerError):
            store.dispatch(boom())
        store.dispatch(increment())
        assert store.state["count"] == 1


class TestRestore:
    def test_restore_replaces_state(self):
        root = combine_reducers({"counter": counter_reducer()})
        store = create_store(root)
        store.dispatch(increment())

        s0 = Map(counter=Map(count=42))
        store.dispatch(restore_state(s0))
        assert store.get_state() == s0

    def test_restore_notifies_subscribers(self):
        store = create_store(counter_reducer())
        values = []
        store.subscribe(lambda s: s["count"], values.append)
        store.dispatch(restore_state({"count": 7}))
        assert values == [7]


class TestMiddlewareTransparency:
    def _states(self, *middlewares):
        store = create_store(counter_reducer(), middlewares=middlewares)
        states = []
        store.subscribe(lambda s: s, states.append)
        for action in (increment(), increment(), noop(), decrement()):
            store.dispatch(action)
        return states

    def test_logging_middleware_does_not_change_states(self):
        assert self._states(LoggerMiddleware) == self._states()


class TestReentrantDispatch:
    def test_dispatch_from_subscriber_is_queued(self):
        store = create_store(counter_reducer())
        seen = []

        def on_count(count):
            seen.append(count)
            if count == 1:
                store.dispatch(increment())
                # still the committed state of the outer dispatch
                seen.append(("inside", store.state["count"]))

        store.subscribe(lambda s: s["count"], on_count)
        store.dispatch(increment())

        assert seen == [1, ("inside", 1), 2]
        assert store.state["count"] == 2

    def test_queued_action_runs_after_failed_dispatch(self):
        store = create_store(counter_reducer())

        def failing_then_followup(state, action, next_dispatch):
            if action.type == boom.type:
                store.dispatch(increment())
            return next_dispatch(action)

        store.apply_middleware(failing_then_followup)
        with pytest.raises(ReducerError):
            store.dispatch(boom())
        assert store.state["count"] == 1

    def test_failed_queued_action_does_not_drop_later_ones(self):
        handler = ErrorHandler(log_errors=False)
        reported = []
        handler.register_handler(lambda error, action: reported.append(action.type))
        store = create_store(counter_reducer(), middlewares=[ThunkMiddleware], error_handler=handler)

        def thunk(dispatch, get_state):
            dispatch(boom())
            dispatch(increment())
            dispatch(increment())

        with pytest.raises(ReducerError) as excinfo:
            store.dispatch(thunk)

        assert excinfo.value.details["action_type"] == "boom"
        assert store.state["count"] == 2
        assert reported == ["boom"]

    def test_outer_failure_raised_before_queued_failure(self):
        store = create_store(counter_reducer())

        def queue_another_failure(state, action, next_dispatch):
            if action.type == decrement.type:
                store.dispatch(boom())
                raise RuntimeError("rejected")
            return next_dispatch(action)

        store.apply_middleware(queue_another_failure)
        with pytest.raises(MiddlewareError):
            store.dispatch(decrement())
        store.dispatch(increment())
        assert store.state["count"] == 1


class TestThreading:
    def test_concurrent_dispatches_do_not_interleave(self):
        store = create_store(counter_reducer())
        counts = []
        store.subscribe(lambda s: s["count"], counts.append)

        def worker():
            for _ in range(200):
                store.dispatch(increment())

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert store.state["count"] == 800
        assert counts == list(range(1, 801))


class TestSelect:
    def test_select_emits_pairs_on_change(self):
        root = combine_reducers({
            "counter": counter_reducer(),
            "user": create_reducer(Map(name="guest"), on(rename, lambda s, a: s.set("name", a.payload))),
        })
        store = create_store(root)
        pairs = []
        store.select(lambda s: s["counter"]["count"]).subscribe(on_next=pairs.append)

        store.dispatch(increment())
        store.dispatch(rename("alice"))
        store.dispatch(increment())

        assert pairs == [(0, 1), (1, 2)]

    def test_select_without_selector_emits_states(self):
        store = create_store(counter_reducer())
        pairs = []
        store.select().subscribe(on_next=pairs.append)
        store.dispatch(noop())
        store.dispatch(increment())
        assert pairs == [(Map(count=0), Map(count=1))]


class TestLifecycle:
    def test_context_manager_tears_down(self):
        with create_store(counter_reducer()) as store:
            values = []
            store.subscribe(lambda s: s["count"], values.append)
        store.dispatch(increment())
        assert values == []

    def test_apply_middleware_instantiates_classes(self):
        store = create_store(counter_reducer())
        store.apply_middleware(LoggerMiddleware)
        assert isinstance(store.middlewares[0], LoggerMiddleware)
        assert store.middlewares[0].store is store
