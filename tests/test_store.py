# ruff: noqa: D100, D101, D102, D103, D104, D107
from __future__ import annotations

import gc
import threading
import time
from dataclasses import replace
from typing import TYPE_CHECKING, Any

import pytest
from immutable import Immutable

from flux_store import (
    BaseAction,
    DuplicateActionKindError,
    InitAction,
    ReducerThrewError,
    ReentrantDispatchError,
    Store,
    StoreDisposedError,
    create_reducer,
    on,
)

if TYPE_CHECKING:
    from collections.abc import Generator


class CounterState(Immutable):
    count: int


class CartState(Immutable):
    items: tuple[str, ...]


class IncrementAction(BaseAction, kind='increment'): ...


class AddItemAction(BaseAction, kind='[Cart] Add Item'):
    item: str


class CorruptAction(BaseAction, kind='corrupt'): ...


class NothingAction(BaseAction, kind='nothing'): ...


def corrupt_cart(state: CartState, action: CorruptAction) -> CartState:
    _ = state, action
    msg = 'cart is corrupted'
    raise ValueError(msg)


counter_reducer = create_reducer(
    CounterState(count=0),
    on(IncrementAction, lambda state, _: replace(state, count=state.count + 1)),
)

cart_reducer = create_reducer(
    CartState(items=()),
    on(
        AddItemAction,
        lambda state, action: replace(state, items=(*state.items, action.item)),
    ),
    on(CorruptAction, corrupt_cart),
)


@pytest.fixture
def store() -> Generator[Store, None, None]:
    store = Store({'counter': counter_reducer, 'cart': cart_reducer})
    yield store
    store.dispose()


def test_initial_state(store: Store) -> None:
    state = store.get_state()
    assert state.counter == CounterState(count=0)
    assert state.cart == CartState(items=())
    assert store.state is state


def test_every_intermediate_state_is_observed(store: Store) -> None:
    observed = []
    store.subscribe(observed.append)

    for _ in range(3):
        store.dispatch(IncrementAction())

    assert [state.counter.count for state in observed] == [1, 2, 3]
    assert len({id(state) for state in observed}) == 3
    assert store.get_state().counter == CounterState(count=3)


def test_unchanged_state_is_not_republished(store: Store) -> None:
    observed = []
    store.subscribe(observed.append)
    state = store.get_state()

    store.dispatch(NothingAction())

    assert observed == []
    assert store.get_state() is state


def test_unchanged_slices_are_shared(store: Store) -> None:
    before = store.get_state()

    store.dispatch(IncrementAction())

    after = store.get_state()
    assert after is not before
    assert after.cart is before.cart
    assert after.counter is not before.counter


def test_observers_are_called_in_registration_order(store: Store) -> None:
    calls = []
    for index in range(5):
        store.subscribe(lambda _, index=index: calls.append(index))

    store.dispatch(IncrementAction())

    assert calls == [0, 1, 2, 3, 4]


def test_unsubscribe(store: Store) -> None:
    times_called = 0

    def observer(_: object) -> None:
        nonlocal times_called
        times_called += 1

    subscription = store.subscribe(observer)
    store.dispatch(IncrementAction())
    subscription.unsubscribe()
    store.dispatch(IncrementAction())
    subscription()

    assert times_called == 1


def test_weak_observer_is_dropped_when_collected(store: Store) -> None:
    times_called = 0

    def observer(_: object) -> None:
        nonlocal times_called
        times_called += 1

    store.subscribe(observer, keep_ref=False)
    store.dispatch(IncrementAction())
    del observer
    gc.collect()
    store.dispatch(IncrementAction())

    assert times_called == 1


def test_dispatching_a_list(store: Store) -> None:
    store.dispatch(
        [AddItemAction(item='apple'), AddItemAction(item='pear')],
        IncrementAction(),
    )

    assert store.get_state().cart.items == ('apple', 'pear')
    assert store.get_state().counter.count == 1


def test_dispatching_a_non_action(store: Store) -> None:
    with pytest.raises(TypeError, match=r'^Only actions can be dispatched'):
        store.dispatch(IncrementAction(), 42)  # type: ignore [arg-type]

    assert store.get_state().counter.count == 0


def test_dispatch_from_observer_is_deferred(store: Store) -> None:
    observed = []

    def dispatch_more(state: Any) -> None:
        if state.counter.count == 1 and not state.cart.items:
            store.dispatch(AddItemAction(item='apple'))
            assert store.get_state().cart.items == ()

    store.subscribe(dispatch_more)
    store.subscribe(
        lambda state: observed.append((state.counter.count, state.cart.items)),
    )

    store.dispatch(IncrementAction())

    assert observed == [(1, ()), (1, ('apple',))]


def test_deferred_actions_keep_fifo_order(store: Store) -> None:
    def dispatch_more(state: Any) -> None:
        if state.counter.count == 1 and not state.cart.items:
            store.dispatch(AddItemAction(item='first'))
            store.dispatch(AddItemAction(item='second'))

    store.subscribe(dispatch_more)
    store.dispatch(IncrementAction())

    assert store.get_state().cart.items == ('first', 'second')


def test_dispatch_from_reducer_is_rejected() -> None:
    def impure_reducer(state: CounterState | None, action: BaseAction) -> CounterState:
        if state is None:
            return CounterState(count=0)
        if isinstance(action, IncrementAction):
            store.dispatch(NothingAction())
        return state

    store = Store({'counter': impure_reducer})
    state = store.get_state()

    with pytest.raises(ReducerThrewError) as exception_info:
        store.dispatch(IncrementAction())

    assert isinstance(exception_info.value.__cause__, ReentrantDispatchError)
    assert store.get_state() is state


def test_throwing_reducer_leaves_state_unchanged(store: Store) -> None:
    store.dispatch(AddItemAction(item='apple'))
    state = store.get_state()

    with pytest.raises(ReducerThrewError, match='"cart"') as exception_info:
        store.dispatch(CorruptAction())

    assert exception_info.value.slice_name == 'cart'
    assert exception_info.value.action == CorruptAction()
    assert isinstance(exception_info.value.__cause__, ValueError)
    assert store.get_state() is state


def test_queued_actions_are_discarded_after_a_reducer_fails(store: Store) -> None:
    def dispatch_more(state: Any) -> None:
        if state.counter.count == 1 and not state.cart.items:
            store.dispatch(CorruptAction(), AddItemAction(item='lost'))

    store.subscribe(dispatch_more)

    with pytest.raises(ReducerThrewError):
        store.dispatch(IncrementAction())

    assert store.get_state().counter.count == 1
    assert store.get_state().cart.items == ()

    store.dispatch(AddItemAction(item='kept'))
    assert store.get_state().cart.items == ('kept',)


def test_dispatch_from_many_threads(store: Store) -> None:
    def work() -> None:
        for _ in range(100):
            store.dispatch(IncrementAction())

    threads = [threading.Thread(target=work) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert store.get_state().counter.count == 800


def test_register_slice_on_a_live_store(store: Store) -> None:
    observed = []
    store.subscribe(observed.append)
    store.dispatch(IncrementAction())

    store.register_slice('clicks', counter_reducer)

    state = store.get_state()
    assert state.clicks == CounterState(count=0)
    assert state.counter.count == 1
    assert observed[-1] is state

    store.dispatch(IncrementAction())
    assert store.get_state().clicks.count == 1
    assert store.get_state().counter.count == 2

    store.unregister_slice('clicks')
    assert not hasattr(store.get_state(), 'clicks')
    assert store.get_state().counter.count == 2


def test_register_slice_with_failing_initializer(store: Store) -> None:
    def broken_reducer(state: object, action: BaseAction) -> object:
        _ = state, action
        msg = 'no initial state'
        raise RuntimeError(msg)

    with pytest.raises(ReducerThrewError):
        store.register_slice('broken', broken_reducer)

    assert 'broken' not in store.registry.slices
    store.dispatch(IncrementAction())
    assert store.get_state().counter.count == 1


def test_snapshot(store: Store) -> None:
    store.dispatch(AddItemAction(item='apple'), IncrementAction())

    assert store.snapshot == {
        '_type': 'State',
        'counter': {'_type': 'CounterState', 'count': 1},
        'cart': {'_type': 'CartState', 'items': ['apple']},
    }


def test_dispose(store: Store) -> None:
    observed = []
    store.subscribe(observed.append)

    store.dispose()

    assert store.is_disposed
    with pytest.raises(StoreDisposedError):
        store.dispatch(IncrementAction())
    assert observed == []
    store.dispose()


def test_context_manager() -> None:
    with Store({'counter': counter_reducer}) as store:
        store.dispatch(IncrementAction())
        assert store.get_state().counter.count == 1

    assert store.is_disposed


def test_reducer_failure_reaches_the_dispatching_thread(store: Store) -> None:
    outcomes: dict[str, BaseException | None] = {}

    def dispatch_corrupt() -> None:
        try:
            store.dispatch(CorruptAction())
        except ReducerThrewError as exception:
            outcomes['other'] = exception
        else:
            outcomes['other'] = None

    other_thread = threading.Thread(target=dispatch_corrupt)

    def start_other_thread(state: Any) -> None:
        if state.counter.count == 1 and other_thread.ident is None:
            other_thread.start()
            # Give the other thread time to dispatch while this drain runs.
            time.sleep(0.05)

    store.subscribe(start_other_thread)

    store.dispatch(IncrementAction())
    other_thread.join(timeout=5)

    assert isinstance(outcomes['other'], ReducerThrewError)
    assert outcomes['other'].action == CorruptAction()
    assert store.get_state().counter.count == 1


def test_dispatch_from_observer_during_slice_registration(store: Store) -> None:
    def dispatch_more(state: Any) -> None:
        if hasattr(state, 'clicks'):
            if state.counter.count == 0:
                store.dispatch(IncrementAction())
        elif state.counter.count == 1 and not state.cart.items:
            store.dispatch(AddItemAction(item='after'))

    store.subscribe(dispatch_more)

    store.register_slice('clicks', counter_reducer)

    assert store.get_state().counter.count == 1
    assert store.get_state().clicks.count == 1

    store.unregister_slice('clicks')

    assert store.get_state().cart.items == ('after',)


class FirstSharedAction(BaseAction, kind='[Shared] Action'): ...


class SecondSharedAction(BaseAction, kind='[Shared] Action'): ...


def test_unregistered_slice_releases_its_action_kinds(store: Store) -> None:
    store.register_slice(
        'first',
        create_reducer(CounterState(count=0), on(FirstSharedAction, lambda s, _: s)),
    )
    second_reducer = create_reducer(
        CounterState(count=0),
        on(SecondSharedAction, lambda state, _: replace(state, count=state.count + 1)),
    )

    with pytest.raises(DuplicateActionKindError):
        store.register_slice('second', second_reducer)

    store.unregister_slice('first')
    store.register_slice('second', second_reducer)
    store.dispatch(SecondSharedAction())

    assert store.get_state().second.count == 1
    assert store.registry.action_type('[Shared] Action') is SecondSharedAction


def test_failed_slice_registration_releases_its_action_kinds(store: Store) -> None:
    def refuse_to_start(state: CounterState, action: InitAction) -> CounterState:
        _ = state, action
        msg = 'no initial state'
        raise RuntimeError(msg)

    broken_reducer = create_reducer(
        CounterState(count=0),
        on(InitAction, refuse_to_start),
        on(FirstSharedAction, lambda state, _: state),
    )

    with pytest.raises(ReducerThrewError):
        store.register_slice('broken', broken_reducer)

    store.register_slice(
        'second',
        create_reducer(CounterState(count=0), on(SecondSharedAction, lambda s, _: s)),
    )

    assert store.registry.slices == ('counter', 'cart', 'second')
