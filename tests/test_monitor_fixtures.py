# ruff: noqa: D100, D101, D102, D103, D104, D107
from __future__ import annotations

from dataclasses import replace
from typing import TYPE_CHECKING

import pytest
from immutable import Immutable

from flux_store import BaseAction, Store, create_reducer, on

if TYPE_CHECKING:
    from flux_store_pytest.fixtures.monitor import StoreMonitor


class StateType(Immutable):
    value: int


class IncrementAction(BaseAction, kind='[Counter] Increment'): ...


reducer = create_reducer(
    StateType(value=0),
    on(IncrementAction, lambda state, _: replace(state, value=state.value + 1)),
)


@pytest.fixture
def store() -> Store:
    return Store({'counter': reducer})


def test_monitor_action(
    store: Store,
    store_monitor: StoreMonitor,
    needs_dispose: None,
) -> None:
    _ = needs_dispose
    store.dispatch(IncrementAction())
    store_monitor.dispatched_actions.assert_called_once_with(IncrementAction())
    assert store_monitor.kinds == ['[Counter] Increment']


def test_multiple_stores(
    store: Store,
    store_monitor: StoreMonitor,
    needs_dispose: None,
) -> None:
    _ = needs_dispose
    other_store = Store({'counter': reducer})

    other_store.dispatch(IncrementAction())
    store_monitor.dispatched_actions.assert_not_called()

    store_monitor.monitor(other_store)
    store.dispatch(IncrementAction())
    other_store.dispatch(IncrementAction())
    store_monitor.dispatched_actions.assert_called_once_with(IncrementAction())
    assert other_store.state.counter.value == 2

    other_store.dispose()


def test_needs_dispose(store: Store, needs_dispose: None) -> None:
    _ = needs_dispose
    store.dispatch(IncrementAction())
    assert not store.is_disposed
