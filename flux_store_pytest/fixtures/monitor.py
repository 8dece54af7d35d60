"""Monitor behavior of store for testing."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    from pytest_mock import MockerFixture

    from flux_store.basic_types import BaseAction
    from flux_store.main import Store


class StoreMonitor:
    """Monitor the behavior of a store for testing."""

    def __init__(self: StoreMonitor, mocker: MockerFixture) -> None:
        """Initialize the store monitor."""
        self.store: Store | None = None
        self._mocker = mocker
        self.dispatched_actions = mocker.spy(self, '_action_middleware')

    def _action_middleware(self: StoreMonitor, action: BaseAction) -> BaseAction:
        return action

    @property
    def actions(self: StoreMonitor) -> list[BaseAction]:
        """Return the dispatched actions in the order they were dispatched."""
        return [call.args[0] for call in self.dispatched_actions.call_args_list]

    @property
    def kinds(self: StoreMonitor) -> list[str]:
        """Return the kinds of the dispatched actions."""
        return [action.kind for action in self.actions]

    def monitor(self: StoreMonitor, store: Store) -> None:
        """Set the store to monitor."""
        if self.store:
            self.store.unregister_action_middleware(self._action_middleware)
        self.store = store
        self.store.register_action_middleware(self._action_middleware)


@pytest.fixture
def store_monitor(store: Store, mocker: MockerFixture) -> StoreMonitor:
    """Fixture to check which actions were dispatched."""
    monitor = StoreMonitor(mocker)

    if store:
        monitor.monitor(store)

    return monitor
