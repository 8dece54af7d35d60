"""Live, subscribable views of a selector over a store."""

from __future__ import annotations

import inspect
import weakref
from typing import TYPE_CHECKING, Any, Generic

from flux_store.basic_types import SelectorOutput, Subscription

if TYPE_CHECKING:
    from collections.abc import Callable

    from flux_store.basic_types import Selector
    from flux_store.main import Store


class Selection(Generic[SelectorOutput]):
    """Track the output of a selector and notify subscribers when it changes.

    The selector runs on every state the store publishes. Subscribers are only
    called, in registration order, when its output is a different object than
    the previous one, so a memoized selector keeps them quiet for unrelated
    state changes.
    """

    def __init__(
        self: Selection[SelectorOutput],
        *,
        store: Store,
        selector: Selector[SelectorOutput],
        keep_ref: bool = True,
    ) -> None:
        """Initialize the selection with the current state of the store."""
        if hasattr(selector, '__name__'):
            self.__name__ = f'Selection:{selector.__name__}'
        else:
            self.__name__ = f'Selection:{selector}'

        self._store = store
        self._selector = selector
        self._latest_value: SelectorOutput = selector(store.get_state())
        self._subscriptions: dict[
            object,
            Callable[[SelectorOutput], Any]
            | weakref.ref[Callable[[SelectorOutput], Any]],
        ] = {}
        self._subscription: Subscription | None = store.subscribe(
            self.react,
            keep_ref=keep_ref,
        )

    def react(self: Selection[SelectorOutput], state: object) -> None:
        """React to a state published by the store."""
        value = self._selector(state)
        if value is self._latest_value:
            return
        self._latest_value = value
        self.inform_subscribers()

    def inform_subscribers(self: Selection[SelectorOutput]) -> None:
        """Inform all subscribers about the latest value."""
        for token, subscriber_ in list(self._subscriptions.items()):
            if isinstance(subscriber_, weakref.ref):
                subscriber = subscriber_()
                if subscriber is None:
                    self._subscriptions.pop(token, None)
                    continue
            else:
                subscriber = subscriber_
            subscriber(self._latest_value)

    @property
    def value(self: Selection[SelectorOutput]) -> SelectorOutput:
        """Get the latest output of the selector."""
        return self._latest_value

    def __call__(self: Selection[SelectorOutput]) -> SelectorOutput:
        """Return the latest output of the selector."""
        return self._latest_value

    def subscribe(
        self: Selection[SelectorOutput],
        callback: Callable[[SelectorOutput], Any],
        *,
        initial_run: bool = True,
        keep_ref: bool = True,
    ) -> Subscription:
        """Subscribe to changes of the selected value."""
        token = object()
        if keep_ref:
            callback_ref = callback
        elif inspect.ismethod(callback):
            callback_ref = weakref.WeakMethod(callback)
        else:
            callback_ref = weakref.ref(callback)
        self._subscriptions[token] = callback_ref

        if initial_run:
            callback(self._latest_value)

        def unsubscribe() -> None:
            self._subscriptions.pop(token, None)

        return Subscription(unsubscribe=unsubscribe)

    def dispose(self: Selection[SelectorOutput]) -> None:
        """Stop tracking the store and drop all subscribers."""
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        self._subscriptions.clear()

    def __repr__(self: Selection[SelectorOutput]) -> str:
        """Return a string representation of the selection."""
        return (
            super().__repr__()
            + f'(selector: {self._selector}, value: {self._latest_value})'
        )
