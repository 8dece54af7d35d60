"""Store holding the current state, applying reducers and feeding effects."""

from __future__ import annotations

import contextlib
import inspect
import logging
import threading
import weakref
from collections import deque
from collections.abc import Iterable, Mapping
from threading import Lock
from typing import (
    TYPE_CHECKING,
    Any,
    Generic,
)

from flux_store.basic_types import (
    ActionListener,
    ActionMiddleware,
    BaseAction,
    DispatchParameters,
    Observer,
    ReducerType,
    SelectorOutput,
    SnapshotAtom,
    State,
    StoreOptions,
    Subscription,
)
from flux_store.effect_runner import EffectRunner
from flux_store.errors import ReentrantDispatchError, StoreDisposedError
from flux_store.reducer_registry import ReducerRegistry
from flux_store.selection import Selection
from flux_store.serialization_mixin import SerializationMixin

if TYPE_CHECKING:
    from collections.abc import Callable, Generator
    from types import TracebackType

logger = logging.getLogger(__name__)


class Store(SerializationMixin, Generic[State]):
    """Owner of the current state of an application.

    Actions are applied one at a time, in the order they were dispatched.
    Reductions are serialized by a single writer lock. A dispatch from another
    thread, like the one running the effects' event loop, waits for the running
    drain to finish and then applies its own actions, so a reducer failure
    always surfaces to the caller that dispatched the failing action.
    """

    def __init__(
        self,
        registry: ReducerRegistry | Mapping[str, ReducerType] | None = None,
        options: StoreOptions | None = None,
    ) -> None:
        """Create a new store, its state built from every slice's initial value."""
        self.store_options = options or StoreOptions()
        if registry is None or isinstance(registry, Mapping):
            registry = ReducerRegistry(registry)
        self.registry = registry

        self._action_middlewares = list(self.store_options.action_middlewares)

        self._state: State = registry.initial_state()
        self._listeners: dict[object, Observer | weakref.ref[Observer]] = {}
        self._action_listeners: dict[object, ActionListener] = {}

        self._actions: deque[BaseAction] = deque()
        self._is_running = Lock()
        self._running_thread: int | None = None
        self._is_reducing = False
        self._is_disposed = False

        self.effects = EffectRunner(store=self, options=self.store_options)

    @property
    def state(self: Store[State]) -> State:
        """Return the current state."""
        return self._state

    def get_state(self: Store[State]) -> State:
        """Return the current state, never blocks."""
        return self._state

    @contextlib.contextmanager
    def _writer(self: Store[State]) -> Generator[None, None, None]:
        if self._is_draining():
            yield
            return
        with self._is_running:
            self._running_thread = threading.get_ident()
            try:
                yield
            finally:
                self._running_thread = None

    def _call_listeners(self: Store[State], state: State) -> None:
        for listener_ in list(self._listeners.values()):
            listener = listener_() if isinstance(listener_, weakref.ref) else listener_
            if listener is not None:
                listener(state)

    def _call_action_listeners(self: Store[State], action: BaseAction) -> None:
        for listener in list(self._action_listeners.values()):
            listener(action)

    def _apply(self: Store[State], action: BaseAction) -> None:
        previous_state = self._state
        self._is_reducing = True
        try:
            state = self.registry.reduce(previous_state, action)
        finally:
            self._is_reducing = False
        if state is not previous_state:
            self._state = state
            self._call_listeners(state)
        self._call_action_listeners(action)

    def run(self: Store[State]) -> None:
        """Apply the queued actions."""
        with self._writer():
            try:
                while self._actions and not self._is_disposed:
                    self._apply(self._actions.popleft())
            except BaseException:
                if self._actions:
                    logger.warning(
                        'Discarding %d queued action(s) after a failed dispatch',
                        len(self._actions),
                    )
                    self._actions.clear()
                raise

    def dispatch(
        self: Store[State],
        *parameters: DispatchParameters,
    ) -> None:
        """Dispatch actions.

        Dispatching from a subscriber defers the actions until the current one
        has been fully applied. Dispatching from inside a reducer is an error.
        """
        if self._is_disposed:
            raise StoreDisposedError

        actions = [
            action
            for actions in parameters
            for action in (actions if isinstance(actions, Iterable) else [actions])
        ]
        for action in actions:
            if not isinstance(action, BaseAction):
                msg = f'Only actions can be dispatched, got `{action!r}`.'
                raise TypeError(msg)

        if self._is_draining():
            if self._is_reducing and actions:
                raise ReentrantDispatchError(actions[0])
            self._enqueue(actions)
            return

        with self._writer():
            if self._is_disposed:
                raise StoreDisposedError
            self._enqueue(actions)
            self.run()

    def _is_draining(self: Store[State]) -> bool:
        return self._running_thread == threading.get_ident()

    def _enqueue(self: Store[State], actions: list[BaseAction]) -> None:
        for action in actions:
            for action_middleware in self._action_middlewares:
                action_ = action_middleware(action)
                if action_ is None:
                    logger.debug('Action "%s" dropped by a middleware', action.kind)
                    break
                action = action_  # noqa: PLW2901
            else:
                logger.debug('Dispatching action "%s"', action.kind)
                self._actions.append(action)

    def subscribe(
        self: Store[State],
        observer: Callable[[State], Any],
        *,
        keep_ref: bool = True,
    ) -> Subscription:
        """Subscribe to state changes."""
        token = object()

        def unsubscribe(_: weakref.ref | None = None) -> None:
            self._listeners.pop(token, None)

        if keep_ref:
            observer_ref = observer
        elif inspect.ismethod(observer):
            observer_ref = weakref.WeakMethod(observer, unsubscribe)
        else:
            observer_ref = weakref.ref(observer, unsubscribe)

        self._listeners[token] = observer_ref

        return Subscription(unsubscribe=unsubscribe)

    def subscribe_actions(
        self: Store[State],
        listener: Callable[[BaseAction], Any],
    ) -> Subscription:
        """Subscribe to the stream of applied actions."""
        token = object()
        self._action_listeners[token] = listener

        def unsubscribe() -> None:
            self._action_listeners.pop(token, None)

        return Subscription(unsubscribe=unsubscribe)

    def select(
        self: Store[State],
        selector: Callable[[State], SelectorOutput],
        *,
        keep_ref: bool = True,
    ) -> Selection[SelectorOutput]:
        """Create a live view of `selector` over this store."""
        return Selection(store=self, selector=selector, keep_ref=keep_ref)

    def register_slice(
        self: Store[State],
        name: str,
        reducer: ReducerType,
    ) -> None:
        """Add a slice to the live store and publish the extended state.

        Actions dispatched by subscribers while the new state is published are
        applied before this returns, unless it was itself called during a
        dispatch.
        """
        is_nested = self._is_draining()
        with self._writer():
            self.registry.register(name, reducer)
            try:
                state = self.registry.migrate(self._state)
            except Exception:
                self.registry.unregister(name)
                raise
            self._state = state
            self._call_listeners(state)
            if not is_nested:
                self.run()

    def unregister_slice(self: Store[State], name: str) -> None:
        """Remove a slice from the live store and publish the reduced state."""
        is_nested = self._is_draining()
        with self._writer():
            self.registry.unregister(name)
            self._state = self.registry.migrate(self._state)
            self._call_listeners(self._state)
            if not is_nested:
                self.run()

    @property
    def snapshot(self: Store[State]) -> SnapshotAtom:
        """Return a snapshot of the current state of the store."""
        return self.serialize_value(self._state)

    def register_action_middleware(
        self: Store[State],
        action_middleware: ActionMiddleware,
    ) -> None:
        """Register an action dispatch middleware."""
        self._action_middlewares.append(action_middleware)

    def unregister_action_middleware(
        self: Store[State],
        action_middleware: ActionMiddleware,
    ) -> None:
        """Unregister an action dispatch middleware."""
        self._action_middlewares.remove(action_middleware)

    @property
    def is_disposed(self: Store[State]) -> bool:
        """Return whether the store has been disposed."""
        return self._is_disposed

    def dispose(self: Store[State]) -> None:
        """Cancel running effects and release every subscriber."""
        with self._writer():
            if self._is_disposed:
                return
            self._is_disposed = True
            self.effects.dispose()
            self._actions.clear()
            self._listeners.clear()
            self._action_listeners.clear()
        logger.debug('Store disposed')

    def __enter__(self: Store[State]) -> Store[State]:
        """Return the store itself."""
        return self

    def __exit__(
        self: Store[State],
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        """Dispose the store."""
        self.dispose()
