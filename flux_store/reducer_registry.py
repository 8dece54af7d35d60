"""Compose slice reducers into one immutable state."""

from __future__ import annotations

import dataclasses
import keyword
from collections import defaultdict
from typing import TYPE_CHECKING, Any, Generic, cast

from immutable import Immutable

from flux_store.basic_types import (
    BaseAction,
    InitAction,
    ReducerType,
    SliceState,
)
from flux_store.errors import (
    DuplicateActionKindError,
    DuplicateSliceError,
    ReducerThrewError,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Hashable, Iterable, Mapping


class On(Immutable, Generic[SliceState]):
    """Binding of one or more action classes to a slice handler."""

    action_types: tuple[type[BaseAction], ...]
    handler: Callable[[SliceState, Any], SliceState]


def on(
    *arguments: type[BaseAction] | Callable[[SliceState, Any], SliceState],
) -> On[SliceState]:
    """Bind action classes to a handler, the handler being the last argument.

    `on(AddItem, RemoveItem, handler)` makes `handler(state, action)` run for
    both action classes and their subclasses.
    """
    *action_types, handler = arguments
    if not action_types:
        msg = '`on` needs at least one action class before the handler.'
        raise TypeError(msg)
    for action_type in action_types:
        if not (isinstance(action_type, type) and issubclass(action_type, BaseAction)):
            msg = f'`{action_type}` is not a subclass of `BaseAction`.'
            raise TypeError(msg)
    return On(
        action_types=tuple(cast('list[type[BaseAction]]', action_types)),
        handler=cast('Callable[[SliceState, Any], SliceState]', handler),
    )


class Reducer(Generic[SliceState]):
    """A total reducer driven by a table of `on` bindings."""

    def __init__(
        self: Reducer[SliceState],
        initial_state: SliceState,
        bindings: Iterable[On[SliceState]],
    ) -> None:
        """Build the handler table, handlers of one action class run in order."""
        self.initial_state = initial_state
        self._handlers: defaultdict[
            type[BaseAction],
            list[Callable[[SliceState, Any], SliceState]],
        ] = defaultdict(list)
        for binding in bindings:
            for action_type in binding.action_types:
                self._handlers[action_type].append(binding.handler)

    @property
    def action_types(self: Reducer[SliceState]) -> tuple[type[BaseAction], ...]:
        """Return the action classes this reducer handles."""
        return tuple(self._handlers)

    def __call__(
        self: Reducer[SliceState],
        state: SliceState | None,
        action: BaseAction,
    ) -> SliceState:
        """Return the next slice, or `state` itself for unhandled actions."""
        current = self.initial_state if state is None else state
        for action_type in type(action).__mro__:
            handlers = self._handlers.get(action_type)
            if handlers:
                for handler in handlers:
                    current = handler(current, action)
                return current
        return current

    def __repr__(self: Reducer[SliceState]) -> str:
        """Return a string representation of the reducer."""
        kinds = ', '.join(action_type.kind for action_type in self._handlers)
        return f'{super().__repr__()}(handles: {kinds})'


def create_reducer(
    initial_state: SliceState,
    *bindings: On[SliceState],
) -> Reducer[SliceState]:
    """Create a reducer for a slice from its initial state and `on` bindings."""
    return Reducer(initial_state, bindings)


class ReducerRegistry:
    """Owns the slice reducers of a store and the shape of its state.

    Each reducer only ever sees its own slice. The composite state is a frozen
    dataclass with one field per slice, slices a reducer returned unchanged are
    shared by reference with the previous state.
    """

    def __init__(
        self: ReducerRegistry,
        reducers: Mapping[str, ReducerType] | None = None,
    ) -> None:
        """Create the registry, registering `reducers` in order."""
        self._reducers: dict[str, ReducerType] = {}
        self._action_kinds: dict[str, type[BaseAction]] = {}
        self._claims: dict[Hashable, tuple[type[BaseAction], ...]] = {}
        self._state_class = self._make_state_class()
        for name, reducer in (reducers or {}).items():
            self.register(name, reducer)

    def _make_state_class(self: ReducerRegistry) -> type:
        return dataclasses.make_dataclass(
            'State',
            [(name, Any) for name in self._reducers],
            frozen=True,
            kw_only=True,
        )

    @property
    def slices(self: ReducerRegistry) -> tuple[str, ...]:
        """Return the registered slice names in registration order."""
        return tuple(self._reducers)

    @property
    def state_class(self: ReducerRegistry) -> type:
        """Return the dataclass of the composite state."""
        return self._state_class

    def register(self: ReducerRegistry, name: str, reducer: ReducerType) -> None:
        """Register `reducer` as the owner of slice `name`."""
        if not name.isidentifier() or keyword.iskeyword(name) or name.startswith('_'):
            msg = f'"{name}" is not a valid slice name.'
            raise ValueError(msg)
        if name in self._reducers:
            raise DuplicateSliceError(name)
        self.claim_action_types(name, getattr(reducer, 'action_types', ()))
        self._reducers[name] = reducer
        self._state_class = self._make_state_class()

    def unregister(self: ReducerRegistry, name: str) -> None:
        """Remove the reducer of slice `name`."""
        if name not in self._reducers:
            msg = f'No reducer is registered for slice "{name}".'
            raise KeyError(msg)
        del self._reducers[name]
        self.release_action_types(name)
        self._state_class = self._make_state_class()

    def claim_action_types(
        self: ReducerRegistry,
        owner: Hashable,
        action_types: Iterable[type[BaseAction]],
    ) -> None:
        """Record the kinds of `action_types` for `owner`, failing on a clash.

        The owner is a slice name or an effect. Its claims last until
        `release_action_types` is called for it.
        """
        claimed = tuple(action_types)
        action_kinds = dict(self._action_kinds)
        for action_type in claimed:
            existing = action_kinds.get(action_type.kind)
            if existing is not None and existing is not action_type:
                raise DuplicateActionKindError(action_type.kind, existing, action_type)
            action_kinds[action_type.kind] = action_type
        self._claims[owner] = (*self._claims.get(owner, ()), *claimed)
        self._action_kinds = action_kinds

    def release_action_types(self: ReducerRegistry, owner: Hashable) -> None:
        """Forget the kinds claimed by `owner`."""
        if self._claims.pop(owner, None) is None:
            return
        self._action_kinds = {
            action_type.kind: action_type
            for action_types in self._claims.values()
            for action_type in action_types
        }

    def action_type(self: ReducerRegistry, kind: str) -> type[BaseAction] | None:
        """Return the action class registered for `kind`, if any."""
        return self._action_kinds.get(kind)

    def _reduce_slice(
        self: ReducerRegistry,
        name: str,
        state: object,
        action: BaseAction,
    ) -> object:
        try:
            result = self._reducers[name](state, action)
        except Exception as exception:
            raise ReducerThrewError(name, action) from exception
        if result is None:
            raise ReducerThrewError(name, action, 'returned None')
        return result

    def initial_state(self: ReducerRegistry) -> Any:  # noqa: ANN401
        """Build the state made of every slice's initial value."""
        return self._state_class(
            **{
                name: self._reduce_slice(name, None, InitAction())
                for name in self._reducers
            },
        )

    def migrate(self: ReducerRegistry, state: object) -> Any:  # noqa: ANN401
        """Carry `state` over to the current slice layout.

        Slices that still exist keep their value, new slices get their initial
        value and removed slices are dropped.
        """
        previous = {field.name for field in dataclasses.fields(cast('Any', state))}
        return self._state_class(
            **{
                name: getattr(state, name)
                if name in previous
                else self._reduce_slice(name, None, InitAction())
                for name in self._reducers
            },
        )

    def reduce(self: ReducerRegistry, state: Any, action: BaseAction) -> Any:  # noqa: ANN401
        """Fold every reducer over its slice, returning `state` if none changed."""
        changes = {}
        for name in self._reducers:
            current = getattr(state, name)
            next_slice = self._reduce_slice(name, current, action)
            if next_slice is not current:
                changes[name] = next_slice
        if not changes:
            return state
        return dataclasses.replace(state, **changes)

    def replay(
        self: ReducerRegistry,
        actions: Iterable[BaseAction],
        state: object | None = None,
    ) -> Any:  # noqa: ANN401
        """Apply `actions` in order, starting from the initial state by default."""
        result = self.initial_state() if state is None else state
        for action in actions:
            result = self.reduce(result, action)
        return result
