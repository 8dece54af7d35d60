"""Exceptions raised by the store, the reducer registry and the effect runner."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from flux_store.basic_types import BaseAction


class ReentrantDispatchError(RuntimeError):
    """Raised when `dispatch` is called from inside a reducer."""

    def __init__(self: ReentrantDispatchError, action: BaseAction) -> None:
        """Create the error for the action that was dispatched while reducing."""
        self.action = action
        super().__init__(
            f'Action "{action.kind}" was dispatched from inside a reducer, '
            'reducers must not have side effects.',
        )


class DuplicateSliceError(ValueError):
    """Raised when two reducers claim the same state slice."""

    def __init__(self: DuplicateSliceError, name: str) -> None:
        """Create the error for the slice name registered twice."""
        self.name = name
        super().__init__(f'A reducer is already registered for slice "{name}".')


class DuplicateActionKindError(ValueError):
    """Raised when two different action classes share one kind in a store."""

    def __init__(
        self: DuplicateActionKindError,
        kind: str,
        existing: type,
        duplicate: type,
    ) -> None:
        """Create the error for the clashing action classes."""
        self.kind = kind
        self.existing = existing
        self.duplicate = duplicate
        super().__init__(
            f'Action kind "{kind}" is used by both `{existing.__qualname__}` and '
            f'`{duplicate.__qualname__}`.',
        )


class ReducerThrewError(RuntimeError):
    """Raised when a reducer breaks its contract while handling an action.

    The state of the store is left untouched when this error is raised. The
    original exception, if any, is available as `__cause__`.
    """

    def __init__(
        self: ReducerThrewError,
        slice_name: str,
        action: BaseAction,
        reason: str = 'raised an exception',
    ) -> None:
        """Create the error for the failing slice reducer."""
        self.slice_name = slice_name
        self.action = action
        super().__init__(
            f'Reducer of slice "{slice_name}" {reason} while handling '
            f'action "{action.kind}".',
        )


class EffectHandlerError(RuntimeError):
    """Wraps an error raised by the handler of an effect."""

    def __init__(
        self: EffectHandlerError,
        effect_name: str,
        action: BaseAction,
    ) -> None:
        """Create the error for the failing effect."""
        self.effect_name = effect_name
        self.action = action
        super().__init__(
            f'Effect "{effect_name}" failed while handling action "{action.kind}".',
        )


class StoreDisposedError(RuntimeError):
    """Raised when an action is dispatched to a disposed store."""

    def __init__(self: StoreDisposedError) -> None:
        """Create the error."""
        super().__init__('The store has been disposed.')


class InitializationActionError(Exception):
    """Raised by a reducer that receives a non-init action without a state."""

    def __init__(self: InitializationActionError, action: BaseAction) -> None:
        """Create the error for the offending action."""
        super().__init__(
            f"""The only accepted action type when state is None is "InitAction", \
action "{action}" is not allowed.""",
        )
