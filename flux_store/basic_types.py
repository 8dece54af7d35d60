# ruff: noqa: D100, D101, D102, D103, D107
from __future__ import annotations

import enum
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import field
from types import NoneType
from typing import (
    TYPE_CHECKING,
    Any,
    ClassVar,
    Protocol,
    TypeAlias,
)

from immutable import Immutable
from typing_extensions import TypeVar

if TYPE_CHECKING:
    from asyncio import AbstractEventLoop

T = TypeVar('T')

AwaitableOrNot = Awaitable[T] | T

NOT_SET = object()


class BaseAction(Immutable):
    """Base class of all actions.

    Every subclass gets a `kind`, the discriminator reducers and effects match
    on. Pass it as a class keyword, `class Add(BaseAction, kind='[Cart] Add')`,
    otherwise the qualified name of the class is used.
    """

    kind: ClassVar[str] = 'BaseAction'

    def __init_subclass__(
        cls: type[BaseAction],
        *,
        kind: str | None = None,
        **kwargs: Any,  # noqa: ANN401
    ) -> None:
        super().__init_subclass__(**kwargs)
        if kind is not None:
            cls.kind = kind
        elif 'kind' not in cls.__dict__:
            cls.kind = cls.__qualname__


class InitAction(BaseAction, kind='[Store] Init'): ...


# Type variables
State = TypeVar('State', infer_variance=True)
SliceState = TypeVar('SliceState', infer_variance=True)
Action = TypeVar('Action', bound=BaseAction, infer_variance=True)
SelectorOutput = TypeVar('SelectorOutput', infer_variance=True)

ReducerType: TypeAlias = Callable[[SliceState | None, Action], SliceState]
Selector: TypeAlias = Callable[[Any], SelectorOutput]
Observer: TypeAlias = Callable[[Any], Any]
ActionListener: TypeAlias = Callable[[BaseAction], Any]
DispatchParameters: TypeAlias = BaseAction | Sequence[BaseAction]
ActionMatch: TypeAlias = type[BaseAction] | str | Iterable[type[BaseAction] | str]
FollowUp: TypeAlias = BaseAction | Sequence[BaseAction] | None


class ActionMiddleware(Protocol):
    def __call__(self: ActionMiddleware, action: BaseAction) -> BaseAction | None: ...


class EffectFailureReporter(Protocol):
    def __call__(
        self: EffectFailureReporter,
        action: BaseAction,
        error: BaseException,
    ) -> None: ...


class EffectHandler(Protocol):
    def __call__(
        self: EffectHandler,
        action: Any,  # noqa: ANN401
    ) -> AwaitableOrNot[FollowUp]: ...


class EffectErrorMapper(Protocol):
    def __call__(
        self: EffectErrorMapper,
        action: Any,  # noqa: ANN401
        error: Exception,
    ) -> FollowUp: ...


class ConcurrencyPolicy(enum.StrEnum):
    """How overlapping invocations of the same effect are scheduled."""

    QUEUE = 'queue'
    CONCURRENT = 'concurrent'
    SWITCH_LATEST = 'switch_latest'
    FIRST_WINS = 'first_wins'


class StoreOptions(Immutable):
    action_middlewares: Sequence[ActionMiddleware] = field(default_factory=list)
    effect_loop: AbstractEventLoop | None = None
    report_effect_failure: EffectFailureReporter | None = None


class Subscription(Immutable):
    """Handle of a registered observer, call it or `unsubscribe` to release."""

    unsubscribe: Callable[[], None]

    def __call__(self: Subscription) -> None:
        self.unsubscribe()


SnapshotAtom = (
    int
    | float
    | str
    | bool
    | NoneType
    | dict[str, 'SnapshotAtom']
    | list['SnapshotAtom']
)
