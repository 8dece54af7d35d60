"""Unidirectional immutable-state store with reducers, selectors and effects."""

from .basic_types import (
    ActionMiddleware,
    AwaitableOrNot,
    BaseAction,
    ConcurrencyPolicy,
    DispatchParameters,
    EffectErrorMapper,
    EffectFailureReporter,
    EffectHandler,
    InitAction,
    ReducerType,
    SnapshotAtom,
    StoreOptions,
    Subscription,
)
from .effect_runner import Effect, EffectRunner, log_effect_failure
from .errors import (
    DuplicateActionKindError,
    DuplicateSliceError,
    EffectHandlerError,
    InitializationActionError,
    ReducerThrewError,
    ReentrantDispatchError,
    StoreDisposedError,
)
from .main import Store
from .reducer_registry import On, Reducer, ReducerRegistry, create_reducer, on
from .selection import Selection
from .selectors import MemoizedSelector, create_selector

__all__ = (
    'ActionMiddleware',
    'AwaitableOrNot',
    'BaseAction',
    'ConcurrencyPolicy',
    'DispatchParameters',
    'DuplicateActionKindError',
    'DuplicateSliceError',
    'Effect',
    'EffectErrorMapper',
    'EffectFailureReporter',
    'EffectHandler',
    'EffectHandlerError',
    'EffectRunner',
    'InitAction',
    'InitializationActionError',
    'MemoizedSelector',
    'On',
    'Reducer',
    'ReducerRegistry',
    'ReducerThrewError',
    'ReducerType',
    'ReentrantDispatchError',
    'Selection',
    'SnapshotAtom',
    'Store',
    'StoreDisposedError',
    'StoreOptions',
    'Subscription',
    'create_reducer',
    'create_selector',
    'log_effect_failure',
    'on',
)
