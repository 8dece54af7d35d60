"""Run asynchronous side effects in response to dispatched actions."""

from __future__ import annotations

import asyncio
import functools
import inspect
import logging
import threading
import weakref
from typing import TYPE_CHECKING, Any, Generic

from flux_store.basic_types import (
    Action,
    ActionMatch,
    BaseAction,
    ConcurrencyPolicy,
    EffectErrorMapper,
    EffectFailureReporter,
    EffectHandler,
    FollowUp,
    StoreOptions,
)
from flux_store.errors import EffectHandlerError, StoreDisposedError

if TYPE_CHECKING:
    import concurrent.futures
    from collections.abc import Callable

    from flux_store.main import Store

logger = logging.getLogger(__name__)


class Effect(Generic[Action]):
    """A registered effect, also the handle used to dispose it."""

    def __init__(  # noqa: PLR0913
        self: Effect[Action],
        *,
        runner: EffectRunner,
        name: str,
        kinds: frozenset[str],
        handler: EffectHandler,
        policy: ConcurrencyPolicy,
        on_error: EffectErrorMapper | None,
    ) -> None:
        """Initialize the effect."""
        self.name = name
        self.kinds = kinds
        self.handler = handler
        self.policy = policy
        self.on_error = on_error

        self._runner = runner
        # Guards the bookkeeping below, the loop thread and dispatching threads
        # both touch it.
        self._lock = threading.Lock()
        self._in_flight: dict[int, concurrent.futures.Future[None]] = {}
        self._generation = 0
        self._serializers: weakref.WeakKeyDictionary[
            asyncio.AbstractEventLoop,
            asyncio.Lock,
        ] = weakref.WeakKeyDictionary()
        self._is_disposed = False

    @property
    def in_flight(self: Effect[Action]) -> int:
        """Return the number of invocations that have not finished yet."""
        with self._lock:
            return len(self._in_flight)

    def matches(self: Effect[Action], action: BaseAction) -> bool:
        """Check whether the effect handles `action`."""
        return action.kind in self.kinds

    def trigger(
        self: Effect[Action],
        action: Action,
        loop: asyncio.AbstractEventLoop,
    ) -> None:
        """Schedule an invocation for `action` according to the policy."""
        with self._lock:
            if self._is_disposed:
                return
            if self.policy is ConcurrencyPolicy.FIRST_WINS and self._in_flight:
                logger.debug(
                    'Effect "%s" is busy, dropping action "%s"',
                    self.name,
                    action.kind,
                )
                return
            preempted = (
                list(self._in_flight.values())
                if self.policy is ConcurrencyPolicy.SWITCH_LATEST
                else []
            )
            self._generation += 1
            generation = self._generation
            future = asyncio.run_coroutine_threadsafe(
                self._run(action, generation),
                loop,
            )
            self._in_flight[generation] = future
        # Cancelling runs done callbacks synchronously, they take the lock.
        for preempted_future in preempted:
            preempted_future.cancel()
        future.add_done_callback(functools.partial(self._finished, generation))

    def _finished(
        self: Effect[Action],
        generation: int,
        future: concurrent.futures.Future[None],
    ) -> None:
        with self._lock:
            self._in_flight.pop(generation, None)
        if not future.cancelled() and (exception := future.exception()) is not None:
            logger.error(
                'Effect "%s" stopped unexpectedly',
                self.name,
                exc_info=exception,
            )

    def _is_stale(self: Effect[Action], generation: int) -> bool:
        with self._lock:
            return self._is_disposed or (
                self.policy is ConcurrencyPolicy.SWITCH_LATEST
                and generation != self._generation
            )

    async def _run(self: Effect[Action], action: Action, generation: int) -> None:
        if self.policy is ConcurrencyPolicy.QUEUE:
            # An asyncio lock only works on the loop it was first used on.
            loop = asyncio.get_running_loop()
            with self._lock:
                serializer = self._serializers.get(loop)
                if serializer is None:
                    serializer = self._serializers[loop] = asyncio.Lock()
            async with serializer:
                await self._invoke(action, generation)
        else:
            await self._invoke(action, generation)

    async def _invoke(self: Effect[Action], action: Action, generation: int) -> None:
        try:
            result = self.handler(action)
            if inspect.isawaitable(result):
                result = await result
        except asyncio.CancelledError:
            logger.debug('Effect "%s" cancelled for "%s"', self.name, action.kind)
            raise
        except Exception as exception:  # noqa: BLE001
            if not self._is_stale(generation):
                self._runner.handle_failure(self, action, exception)
            return

        if self._is_stale(generation):
            logger.debug(
                'Discarding late result of effect "%s" for "%s"',
                self.name,
                action.kind,
            )
            return
        self._runner.dispatch_follow_up(self, action, result)

    def dispose(self: Effect[Action]) -> None:
        """Unregister the effect and cancel its in-flight invocations."""
        with self._lock:
            self._is_disposed = True
            futures = list(self._in_flight.values())
        for future in futures:
            future.cancel()
        self._runner.unregister(self)

    def __repr__(self: Effect[Action]) -> str:
        """Return a string representation of the effect."""
        return (
            super().__repr__()
            + f'(name: {self.name}, policy: {self.policy}, kinds: {sorted(self.kinds)})'
        )


class EffectRunner:
    """Match applied actions against registered effects and run them.

    Handlers run on `StoreOptions.effect_loop` when it is set, the loop may be
    running in another thread. Otherwise the event loop running in the
    dispatching thread is used.
    """

    def __init__(
        self: EffectRunner,
        *,
        store: Store,
        options: StoreOptions,
    ) -> None:
        """Initialize the runner and subscribe it to the store's actions."""
        self._store = store
        self._loop = options.effect_loop
        self._report_effect_failure: EffectFailureReporter = (
            options.report_effect_failure or log_effect_failure
        )
        self._effects: list[Effect] = []
        self._lock = threading.Lock()
        self._subscription = store.subscribe_actions(self.handle_action)

    @property
    def effects(self: EffectRunner) -> tuple[Effect, ...]:
        """Return the registered effects."""
        with self._lock:
            return tuple(self._effects)

    def _resolve_match(
        self: EffectRunner,
        match: ActionMatch,
    ) -> tuple[list[type[BaseAction]], frozenset[str]]:
        items = [match] if isinstance(match, str | type) else list(match)
        if not items:
            msg = 'An effect must match at least one action kind.'
            raise ValueError(msg)
        action_types: list[type[BaseAction]] = []
        kinds: set[str] = set()
        for item in items:
            if isinstance(item, str):
                kinds.add(item)
            elif isinstance(item, type) and issubclass(item, BaseAction):
                action_types.append(item)
                kinds.add(item.kind)
            else:
                msg = f'`{item!r}` is neither an action class nor an action kind.'
                raise TypeError(msg)
        return action_types, frozenset(kinds)

    def register(  # noqa: PLR0913
        self: EffectRunner,
        match: ActionMatch,
        handler: EffectHandler,
        policy: ConcurrencyPolicy = ConcurrencyPolicy.QUEUE,
        *,
        on_error: EffectErrorMapper | None = None,
        name: str | None = None,
    ) -> Effect:
        """Register `handler` for the actions in `match`.

        The handler receives the action and returns, possibly through an
        awaitable, a follow-up action, a list of them or `None`. When it raises,
        `on_error(action, exception)` maps the error to follow-up actions, with
        no mapping the error is reported to the failure sink.
        """
        action_types, kinds = self._resolve_match(match)
        effect = Effect(
            runner=self,
            name=name or getattr(handler, '__qualname__', repr(handler)),
            kinds=kinds,
            handler=handler,
            policy=ConcurrencyPolicy(policy),
            on_error=on_error,
        )
        self._store.registry.claim_action_types(effect, action_types)
        with self._lock:
            self._effects.append(effect)
        logger.debug(
            'Registered effect "%s" (%s) for %s',
            effect.name,
            effect.policy,
            ', '.join(sorted(kinds)),
        )
        return effect

    def effect(
        self: EffectRunner,
        match: ActionMatch,
        policy: ConcurrencyPolicy = ConcurrencyPolicy.QUEUE,
        *,
        on_error: EffectErrorMapper | None = None,
        name: str | None = None,
    ) -> Callable[[EffectHandler], Effect]:
        """Register the decorated function as an effect handler."""

        def decorator(handler: EffectHandler) -> Effect:
            return self.register(
                match,
                handler,
                policy,
                on_error=on_error,
                name=name,
            )

        return decorator

    def unregister(self: EffectRunner, effect: Effect) -> None:
        """Remove `effect` and release its action kinds.

        Its in-flight invocations are left alone.
        """
        with self._lock:
            if effect in self._effects:
                self._effects.remove(effect)
        self._store.registry.release_action_types(effect)

    def _resolve_loop(self: EffectRunner) -> asyncio.AbstractEventLoop:
        if self._loop is not None:
            return self._loop
        try:
            return asyncio.get_running_loop()
        except RuntimeError:
            msg = (
                'No event loop to run effects on, set `StoreOptions.effect_loop` '
                'or dispatch from a running event loop.'
            )
            raise RuntimeError(msg) from None

    def handle_action(self: EffectRunner, action: BaseAction) -> None:
        """Trigger every effect matching `action`."""
        with self._lock:
            effects = [effect for effect in self._effects if effect.matches(action)]
        if not effects:
            return
        loop = self._resolve_loop()
        for effect in effects:
            effect.trigger(action, loop)

    def _report(
        self: EffectRunner,
        effect: Effect,
        action: BaseAction,
        exception: BaseException,
    ) -> None:
        error = EffectHandlerError(effect.name, action)
        error.__cause__ = exception
        try:
            self._report_effect_failure(action, error)
        except Exception:
            logger.exception('Reporting the failure of effect "%s" failed', effect.name)

    def handle_failure(
        self: EffectRunner,
        effect: Effect,
        action: BaseAction,
        exception: Exception,
    ) -> None:
        """Map a handler error to follow-up actions or report it."""
        if effect.on_error is None:
            self._report(effect, action, exception)
            return
        try:
            follow_up = effect.on_error(action, exception)
        except Exception as mapping_exception:  # noqa: BLE001
            self._report(effect, action, mapping_exception)
            return
        self.dispatch_follow_up(effect, action, follow_up)

    def dispatch_follow_up(
        self: EffectRunner,
        effect: Effect,
        action: BaseAction,
        follow_up: FollowUp,
    ) -> None:
        """Dispatch the actions an effect produced for `action`."""
        if follow_up is None:
            return
        actions: list[Any] = (
            [follow_up] if isinstance(follow_up, BaseAction) else list(follow_up)
        )
        if not all(isinstance(item, BaseAction) for item in actions):
            self._report(
                effect,
                action,
                TypeError(f'Effect returned a non-action value: {follow_up!r}'),
            )
            return
        try:
            self._store.dispatch(*actions)
        except StoreDisposedError:
            logger.debug(
                'Store disposed, dropping follow-up of effect "%s"',
                effect.name,
            )
        except Exception as exception:  # noqa: BLE001
            self._report(effect, action, exception)

    def dispose(self: EffectRunner) -> None:
        """Cancel every effect and stop listening to the store."""
        for effect in self.effects:
            effect.dispose()
        self._subscription.unsubscribe()


def log_effect_failure(action: BaseAction, error: BaseException) -> None:
    """Report an unmapped effect failure as a log record."""
    logger.error(
        'Unhandled failure of an effect triggered by "%s"',
        action.kind,
        exc_info=error,
    )
