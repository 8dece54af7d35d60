"""Fixture for waiting for a condition to be met."""

from __future__ import annotations

from collections.abc import Callable, Coroutine, Generator
from typing import (
    TYPE_CHECKING,
    Any,
    Literal,
    ParamSpec,
    TypeAlias,
    overload,
)

import pytest
from tenacity import AsyncRetrying, retry, stop_after_delay, wait_exponential

if TYPE_CHECKING:
    from tenacity.stop import StopBaseT
    from tenacity.wait import WaitBaseT

WaitForArgs = ParamSpec('WaitForArgs')

Waiter: TypeAlias = Callable[WaitForArgs, None]
AsyncWaiter: TypeAlias = Callable[WaitForArgs, Coroutine[None, None, None]]

DEFAULT_TIMEOUT = 5


class WaitFor:
    """Retry a check until it stops raising or the timeout is reached.

    Effects run on another thread, so tests dispatch an action and then wait
    for the state or the dispatched actions to settle.
    """

    @overload
    def __call__(
        self: WaitFor,
        *,
        timeout: float | None = None,
        stop: StopBaseT | None = None,
        wait: WaitBaseT | None = None,
    ) -> Callable[[Callable[WaitForArgs, None]], Waiter[WaitForArgs]]: ...

    @overload
    def __call__(
        self: WaitFor,
        check: Callable[WaitForArgs, None],
        *,
        timeout: float | None = None,
        stop: StopBaseT | None = None,
        wait: WaitBaseT | None = None,
    ) -> Waiter[WaitForArgs]: ...

    @overload
    def __call__(
        self: WaitFor,
        *,
        timeout: float | None = None,
        stop: StopBaseT | None = None,
        wait: WaitBaseT | None = None,
        run_async: Literal[True],
    ) -> Callable[[Callable[WaitForArgs, None]], AsyncWaiter[WaitForArgs]]: ...

    @overload
    def __call__(
        self: WaitFor,
        check: Callable[WaitForArgs, None],
        *,
        timeout: float | None = None,
        stop: StopBaseT | None = None,
        wait: WaitBaseT | None = None,
        run_async: Literal[True],
    ) -> AsyncWaiter[WaitForArgs]: ...

    def __call__(
        self: WaitFor,
        check: Callable[WaitForArgs, None] | None = None,
        *,
        timeout: float | None = None,
        stop: StopBaseT | None = None,
        wait: WaitBaseT | None = None,
        run_async: bool = False,
    ) -> Any:  # noqa: ANN401
        """Create a waiter for a condition to be met.

        Without `timeout` or `stop`, the check is retried for `DEFAULT_TIMEOUT`
        seconds.
        """
        parameters: dict[str, Any] = {'reraise': True}
        if timeout is not None:
            parameters['stop'] = stop_after_delay(timeout)
        else:
            parameters['stop'] = stop or stop_after_delay(DEFAULT_TIMEOUT)

        parameters['wait'] = wait or wait_exponential(multiplier=0.01, max=0.2)

        if run_async:

            def async_decorator(
                check: Callable[WaitForArgs, None],
            ) -> AsyncWaiter[WaitForArgs]:
                async def async_wrapper(
                    *args: WaitForArgs.args,
                    **kwargs: WaitForArgs.kwargs,
                ) -> None:
                    async for attempt in AsyncRetrying(**parameters):
                        with attempt:
                            check(*args, **kwargs)

                return async_wrapper

            return async_decorator(check) if check else async_decorator

        def decorator(check: Callable[WaitForArgs, None]) -> Waiter[WaitForArgs]:
            @retry(**parameters)
            def wrapper(*args: WaitForArgs.args, **kwargs: WaitForArgs.kwargs) -> None:
                check(*args, **kwargs)

            return wrapper

        return decorator(check) if check else decorator


@pytest.fixture
def wait_for() -> Generator[WaitFor, None, None]:
    """Provide `wait_for` decorator."""
    yield WaitFor()
