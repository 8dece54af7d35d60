"""Event loop thread that effects run on during tests."""

from __future__ import annotations

import asyncio
import threading
from typing import TYPE_CHECKING, TypeVar

import pytest

if TYPE_CHECKING:
    import concurrent.futures
    from collections.abc import Coroutine, Generator

T = TypeVar('T')

STOP_TIMEOUT = 5


class LoopThread(threading.Thread):
    """Own an asyncio event loop running in a daemon thread.

    Pass `loop` as `StoreOptions.effect_loop` so effect handlers run away from
    the thread dispatching actions, as they would in an application.
    """

    def __init__(self: LoopThread) -> None:
        """Create the loop, it starts running with the thread."""
        super().__init__(name='Effect Loop', daemon=True)
        self.loop = asyncio.new_event_loop()
        self.started = threading.Event()

    def run(self: LoopThread) -> None:
        """Run the loop until `stop`, then cancel what is left and close it."""
        asyncio.set_event_loop(self.loop)
        self.loop.call_soon(self.started.set)
        try:
            self.loop.run_forever()
        finally:
            pending = asyncio.all_tasks(self.loop)
            for task in pending:
                task.cancel()
            self.loop.run_until_complete(
                asyncio.gather(*pending, return_exceptions=True),
            )
            self.loop.close()

    def run_coroutine(
        self: LoopThread,
        coro: Coroutine[object, object, T],
    ) -> concurrent.futures.Future[T]:
        """Schedule `coro` on the loop, returning a future for its result."""
        return asyncio.run_coroutine_threadsafe(coro, self.loop)

    def stop(self: LoopThread) -> None:
        """Ask the loop to stop, tasks still running are cancelled."""
        if not self.loop.is_closed():
            self.loop.call_soon_threadsafe(self.loop.stop)


@pytest.fixture
def event_loop() -> Generator[LoopThread, None, None]:
    """Provide a running loop thread, stopped after the test."""
    loop_thread = LoopThread()
    loop_thread.start()
    loop_thread.started.wait(STOP_TIMEOUT)
    yield loop_thread
    loop_thread.stop()
    loop_thread.join(STOP_TIMEOUT)
