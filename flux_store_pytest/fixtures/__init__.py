"""Utility fixtures for testing stores."""

import pytest

pytest.register_assert_rewrite(
    'flux_store_pytest.fixtures.event_loop',
    'flux_store_pytest.fixtures.monitor',
    'flux_store_pytest.fixtures.store',
    'flux_store_pytest.fixtures.wait_for',
)

from .event_loop import LoopThread, event_loop  # noqa: E402
from .monitor import StoreMonitor, store_monitor  # noqa: E402
from .store import effect_failures, needs_dispose, store, store_options  # noqa: E402
from .wait_for import Waiter, WaitFor, wait_for  # noqa: E402

__all__ = (
    'LoopThread',
    'StoreMonitor',
    'WaitFor',
    'Waiter',
    'effect_failures',
    'event_loop',
    'needs_dispose',
    'store',
    'store_monitor',
    'store_options',
    'wait_for',
)
