"""Pytest configuration file for the tests."""

from __future__ import annotations

from flux_store_pytest.fixtures import (
    effect_failures,
    event_loop,
    needs_dispose,
    store,
    store_monitor,
    store_options,
    wait_for,
)

__all__ = [
    'effect_failures',
    'event_loop',
    'needs_dispose',
    'store',
    'store_monitor',
    'store_options',
    'wait_for',
]
