"""Store related fixtures."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from flux_store.basic_types import StoreOptions

if TYPE_CHECKING:
    from collections.abc import Generator

    from flux_store.basic_types import BaseAction
    from flux_store.main import Store
    from flux_store_pytest.fixtures.event_loop import LoopThread


@pytest.fixture
def store() -> Store:  # pragma: no cover
    """Override with a fixture returning the store under test."""
    msg = 'Override the `store` fixture to return the store under test.'
    raise NotImplementedError(msg)


@pytest.fixture
def effect_failures() -> list[tuple[BaseAction, BaseException]]:
    """Collect the effect failures reported through `store_options`."""
    return []


@pytest.fixture
def store_options(
    event_loop: LoopThread,
    effect_failures: list[tuple[BaseAction, BaseException]],
) -> StoreOptions:
    """Run effects on `event_loop` and record their failures."""
    return StoreOptions(
        effect_loop=event_loop.loop,
        report_effect_failure=lambda action, error: effect_failures.append(
            (action, error),
        ),
    )


@pytest.fixture
def needs_dispose(store: Store) -> Generator[None, None, None]:
    """Dispose the store once the test is over, even if it failed."""
    yield
    if not store.is_disposed:
        store.dispose()
