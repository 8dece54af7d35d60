"""Memoized selectors deriving read-only views of the state."""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING, Any, Generic, cast

from flux_store.basic_types import NOT_SET, SelectorOutput

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence


class MemoizedSelector(Generic[SelectorOutput]):
    """A selector that recomputes only when its inputs change by identity.

    Two levels of memoization apply. Called with the very same state object as
    the previous call, the cached result is returned without touching the
    input selectors. Otherwise the input selectors run and the combiner is
    only invoked if at least one of their outputs is a different object than
    last time. Input selectors that are memoized themselves make the whole
    chain short-circuit.
    """

    def __init__(
        self: MemoizedSelector[SelectorOutput],
        inputs: Sequence[Callable[[Any], Any]],
        combiner: Callable[..., SelectorOutput],
    ) -> None:
        """Create the selector from its input selectors and combiner."""
        self._inputs = tuple(inputs)
        self.projector = combiner
        self.recomputations = 0
        self._lock = threading.RLock()
        self._last_state: object = NOT_SET
        self._last_values: tuple[Any, ...] | None = None
        self._last_result: SelectorOutput = cast('SelectorOutput', NOT_SET)

    def __call__(self: MemoizedSelector[SelectorOutput], state: object) -> SelectorOutput:
        """Return the derived value for `state`."""
        with self._lock:
            if state is self._last_state:
                return self._last_result
            values = tuple(input_selector(state) for input_selector in self._inputs)
            self._last_state = state
            if self._last_values is not None and all(
                value is last_value
                for value, last_value in zip(values, self._last_values, strict=True)
            ):
                return self._last_result
            self._last_values = values
            self._last_result = self.projector(*values)
            self.recomputations += 1
            return self._last_result

    def release(self: MemoizedSelector[SelectorOutput]) -> None:
        """Forget the memoized inputs and result."""
        with self._lock:
            self._last_state = NOT_SET
            self._last_values = None
            self._last_result = cast('SelectorOutput', NOT_SET)

    def reset_recomputations(self: MemoizedSelector[SelectorOutput]) -> None:
        """Reset the counter of combiner invocations."""
        self.recomputations = 0

    def __repr__(self: MemoizedSelector[SelectorOutput]) -> str:
        """Return a string representation of the selector."""
        return (
            super().__repr__()
            + f'(projector: {self.projector}, recomputations: {self.recomputations})'
        )


def create_selector(
    *arguments: Callable[..., Any],
) -> MemoizedSelector[Any]:
    """Create a memoized selector, the combiner being the last argument.

    `create_selector(select_items, select_filter, combiner)` calls
    `combiner(items, filter)` with the outputs of the input selectors.
    """
    *inputs, combiner = arguments
    if not inputs:
        msg = '`create_selector` needs at least one input selector.'
        raise TypeError(msg)
    return MemoizedSelector(inputs, combiner)
