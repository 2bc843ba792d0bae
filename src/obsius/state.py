"""Snapshot state cell.

Holds one immutable value and replaces it only through pure updater
functions, so each write sees the latest snapshot rather than a value
captured before an await.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Generic, TypeVar

from obsius.logging import get_logger

log = get_logger("state")

T = TypeVar("T")

Listener = Callable[[T, T], None]


class StateCell(Generic[T]):
    """A value plus change listeners.

    Listeners receive ``(previous, current)`` after every update that
    produced a different object.
    """

    def __init__(self, initial: T) -> None:
        self._value = initial
        self._listeners: list[Listener[T]] = []

    @property
    def value(self) -> T:
        return self._value

    def update(self, updater: Callable[[T], T]) -> T:
        """Apply ``updater`` to the current value and store the result.

        Returns:
            The new value.
        """
        previous = self._value
        current = updater(previous)
        if current is previous:
            return current
        self._value = current
        for listener in list(self._listeners):
            try:
                listener(previous, current)
            except Exception:
                log.exception("State listener failed")
        return current

    def set(self, value: T) -> T:
        return self.update(lambda _prev: value)

    def subscribe(self, listener: Listener[T]) -> Callable[[], None]:
        """Register a change listener.

        Returns:
            A function that unregisters the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe
