"""Explicit observer registration for mutable project state.

Each mutable cell (settings, resolved modules, error lists) is an
``Observable``. Derived values are ``Computed`` over a fixed list of sources
and recompute on read. Nothing is tracked implicitly: every dependency is
wired by hand and every ``subscribe`` returns its own unsubscribe callable.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Generic, Protocol, TypeVar

T = TypeVar("T")
T_co = TypeVar("T_co", covariant=True)

Unsubscribe = Callable[[], None]


class Subscribable(Protocol[T_co]):
    """Read the current value with ``get()`` or by calling; watch it with ``subscribe``."""

    def get(self) -> T_co: ...

    def __call__(self) -> T_co: ...

    def subscribe(self, callback: Callable[[T_co], None]) -> Unsubscribe: ...


class EventEmitter(Generic[T]):
    """Synchronous fan-out of events to registered callbacks."""

    def __init__(self) -> None:
        self._listeners: list[Callable[[T], None]] = []

    def subscribe(self, callback: Callable[[T], None]) -> Unsubscribe:
        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def emit(self, event: T) -> None:
        # Listeners may unsubscribe while being notified.
        for listener in list(self._listeners):
            listener(event)

    def clear(self) -> None:
        self._listeners.clear()

    def __len__(self) -> int:
        return len(self._listeners)


class Observable(Generic[T]):
    """A mutable value cell. ``subscribe`` calls back immediately, then on every ``set``."""

    def __init__(self, value: T) -> None:
        self._value = value
        self._changed: EventEmitter[T] = EventEmitter()

    def get(self) -> T:
        return self._value

    def __call__(self) -> T:
        return self._value

    def set(self, value: T) -> None:
        self._value = value
        self._changed.emit(value)

    def subscribe(self, callback: Callable[[T], None]) -> Unsubscribe:
        unsubscribe = self._changed.subscribe(callback)
        callback(self._value)
        return unsubscribe

    def on_change(self, callback: Callable[[T], None]) -> Unsubscribe:
        """Like ``subscribe`` without the initial call."""
        return self._changed.subscribe(callback)

    def clear(self) -> None:
        self._changed.clear()


class Computed(Generic[T]):
    """A value derived from other cells, recomputed on every read."""

    def __init__(self, compute: Callable[[], T], *sources: Observable) -> None:
        self._compute = compute
        self._sources = sources

    def get(self) -> T:
        return self._compute()

    def __call__(self) -> T:
        return self._compute()

    def subscribe(self, callback: Callable[[T], None]) -> Unsubscribe:
        unsubscribers = [
            source.on_change(lambda _value: callback(self._compute())) for source in self._sources
        ]
        callback(self._compute())

        def unsubscribe() -> None:
            for unsub in unsubscribers:
                unsub()

        return unsubscribe
