"""Single-writer observable state cells.

Each published value (merged sightings, current room, sync status,
mapping status) lives in one :class:`ObservableValue` owned by exactly one
component.  The owner writes through :meth:`ObservableValue.set`; everyone
else gets the :class:`Observable` view, which can be read and subscribed
to but has no way to write.
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Callable
from typing import Generic, TypeVar

_logger = logging.getLogger(__name__)

T = TypeVar("T")


class ObservableValue(Generic[T]):
    """Writable state cell.  Only the owning component calls :meth:`set`.

    Subscriber failures never reach the writer.  Failures of ``internal``
    subscribers (the pipeline's own wiring) are logged at WARNING, others
    at DEBUG.
    """

    def __init__(self, initial: T, *, name: str = "") -> None:
        self._value = initial
        self._name = name or type(self).__name__
        self._subscribers: list[tuple[Callable[[T], None], int]] = []
        self._view: Observable[T] = Observable(self)

    @property
    def value(self) -> T:
        return self._value

    @property
    def name(self) -> str:
        return self._name

    def subscribe(
        self,
        callback: Callable[[T], None],
        *,
        replay: bool = False,
        internal: bool = False,
    ) -> Callable[[], None]:
        """Register *callback* for future changes.

        With ``replay=True`` the callback is also invoked once with the
        current value.  Returns a function that removes the subscription.
        """
        entry = (callback, logging.WARNING if internal else logging.DEBUG)
        self._subscribers.append(entry)
        if replay:
            self._notify_one(entry, self._value)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._subscribers.remove(entry)

        return _unsubscribe

    def set(self, value: T) -> bool:
        """Store *value* and notify subscribers if it changed.

        Returns ``True`` when subscribers were notified.
        """
        if value == self._value:
            return False
        self._value = value
        for entry in list(self._subscribers):
            self._notify_one(entry, value)
        return True

    def view(self) -> Observable[T]:
        """Read-only view handed to observers."""
        return self._view

    def _notify_one(self, entry: tuple[Callable[[T], None], int], value: T) -> None:
        callback, failure_level = entry
        try:
            callback(value)
        except Exception:
            _logger.log(failure_level, "%s subscriber %r failed", self._name, callback, exc_info=True)


class Observable(Generic[T]):
    """Read-only view of an :class:`ObservableValue`."""

    __slots__ = ("_cell",)

    def __init__(self, cell: ObservableValue[T]) -> None:
        self._cell = cell

    @property
    def value(self) -> T:
        return self._cell.value

    @property
    def name(self) -> str:
        return self._cell.name

    def subscribe(
        self,
        callback: Callable[[T], None],
        *,
        replay: bool = False,
        internal: bool = False,
    ) -> Callable[[], None]:
        return self._cell.subscribe(callback, replay=replay, internal=internal)
