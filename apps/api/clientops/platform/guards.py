from __future__ import annotations

import itertools
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from clientops.core.errors import ActionInFlight


class InFlightRegistry:
    """Serializes mutating actions per entity.

    A second action on an entity whose previous action is still outstanding is
    rejected with ``ActionInFlight`` rather than queued.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._keys: set[tuple[str, str]] = set()

    def is_in_flight(self, entity_type: str, entity_id: str) -> bool:
        with self._lock:
            return (entity_type, entity_id) in self._keys

    @contextmanager
    def hold(self, entity_type: str, entity_id: str) -> Iterator[None]:
        key = (entity_type, entity_id)
        with self._lock:
            if key in self._keys:
                raise ActionInFlight(entity_type, entity_id)
            self._keys.add(key)
        try:
            yield
        finally:
            with self._lock:
                self._keys.discard(key)

    def clear(self) -> None:
        with self._lock:
            self._keys.clear()


@dataclass(frozen=True, slots=True)
class ScopeToken:
    scope: ViewScope
    generation: int

    @property
    def live(self) -> bool:
        return self.scope.is_live(self)


class ViewScope:
    """Liveness of a view that issued requests.

    Opening a new token supersedes earlier ones; results carrying a stale or
    closed token are discarded by the caller instead of being applied.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._lock = threading.Lock()
        self._counter = itertools.count(1)
        self._current = 0

    def open(self) -> ScopeToken:
        with self._lock:
            self._current = next(self._counter)
            return ScopeToken(scope=self, generation=self._current)

    def close(self) -> None:
        with self._lock:
            self._current = 0

    def is_live(self, token: ScopeToken) -> bool:
        with self._lock:
            return token.scope is self and token.generation == self._current != 0
