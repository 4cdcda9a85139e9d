from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

from clientops.core.errors import LifecycleError
from clientops.platform.guards import ScopeToken


logger = logging.getLogger("clientops.store")

S = TypeVar("S")
E = TypeVar("E")


@dataclass(frozen=True, slots=True)
class ReduceResult(Generic[S]):
    state: S
    error: LifecycleError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


Reducer = Callable[[S, E], ReduceResult[S]]
Subscriber = Callable[[ReduceResult[S]], None]


class ResultStore(Generic[S, E]):
    """Holds the latest reduced state and fans results out to subscribers.

    Subscribers only receive results; the state changes solely through
    ``dispatch``.
    """

    def __init__(self, name: str, reducer: Reducer, initial: S) -> None:
        self.name = name
        self._reducer = reducer
        self._state = initial
        self._subscribers: list[Subscriber] = []

    @property
    def state(self) -> S:
        return self._state

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        if subscriber not in self._subscribers:
            self._subscribers.append(subscriber)

        def unsubscribe() -> None:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

        return unsubscribe

    def dispatch(self, event: E, token: ScopeToken | None = None) -> ReduceResult[S] | None:
        if token is not None and not token.live:
            logger.info("store.result_discarded", extra={"event_name": type(event).__name__, "outcome": "stale"})
            return None

        result = self._reducer(self._state, event)
        self._state = result.state
        for subscriber in list(self._subscribers):
            try:
                subscriber(result)
            except Exception as exc:
                logger.exception("store.subscriber_failed", extra={"event_name": type(event).__name__, "error": str(exc)})
        return result
