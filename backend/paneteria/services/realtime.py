# Overview: In-process realtime change feed; row-level INSERT/UPDATE/DELETE events per collection.

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Iterable


EVENT_INSERT = "INSERT"
EVENT_UPDATE = "UPDATE"
EVENT_DELETE = "DELETE"
ALL_EVENTS = frozenset({EVENT_INSERT, EVENT_UPDATE, EVENT_DELETE})


@dataclass(frozen=True)
class ChangeEvent:
    """
    One row-level change.

    new is the row after the change (None for DELETE); old is the row
    before the change (None for INSERT).
    """
    collection: str
    event_type: str
    new: dict | None = None
    old: dict | None = None


ChangeCallback = Callable[[ChangeEvent], None]


@dataclass(eq=False)
class Subscription:
    collection: str
    events: frozenset
    callback: ChangeCallback
    _feed: "ChangeFeed | None" = field(default=None, repr=False)

    @property
    def active(self) -> bool:
        return self._feed is not None

    def cancel(self) -> None:
        feed, self._feed = self._feed, None
        if feed is not None:
            feed._remove(self)


class ChangeFeed:
    """
    Fan-out of change events to subscribers.

    Delivery is synchronous and in subscription order. A failing subscriber
    is logged and skipped; the remaining subscribers still receive the event.
    """

    def __init__(self, logger: logging.Logger | None = None):
        self._lock = threading.Lock()
        self._subscriptions: list[Subscription] = []
        self.logger = logger or logging.getLogger(__name__)

    def subscribe(self, collection: str, events: Iterable[str], callback: ChangeCallback) -> Subscription:
        mask = frozenset(e.upper() for e in events)
        unknown = mask - ALL_EVENTS
        if unknown:
            raise ValueError(f"Unknown event types: {', '.join(sorted(unknown))}")

        sub = Subscription(collection=collection, events=mask, callback=callback, _feed=self)
        with self._lock:
            self._subscriptions.append(sub)
        return sub

    def _remove(self, sub: Subscription) -> None:
        with self._lock:
            if sub in self._subscriptions:
                self._subscriptions.remove(sub)

    def subscriber_count(self, collection: str | None = None) -> int:
        with self._lock:
            if collection is None:
                return len(self._subscriptions)
            return sum(1 for s in self._subscriptions if s.collection == collection)

    def publish(self, event: ChangeEvent) -> None:
        with self._lock:
            targets = [
                s for s in self._subscriptions
                if s.collection == event.collection and event.event_type in s.events
            ]

        for sub in targets:
            if not sub.active:
                continue
            try:
                sub.callback(event)
            except Exception:
                self.logger.exception(
                    "Change subscriber failed for %s %s", event.collection, event.event_type
                )
