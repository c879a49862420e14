"""Domain events emitted by the Library.

Each Library owns one ``EventLog``: a bounded ring of the most recent events
plus the handlers subscribed per event name. Emitting records a read-only copy of
the event data in the ring first and then calls the handlers synchronously, in
subscription order; each handler gets its own copy.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from itertools import count
from types import MappingProxyType
from typing import Any, Callable, Deque, Dict, List, Mapping, Optional

logger = logging.getLogger(__name__)

BOOK_ADDED = "book:added"
BOOK_UPDATED = "book:updated"
BOOK_REMOVED = "book:removed"
USER_REGISTERED = "user:registered"
USER_UPDATED = "user:updated"
USER_REMOVED = "user:removed"
LOAN_CREATED = "loan:created"
LOAN_RETURNED = "loan:returned"

DEFAULT_HISTORY_SIZE = 50

Handler = Callable[[Dict[str, Any]], None]


@dataclass(frozen=True)
class Event:
    name: str
    data: Mapping[str, Any]  # read-only view
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class Subscription:
    """Handle returned by ``EventLog.subscribe``; pass it back to unsubscribe."""
    event_name: str
    handler: Handler
    token: int


class EventLog:
    def __init__(self, capacity: int = DEFAULT_HISTORY_SIZE) -> None:
        if capacity <= 0:
            raise ValueError("Event history capacity must be positive.")
        self.capacity = capacity
        self._history: Deque[Event] = deque(maxlen=capacity)
        self._subscriptions: Dict[str, List[Subscription]] = {}
        self._tokens = count(1)
        self._lock = threading.RLock()

    def subscribe(self, event_name: str, handler: Handler) -> Subscription:
        subscription = Subscription(event_name, handler, next(self._tokens))
        with self._lock:
            self._subscriptions.setdefault(event_name, []).append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> bool:
        with self._lock:
            handlers = self._subscriptions.get(subscription.event_name, [])
            if subscription in handlers:
                handlers.remove(subscription)
                return True
        return False

    def emit(self, event_name: str, data: Dict[str, Any]) -> Event:
        event = Event(name=event_name, data=MappingProxyType(dict(data)),
                      timestamp=data.get("timestamp") or datetime.now())
        with self._lock:
            self._history.append(event)
            handlers = list(self._subscriptions.get(event_name, []))
        logger.debug(f"Event {event_name} dispatched to {len(handlers)} handler(s)")
        for subscription in handlers:
            try:
                subscription.handler(dict(data))
            except Exception:
                # the mutation is already applied; keep dispatching
                logger.exception(f"Handler for {event_name} raised")
        return event

    def history(self, limit: Optional[int] = None) -> List[Event]:
        with self._lock:
            events = list(self._history)
        if limit is None:
            return events
        if limit <= 0:
            return []
        return events[-limit:]

    def stats(self) -> Dict[str, Any]:
        events = self.history()
        counts: Dict[str, int] = {}
        for event in events:
            counts[event.name] = counts.get(event.name, 0) + 1
        first = events[0] if events else None
        last = events[-1] if events else None
        return {
            "event_counts": counts,
            "total_events": len(events),
            "last_event": last,
            "first_event_time": first.timestamp if first else None,
            "last_event_time": last.timestamp if last else None,
        }

    def clear(self) -> None:
        with self._lock:
            self._history.clear()

    def __len__(self) -> int:
        return len(self._history)
