from __future__ import annotations

from threading import Lock
from typing import Any, Callable, Dict, List

from ...logging import get_logger

# In-process pub/sub for match domain events. The notification service
# subscribes here; delivery itself happens outside this package.
MATCH_CREATED = "matchCreated"
MATCH_CONFIRMED = "matchConfirmed"
MATCH_RESOLVED = "matchResolved"
MATCH_EXPIRED = "matchExpired"
MATCH_DISMISSED = "matchDismissed"
USER_FLAGGED = "userFlagged"

EVENT_NAMES = (MATCH_CREATED, MATCH_CONFIRMED, MATCH_RESOLVED, MATCH_EXPIRED, MATCH_DISMISSED, USER_FLAGGED)

Handler = Callable[[str, Dict[str, Any]], None]

logger = get_logger(__name__)

_subs: dict[str, List[Handler]] = {}
_lock = Lock()


def subscribe(event: str, handler: Handler) -> None:
    if event not in EVENT_NAMES:
        raise ValueError(f"Unknown event: {event}")
    with _lock:
        _subs.setdefault(event, []).append(handler)


def unsubscribe(event: str, handler: Handler) -> None:
    with _lock:
        arr = _subs.get(event)
        if not arr:
            return
        try:
            arr.remove(handler)
        except ValueError:
            pass
        if not arr:
            _subs.pop(event, None)


def clear() -> None:
    with _lock:
        _subs.clear()


def publish(event: str, payload: Dict[str, Any]) -> None:
    # Subscribers must not be able to undo a committed transition
    with _lock:
        arr = list(_subs.get(event, []))
    for handler in arr:
        try:
            handler(event, payload)
        except Exception:
            logger.exception("event_handler_failed", event_name=event, handler=getattr(handler, "__name__", repr(handler)))
