from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Tuple

from ...extensions import db
from ...locks import match_locks
from ..notifications import bus

PendingEvents = List[Tuple[str, Dict[str, Any]]]


@contextmanager
def match_mutation(*match_ids: int) -> Iterator[PendingEvents]:
    """Serialize writers on the given matches and run the body in one commit.

    Events appended by the body are published only after a successful commit.
    """
    events: PendingEvents = []
    with match_locks.hold(*(int(m) for m in match_ids)):
        try:
            yield events
            db.session.commit()
        except BaseException:
            db.session.rollback()
            raise
    for name, payload in events:
        bus.publish(name, payload)
