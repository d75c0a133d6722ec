"""Match status as a tagged variant plus the single transition table.

Each status carries only the data that is meaningful for it, so a suggested
match cannot hold an expiry and a resolved match always has both handover
confirmations. Rows are converted to and from these values by
``Match.state`` / ``Match.apply_state``.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import ClassVar, Dict, Optional, Tuple, Union

from ..errors import InvalidTransitionError

SUGGESTED = "suggested"
CONFIRMED = "confirmed"
RESOLVED = "resolved"
EXPIRED = "expired"
DISMISSED = "dismissed"

TERMINAL_STATUSES = frozenset({RESOLVED, EXPIRED, DISMISSED})
ACTIVE_STATUSES = frozenset({SUGGESTED, CONFIRMED})

TRANSITIONS: Dict[Tuple[str, str], str] = {
    (SUGGESTED, "confirm"): CONFIRMED,
    (SUGGESTED, "dismiss"): DISMISSED,
    (CONFIRMED, "resolve"): RESOLVED,
    (CONFIRMED, "expire"): EXPIRED,
    (CONFIRMED, "dismiss"): DISMISSED,
}


def next_status(current: str, operation: str) -> str:
    try:
        return TRANSITIONS[(current, operation)]
    except KeyError:
        raise InvalidTransitionError(current, operation) from None


@dataclass(frozen=True)
class Suggested:
    status: ClassVar[str] = SUGGESTED
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class Confirmed:
    status: ClassVar[str] = CONFIRMED
    confirmed_at: datetime
    expires_at: datetime
    confirmed_by_user_id: Optional[int] = None
    source_handover_confirmed: bool = False
    target_handover_confirmed: bool = False

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def handover_confirmed(self, side: str) -> bool:
        return self.source_handover_confirmed if side == "source" else self.target_handover_confirmed

    def with_handover(self, side: str) -> "Confirmed":
        if side == "source":
            return replace(self, source_handover_confirmed=True)
        if side == "target":
            return replace(self, target_handover_confirmed=True)
        raise ValueError(f"Unknown side: {side}")

    @property
    def both_handovers_confirmed(self) -> bool:
        return self.source_handover_confirmed and self.target_handover_confirmed


@dataclass(frozen=True)
class Resolved:
    status: ClassVar[str] = RESOLVED
    confirmed_at: datetime
    expires_at: datetime
    resolved_at: datetime


@dataclass(frozen=True)
class Expired:
    status: ClassVar[str] = EXPIRED
    confirmed_at: datetime
    expires_at: datetime
    expired_at: datetime


@dataclass(frozen=True)
class Dismissed:
    status: ClassVar[str] = DISMISSED
    dismissed_at: datetime
    reason: str
    dismissed_by_user_id: Optional[int] = None
    confirmed_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None


MatchState = Union[Suggested, Confirmed, Resolved, Expired, Dismissed]


def effective_status(state: MatchState, now: datetime) -> str:
    """Status as callers should see it, including expiry the sweep has not stored yet."""
    if isinstance(state, Confirmed) and state.is_expired(now):
        return EXPIRED
    return state.status


def confirm(state: MatchState, user_id: int, now: datetime, window: timedelta) -> Confirmed:
    next_status(state.status, "confirm")
    return Confirmed(confirmed_at=now, expires_at=now + window, confirmed_by_user_id=user_id)


def resolve(state: MatchState, now: datetime) -> Resolved:
    next_status(state.status, "resolve")
    if not isinstance(state, Confirmed) or not state.both_handovers_confirmed:
        raise InvalidTransitionError(state.status, "resolve")
    return Resolved(confirmed_at=state.confirmed_at, expires_at=state.expires_at, resolved_at=now)


def expire(state: MatchState, now: datetime) -> Expired:
    next_status(state.status, "expire")
    if not isinstance(state, Confirmed) or not state.is_expired(now):
        raise InvalidTransitionError(state.status, "expire")
    return Expired(confirmed_at=state.confirmed_at, expires_at=state.expires_at, expired_at=now)


def dismiss(state: MatchState, user_id: Optional[int], reason: str, now: datetime) -> Dismissed:
    next_status(state.status, "dismiss")
    confirmed_at = getattr(state, "confirmed_at", None)
    expires_at = getattr(state, "expires_at", None)
    return Dismissed(
        dismissed_at=now,
        reason=reason,
        dismissed_by_user_id=user_id,
        confirmed_at=confirmed_at,
        expires_at=expires_at,
    )
