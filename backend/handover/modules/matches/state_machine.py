from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from ...clock import Clock, utcnow
from ...errors import (
    InvalidRequestError,
    InvalidTransitionError,
    MatchNotFoundError,
    NotAuthorizedError,
    VerificationRequiredError,
)
from ...extensions import db
from ...logging import get_logger
from ...models import match_state as ms
from ...models.audit_log import AuditLog
from ...models.enums import MATCH_SIDES, REJECTION_REASONS
from ...models.match import Match
from ..notifications import bus
from ..rejections.tracker import RejectionTracker
from ..reports.store import ReportStore, SqlReportStore
from .parties import MatchParties, challenge_questions, load_parties
from .policy import MatchPolicy
from .transaction import PendingEvents, match_mutation

logger = get_logger(__name__)


def match_event_payload(m: Match, **extra: Any) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "matchId": int(m.id),
        "sourceReportId": int(m.source_report_id),
        "targetReportId": int(m.target_report_id),
        "status": m.status,
    }
    payload.update(extra)
    return payload


def audit(action: str, m: Match, actor_user_id: Optional[int] = None, **details: Any) -> None:
    db.session.add(AuditLog(
        actor_user_id=actor_user_id,
        action=action,
        entity_type="match",
        entity_id=int(m.id),
        details=details or None,
    ))


class HandoverStateMachine:
    """Guards every status change of a match.

    Each public operation locks the match, validates the move against
    ``match_state.TRANSITIONS`` and commits once. A failed operation rolls
    back and leaves the row untouched.
    """

    def __init__(
        self,
        policy: MatchPolicy | None = None,
        clock: Clock = utcnow,
        report_store: ReportStore | None = None,
        tracker: RejectionTracker | None = None,
    ):
        self.policy = policy or MatchPolicy()
        self.clock = clock
        self.reports = report_store or SqlReportStore()
        self.tracker = tracker or RejectionTracker(self.policy, clock)

    # ---- helpers shared with the verification challenge ----

    def load(self, match_id: int) -> Match:
        m = db.session.get(Match, match_id)
        if m is None:
            raise MatchNotFoundError(match_id)
        return m

    def load_for_update(self, match_id: int) -> Match:
        m = (
            Match.query
            .filter(Match.id == match_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
        if m is None:
            raise MatchNotFoundError(match_id)
        return m

    def require_side(self, m: Match, parties: MatchParties, user_id: Optional[int]) -> str:
        side = parties.side_of(user_id)
        if side is None:
            raise NotAuthorizedError(user_id, int(m.id))
        return side

    def guard(self, m: Match, operation: str, now: datetime) -> ms.MatchState:
        """Current state, treating an unswept but overdue confirmation as expired."""
        state = m.state
        if ms.effective_status(state, now) == ms.EXPIRED and state.status == ms.CONFIRMED:
            raise InvalidTransitionError(ms.EXPIRED, operation)
        return state

    def is_expired(self, m: Match, now: Optional[datetime] = None) -> bool:
        state = m.state
        return isinstance(state, ms.Confirmed) and state.is_expired(now or self.clock())

    def _add_notes(self, m: Match, notes: str | None) -> None:
        # Free-text remarks accompany a status change; kept as a running log
        text = (notes or "").strip()
        if text:
            m.notes = f"{m.notes}\n{text}" if m.notes else text

    def verification_required(self, parties: MatchParties) -> bool:
        if not self.policy.require_ownership_verification:
            return False
        return bool(challenge_questions(self.reports, parties))

    # ---- operations ----

    def confirm(self, match_id: int, acting_user_id: int, notes: str | None = None) -> Match:
        with match_mutation(match_id) as events:
            m = self.load_for_update(match_id)
            parties = load_parties(self.reports, m)
            self.require_side(m, parties, acting_user_id)
            now = self.clock()
            state = self.guard(m, "confirm", now)
            if isinstance(state, ms.Confirmed):
                # Second party or repeat call; the window keeps its original bounds
                logger.debug("match_confirm_noop", match_id=match_id, user_id=acting_user_id)
                return m
            confirmed = ms.confirm(state, acting_user_id, now, self.policy.confirmation_window)
            m.apply_state(confirmed)
            self._add_notes(m, notes)
            audit("match_confirmed", m, acting_user_id, expiresAt=confirmed.expires_at.isoformat())
            events.append((bus.MATCH_CONFIRMED, match_event_payload(
                m,
                confirmedBy=acting_user_id,
                confirmedAt=confirmed.confirmed_at.isoformat(),
                expiresAt=confirmed.expires_at.isoformat(),
            )))
        logger.info("match_confirmed", match_id=match_id, user_id=acting_user_id, expires_at=confirmed.expires_at.isoformat())
        return m

    def record_handover_confirmation(
        self,
        match_id: int,
        side: str,
        acting_user_id: Optional[int] = None,
        notes: str | None = None,
    ) -> Match:
        if side not in MATCH_SIDES:
            raise InvalidRequestError(f"Unknown side: {side}")
        with match_mutation(match_id) as events:
            m = self.load_for_update(match_id)
            parties = load_parties(self.reports, m)
            if acting_user_id is not None and parties.side_of(acting_user_id) != side:
                raise NotAuthorizedError(acting_user_id, int(m.id), f"User {acting_user_id} cannot confirm handover for the {side} side")
            if isinstance(m.state, ms.Resolved):
                return m
            now = self.clock()
            state = self.guard(m, "record_handover", now)
            if not isinstance(state, ms.Confirmed):
                raise InvalidTransitionError(state.status, "record_handover")
            if state.handover_confirmed(side):
                return m
            updated = state.with_handover(side)
            self._add_notes(m, notes)
            if updated.both_handovers_confirmed:
                if self.verification_required(parties) and not m.is_ownership_verified:
                    raise VerificationRequiredError(int(m.id))
                resolved = ms.resolve(updated, now)
                m.apply_state(resolved)
                audit("match_resolved", m, acting_user_id, side=side)
                events.append((bus.MATCH_RESOLVED, match_event_payload(m, resolvedAt=resolved.resolved_at.isoformat())))
                logger.info("match_resolved", match_id=match_id)
            else:
                m.apply_state(updated)
                audit("match_handover_confirmed", m, acting_user_id, side=side)
                logger.info("match_handover_confirmed", match_id=match_id, side=side)
        return m

    def dismiss(self, match_id: int, acting_user_id: int, reason: str, details: str | None = None) -> Match:
        if reason not in REJECTION_REASONS:
            raise InvalidRequestError(f"Unknown rejection reason: {reason}")
        with match_mutation(match_id) as events:
            m = self.load_for_update(match_id)
            parties = load_parties(self.reports, m)
            side = self.require_side(m, parties, acting_user_id)
            self.apply_dismiss(m, acting_user_id, side, reason, details, self.clock(), events)
        return m

    def apply_dismiss(
        self,
        m: Match,
        acting_user_id: int,
        side: str,
        reason: str,
        details: str | None,
        now: datetime,
        events: PendingEvents,
    ) -> None:
        """Dismiss inside an already open match mutation."""
        state = self.guard(m, "dismiss", now)
        dismissed = ms.dismiss(state, acting_user_id, reason, now)
        m.apply_state(dismissed)
        outcome = self.tracker.record_rejection(acting_user_id, int(m.id), reason, details, rejected_by=side)
        audit("match_dismissed", m, acting_user_id, reason=reason, side=side)
        events.append((bus.MATCH_DISMISSED, match_event_payload(
            m,
            dismissedBy=acting_user_id,
            reason=reason,
            dismissedAt=dismissed.dismissed_at.isoformat(),
        )))
        if outcome.newly_flagged:
            events.append((bus.USER_FLAGGED, {
                "userId": acting_user_id,
                "flagReason": outcome.stats.flag_reason,
                "flaggedAt": now.isoformat(),
                "matchId": int(m.id),
            }))
        logger.info("match_dismissed", match_id=int(m.id), user_id=acting_user_id, reason=reason)

    def force_expire(self, match_id: int) -> Match:
        """Scheduler entry point; fails unless the window has actually elapsed."""
        with match_mutation(match_id) as events:
            m = self.load_for_update(match_id)
            now = self.clock()
            expired = ms.expire(m.state, now)
            m.apply_state(expired)
            audit("match_expired", m, None, expiresAt=expired.expires_at.isoformat())
            events.append((bus.MATCH_EXPIRED, match_event_payload(m, expiredAt=expired.expired_at.isoformat())))
        logger.info("match_expired", match_id=match_id)
        return m
