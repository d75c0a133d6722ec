from __future__ import annotations

from sqlalchemy import Index, func, text

from ..clock import as_utc
from ..extensions import db
from .enums import BigIntId, match_status_enum, rejection_reason_enum
from .match_state import (
    CONFIRMED,
    DISMISSED,
    EXPIRED,
    RESOLVED,
    SUGGESTED,
    Confirmed,
    Dismissed,
    Expired,
    MatchState,
    Resolved,
    Suggested,
)

_ACTIVE = text("status IN ('suggested', 'confirmed')")


class Match(db.Model):
    """A proposed pairing of a lost report with a found report.

    Status columns are written only through ``apply_state``; everything else
    reads the typed ``state`` value.
    """

    __tablename__ = "matches"

    id = db.Column(BigIntId, primary_key=True)
    source_report_id = db.Column(db.BigInteger, db.ForeignKey("reports.id"), nullable=False)
    target_report_id = db.Column(db.BigInteger, db.ForeignKey("reports.id"), nullable=False)
    score = db.Column(db.Numeric(5, 2), nullable=False, server_default="0.00")
    status = db.Column(match_status_enum, nullable=False, default=SUGGESTED, server_default=SUGGESTED)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())
    # Confirmation window
    confirmed_at = db.Column(db.DateTime(timezone=True))
    confirmed_by_user_id = db.Column(db.BigInteger)
    expires_at = db.Column(db.DateTime(timezone=True))
    # Handover
    source_handover_confirmed = db.Column(db.Boolean, nullable=False, default=False, server_default=db.false())
    target_handover_confirmed = db.Column(db.Boolean, nullable=False, default=False, server_default=db.false())
    resolved_at = db.Column(db.DateTime(timezone=True))
    expired_at = db.Column(db.DateTime(timezone=True))
    # Dismissal
    dismissed_at = db.Column(db.DateTime(timezone=True))
    dismissed_by_user_id = db.Column(db.BigInteger)
    dismissal_reason = db.Column(rejection_reason_enum)
    # Ownership verification
    is_ownership_verified = db.Column(db.Boolean, nullable=False, default=False, server_default=db.false())
    ownership_verified_at = db.Column(db.DateTime(timezone=True))
    verification_dismissed_at = db.Column(db.DateTime(timezone=True))
    notes = db.Column(db.Text)

    source_report = db.relationship("Report", foreign_keys=[source_report_id])
    target_report = db.relationship("Report", foreign_keys=[target_report_id])
    verification_attempts = db.relationship(
        "VerificationAttempt",
        back_populates="match",
        order_by="VerificationAttempt.attempt_number",
        lazy="selectin",
    )

    __table_args__ = (
        Index("idx_matches_source", "source_report_id"),
        Index("idx_matches_target", "target_report_id"),
        Index("idx_matches_status_expires", "status", "expires_at"),
        # Backstop for the one-active-match-per-report rule enforced by the registry
        Index("uq_matches_active_source", "source_report_id", unique=True, postgresql_where=_ACTIVE, sqlite_where=_ACTIVE),
        Index("uq_matches_active_target", "target_report_id", unique=True, postgresql_where=_ACTIVE, sqlite_where=_ACTIVE),
    )

    @property
    def state(self) -> MatchState:
        st = self.status or SUGGESTED
        if st == SUGGESTED:
            return Suggested(created_at=as_utc(self.created_at))
        if st == CONFIRMED:
            return Confirmed(
                confirmed_at=as_utc(self.confirmed_at),
                expires_at=as_utc(self.expires_at),
                confirmed_by_user_id=self.confirmed_by_user_id,
                source_handover_confirmed=bool(self.source_handover_confirmed),
                target_handover_confirmed=bool(self.target_handover_confirmed),
            )
        if st == RESOLVED:
            return Resolved(
                confirmed_at=as_utc(self.confirmed_at),
                expires_at=as_utc(self.expires_at),
                resolved_at=as_utc(self.resolved_at),
            )
        if st == EXPIRED:
            return Expired(
                confirmed_at=as_utc(self.confirmed_at),
                expires_at=as_utc(self.expires_at),
                expired_at=as_utc(self.expired_at),
            )
        if st == DISMISSED:
            return Dismissed(
                dismissed_at=as_utc(self.dismissed_at),
                reason=self.dismissal_reason or "other",
                dismissed_by_user_id=self.dismissed_by_user_id,
                confirmed_at=as_utc(self.confirmed_at),
                expires_at=as_utc(self.expires_at),
            )
        raise ValueError(f"Unknown match status: {st}")

    def apply_state(self, state: MatchState) -> None:
        """Persist a state produced by the transition functions in ``match_state``."""
        if isinstance(state, Confirmed):
            # expires_at is written once, on entry into confirmed
            if self.status != CONFIRMED:
                self.confirmed_at = state.confirmed_at
                self.confirmed_by_user_id = state.confirmed_by_user_id
                self.expires_at = state.expires_at
            self.source_handover_confirmed = state.source_handover_confirmed
            self.target_handover_confirmed = state.target_handover_confirmed
        elif isinstance(state, Resolved):
            self.source_handover_confirmed = True
            self.target_handover_confirmed = True
            self.resolved_at = state.resolved_at
        elif isinstance(state, Expired):
            self.expired_at = state.expired_at
        elif isinstance(state, Dismissed):
            self.dismissed_at = state.dismissed_at
            self.dismissed_by_user_id = state.dismissed_by_user_id
            self.dismissal_reason = state.reason
        elif not isinstance(state, Suggested):
            raise TypeError(f"Unsupported state: {state!r}")
        self.status = state.status

    @property
    def verification_failed_count(self) -> int:
        return sum(1 for a in self.verification_attempts if not a.is_correct)
