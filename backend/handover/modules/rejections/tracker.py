from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from ...clock import Clock, utcnow
from ...errors import InvalidRequestError
from ...extensions import db
from ...locks import KeyedLock
from ...logging import get_logger
from ...models.audit_log import AuditLog
from ...models.enums import REJECTION_REASONS
from ...models.rejection import RejectionRecord, UserRejectionStats
from ..matches.policy import HIGH_SUSPICION_REASONS, MatchPolicy
from ..notifications import bus

logger = get_logger(__name__)

user_locks = KeyedLock()


@dataclass(frozen=True)
class RejectionOutcome:
    record: RejectionRecord
    stats: UserRejectionStats
    newly_flagged: bool


@dataclass(frozen=True)
class FlagOutcome:
    stats: UserRejectionStats
    newly_flagged: bool


class RejectionTracker:
    """Keeps the per-user rejection log and the abuse flag derived from it.

    ``record_rejection`` and ``flag_user`` are the only writers of
    ``UserRejectionStats``. ``record_rejection`` joins the caller's transaction
    and never commits on its own.
    """

    def __init__(self, policy: MatchPolicy | None = None, clock: Clock = utcnow):
        self.policy = policy or MatchPolicy()
        self.clock = clock

    def record_rejection(
        self,
        user_id: int,
        match_id: int,
        reason: str,
        details: str | None = None,
        rejected_by: str | None = None,
    ) -> RejectionOutcome:
        if reason not in REJECTION_REASONS:
            raise InvalidRequestError(f"Unknown rejection reason: {reason}")
        now = self.clock()
        with user_locks.hold(user_id):
            record = RejectionRecord(
                match_id=match_id,
                user_id=user_id,
                rejected_by=rejected_by,
                reason=reason,
                details=(details or "").strip() or None,
                rejected_at=now,
            )
            db.session.add(record)

            stats = self._stats_for_update(user_id)
            counts = dict(stats.reason_counts or {})
            counts[reason] = int(counts.get(reason, 0)) + 1
            # Reassign so the JSON column is marked dirty
            stats.reason_counts = counts
            stats.total_rejections = int(stats.total_rejections or 0) + 1
            stats.last_rejection_at = now

            newly_flagged = False
            if not stats.is_flagged:
                flag_reason = self._flag_reason(user_id, counts, now)
                if flag_reason:
                    stats.is_flagged = True
                    stats.flagged_at = now
                    stats.flag_reason = flag_reason
                    newly_flagged = True
            db.session.flush()

        logger.info(
            "rejection_recorded",
            user_id=user_id,
            match_id=match_id,
            reason=reason,
            total=stats.total_rejections,
            flagged=bool(stats.is_flagged),
        )
        if newly_flagged:
            logger.warning("user_flagged", user_id=user_id, flag_reason=stats.flag_reason)
        return RejectionOutcome(record=record, stats=stats, newly_flagged=newly_flagged)

    def _stats_for_update(self, user_id: int) -> UserRejectionStats:
        stats = (
            UserRejectionStats.query
            .filter(UserRejectionStats.user_id == user_id)
            .with_for_update()
            .first()
        )
        if stats is None:
            stats = UserRejectionStats(user_id=user_id, total_rejections=0, reason_counts={}, is_flagged=False)
            db.session.add(stats)
        return stats

    def _flag_reason(self, user_id: int, counts: dict, now: datetime) -> Optional[str]:
        high = sum(int(counts.get(r, 0)) for r in HIGH_SUSPICION_REASONS)
        if high >= self.policy.rejection_flag_high_suspicion:
            return f"Repeated high-suspicion rejections ({high} suspicious_behavior/incorrect_details)"
        since = now - self.policy.rejection_window
        recent = (
            db.session.query(db.func.count(RejectionRecord.id))
            .filter(RejectionRecord.user_id == user_id, RejectionRecord.rejected_at >= since)
            .scalar()
            or 0
        )
        if int(recent) >= self.policy.rejection_flag_total:
            return f"High rejection rate ({int(recent)} rejections in {self.policy.rejection_window.days} days)"
        return None

    def flag_user(self, user_id: int, moderator_id: int, reason: str | None = None) -> FlagOutcome:
        """Flag a user by hand from moderation review.

        Already flagged users keep their original ``flagged_at`` and
        ``flag_reason``. Commits and publishes ``userFlagged`` on a new flag.
        """
        now = self.clock()
        flag_reason = (reason or "").strip() or f"Flagged by moderator {moderator_id}"
        try:
            with user_locks.hold(user_id):
                stats = self._stats_for_update(user_id)
                newly_flagged = not stats.is_flagged
                if newly_flagged:
                    stats.is_flagged = True
                    stats.flagged_at = now
                    stats.flag_reason = flag_reason
                    db.session.add(AuditLog(
                        actor_user_id=moderator_id,
                        action="user_flagged",
                        entity_type="user",
                        entity_id=int(user_id),
                        details={"reason": flag_reason},
                    ))
                db.session.commit()
        except Exception:
            db.session.rollback()
            raise

        if newly_flagged:
            logger.warning("user_flagged", user_id=user_id, flagged_by=moderator_id, flag_reason=flag_reason)
            bus.publish(bus.USER_FLAGGED, {
                "userId": user_id,
                "flagReason": flag_reason,
                "flaggedAt": now.isoformat(),
                "flaggedBy": moderator_id,
            })
        return FlagOutcome(stats=stats, newly_flagged=newly_flagged)

    # ---- Moderation reads ----

    def get_stats(self, user_id: int) -> Optional[UserRejectionStats]:
        return db.session.get(UserRejectionStats, user_id)

    def is_flagged(self, user_id: int) -> bool:
        stats = self.get_stats(user_id)
        return bool(stats and stats.is_flagged)

    def flag_reason(self, user_id: int) -> Optional[str]:
        stats = self.get_stats(user_id)
        return stats.flag_reason if stats else None

    def history(self, user_id: int, limit: int = 200) -> List[RejectionRecord]:
        return (
            RejectionRecord.query
            .filter(RejectionRecord.user_id == user_id)
            .order_by(RejectionRecord.rejected_at.desc(), RejectionRecord.id.desc())
            .limit(max(1, min(1000, limit)))
            .all()
        )

    def flagged_users(self, limit: int = 200) -> List[UserRejectionStats]:
        return (
            UserRejectionStats.query
            .filter(UserRejectionStats.is_flagged.is_(True))
            .order_by(UserRejectionStats.flagged_at.desc())
            .limit(max(1, min(1000, limit)))
            .all()
        )
