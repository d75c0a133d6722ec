from sqlalchemy import Index
from ..extensions import db
from .enums import BigIntId, match_side_enum, rejection_reason_enum


class RejectionRecord(db.Model):
    """Why a user dismissed a match. Append-only; kept for moderation review."""

    __tablename__ = "match_rejections"

    id = db.Column(BigIntId, primary_key=True)
    match_id = db.Column(db.BigInteger, db.ForeignKey("matches.id"), nullable=False)
    user_id = db.Column(db.BigInteger, nullable=False)
    rejected_by = db.Column(match_side_enum)
    reason = db.Column(rejection_reason_enum, nullable=False)
    details = db.Column(db.Text)
    rejected_at = db.Column(db.DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("idx_match_rejections_user_time", "user_id", "rejected_at"),
        Index("idx_match_rejections_match", "match_id"),
    )


class UserRejectionStats(db.Model):
    """Per-user summary of the rejection log. Written only by RejectionTracker."""

    __tablename__ = "user_rejection_stats"

    user_id = db.Column(db.BigInteger, primary_key=True, autoincrement=False)
    total_rejections = db.Column(db.Integer, nullable=False, default=0, server_default="0")
    reason_counts = db.Column(db.JSON, nullable=False, default=dict)
    last_rejection_at = db.Column(db.DateTime(timezone=True))
    is_flagged = db.Column(db.Boolean, nullable=False, default=False, server_default=db.false())
    flagged_at = db.Column(db.DateTime(timezone=True))
    flag_reason = db.Column(db.String(200))

    __table_args__ = (
        Index("idx_user_rejection_stats_flagged", "is_flagged"),
    )
