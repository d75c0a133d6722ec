from sqlalchemy import UniqueConstraint, Index
from ..extensions import db
from .enums import BigIntId


class VerificationAttempt(db.Model):
    """One answer to an ownership question. Rows are only ever inserted."""

    __tablename__ = "verification_attempts"

    id = db.Column(BigIntId, primary_key=True)
    match_id = db.Column(db.BigInteger, db.ForeignKey("matches.id"), nullable=False)
    attempt_number = db.Column(db.Integer, nullable=False)
    question_id = db.Column(db.BigInteger, nullable=False)
    user_id = db.Column(db.BigInteger)
    answered_at = db.Column(db.DateTime(timezone=True), nullable=False)
    is_correct = db.Column(db.Boolean, nullable=False)

    match = db.relationship("Match", back_populates="verification_attempts")

    __table_args__ = (
        UniqueConstraint("match_id", "attempt_number", name="uq_verification_attempts_match_number"),
        Index("idx_verification_attempts_match", "match_id"),
    )
