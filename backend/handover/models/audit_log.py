from sqlalchemy import Index, func
from sqlalchemy.dialects.postgresql import JSONB
from ..extensions import db
from .enums import BigIntId


class AuditLog(db.Model):
    __tablename__ = "audit_logs"

    id = db.Column(BigIntId, primary_key=True)
    actor_user_id = db.Column(db.BigInteger)
    action = db.Column(db.String(120), nullable=False)
    entity_type = db.Column(db.String(120), nullable=False)
    entity_id = db.Column(db.BigInteger, nullable=False)
    details = db.Column(db.JSON().with_variant(JSONB(), "postgresql"))
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
        Index("idx_audit_created_at", "created_at"),
    )
