from sqlalchemy import func, Index
from ..extensions import db
from .enums import BigIntId, report_type_enum


class Report(db.Model):
    """Lost or found report. Owned by the report service; read-only here."""

    __tablename__ = "reports"

    id = db.Column(BigIntId, primary_key=True)
    reporter_user_id = db.Column(db.BigInteger)
    type = db.Column(report_type_enum, nullable=False)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)
    location = db.Column(db.String(200))
    status = db.Column(db.String(40), nullable=False, server_default="open")
    reported_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=func.now())

    security_questions = db.relationship(
        "ReportSecurityQuestion",
        back_populates="report",
        order_by="ReportSecurityQuestion.id",
        lazy=True,
    )

    __table_args__ = (
        Index("idx_reports_type_status", "type", "status"),
        Index("idx_reports_reporter", "reporter_user_id"),
    )


class ReportSecurityQuestion(db.Model):
    """Private ownership question recorded on a report.

    ``answer`` must never leave the service; serializers only expose ``question``.
    """

    __tablename__ = "report_security_questions"

    id = db.Column(BigIntId, primary_key=True)
    report_id = db.Column(db.BigInteger, db.ForeignKey("reports.id", ondelete="CASCADE"), nullable=False)
    question = db.Column(db.String(300), nullable=False)
    answer = db.Column(db.String(300), nullable=False)

    report = db.relationship("Report", back_populates="security_questions")

    __table_args__ = (
        Index("idx_report_questions_report", "report_id"),
    )
