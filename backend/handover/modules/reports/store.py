from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Protocol

from ...extensions import db
from ...models.report import Report, ReportSecurityQuestion


@dataclass(frozen=True)
class ReportInfo:
    id: int
    reporter_user_id: Optional[int]
    type: str
    title: Optional[str] = None


@dataclass(frozen=True)
class SecurityQuestion:
    id: int
    question: str
    answer: str = field(repr=False)


class ReportStore(Protocol):
    """Read-only view of the report service used by the match engine."""

    def get_report(self, report_id: int) -> Optional[ReportInfo]:
        ...

    def get_security_questions(self, report_id: int) -> List[SecurityQuestion]:
        ...


class SqlReportStore:
    """Report store backed by the shared ``reports`` tables."""

    def get_report(self, report_id: int) -> Optional[ReportInfo]:
        row = db.session.get(Report, report_id)
        if row is None:
            return None
        return ReportInfo(id=int(row.id), reporter_user_id=row.reporter_user_id, type=str(row.type), title=row.title)

    def get_security_questions(self, report_id: int) -> List[SecurityQuestion]:
        rows = (
            ReportSecurityQuestion.query
            .filter(ReportSecurityQuestion.report_id == report_id)
            .order_by(ReportSecurityQuestion.id)
            .all()
        )
        return [SecurityQuestion(id=int(r.id), question=r.question, answer=r.answer) for r in rows]
