from __future__ import annotations

from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ...clock import Clock, utcnow
from ...errors import DuplicateMatchError, InvalidRequestError, InvalidTransitionError, ReportNotFoundError
from ...extensions import db
from ...locks import report_locks
from ...logging import get_logger
from ...models import match_state as ms
from ...models.match import Match
from ...models.report import Report
from ..notifications import bus
from ..reports.store import ReportStore, SqlReportStore
from .state_machine import HandoverStateMachine, audit, match_event_payload

logger = get_logger(__name__)


class MatchRegistry:
    """Creates matches and answers lookups; status changes go through ``machine``."""

    def __init__(
        self,
        clock: Clock = utcnow,
        report_store: ReportStore | None = None,
        state_machine: HandoverStateMachine | None = None,
    ):
        self.clock = clock
        self.reports = report_store or SqlReportStore()
        self.machine = state_machine or HandoverStateMachine(clock=clock, report_store=self.reports)

    def create(self, source_report_id: int, target_report_id: int, score: float | None = None) -> Match:
        source_report_id = int(source_report_id)
        target_report_id = int(target_report_id)
        if source_report_id == target_report_id:
            raise InvalidRequestError("A report cannot be matched with itself")
        reports = []
        for rid in (source_report_id, target_report_id):
            info = self.reports.get_report(rid)
            if info is None:
                raise ReportNotFoundError(rid)
            reports.append(info)
        if sorted(r.type for r in reports) != ["found", "lost"]:
            raise InvalidRequestError("A match pairs one lost report with one found report")

        with report_locks.hold(source_report_id, target_report_id):
            for rid in (source_report_id, target_report_id):
                existing = self.find_active_by_report(rid)
                if existing is not None and self.machine.is_expired(existing):
                    # Overdue but not yet swept; settle it now instead of blocking the report
                    self._reconcile_expired(existing)

            try:
                self.lock_reports(source_report_id, target_report_id)
                for rid in (source_report_id, target_report_id):
                    existing = self.find_active_by_report(rid)
                    if existing is not None:
                        raise DuplicateMatchError(rid, int(existing.id))

                m = Match(
                    source_report_id=source_report_id,
                    target_report_id=target_report_id,
                    score=round(float(score or 0), 2),
                    status=ms.SUGGESTED,
                    created_at=self.clock(),
                )
                db.session.add(m)
                db.session.flush()
                audit("match_created", m, None, score=float(m.score))
                db.session.commit()
            except IntegrityError:
                # Another process won the race on the partial unique index
                db.session.rollback()
                raise DuplicateMatchError(source_report_id) from None
            except Exception:
                db.session.rollback()
                raise

        logger.info("match_created", match_id=int(m.id), source_report_id=source_report_id, target_report_id=target_report_id)
        bus.publish(bus.MATCH_CREATED, match_event_payload(m, score=float(m.score)))
        return m

    # Name used by the candidate-ranking service
    propose_match = create

    def lock_reports(self, *report_ids: int) -> None:
        """Row-lock the reports so creates touching them serialize across processes."""
        (
            db.session.query(Report.id)
            .filter(Report.id.in_(sorted(report_ids)))
            .order_by(Report.id)
            .with_for_update()
            .all()
        )

    def _reconcile_expired(self, m: Match) -> None:
        try:
            self.machine.force_expire(int(m.id))
        except InvalidTransitionError as exc:
            # Settled by the sweep or a user in the meantime
            logger.debug("match_reconcile_skipped", match_id=int(m.id), current_state=exc.current_state)

    def get(self, match_id: int) -> Match:
        return self.machine.load(match_id)

    def find_by_report(self, report_id: int) -> List[Match]:
        return (
            Match.query
            .filter(or_(Match.source_report_id == report_id, Match.target_report_id == report_id))
            .order_by(Match.created_at.desc(), Match.id.desc())
            .all()
        )

    def find_active_by_report(self, report_id: int) -> Optional[Match]:
        return (
            Match.query
            .filter(or_(Match.source_report_id == report_id, Match.target_report_id == report_id))
            .filter(Match.status.in_(sorted(ms.ACTIVE_STATUSES)))
            .first()
        )

    def is_expired(self, m: Match) -> bool:
        return self.machine.is_expired(m)

    def effective_status(self, m: Match) -> str:
        return ms.effective_status(m.state, self.clock())
