from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List

from ...extensions import db
from ...errors import InvalidTransitionError
from ...logging import get_logger
from ...models import match_state as ms
from ...models.match import Match
from .state_machine import HandoverStateMachine

logger = get_logger(__name__)


@dataclass
class SweepResult:
    expired: List[int] = field(default_factory=list)
    skipped: List[int] = field(default_factory=list)
    failed: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"expired": self.expired, "skipped": self.skipped, "failed": self.failed}


class ExpirationScheduler:
    """Moves overdue confirmed matches to expired.

    Safe to run redundantly: a match already handled by another sweep, or
    resolved/dismissed in the meantime, is rejected by the state machine and
    counted as skipped.
    """

    def __init__(self, state_machine: HandoverStateMachine | None = None, batch_size: int = 500):
        self.machine = state_machine or HandoverStateMachine()
        self.batch_size = batch_size

    def due_match_ids(self) -> List[int]:
        now = self.machine.clock()
        rows = (
            db.session.query(Match.id)
            .filter(Match.status == ms.CONFIRMED, Match.expires_at <= now)
            .order_by(Match.expires_at)
            .limit(self.batch_size)
            .all()
        )
        # Release the read transaction before taking per-match locks
        db.session.commit()
        return [int(r[0]) for r in rows]

    def sweep(self) -> SweepResult:
        result = SweepResult()
        for match_id in self.due_match_ids():
            try:
                self.machine.force_expire(match_id)
                result.expired.append(match_id)
            except InvalidTransitionError as exc:
                logger.debug("match_expire_skipped", match_id=match_id, current_state=exc.current_state)
                result.skipped.append(match_id)
            except Exception:
                logger.exception("match_expire_failed", match_id=match_id)
                db.session.rollback()
                result.failed.append(match_id)
        if result.expired or result.failed:
            logger.info("expiration_sweep_done", expired=len(result.expired), skipped=len(result.skipped), failed=len(result.failed))
        return result
