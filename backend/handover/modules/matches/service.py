from __future__ import annotations

from typing import List, Optional

from flask import Flask, current_app

from ...clock import Clock, utcnow
from ...models.match import Match
from ...models.rejection import RejectionRecord, UserRejectionStats
from ..rejections.tracker import FlagOutcome, RejectionTracker
from ..reports.store import ReportStore, SqlReportStore
from .policy import MatchPolicy
from .registry import MatchRegistry
from .scheduler import ExpirationScheduler
from .state_machine import HandoverStateMachine
from .verification import Challenge, OwnershipVerificationChallenge, VerificationResult

EXTENSION_KEY = "match_service"


class MatchService:
    """Wires the match components together and exposes the application-facing operations."""

    def __init__(self, policy: MatchPolicy | None = None, clock: Clock = utcnow, report_store: ReportStore | None = None):
        self.policy = policy or MatchPolicy()
        self.clock = clock
        self.reports = report_store or SqlReportStore()
        self.tracker = RejectionTracker(self.policy, clock)
        self.machine = HandoverStateMachine(self.policy, clock, self.reports, self.tracker)
        self.verification = OwnershipVerificationChallenge(self.policy, clock, self.reports, self.machine)
        self.registry = MatchRegistry(clock, self.reports, self.machine)
        self.scheduler = ExpirationScheduler(self.machine)

    def init_app(self, app: Flask) -> None:
        app.extensions[EXTENSION_KEY] = self

    @staticmethod
    def current() -> "MatchService":
        return current_app.extensions[EXTENSION_KEY]

    # ---- matcher / API layer ----

    def create_match(self, source_report_id: int, target_report_id: int, score: float | None = None) -> Match:
        return self.registry.create(source_report_id, target_report_id, score)

    def get_match(self, match_id: int) -> Match:
        return self.registry.get(match_id)

    def find_by_report(self, report_id: int) -> List[Match]:
        return self.registry.find_by_report(report_id)

    def confirm_match(self, match_id: int, acting_user_id: int, notes: str | None = None) -> Match:
        return self.machine.confirm(match_id, acting_user_id, notes)

    def dismiss_match(self, match_id: int, acting_user_id: int, reason: str, details: str | None = None) -> Match:
        return self.machine.dismiss(match_id, acting_user_id, reason, details)

    def record_handover_confirmation(
        self,
        match_id: int,
        side: str,
        acting_user_id: Optional[int] = None,
        notes: str | None = None,
    ) -> Match:
        return self.machine.record_handover_confirmation(match_id, side, acting_user_id, notes)

    def get_verification_challenge(self, match_id: int, acting_user_id: int) -> Challenge:
        return self.verification.get_challenge(match_id, acting_user_id)

    def submit_verification_answer(self, match_id: int, acting_user_id: int, question_id: int, answer: str) -> VerificationResult:
        return self.verification.submit_answer(match_id, acting_user_id, question_id, answer)

    def get_user_rejection_stats(self, user_id: int) -> Optional[UserRejectionStats]:
        return self.tracker.get_stats(user_id)

    # ---- moderation ----

    def is_flagged(self, user_id: int) -> bool:
        return self.tracker.is_flagged(user_id)

    def flag_reason(self, user_id: int) -> Optional[str]:
        return self.tracker.flag_reason(user_id)

    def rejection_history(self, user_id: int, limit: int = 200) -> List[RejectionRecord]:
        return self.tracker.history(user_id, limit)

    def flagged_users(self, limit: int = 200) -> List[UserRejectionStats]:
        return self.tracker.flagged_users(limit)

    def flag_user(self, user_id: int, moderator_id: int, reason: str | None = None) -> FlagOutcome:
        return self.tracker.flag_user(user_id, moderator_id, reason)
