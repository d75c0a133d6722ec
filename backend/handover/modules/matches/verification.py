from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass, field
from difflib import SequenceMatcher
from typing import List, Optional

from ...clock import Clock, as_utc, utcnow
from ...errors import (
    InvalidTransitionError,
    NotAuthorizedError,
    QuestionNotFoundError,
    VerificationCooldownError,
    VerificationLockedError,
)
from ...logging import get_logger
from ...models import match_state as ms
from ...models.match import Match
from ...models.verification import VerificationAttempt
from ..reports.store import ReportStore, SqlReportStore
from .parties import challenge_questions, load_parties
from .policy import MatchPolicy
from .state_machine import HandoverStateMachine, audit
from .transaction import match_mutation

logger = get_logger(__name__)

_NON_WORD = re.compile(r"[^\w\s]")


def normalize_answer(value: str | None) -> str:
    text = unicodedata.normalize("NFKC", value or "").casefold()
    text = _NON_WORD.sub(" ", text)
    return " ".join(text.split())


def answers_match(given: str | None, expected: str | None, threshold: float) -> bool:
    """Exact match after normalization, or close enough to forgive a typo."""
    g = normalize_answer(given)
    e = normalize_answer(expected)
    if not g or not e:
        return False
    if g == e:
        return True
    return SequenceMatcher(None, g, e).ratio() >= threshold


@dataclass(frozen=True)
class ChallengeQuestion:
    id: int
    question: str


@dataclass(frozen=True)
class Challenge:
    match_id: int
    questions: List[ChallengeQuestion] = field(default_factory=list)
    attempts_remaining: int = 0
    failed_count: int = 0
    is_verified: bool = False
    is_locked: bool = False


@dataclass(frozen=True)
class VerificationResult:
    match: Match
    is_correct: bool
    is_verified: bool
    failed_count: int
    attempts_remaining: int
    is_locked: bool
    attempt: Optional[VerificationAttempt] = None


class OwnershipVerificationChallenge:
    """Knowledge check the lost-report owner must pass before handover completes.

    Questions come from the found report, recorded by the finder from the
    physical item. Only question text ever leaves this class.
    """

    def __init__(
        self,
        policy: MatchPolicy | None = None,
        clock: Clock = utcnow,
        report_store: ReportStore | None = None,
        state_machine: HandoverStateMachine | None = None,
    ):
        self.policy = policy or MatchPolicy()
        self.clock = clock
        self.reports = report_store or SqlReportStore()
        self.machine = state_machine or HandoverStateMachine(self.policy, clock, self.reports)

    def _remaining(self, failed: int) -> int:
        return max(0, self.policy.verification_max_failures - failed)

    def get_challenge(self, match_id: int, acting_user_id: int) -> Challenge:
        m = self.machine.load(match_id)
        parties = load_parties(self.reports, m)
        side = self.machine.require_side(m, parties, acting_user_id)
        failed = m.verification_failed_count
        questions: List[ChallengeQuestion] = []
        if side == parties.claimant_side:
            questions = [ChallengeQuestion(id=q.id, question=q.question) for q in challenge_questions(self.reports, parties)]
        return Challenge(
            match_id=int(m.id),
            questions=questions,
            attempts_remaining=self._remaining(failed),
            failed_count=failed,
            is_verified=bool(m.is_ownership_verified),
            is_locked=failed >= self.policy.verification_max_failures,
        )

    def submit_answer(self, match_id: int, acting_user_id: int, question_id: int, answer: str) -> VerificationResult:
        with match_mutation(match_id) as events:
            m = self.machine.load_for_update(match_id)
            parties = load_parties(self.reports, m)
            side = self.machine.require_side(m, parties, acting_user_id)
            if side != parties.claimant_side:
                raise NotAuthorizedError(acting_user_id, int(m.id), "Only the owner of the lost report answers ownership questions")

            failed = m.verification_failed_count
            if failed >= self.policy.verification_max_failures:
                raise VerificationLockedError(int(m.id), failed)
            if m.is_ownership_verified:
                return self._result(m, True, None)

            now = self.clock()
            state = self.machine.guard(m, "verify", now)
            if state.status not in ms.ACTIVE_STATUSES:
                raise InvalidTransitionError(state.status, "verify")

            attempts = list(m.verification_attempts)
            if attempts:
                elapsed = now - as_utc(attempts[-1].answered_at)
                if elapsed < self.policy.verification_cooldown:
                    raise VerificationCooldownError(int(m.id), (self.policy.verification_cooldown - elapsed).total_seconds())

            question = next((q for q in challenge_questions(self.reports, parties) if q.id == question_id), None)
            if question is None:
                raise QuestionNotFoundError(question_id)

            correct = answers_match(answer, question.answer, self.policy.verification_fuzzy_threshold)
            attempt = VerificationAttempt(
                attempt_number=len(attempts) + 1,
                question_id=question_id,
                user_id=acting_user_id,
                answered_at=now,
                is_correct=correct,
            )
            m.verification_attempts.append(attempt)

            if correct:
                m.is_ownership_verified = True
                m.ownership_verified_at = now
                audit("match_ownership_verified", m, acting_user_id, attempt=attempt.attempt_number)
                logger.info("ownership_verified", match_id=match_id, user_id=acting_user_id, attempt=attempt.attempt_number)
            else:
                failed += 1
                audit("match_verification_failed", m, acting_user_id, attempt=attempt.attempt_number, failedCount=failed)
                logger.info("ownership_verification_failed", match_id=match_id, user_id=acting_user_id, failed_count=failed)
                if failed >= self.policy.verification_max_failures:
                    m.verification_dismissed_at = now
                    self.machine.apply_dismiss(
                        m,
                        acting_user_id,
                        side,
                        "incorrect_details",
                        f"Ownership verification failed {failed} times",
                        now,
                        events,
                    )
                    logger.warning("ownership_verification_locked", match_id=match_id, user_id=acting_user_id)
            result = self._result(m, correct, attempt)
        return result

    def _result(self, m: Match, correct: bool, attempt: Optional[VerificationAttempt]) -> VerificationResult:
        failed = m.verification_failed_count
        return VerificationResult(
            match=m,
            is_correct=correct,
            is_verified=bool(m.is_ownership_verified),
            failed_count=failed,
            attempts_remaining=self._remaining(failed),
            is_locked=failed >= self.policy.verification_max_failures,
            attempt=attempt,
        )
