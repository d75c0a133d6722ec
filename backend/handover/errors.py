from __future__ import annotations

from typing import Any, Dict


class MatchError(Exception):
    """Base class for match lifecycle failures surfaced to callers."""

    status_code = 400
    code = "match_error"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.__class__.__doc__ or self.code)
        self.message = message or (self.__class__.__doc__ or self.code).strip()

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "code": self.code}


class InvalidRequestError(MatchError):
    """Request is malformed for the match engine"""

    status_code = 400
    code = "invalid_request"


class DuplicateMatchError(MatchError):
    """Report already has an active match"""

    status_code = 409
    code = "duplicate_match"

    def __init__(self, report_id: int, match_id: int | None = None):
        super().__init__(f"Report {report_id} already has an active match")
        self.report_id = report_id
        self.match_id = match_id

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d.update({"reportId": self.report_id, "matchId": self.match_id})
        return d


class ReportNotFoundError(MatchError):
    status_code = 404
    code = "report_not_found"

    def __init__(self, report_id: int):
        super().__init__(f"Report {report_id} not found")
        self.report_id = report_id


class MatchNotFoundError(MatchError):
    status_code = 404
    code = "match_not_found"

    def __init__(self, match_id: int):
        super().__init__(f"Match {match_id} not found")
        self.match_id = match_id


class InvalidTransitionError(MatchError):
    status_code = 409
    code = "invalid_transition"

    def __init__(self, current_state: str, attempted_operation: str):
        super().__init__(f"Cannot {attempted_operation} a match in state '{current_state}'")
        self.current_state = current_state
        self.attempted_operation = attempted_operation

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d.update({"currentState": self.current_state, "attemptedOperation": self.attempted_operation})
        return d


class NotAuthorizedError(MatchError):
    status_code = 403
    code = "not_authorized"

    def __init__(self, user_id: int | None, match_id: int, message: str | None = None):
        super().__init__(message or f"User {user_id} is not a party to match {match_id}")
        self.user_id = user_id
        self.match_id = match_id


class VerificationLockedError(MatchError):
    status_code = 423
    code = "verification_locked"

    def __init__(self, match_id: int, failed_count: int):
        super().__init__(f"Ownership verification for match {match_id} is locked after {failed_count} failed attempts")
        self.match_id = match_id
        self.failed_count = failed_count


class VerificationCooldownError(MatchError):
    status_code = 429
    code = "verification_cooldown"

    def __init__(self, match_id: int, retry_after: float):
        super().__init__(f"Too many attempts; retry in {int(retry_after + 0.999)}s")
        self.match_id = match_id
        self.retry_after = retry_after

    def to_dict(self) -> Dict[str, Any]:
        d = super().to_dict()
        d["retryAfter"] = round(self.retry_after, 3)
        return d


class VerificationRequiredError(MatchError):
    status_code = 409
    code = "verification_required"

    def __init__(self, match_id: int):
        super().__init__(f"Ownership must be verified before match {match_id} can resolve")
        self.match_id = match_id


class QuestionNotFoundError(MatchError):
    status_code = 404
    code = "question_not_found"

    def __init__(self, question_id: int):
        super().__init__(f"Verification question {question_id} not found for this match")
        self.question_id = question_id
