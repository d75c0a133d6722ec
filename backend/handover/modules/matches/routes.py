from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from ...clock import as_utc
from ...errors import ReportNotFoundError
from ...models import match_state as ms
from ...models.match import Match
from ...schemas.match import (
    ChallengeQuestionSchema,
    ConfirmMatchSchema,
    CreateMatchSchema,
    DismissMatchSchema,
    HandoverConfirmationSchema,
    VerificationAnswerSchema,
    VerificationAttemptSchema,
)
from .parties import load_parties
from .service import MatchService

bp = Blueprint("matches", __name__, url_prefix="/matches")

_attempts_schema = VerificationAttemptSchema(many=True)
_questions_schema = ChallengeQuestionSchema(many=True)


def _json_error(message: str, status: int = 400):
    return jsonify({"error": message}), status


def _current_user_id() -> int | None:
    try:
        uid = getattr(g, "current_user_id", None)
        return int(uid) if uid is not None else None
    except Exception:
        return None


def _is_moderator() -> bool:
    role = str(getattr(g, "current_user_role", "") or "").lower()
    return role in ("moderator", "admin")


def _is_matcher() -> bool:
    return str(getattr(g, "current_user_role", "") or "").lower() == "matcher"


def _iso(value) -> str | None:
    value = as_utc(value)
    return value.isoformat() if value else None


def _match_to_dict(m: Match, service: MatchService, include_attempts: bool = False) -> dict:
    now = service.clock()
    state = m.state
    effective = ms.effective_status(state, now)
    remaining = None
    if isinstance(state, ms.Confirmed):
        remaining = max(0, int((state.expires_at - now).total_seconds()))
    base = {
        "id": m.id,
        "sourceReportId": m.source_report_id,
        "targetReportId": m.target_report_id,
        "score": float(m.score or 0),
        "status": m.status,
        "effectiveStatus": effective,
        "isExpired": service.machine.is_expired(m, now),
        "createdAt": _iso(m.created_at),
        "confirmedAt": _iso(m.confirmed_at),
        "expiresAt": _iso(m.expires_at),
        "timeRemainingSeconds": remaining,
        "sourceUserHandoverConfirmed": bool(m.source_handover_confirmed),
        "targetUserHandoverConfirmed": bool(m.target_handover_confirmed),
        "resolvedAt": _iso(m.resolved_at),
        "expiredAt": _iso(m.expired_at),
        "dismissedAt": _iso(m.dismissed_at),
        "dismissalReason": m.dismissal_reason,
        "isOwnershipVerified": bool(m.is_ownership_verified),
        "verificationFailedCount": m.verification_failed_count,
        "verificationDismissedAt": _iso(m.verification_dismissed_at),
        "notes": m.notes,
    }
    if include_attempts:
        base["verificationAttempts"] = _attempts_schema.dump(m.verification_attempts)
    return base


def _require_user():
    uid = _current_user_id()
    if uid is None:
        return None, _json_error("Authentication required", 401)
    return uid, None


@bp.post("")
def create_match():
    """Called by the candidate-ranking service when two reports look like the same item."""
    uid, err = _require_user()
    if err:
        return err
    if not (_is_matcher() or _is_moderator()):
        return _json_error("Matcher access required", 403)
    data = CreateMatchSchema().load(request.get_json(silent=True) or {})
    service = MatchService.current()
    m = service.create_match(data["source_report_id"], data["target_report_id"], data["score"])
    return jsonify({"match": _match_to_dict(m, service)}), 201


@bp.get("")
def list_matches():
    uid, err = _require_user()
    if err:
        return err
    # reportId is required; matches are always looked at from one report
    try:
        report_id = int(request.args.get("reportId"))
    except (TypeError, ValueError):
        return _json_error("Invalid reportId", 400)
    service = MatchService.current()
    report = service.reports.get_report(report_id)
    if report is None:
        raise ReportNotFoundError(report_id)
    if report.reporter_user_id != uid and not (_is_matcher() or _is_moderator()):
        return _json_error("Not the owner of this report", 403)
    rows = service.find_by_report(report_id)
    return jsonify({"matches": [_match_to_dict(m, service) for m in rows]})


@bp.get("/<int:match_id>")
def get_match(match_id: int):
    uid, err = _require_user()
    if err:
        return err
    service = MatchService.current()
    m = service.get_match(match_id)
    if not _is_moderator() and load_parties(service.reports, m).side_of(uid) is None:
        return _json_error("Not a party to this match", 403)
    return jsonify({"match": _match_to_dict(m, service, include_attempts=True)})


@bp.post("/<int:match_id>/confirm")
def confirm_match(match_id: int):
    uid, err = _require_user()
    if err:
        return err
    data = ConfirmMatchSchema().load(request.get_json(silent=True) or {})
    service = MatchService.current()
    m = service.confirm_match(match_id, uid, data.get("notes"))
    return jsonify({"match": _match_to_dict(m, service)})


@bp.post("/<int:match_id>/dismiss")
def dismiss_match(match_id: int):
    uid, err = _require_user()
    if err:
        return err
    data = DismissMatchSchema().load(request.get_json(silent=True) or {})
    service = MatchService.current()
    m = service.dismiss_match(match_id, uid, data["reason"], data.get("details"))
    return jsonify({"match": _match_to_dict(m, service)})


@bp.post("/<int:match_id>/handover")
def confirm_handover(match_id: int):
    uid, err = _require_user()
    if err:
        return err
    data = HandoverConfirmationSchema().load(request.get_json(silent=True) or {})
    service = MatchService.current()
    side = data.get("side")
    if side is None:
        side = load_parties(service.reports, service.get_match(match_id)).side_of(uid)
        if side is None:
            return _json_error("Not a party to this match", 403)
    m = service.record_handover_confirmation(match_id, side, uid, data.get("notes"))
    return jsonify({"match": _match_to_dict(m, service)})


@bp.get("/<int:match_id>/verification")
def get_verification_challenge(match_id: int):
    uid, err = _require_user()
    if err:
        return err
    ch = MatchService.current().get_verification_challenge(match_id, uid)
    return jsonify({
        "matchId": ch.match_id,
        "questions": _questions_schema.dump(ch.questions),
        "attemptsRemaining": ch.attempts_remaining,
        "failedCount": ch.failed_count,
        "isVerified": ch.is_verified,
        "isLocked": ch.is_locked,
    })


@bp.post("/<int:match_id>/verification")
def submit_verification_answer(match_id: int):
    uid, err = _require_user()
    if err:
        return err
    data = VerificationAnswerSchema().load(request.get_json(silent=True) or {})
    service = MatchService.current()
    res = service.submit_verification_answer(match_id, uid, data["question_id"], data["answer"])
    return jsonify({
        "correct": res.is_correct,
        "isVerified": res.is_verified,
        "failedCount": res.failed_count,
        "attemptsRemaining": res.attempts_remaining,
        "isLocked": res.is_locked,
        "match": _match_to_dict(res.match, service),
    })
