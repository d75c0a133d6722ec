from __future__ import annotations

from flask import Blueprint, jsonify, request, g

from ...schemas.rejection import FlagUserSchema, RejectionRecordSchema, UserRejectionStatsSchema
from ..matches.service import MatchService

bp = Blueprint("admin", __name__, url_prefix="/admin")


@bp.before_request
def _require_moderator():
    role = str(getattr(g, "current_user_role", "") or "").lower()
    if getattr(g, "current_user_id", None) is None or role not in ("moderator", "admin"):
        return jsonify({"error": "Moderator access required"}), 403


def _limit(default: int = 200) -> int:
    try:
        return int(request.args.get("limit", default))
    except Exception:
        return default


@bp.get("/rejections/flagged")
def flagged_users():
    """Users flagged for repeated match rejections, most recently flagged first."""
    rows = MatchService.current().flagged_users(_limit())
    return jsonify({"users": UserRejectionStatsSchema(many=True).dump(rows)})


@bp.get("/rejections/users/<int:user_id>")
def user_rejection_history(user_id: int):
    """Flag status plus the full rejection log for one user."""
    service = MatchService.current()
    stats = service.get_user_rejection_stats(user_id)
    history = service.rejection_history(user_id, _limit())
    return jsonify({
        "userId": user_id,
        "isFlagged": service.is_flagged(user_id),
        "flagReason": service.flag_reason(user_id),
        "stats": UserRejectionStatsSchema().dump(stats) if stats else None,
        "rejections": RejectionRecordSchema(many=True).dump(history),
    })


@bp.post("/rejections/users/<int:user_id>/flag")
def flag_user(user_id: int):
    """Flag a user by hand after reviewing their rejection pattern. Repeating it is harmless."""
    data = FlagUserSchema().load(request.get_json(silent=True) or {})
    outcome = MatchService.current().flag_user(user_id, int(g.current_user_id), data.get("reason"))
    return jsonify({
        "newlyFlagged": outcome.newly_flagged,
        "stats": UserRejectionStatsSchema().dump(outcome.stats),
    })


@bp.post("/matches/sweep")
def sweep_expired_matches():
    """Run one expiration sweep now instead of waiting for the beat schedule."""
    result = MatchService.current().scheduler.sweep()
    return jsonify(result.to_dict())
