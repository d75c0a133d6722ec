from flask import Blueprint, g, jsonify

from ...schemas.rejection import UserRejectionStatsSchema
from ..matches.service import MatchService

bp = Blueprint("users", __name__, url_prefix="/users")


def _empty_stats(user_id: int) -> dict:
    return {
        "userId": user_id,
        "totalRejections": 0,
        "rejectionReasons": {},
        "lastRejectionAt": None,
        "isFlagged": False,
        "flaggedAt": None,
        "flagReason": None,
    }


@bp.get("/<int:user_id>/rejection-stats")
def get_user_rejection_stats(user_id: int):
    current_uid = getattr(g, "current_user_id", None)
    role = str(getattr(g, "current_user_role", "") or "").lower()
    if current_uid is None:
        return jsonify({"error": "Authentication required"}), 401
    # Users may read their own stats; moderators may read anyone's
    if int(current_uid) != user_id and role not in ("moderator", "admin"):
        return jsonify({"error": "Forbidden"}), 403
    stats = MatchService.current().get_user_rejection_stats(user_id)
    if stats is None:
        return jsonify({"stats": _empty_stats(user_id)})
    return jsonify({"stats": UserRejectionStatsSchema().dump(stats)})
