from flask import Blueprint, Flask, g, jsonify, request, current_app
from marshmallow import ValidationError

from ...errors import MatchError
from ...logging import get_logger
from ...modules.matches.routes import bp as matches_bp
from ...modules.users.routes import bp as users_bp
from ...modules.admin.routes import bp as admin_bp

logger = get_logger(__name__)


def register_api(app: Flask) -> None:
    api_v1 = Blueprint("api_v1", __name__, url_prefix="/api/v1")

    # Lightweight auth context loader with production-safe behavior.
    # In development (DEBUG=True) we accept an `X-User-Id` header (and optional
    # `X-User-Role`) or an `Authorization: User <id>` header for local testing.
    # In production (DEBUG=False), require a signed bearer token issued by the auth service.
    @api_v1.before_request  # type: ignore
    def _load_current_user():  # pragma: no cover - simple request context helper
        from ...security import verify_token
        uid: int | None = None
        role: str | None = None
        debug_mode = bool(current_app.config.get("DEBUG"))

        # Bearer token takes precedence
        auth = request.headers.get("Authorization") or ""
        if auth.lower().startswith("bearer "):
            token = auth[7:].strip()
            uid, role = verify_token(token)
        elif debug_mode:
            raw = request.headers.get("X-User-Id") or ""
            if not raw and auth.lower().startswith("user "):
                raw = auth[5:].strip()
            if raw:
                try:
                    cand = int(raw)
                    if cand > 0:
                        uid = cand
                except Exception:
                    uid = None
            if uid is not None:
                role = (request.headers.get("X-User-Role") or "member").strip().lower()
        g.current_user_id = uid  # type: ignore[attr-defined]
        g.current_user_role = role if uid is not None else None  # type: ignore[attr-defined]

    api_v1.register_blueprint(matches_bp)
    api_v1.register_blueprint(users_bp)
    api_v1.register_blueprint(admin_bp)

    app.register_blueprint(api_v1)

    @app.errorhandler(MatchError)
    def _match_error(err: MatchError):
        logger.info("request_rejected", code=err.code, error=err.message, path=request.path)
        return jsonify(err.to_dict()), err.status_code

    @app.errorhandler(ValidationError)
    def _validation_error(err: ValidationError):
        return jsonify({"error": "Invalid request", "details": err.messages}), 400
