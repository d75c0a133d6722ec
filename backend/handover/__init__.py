import click
from flask import Flask
from .config import get_config
from .clock import Clock, utcnow
from .extensions import db, migrate, cors
from .logging import setup_logging
from sqlalchemy import text
from dotenv import load_dotenv
from werkzeug.middleware.proxy_fix import ProxyFix


def create_app(config_name: str | None = None, clock: Clock = utcnow) -> Flask:
    app = Flask(__name__)

    # Load config
    # Ensure .env is loaded before reading env vars
    load_dotenv()
    app.config.from_object(get_config(config_name))

    setup_logging("api", level=app.config["LOG_LEVEL"], json_output=bool(app.config["LOG_JSON"]))

    # Honor proxy headers from Nginx
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=1)  # type: ignore[assignment]

    # Init extensions
    cors.init_app(app)
    db.init_app(app)
    migrate.init_app(app, db)

    # Models must be imported before migrations / create_all see the metadata
    from .models import audit_log, match, rejection, report, verification  # noqa: F401

    from .modules.matches.policy import MatchPolicy
    from .modules.matches.service import MatchService
    MatchService(MatchPolicy.from_config(app.config), clock=clock).init_app(app)

    # Register blueprints (v1 API)
    from .apis.v1 import register_api
    register_api(app)

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok"}

    @app.get("/db-check")
    def db_check() -> dict:
        try:
            db.session.execute(text("SELECT 1"))
            return {"db": "ok"}
        except Exception as e:
            return {"db": "error", "message": str(e)}, 500

    @app.cli.group("matches")
    def matches_cli() -> None:
        """Match lifecycle maintenance."""

    @matches_cli.command("sweep")
    def sweep_command() -> None:
        """Expire confirmed matches whose handover window has elapsed."""
        result = MatchService.current().scheduler.sweep()
        click.echo(f"expired={len(result.expired)} skipped={len(result.skipped)} failed={len(result.failed)}")

    return app
