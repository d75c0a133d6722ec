from __future__ import annotations

from flask import Flask

from handover import create_app
from handover.modules.matches.service import MatchService
from handover.tasks.celery_app import celery_app

_app: Flask | None = None


def _flask_app() -> Flask:
    global _app
    if _app is None:
        _app = create_app()
    return _app


@celery_app.task(name="handover.sweep_expired_matches", ignore_result=False)
def sweep_expired_matches() -> dict:
    with _flask_app().app_context():
        return MatchService.current().scheduler.sweep().to_dict()
