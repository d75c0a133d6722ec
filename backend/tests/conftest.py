from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from handover import create_app
from handover.extensions import db
from handover.models.report import Report, ReportSecurityQuestion
from handover.modules.matches.service import MatchService
from handover.modules.notifications import bus

OWNER = 101
FINDER = 202
STRANGER = 303

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(T0)


@pytest.fixture
def app(clock):
    app = create_app("testing", clock=clock)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()
    bus.clear()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def service(app) -> MatchService:
    return MatchService.current()


@pytest.fixture
def events():
    captured: list[tuple[str, dict]] = []

    def handler(name: str, payload: dict) -> None:
        captured.append((name, payload))

    for name in bus.EVENT_NAMES:
        bus.subscribe(name, handler)
    yield captured
    bus.clear()


@pytest.fixture
def make_report(app):
    def _make(user_id: int, type: str = "lost", title: str = "Blue backpack", questions=()) -> Report:
        r = Report(reporter_user_id=user_id, type=type, title=title)
        db.session.add(r)
        db.session.flush()
        for question, answer in questions:
            db.session.add(ReportSecurityQuestion(report_id=r.id, question=question, answer=answer))
        db.session.commit()
        return r

    return _make


@pytest.fixture
def make_match(service, make_report):
    """Create a lost/found pair and a suggested match between them."""

    def _make(questions=(), owner: int = OWNER, finder: int = FINDER):
        lost = make_report(owner, "lost")
        found = make_report(finder, "found", questions=questions)
        return service.create_match(lost.id, found.id, 87.5)

    return _make


@pytest.fixture
def match(make_match):
    return make_match()
