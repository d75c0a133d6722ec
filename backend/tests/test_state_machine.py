from __future__ import annotations

import threading
from datetime import timedelta

import pytest

from handover.errors import InvalidTransitionError, NotAuthorizedError, VerificationRequiredError
from handover.extensions import db
from handover.models.audit_log import AuditLog
from handover.models import match_state
from handover.models.match import Match

from conftest import FINDER, OWNER, STRANGER, T0


def _reload(match_id: int) -> Match:
    db.session.expire_all()
    return db.session.get(Match, match_id)


def _snapshot(m: Match) -> dict:
    return {c.name: getattr(m, c.name) for c in Match.__table__.columns}


def test_confirm_opens_48h_window(service, match, events) -> None:
    m = service.confirm_match(match.id, OWNER)
    assert m.status == "confirmed"
    assert m.state.confirmed_at == T0
    assert m.state.expires_at == T0 + timedelta(hours=48)
    assert m.confirmed_by_user_id == OWNER
    assert [name for name, _ in events] == ["matchConfirmed"]


def test_confirm_twice_is_identical_to_once(service, match, clock) -> None:
    service.confirm_match(match.id, OWNER)
    before = _snapshot(_reload(match.id))
    clock.advance(hours=3)
    service.confirm_match(match.id, OWNER)
    assert _snapshot(_reload(match.id)) == before


def test_other_party_confirmation_does_not_restart_window(service, match, clock) -> None:
    service.confirm_match(match.id, OWNER)
    clock.advance(hours=10)
    m = service.confirm_match(match.id, FINDER)
    assert m.state.expires_at == T0 + timedelta(hours=48)
    assert m.confirmed_by_user_id == OWNER


def test_stranger_cannot_act_on_match(service, match) -> None:
    with pytest.raises(NotAuthorizedError):
        service.confirm_match(match.id, STRANGER)
    with pytest.raises(NotAuthorizedError):
        service.dismiss_match(match.id, STRANGER, "not_my_item")
    assert _reload(match.id).status == "suggested"


def test_handover_needs_confirmed_match(service, match) -> None:
    with pytest.raises(InvalidTransitionError) as exc:
        service.record_handover_confirmation(match.id, "source")
    assert exc.value.current_state == "suggested"
    assert _reload(match.id).source_handover_confirmed is False


def test_both_handovers_resolve_exactly_once(service, match, clock, events) -> None:
    service.confirm_match(match.id, OWNER)
    clock.advance(hours=5)
    m = service.record_handover_confirmation(match.id, "source", OWNER)
    assert m.status == "confirmed"
    assert m.source_handover_confirmed is True
    clock.advance(hours=1)
    m = service.record_handover_confirmation(match.id, "target", FINDER)
    assert m.status == "resolved"
    assert m.state.resolved_at == T0 + timedelta(hours=6)

    before = _snapshot(_reload(match.id))
    m = service.record_handover_confirmation(match.id, "target", FINDER)
    assert m.status == "resolved"
    assert _snapshot(_reload(match.id)) == before
    assert [name for name, _ in events].count("matchResolved") == 1


def test_repeating_one_side_is_a_noop(service, match) -> None:
    service.confirm_match(match.id, OWNER)
    service.record_handover_confirmation(match.id, "source", OWNER)
    m = service.record_handover_confirmation(match.id, "source", OWNER)
    assert m.status == "confirmed"
    assert m.target_handover_confirmed is False


def test_user_cannot_confirm_the_other_side(service, match) -> None:
    service.confirm_match(match.id, OWNER)
    with pytest.raises(NotAuthorizedError):
        service.record_handover_confirmation(match.id, "target", OWNER)


def test_dismiss_from_suggested_records_rejection(service, match, events) -> None:
    m = service.dismiss_match(match.id, FINDER, "wrong_location", "Found it two buildings away")
    assert m.status == "dismissed"
    assert m.dismissal_reason == "wrong_location"
    assert m.dismissed_by_user_id == FINDER
    stats = service.get_user_rejection_stats(FINDER)
    assert stats.total_rejections == 1
    history = service.rejection_history(FINDER)
    assert history[0].rejected_by == "target"
    assert history[0].details == "Found it two buildings away"
    assert [name for name, _ in events] == ["matchDismissed"]


def test_dismiss_from_confirmed(service, match) -> None:
    service.confirm_match(match.id, OWNER)
    m = service.dismiss_match(match.id, OWNER, "not_my_item")
    assert m.status == "dismissed"
    assert m.expires_at is not None


@pytest.mark.parametrize("terminal", ["dismissed", "resolved", "expired"])
def test_terminal_matches_are_immutable(service, match, clock, terminal) -> None:
    service.confirm_match(match.id, OWNER)
    if terminal == "dismissed":
        service.dismiss_match(match.id, OWNER, "other")
    elif terminal == "resolved":
        service.record_handover_confirmation(match.id, "source", OWNER)
        service.record_handover_confirmation(match.id, "target", FINDER)
    else:
        clock.advance(hours=49)
        service.machine.force_expire(match.id)
    before = _snapshot(_reload(match.id))

    with pytest.raises(InvalidTransitionError):
        service.dismiss_match(match.id, FINDER, "other")
    with pytest.raises(InvalidTransitionError):
        service.machine.force_expire(match.id)
    if terminal != "resolved":
        with pytest.raises(InvalidTransitionError):
            service.confirm_match(match.id, OWNER)
        with pytest.raises(InvalidTransitionError):
            service.record_handover_confirmation(match.id, "source", OWNER)
    assert _snapshot(_reload(match.id)) == before


def test_lazy_expiry_is_reported_before_sweep(service, match, clock) -> None:
    service.confirm_match(match.id, OWNER)
    clock.advance(hours=48, seconds=1)
    m = service.get_match(match.id)
    assert m.status == "confirmed"
    assert service.machine.is_expired(m) is True
    assert service.registry.effective_status(m) == "expired"


def test_actions_on_lazily_expired_match_fail_without_writing(service, match, clock) -> None:
    service.confirm_match(match.id, OWNER)
    clock.advance(hours=49)
    with pytest.raises(InvalidTransitionError) as exc:
        service.record_handover_confirmation(match.id, "source", OWNER)
    assert exc.value.current_state == "expired"
    with pytest.raises(InvalidTransitionError):
        service.dismiss_match(match.id, OWNER, "other")
    m = _reload(match.id)
    assert m.status == "confirmed"
    assert m.source_handover_confirmed is False
    assert service.rejection_history(OWNER) == []


def test_force_expire_before_deadline_fails(service, match, clock) -> None:
    service.confirm_match(match.id, OWNER)
    clock.advance(hours=47)
    with pytest.raises(InvalidTransitionError):
        service.machine.force_expire(match.id)
    assert _reload(match.id).status == "confirmed"


def test_resolution_waits_for_ownership_verification(service, make_match) -> None:
    m = make_match(questions=[("Sticker on the front pocket?", "a yellow duck")])
    service.confirm_match(m.id, OWNER)
    service.record_handover_confirmation(m.id, "source", OWNER)
    with pytest.raises(VerificationRequiredError):
        service.record_handover_confirmation(m.id, "target", FINDER)
    reloaded = _reload(m.id)
    assert reloaded.status == "confirmed"
    assert reloaded.target_handover_confirmed is False


def test_transitions_are_audited(service, match) -> None:
    service.confirm_match(match.id, OWNER)
    service.dismiss_match(match.id, OWNER, "item_damaged")
    actions = [
        a.action
        for a in AuditLog.query.filter_by(entity_type="match", entity_id=match.id).order_by(AuditLog.id).all()
    ]
    assert actions == ["match_created", "match_confirmed", "match_dismissed"]


def test_notes_accompany_status_changes(service, match) -> None:
    service.confirm_match(match.id, OWNER, notes="Meet at the library desk")
    service.record_handover_confirmation(match.id, "source", OWNER, notes="  ")
    service.record_handover_confirmation(match.id, "target", FINDER, notes="Handed over at 14:00")
    assert _reload(match.id).notes == "Meet at the library desk\nHanded over at 14:00"


def test_noop_confirm_does_not_add_notes(service, match) -> None:
    service.confirm_match(match.id, OWNER, notes="first")
    service.confirm_match(match.id, FINDER, notes="second")
    assert _reload(match.id).notes == "first"


def test_user_action_waits_for_running_expiry(app, service, match, clock, events, monkeypatch) -> None:
    service.confirm_match(match.id, OWNER)
    clock.advance(hours=49)

    expiring = threading.Event()
    release = threading.Event()
    real_expire = match_state.expire

    def slow_expire(state, now):
        expiring.set()
        assert release.wait(5)
        return real_expire(state, now)

    monkeypatch.setattr(match_state, "expire", slow_expire)
    errors: dict[str, BaseException] = {}

    def run(name, fn):
        with app.app_context():
            try:
                fn()
            except BaseException as exc:
                errors[name] = exc

    expirer = threading.Thread(target=run, args=("expire", lambda: service.machine.force_expire(match.id)))
    expirer.start()
    assert expiring.wait(5)

    user = threading.Thread(target=run, args=(
        "handover", lambda: service.record_handover_confirmation(match.id, "source", OWNER),
    ))
    user.start()
    user.join(0.2)
    # Blocked on the match lock while the expiry is mid-flight
    assert user.is_alive()

    release.set()
    expirer.join(5)
    user.join(5)

    assert "expire" not in errors
    assert isinstance(errors["handover"], InvalidTransitionError)
    assert errors["handover"].current_state == "expired"
    m = _reload(match.id)
    assert m.status == "expired"
    assert m.source_handover_confirmed is False
    assert [name for name, _ in events].count("matchExpired") == 1
