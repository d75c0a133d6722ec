from __future__ import annotations

import pytest

from handover.errors import InvalidRequestError
from handover.extensions import db

from conftest import FINDER, OWNER, STRANGER


def _dismiss(service, make_match, reason, user=FINDER):
    m = make_match()
    return service.dismiss_match(m.id, user, reason)


def test_first_rejection_creates_stats(service, make_match) -> None:
    _dismiss(service, make_match, "wrong_location")
    stats = service.get_user_rejection_stats(FINDER)
    assert stats.total_rejections == 1
    assert stats.reason_counts == {"wrong_location": 1}
    assert stats.is_flagged is False
    assert service.get_user_rejection_stats(OWNER) is None


def test_three_rejections_in_window_flag_user(service, make_match, clock, events) -> None:
    _dismiss(service, make_match, "not_my_item")
    clock.advance(days=2)
    _dismiss(service, make_match, "not_my_item")
    assert service.is_flagged(FINDER) is False
    clock.advance(days=2)
    _dismiss(service, make_match, "not_my_item")

    assert service.is_flagged(FINDER) is True
    assert "3 rejections in 30 days" in service.flag_reason(FINDER)
    flagged = [payload for name, payload in events if name == "userFlagged"]
    assert len(flagged) == 1
    assert flagged[0]["userId"] == FINDER


def test_two_high_suspicion_rejections_flag_user(service, make_match) -> None:
    _dismiss(service, make_match, "suspicious_behavior")
    _dismiss(service, make_match, "incorrect_details")
    assert service.is_flagged(FINDER) is True
    assert service.flag_reason(FINDER).startswith("Repeated high-suspicion")


def test_old_rejections_fall_out_of_window(service, make_match, clock) -> None:
    _dismiss(service, make_match, "item_damaged")
    _dismiss(service, make_match, "other")
    clock.advance(days=31)
    _dismiss(service, make_match, "other")
    stats = service.get_user_rejection_stats(FINDER)
    assert stats.total_rejections == 3
    assert stats.is_flagged is False


def test_flag_is_sticky(service, make_match, clock, events) -> None:
    for _ in range(3):
        _dismiss(service, make_match, "not_my_item")
    flagged_at = service.get_user_rejection_stats(FINDER).flagged_at
    clock.advance(days=90)
    _dismiss(service, make_match, "other")

    stats = service.get_user_rejection_stats(FINDER)
    assert stats.is_flagged is True
    assert stats.flagged_at == flagged_at
    assert stats.total_rejections == 4
    assert [name for name, _ in events].count("userFlagged") == 1


def test_history_is_newest_first(service, make_match, clock) -> None:
    _dismiss(service, make_match, "wrong_location")
    clock.advance(hours=1)
    _dismiss(service, make_match, "item_damaged")
    reasons = [r.reason for r in service.rejection_history(FINDER)]
    assert reasons == ["item_damaged", "wrong_location"]


def test_flagged_users_lists_only_flagged(service, make_match) -> None:
    for _ in range(3):
        _dismiss(service, make_match, "other")
    _dismiss(service, make_match, "other", user=OWNER)
    assert [s.user_id for s in service.flagged_users()] == [FINDER]


def test_unknown_reason_is_rejected_without_writing(service, match) -> None:
    with pytest.raises(InvalidRequestError):
        service.tracker.record_rejection(FINDER, match.id, "bored")
    db.session.rollback()
    assert service.get_user_rejection_stats(FINDER) is None


def test_mixed_reasons_flag_on_second_suspicious_rejection(service, make_match) -> None:
    _dismiss(service, make_match, "not_my_item")
    _dismiss(service, make_match, "suspicious_behavior")
    assert service.is_flagged(FINDER) is False
    _dismiss(service, make_match, "suspicious_behavior")

    stats = service.get_user_rejection_stats(FINDER)
    assert stats.is_flagged is True
    assert stats.flag_reason.startswith("Repeated high-suspicion")
    assert stats.reason_counts == {"not_my_item": 1, "suspicious_behavior": 2}


MODERATOR = 909


def test_moderator_can_flag_before_threshold(service, make_match, events) -> None:
    _dismiss(service, make_match, "other")
    outcome = service.flag_user(FINDER, MODERATOR, "High rejection rate and suspicious behavior pattern")

    assert outcome.newly_flagged is True
    stats = service.get_user_rejection_stats(FINDER)
    assert stats.is_flagged is True
    assert stats.flag_reason == "High rejection rate and suspicious behavior pattern"
    assert stats.total_rejections == 1
    flagged = [payload for name, payload in events if name == "userFlagged"]
    assert flagged[0]["flaggedBy"] == MODERATOR


def test_manual_flag_keeps_existing_flag(service, make_match, clock, events) -> None:
    for _ in range(3):
        _dismiss(service, make_match, "not_my_item")
    first = service.get_user_rejection_stats(FINDER)
    flagged_at, reason = first.flagged_at, first.flag_reason
    clock.advance(days=1)

    outcome = service.flag_user(FINDER, MODERATOR, "again")

    assert outcome.newly_flagged is False
    stats = service.get_user_rejection_stats(FINDER)
    assert (stats.flagged_at, stats.flag_reason) == (flagged_at, reason)
    assert [name for name, _ in events].count("userFlagged") == 1


def test_manual_flag_for_user_without_rejections(service) -> None:
    outcome = service.flag_user(STRANGER, MODERATOR)
    assert outcome.newly_flagged is True
    assert service.flag_reason(STRANGER) == f"Flagged by moderator {MODERATOR}"
    assert service.get_user_rejection_stats(STRANGER).total_rejections == 0
