from datetime import date, datetime, timedelta, timezone

import pytest

from journalflow.models.domain import ReplyRole, ReviewSlot, ReviewSlotStatus, UserProfile
from journalflow.services.submission_workflow import (
    EditPolicy,
    build_claim_update,
    build_close_opinion_update,
    build_decision_update,
    build_reply_payload,
    can_comment,
    can_review,
    can_submit,
    compute_next_version,
    find_overdue_slots,
    initial_version,
    is_editor,
    parse_keywords,
    resolve_reply_role,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def test_initial_version_starts_at_one_zero():
    v = initial_version(date(2026, 2, 9))
    assert (v.major, v.minor, v.label) == (1, 0, "20260209_V1.0")


def test_next_version_bumps_minor_with_save_date():
    v = compute_next_version(1, 2, today=date(2026, 2, 9))
    assert (v.major, v.minor) == (1, 3)
    assert v.label == "20260209_V1.3"


def test_next_version_treats_missing_numbers_as_zero():
    v = compute_next_version(None, None, today=date(2026, 1, 1))
    assert (v.major, v.minor, v.label) == (0, 1, "20260101_V0.1")


def test_parse_keywords_trims_and_drops_empty():
    assert parse_keywords(" alpha, beta, ,gamma ,") == ["alpha", "beta", "gamma"]
    assert parse_keywords("") == []
    assert parse_keywords(None) == []


def test_edit_policy_allows_decided_submissions_by_default():
    assert EditPolicy().can_edit("accepted") is True
    assert EditPolicy().can_edit("rejected") is True


def test_edit_policy_locks_after_decision():
    policy = EditPolicy(lock_after_decision=True)
    assert policy.can_edit("accepted") is False
    assert policy.can_edit("rejected") is False
    assert policy.can_edit("in_review") is True


def test_decision_accept_sets_accepted_at_only():
    update = build_decision_update("accepted", "accept", now=NOW)
    assert update == {
        "status": "accepted",
        "decision": "accept",
        "updated_at": NOW.isoformat(),
        "accepted_at": NOW.isoformat(),
        "rejected_at": None,
    }


def test_decision_reject_sets_rejected_at_only():
    update = build_decision_update("rejected", "reject", now=NOW)
    assert update["rejected_at"] == NOW.isoformat()
    assert update["accepted_at"] is None


def test_decision_back_to_review_clears_both_timestamps():
    update = build_decision_update("in_review", None, now=NOW)
    assert update["accepted_at"] is None
    assert update["rejected_at"] is None
    assert update["decision"] is None


def test_decision_rejects_unknown_status_and_decision():
    with pytest.raises(ValueError, match="Invalid decision status"):
        build_decision_update("submitted", None, now=NOW)
    with pytest.raises(ValueError):
        build_decision_update("accepted", "maybe", now=NOW)


def test_claim_sets_due_fourteen_days_later():
    update = build_claim_update("u-rev", now=NOW)
    claimed = datetime.fromisoformat(update["claimed_at"])
    due = datetime.fromisoformat(update["due_at"])
    assert update["status"] == "claimed"
    assert update["reviewer_id"] == "u-rev"
    assert due - claimed == timedelta(days=14)


def test_claim_requires_reviewer():
    with pytest.raises(ValueError):
        build_claim_update("  ", now=NOW)


def test_slot_state_machine():
    assert ReviewSlotStatus.allowed_next("open") == {"claimed"}
    assert ReviewSlotStatus.allowed_next("claimed") == {"expired", "completed"}
    assert ReviewSlotStatus.allowed_next("expired") == set()
    assert ReviewSlotStatus.allowed_next("completed") == set()
    assert ReviewSlotStatus.sources_of(ReviewSlotStatus.CLAIMED) == ["open"]
    assert ReviewSlotStatus.sources_of(ReviewSlotStatus.EXPIRED) == ["claimed"]
    assert ReviewSlotStatus.sources_of(ReviewSlotStatus.COMPLETED) == ["claimed"]
    assert ReviewSlotStatus.sources_of(ReviewSlotStatus.OPEN) == []


def test_find_overdue_slots_only_returns_claimed_past_due():
    slots = [
        ReviewSlot(id="a", submission_id="s", status="claimed", due_at=NOW - timedelta(days=1)),
        ReviewSlot(id="b", submission_id="s", status="claimed", due_at=NOW + timedelta(days=1)),
        ReviewSlot(id="c", submission_id="s", status="open"),
        ReviewSlot(id="d", submission_id="s", status="completed", due_at=NOW - timedelta(days=2)),
        # naive 时间按 UTC 处理
        ReviewSlot(id="e", submission_id="s", status="claimed", due_at=datetime(2026, 2, 1, 0, 0)),
    ]
    assert [s.id for s in find_overdue_slots(slots, NOW)] == ["a", "e"]


def test_reply_role_resolution():
    assert resolve_reply_role("u-author", "u-author", "u-rev") == ReplyRole.AUTHOR
    assert resolve_reply_role("u-rev", "u-author", "u-rev") == ReplyRole.REVIEWER
    assert resolve_reply_role("u-other", "u-author", "u-rev") is None
    assert resolve_reply_role(None, "u-author", "u-rev") is None
    # 作者恰好也是该意见审稿人时按作者身份回复
    assert resolve_reply_role("u-1", "u-1", "u-1") == ReplyRole.AUTHOR


def test_close_opinion_update():
    assert build_close_opinion_update(now=NOW) == {"status": "closed", "closed_at": NOW.isoformat()}


def test_capability_checks():
    editor = UserProfile(id="e", role="deputy_editor")
    admin = UserProfile(id="a", role="admin", can_comment=True)
    author = UserProfile(id="u", role="author", can_submit=True)

    assert is_editor(editor) and is_editor(admin)
    assert not is_editor(author) and not is_editor(None)
    assert can_submit(author) and not can_submit(editor)
    assert can_comment(admin) and not can_comment(None)
    assert not can_review(author)


def test_next_version_label_defaults_to_current_utc_date():
    today = datetime.now(timezone.utc).strftime("%Y%m%d")
    v = compute_next_version(2, 4)
    assert v.label.startswith(today)
    assert v.label.endswith("_V2.5")


def test_reply_payload_carries_derived_role():
    payload = build_reply_payload(
        user_id="u-rev", submission_id="s1", opinion_id="op1", role=ReplyRole.REVIEWER, body_md="ok"
    )
    assert payload == {
        "submission_id": "s1",
        "review_opinion_id": "op1",
        "author_id": "u-rev",
        "role": "reviewer",
        "body_md": "ok",
    }
