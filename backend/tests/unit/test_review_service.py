from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import MagicMock, call

from postgrest.exceptions import APIError

from journalflow.services.review_service import OPINION_COLUMNS, ReviewService

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _query(*responses):
    q = MagicMock()
    for name in ("select", "eq", "in_", "order", "range", "lt", "maybe_single", "insert", "update"):
        getattr(q, name).return_value = q
    q.execute.side_effect = [
        r if isinstance(r, Exception) else SimpleNamespace(data=r.get("data"), count=r.get("count"))
        for r in responses
    ]
    return q


def _client(query):
    client = MagicMock()
    client.table.return_value = query
    return client


def _reply_kwargs(user_id, **overrides):
    data = {
        "user_id": user_id,
        "submission_id": "s1",
        "submission_author_id": "u-author",
        "opinion_id": "op1",
        "opinion_reviewer_id": "u-rev",
        "body_md": "  Thanks for the review  ",
    }
    data.update(overrides)
    return data


def test_create_reply_as_author_derives_role():
    q = _query({"data": [{"id": "r1"}]})
    result = ReviewService(_client(q)).create_reply(**_reply_kwargs("u-author"))

    assert result.ok
    payload = q.insert.call_args.args[0]
    assert payload == {
        "submission_id": "s1",
        "review_opinion_id": "op1",
        "author_id": "u-author",
        "role": "author",
        "body_md": "Thanks for the review",
    }


def test_create_reply_as_reviewer_derives_role():
    q = _query({"data": [{"id": "r1"}]})
    ReviewService(_client(q)).create_reply(**_reply_kwargs("u-rev"))
    assert q.insert.call_args.args[0]["role"] == "reviewer"


def test_create_reply_rejects_stranger_and_empty_body():
    client = MagicMock()
    svc = ReviewService(client)

    denied = svc.create_reply(**_reply_kwargs("u-other"))
    assert denied.error.message == "You are not allowed to reply to this review opinion"

    empty = svc.create_reply(**_reply_kwargs("u-author", body_md="   "))
    assert empty.error.message == "Reply cannot be empty"
    client.table.assert_not_called()


def test_fetch_replies_oldest_first():
    q = _query(
        {
            "data": [
                {
                    "id": "r1",
                    "review_opinion_id": "op1",
                    "submission_id": "s1",
                    "role": "author",
                    "body_md": "hi",
                    "author": [{"username": "alice"}],
                }
            ]
        }
    )
    result = ReviewService(_client(q)).fetch_replies("s1")
    assert result.data[0].author.username == "alice"
    assert result.data[0].role == "author"
    q.order.assert_called_once_with("created_at", desc=False)


def test_fetch_replies_tolerates_missing_body():
    row = {"id": "r1", "review_opinion_id": "op1", "submission_id": "s1", "role": "reviewer", "body_md": None}
    q = _query({"data": [row]})
    result = ReviewService(_client(q)).fetch_replies("s1")
    assert result.ok
    assert result.data[0].body_md is None


def test_fetch_opinions_falls_back_without_reviewer_join():
    q = _query(APIError({"message": "relationship missing"}), {"data": [{"id": "op1", "body_md": "ok"}]})
    result = ReviewService(_client(q)).fetch_opinions("s1")
    assert result.data[0].reviewer is None
    assert q.select.call_args_list[-1] == call(OPINION_COLUMNS)


def test_close_opinion_writes_closed_status():
    q = _query({"data": []})
    ReviewService(_client(q)).close_opinion("op1", now=NOW)
    assert q.update.call_args.args[0] == {"status": "closed", "closed_at": NOW.isoformat()}
    q.eq.assert_called_with("id", "op1")


def test_claim_slot_sets_due_date_and_optional_open_precondition():
    q = _query({"data": [{"id": "slot-1"}]})
    result = ReviewService(_client(q)).claim_slot("slot-1", "u-rev", now=NOW, only_if_open=True)

    assert result.ok
    update = q.update.call_args.args[0]
    assert update["status"] == "claimed"
    assert update["due_at"] == (NOW + timedelta(days=14)).isoformat()
    q.eq.assert_called_once_with("id", "slot-1")
    q.in_.assert_called_once_with("status", ["open"])


def test_claim_slot_uses_configured_due_days_and_allows_reclaim():
    q = _query({"data": [{"id": "slot-1"}]})
    ReviewService(_client(q), slot_due_days=7).claim_slot("slot-1", "u-rev", now=NOW)
    assert q.update.call_args.args[0]["due_at"] == (NOW + timedelta(days=7)).isoformat()
    # 已认领的名额可以被覆盖，expired/completed 不在条件里
    q.in_.assert_called_once_with("status", ["open", "claimed"])


def test_claim_finished_slot_is_rejected():
    q = _query({"data": []})
    result = ReviewService(_client(q)).claim_slot("slot-done", "u-rev", now=NOW)
    assert result.error.message == "Review slot cannot be marked claimed from its current status"


def test_expire_and_complete_only_apply_to_claimed_slots():
    q = _query({"data": [{"id": "slot-1"}]}, {"data": [{"id": "slot-1"}]})
    svc = ReviewService(_client(q))

    assert svc.mark_slot_expired("slot-1").ok
    assert svc.mark_slot_completed("slot-1").ok

    assert q.update.call_args_list == [call({"status": "expired"}), call({"status": "completed"})]
    assert q.in_.call_args_list == [call("status", ["claimed"]), call("status", ["claimed"])]


def test_expire_open_or_completed_slot_reports_failure():
    q = _query({"data": []})
    result = ReviewService(_client(q)).mark_slot_expired("slot-done")
    assert not result.ok
    assert result.error.message == "Review slot cannot be marked expired from its current status"


def test_slot_write_error_passes_through():
    q = _query(APIError({"message": "rls"}))
    result = ReviewService(_client(q)).mark_slot_completed("slot-1")
    assert result.error.message == "rls"


def test_expire_overdue_slots_continues_after_single_failure():
    listed = [
        {"id": "slot-1", "submission_id": "s1", "status": "claimed", "due_at": (NOW - timedelta(days=1)).isoformat()},
        {"id": "slot-2", "submission_id": "s1", "status": "claimed", "due_at": (NOW - timedelta(days=3)).isoformat()},
    ]
    q = _query({"data": listed}, APIError({"message": "rls"}), {"data": [{"id": "slot-2"}]})

    result = ReviewService(_client(q)).expire_overdue_slots(now=NOW)

    assert result.data == ["slot-2"]
    q.lt.assert_called_once_with("due_at", NOW.isoformat())
    assert q.update.call_args_list == [call({"status": "expired"}), call({"status": "expired"})]


def test_expire_overdue_slots_listing_error():
    q = _query(APIError({"message": "offline"}))
    result = ReviewService(_client(q)).expire_overdue_slots(now=NOW)
    assert result.error.message == "offline"


def test_fetch_user_opinions_page():
    q = _query({"data": [{"id": "op1", "submission_id": "s1", "status": "open"}], "count": 3})
    result = ReviewService(_client(q)).fetch_user_opinions_page(reviewer_id="u-rev", page=1, page_size=10)
    assert result.count == 3
    q.range.assert_called_once_with(0, 9)
    q.order.assert_called_once_with("created_at", desc=True)
