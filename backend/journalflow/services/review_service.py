"""
Review Service: 审稿意见、意见回复与审稿名额

中文注释:
1. 名额生命周期: open -> claimed -> expired/completed；过期只能显式调用，客户端不会按 due_at 自动过期。
2. 所有名额写入都带 status 前置条件（由 allowed_next 推导）；重复认领 claimed 名额直接覆盖，only_if_open 只允许认领 open 名额。
3. 回复的 role 由 resolve_reply_role 基于当前会话计算，不接受调用方传入。
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from journalflow.lib.api_client import supabase
from journalflow.models.domain import (
    Decision,
    OpinionStatus,
    OwnReviewOpinionRow,
    ReviewOpinionRecord,
    ReviewOpinionReplyRecord,
    ReviewSlot,
    ReviewSlotStatus,
)
from journalflow.models.results import QueryResult
from journalflow.services.query_support import (
    map_result,
    normalize_join,
    page_range,
    parse_rows,
    run_query,
    with_fallback,
)
from journalflow.services.submission_workflow import (
    REVIEW_SLOT_DUE_DAYS,
    build_claim_update,
    build_close_opinion_update,
    build_reply_payload,
    build_slot_status_update,
    find_overdue_slots,
    resolve_reply_role,
)

logger = logging.getLogger("journalflow.reviews")

OPINION_COLUMNS = "id,created_at,body_md,reviewer_id,status,decision,author_reply_md"
REPLY_COLUMNS = "id,review_opinion_id,submission_id,author_id,role,body_md,created_at"
SLOT_COLUMNS = "id,submission_id,reviewer_id,status,claimed_at,due_at"
OWN_OPINION_COLUMNS = "id,submission_id,status,decision,created_at"
OWN_OPINION_ORDER_COLUMNS = {"created_at", "status"}


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ReviewService:
    """审稿相关的查询与写入"""

    def __init__(self, client: Any = None, *, slot_due_days: int = REVIEW_SLOT_DUE_DAYS):
        self.client = client if client is not None else supabase
        self.slot_due_days = slot_due_days

    # === 审稿意见 ===

    def fetch_opinions(self, submission_id: str) -> QueryResult[list[ReviewOpinionRecord]]:
        def _query(columns: str):
            return (
                self.client.table("review_opinions")
                .select(columns)
                .eq("submission_id", submission_id)
                .order("created_at", desc=True)
            )

        result = with_fallback(
            lambda: run_query(_query(f"{OPINION_COLUMNS},reviewer:users(username)")),
            lambda: run_query(_query(OPINION_COLUMNS)),
            label="review_opinions.list",
        )
        return map_result(
            result, lambda rows: parse_rows(ReviewOpinionRecord, normalize_join(rows, "reviewer"))
        )

    def create_opinion(
        self,
        *,
        submission_id: str,
        reviewer_id: str,
        body_md: str,
        decision: Decision | str,
    ) -> QueryResult[Any]:
        payload = {
            "submission_id": submission_id,
            "reviewer_id": reviewer_id,
            "body_md": body_md,
            "decision": Decision(decision).value,
            "status": OpinionStatus.OPEN.value,
        }
        return run_query(self.client.table("review_opinions").insert(payload))

    def update_author_reply(self, opinion_id: str, author_reply_md: str) -> QueryResult[Any]:
        return run_query(
            self.client.table("review_opinions")
            .update({"author_reply_md": author_reply_md, "updated_at": _utc_now_iso()})
            .eq("id", opinion_id)
        )

    def close_opinion(self, opinion_id: str, *, now: Optional[datetime] = None) -> QueryResult[Any]:
        """关闭是终态，没有重新打开的操作"""
        return run_query(
            self.client.table("review_opinions")
            .update(build_close_opinion_update(now=now))
            .eq("id", opinion_id)
        )

    def fetch_opinion(self, opinion_id: str) -> QueryResult[Optional[dict]]:
        """回复前核对意见所属稿件与审稿人"""
        return run_query(
            self.client.table("review_opinions")
            .select("id,submission_id,reviewer_id,status")
            .eq("id", opinion_id)
            .maybe_single()
        )

    def fetch_user_opinions(self, reviewer_id: str) -> QueryResult[list[OwnReviewOpinionRow]]:
        result = run_query(
            self.client.table("review_opinions")
            .select(OWN_OPINION_COLUMNS)
            .eq("reviewer_id", reviewer_id)
            .order("created_at", desc=True)
        )
        return map_result(result, lambda rows: parse_rows(OwnReviewOpinionRow, rows))

    def fetch_user_opinions_page(
        self,
        *,
        reviewer_id: str,
        page: int,
        page_size: int,
        order_by: str = "created_at",
        ascending: bool = False,
    ) -> QueryResult[list[OwnReviewOpinionRow]]:
        if order_by not in OWN_OPINION_ORDER_COLUMNS:
            raise ValueError(f"order_by must be one of {sorted(OWN_OPINION_ORDER_COLUMNS)}")
        start, end = page_range(page, page_size)
        result = run_query(
            self.client.table("review_opinions")
            .select(OWN_OPINION_COLUMNS, count="exact")
            .eq("reviewer_id", reviewer_id)
            .order(order_by, desc=not ascending)
            .range(start, end)
        )
        parsed = map_result(result, lambda rows: parse_rows(OwnReviewOpinionRow, rows))
        return QueryResult(data=parsed.data, error=parsed.error, count=result.count or 0)

    # === 意见回复 ===

    def fetch_replies(self, submission_id: str) -> QueryResult[list[ReviewOpinionReplyRecord]]:
        def _query(columns: str):
            return (
                self.client.table("review_opinion_replies")
                .select(columns)
                .eq("submission_id", submission_id)
                .order("created_at", desc=False)
            )

        result = with_fallback(
            lambda: run_query(_query(f"{REPLY_COLUMNS},author:users(username)")),
            lambda: run_query(_query(REPLY_COLUMNS)),
            label="review_opinion_replies.list",
        )
        return map_result(
            result, lambda rows: parse_rows(ReviewOpinionReplyRecord, normalize_join(rows, "author"))
        )

    def create_reply(
        self,
        *,
        user_id: Optional[str],
        submission_id: str,
        submission_author_id: Optional[str],
        opinion_id: str,
        opinion_reviewer_id: Optional[str],
        body_md: str,
    ) -> QueryResult[Any]:
        """
        发表回复：只有稿件作者或该意见的审稿人可以回复。

        中文注释: role 必须与身份一致（作者 -> author，审稿人 -> reviewer），这里统一推导。
        """
        role = resolve_reply_role(user_id, submission_author_id, opinion_reviewer_id)
        if role is None:
            return QueryResult.failure("You are not allowed to reply to this review opinion")

        body = (body_md or "").strip()
        if not body:
            return QueryResult.failure("Reply cannot be empty")

        payload = build_reply_payload(
            user_id=str(user_id),
            submission_id=submission_id,
            opinion_id=opinion_id,
            role=role,
            body_md=body,
        )
        return run_query(self.client.table("review_opinion_replies").insert(payload))

    # === 审稿名额 ===

    def fetch_slots(self, submission_id: str) -> QueryResult[list[ReviewSlot]]:
        result = run_query(
            self.client.table("review_slots")
            .select(SLOT_COLUMNS)
            .eq("submission_id", submission_id)
            .order("created_at", desc=False)
        )
        return map_result(result, lambda rows: parse_rows(ReviewSlot, rows))

    def claim_slot(
        self,
        slot_id: str,
        reviewer_id: str,
        *,
        now: Optional[datetime] = None,
        only_if_open: bool = False,
    ) -> QueryResult[Any]:
        update = build_claim_update(reviewer_id, now=now, due_days=self.slot_due_days)
        statuses = ReviewSlotStatus.sources_of(ReviewSlotStatus.CLAIMED)
        if not only_if_open:
            # 重复认领直接覆盖；expired/completed 不能再被认领
            statuses = statuses + [ReviewSlotStatus.CLAIMED.value]
        result = self._transition(slot_id, update, statuses)
        if result.ok:
            logger.info("review slot %s claimed by %s, due %s", slot_id, reviewer_id, update["due_at"])
        return result

    def mark_slot_expired(self, slot_id: str) -> QueryResult[Any]:
        return self._transition(
            slot_id,
            build_slot_status_update(ReviewSlotStatus.EXPIRED),
            ReviewSlotStatus.sources_of(ReviewSlotStatus.EXPIRED),
        )

    def mark_slot_completed(self, slot_id: str) -> QueryResult[Any]:
        return self._transition(
            slot_id,
            build_slot_status_update(ReviewSlotStatus.COMPLETED),
            ReviewSlotStatus.sources_of(ReviewSlotStatus.COMPLETED),
        )

    def _transition(self, slot_id: str, update: dict[str, Any], statuses: list[str]) -> QueryResult[Any]:
        """
        带前置状态条件的名额写入；没有命中任何行说明当前状态不允许这次迁移
        """
        result = run_query(
            self.client.table("review_slots").update(update).eq("id", slot_id).in_("status", statuses)
        )
        if result.ok and isinstance(result.data, list) and not result.data:
            logger.info("review slot %s not moved to %s (allowed from %s)", slot_id, update["status"], statuses)
            return QueryResult.failure(f"Review slot cannot be marked {update['status']} from its current status")
        return result

    def expire_overdue_slots(self, *, now: Optional[datetime] = None) -> QueryResult[list[str]]:
        """
        外部定时任务入口：把已过 due_at 的 claimed 名额标记为 expired。

        中文注释: 单个名额写入失败只记录日志，不影响其它名额。
        """
        current = now or datetime.now(timezone.utc)
        listed = run_query(
            self.client.table("review_slots")
            .select(SLOT_COLUMNS)
            .eq("status", ReviewSlotStatus.CLAIMED.value)
            .lt("due_at", current.isoformat())
        )
        if listed.error is not None:
            return QueryResult(data=None, error=listed.error)

        slots = parse_rows(ReviewSlot, listed.data) or []
        expired: list[str] = []
        for slot in find_overdue_slots(slots, current):
            res = self.mark_slot_expired(slot.id)
            if res.error is not None:
                logger.warning("failed to expire review slot %s: %s", slot.id, res.error.message)
                continue
            expired.append(slot.id)
        return QueryResult(data=expired)
