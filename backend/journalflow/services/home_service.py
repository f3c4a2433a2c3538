"""
Home Service: 首页统计、最新动态与公告

中文注释:
- 统计优先读预计算表 stats_indexes；该表不可用时降级为四个独立计数查询，在本地拼装结果。
- 降级过程中单个计数失败按 0 处理，不让整个首页请求失败。
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from journalflow.lib.api_client import supabase
from journalflow.models.domain import AnnouncementRecord, StatIndex, SubmissionListItem, SubmissionStatus
from journalflow.models.results import QueryResult
from journalflow.services.query_support import map_result, page_range, parse_rows, run_query
from journalflow.services.submission_service import SubmissionService

logger = logging.getLogger("journalflow.home")

ANNOUNCEMENT_COLUMNS = "id,title,body_md,created_at,updated_at,author_id"
ANNOUNCEMENT_ORDER_COLUMNS = {"created_at", "updated_at", "title"}
ACTIVITY_STATUSES = [SubmissionStatus.ACCEPTED.value, SubmissionStatus.IN_REVIEW.value]
REVIEWER_SAMPLE_LIMIT = 1000


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class HomeService:
    def __init__(self, client: Any = None):
        self.client = client if client is not None else supabase

    def fetch_stats(self, *, now: Optional[datetime] = None) -> QueryResult[list[StatIndex]]:
        result = run_query(self.client.table("stats_indexes").select("key,value"))
        if result.error is None:
            return map_result(result, lambda rows: parse_rows(StatIndex, rows))

        logger.warning("stats_indexes unavailable, computing fallback: %s", result.error.message)
        return QueryResult(data=self._build_stats_fallback(now=now))

    def _count_submissions(self, status: str) -> int:
        res = run_query(
            self.client.table("submissions").select("id", count="exact", head=True).eq("status", status)
        )
        return (res.count or 0) if res.error is None else 0

    def _build_stats_fallback(self, *, now: Optional[datetime] = None) -> list[StatIndex]:
        week_ago = (now or datetime.now(timezone.utc)) - timedelta(days=7)

        accepted = self._count_submissions(SubmissionStatus.ACCEPTED.value)
        in_review = self._count_submissions(SubmissionStatus.IN_REVIEW.value)

        weekly_comments_res = run_query(
            self.client.table("comments")
            .select("id", count="exact", head=True)
            .gte("created_at", week_ago.isoformat())
        )
        weekly_comments = (weekly_comments_res.count or 0) if weekly_comments_res.error is None else 0

        reviewers_res = run_query(
            self.client.table("review_opinions")
            .select("reviewer_id")
            .not_.is_("reviewer_id", "null")
            .limit(REVIEWER_SAMPLE_LIMIT)
        )
        reviewer_ids: set[str] = set()
        if reviewers_res.error is None:
            for row in reviewers_res.data or []:
                if row.get("reviewer_id"):
                    reviewer_ids.add(str(row["reviewer_id"]))

        return [
            StatIndex(key="accepted", value=accepted),
            StatIndex(key="in_review", value=in_review),
            StatIndex(key="reviewers", value=len(reviewer_ids)),
            StatIndex(key="weekly_comments", value=weekly_comments),
        ]

    def fetch_recent_activities(self, limit: int = 6) -> QueryResult[list[SubmissionListItem]]:
        return SubmissionService(self.client).fetch_recent(ACTIVITY_STATUSES, limit)


class AnnouncementService:
    def __init__(self, client: Any = None):
        self.client = client if client is not None else supabase

    def _table(self):
        return self.client.table("announcements")

    def fetch_announcements(self, limit: int = 5) -> QueryResult[list[AnnouncementRecord]]:
        result = run_query(
            self._table().select(ANNOUNCEMENT_COLUMNS).order("created_at", desc=True).limit(limit)
        )
        return map_result(result, lambda rows: parse_rows(AnnouncementRecord, rows))

    def fetch_announcements_page(
        self,
        *,
        page: int,
        page_size: int,
        order_by: str = "created_at",
        ascending: bool = False,
    ) -> QueryResult[list[AnnouncementRecord]]:
        if order_by not in ANNOUNCEMENT_ORDER_COLUMNS:
            raise ValueError(f"order_by must be one of {sorted(ANNOUNCEMENT_ORDER_COLUMNS)}")
        start, end = page_range(page, page_size)
        result = run_query(
            self._table()
            .select(ANNOUNCEMENT_COLUMNS, count="exact")
            .order(order_by, desc=not ascending)
            .range(start, end)
        )
        parsed = map_result(result, lambda rows: parse_rows(AnnouncementRecord, rows))
        return QueryResult(data=parsed.data, error=parsed.error, count=result.count or 0)

    def create_announcement(self, *, title: str, body_md: Optional[str]) -> QueryResult[Any]:
        if not (title or "").strip():
            return QueryResult.failure("Title is required")
        return run_query(self._table().insert({"title": title.strip(), "body_md": body_md}))

    def update_announcement(
        self, announcement_id: str, *, title: Optional[str] = None, body_md: Optional[str] = None
    ) -> QueryResult[Any]:
        patch: dict[str, Any] = {"updated_at": _utc_now_iso()}
        if title is not None:
            patch["title"] = title
        if body_md is not None:
            patch["body_md"] = body_md
        return run_query(self._table().update(patch).eq("id", announcement_id))

    def delete_announcement(self, announcement_id: str) -> QueryResult[Any]:
        return run_query(self._table().delete().eq("id", announcement_id))
