"""
Submission Service: 投稿列表/详情查询与投稿、编辑、编辑决定写入

中文注释:
1. 列表与详情先尝试带作者名的关联查询（users(username)），失败后降级为精简列查询。
2. 所有方法返回 QueryResult，不抛异常；表单校验失败同样以 QueryError(message) 返回。
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Any, Optional

from journalflow.lib.api_client import supabase
from journalflow.models.domain import (
    OwnSubmissionRow,
    SubmissionDetail,
    SubmissionForm,
    SubmissionListItem,
    SubmissionListItemWithMeta,
    SubmissionStatus,
    UserProfile,
)
from journalflow.models.results import QueryResult
from journalflow.services.query_support import (
    build_count_map,
    first_or_none,
    map_result,
    normalize_join,
    page_range,
    parse_row,
    parse_rows,
    run_query,
    with_fallback,
)
from journalflow.services.submission_workflow import (
    EditPolicy,
    build_decision_update,
    can_submit,
    compute_next_version,
    initial_version,
    parse_keywords,
)

logger = logging.getLogger("journalflow.submissions")

LIST_COLUMNS = "id,title,updated_at,status"
DETAIL_COLUMNS = (
    "id,title,abstract,content_md,created_at,updated_at,accepted_at,rejected_at,"
    "status,decision,author_id,keywords,version_major,version_minor,version_label"
)
AUTHOR_JOIN = "author:users(username)"
OWN_COLUMNS = "id,title,status,updated_at"
OWN_ORDER_COLUMNS = {"updated_at", "status", "title"}


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_list(rows: Any) -> Optional[list[SubmissionListItem]]:
    return parse_rows(SubmissionListItem, normalize_join(rows, "author"))


class SubmissionService:
    """投稿相关的查询与写入"""

    def __init__(self, client: Any = None):
        self.client = client if client is not None else supabase

    def _submissions(self):
        return self.client.table("submissions")

    def _list_query(self, columns: str, status: str):
        return (
            self._submissions()
            .select(columns)
            .eq("status", status)
            .order("updated_at", desc=True)
        )

    def _fetch_list(self, status: str) -> QueryResult[Any]:
        return with_fallback(
            lambda: run_query(self._list_query(f"{LIST_COLUMNS},{AUTHOR_JOIN}", status)),
            lambda: run_query(self._list_query(LIST_COLUMNS, status)),
            label="submissions.list",
        )

    def fetch_by_status(self, status: SubmissionStatus | str) -> QueryResult[list[SubmissionListItem]]:
        status_value = SubmissionStatus(status).value
        return map_result(self._fetch_list(status_value), _parse_list)

    def fetch_list_with_meta(
        self, status: SubmissionStatus | str
    ) -> QueryResult[list[SubmissionListItemWithMeta]]:
        """
        列表 + 评论数/审稿意见数/（in_review 时）名额数

        中文注释: 用三次 in_ 查询做计数聚合，避免每条稿件各发一次请求；计数查询失败按 0 处理。
        """
        status_value = SubmissionStatus(status).value
        listed = self._fetch_list(status_value)
        if listed.error is not None:
            return QueryResult(data=None, error=listed.error)

        items = _parse_list(listed.data) or []
        if not items:
            return QueryResult(data=[])

        ids = [item.id for item in items]
        with_slots = status_value == SubmissionStatus.IN_REVIEW.value

        comments = run_query(self.client.table("comments").select("submission_id").in_("submission_id", ids))
        reviews = run_query(
            self.client.table("review_opinions").select("submission_id").in_("submission_id", ids)
        )
        slots = (
            run_query(self.client.table("review_slots").select("submission_id").in_("submission_id", ids))
            if with_slots
            else QueryResult(data=[])
        )

        comment_map = build_count_map([] if comments.error else (comments.data or []))
        review_map = build_count_map([] if reviews.error else (reviews.data or []))
        slot_map = build_count_map([] if slots.error else (slots.data or []))

        data = [
            SubmissionListItemWithMeta(
                **item.model_dump(),
                comments_count=comment_map.get(item.id, 0),
                reviews_count=review_map.get(item.id, 0),
                slots_count=slot_map.get(item.id, 0) if with_slots else None,
            )
            for item in items
        ]
        return QueryResult(data=data)

    def fetch_recent(self, statuses: list[str], limit: int) -> QueryResult[list[SubmissionListItem]]:
        def _query(columns: str):
            return (
                self._submissions()
                .select(columns)
                .in_("status", statuses)
                .order("updated_at", desc=True)
                .limit(limit)
            )

        result = with_fallback(
            lambda: run_query(_query(f"{LIST_COLUMNS},{AUTHOR_JOIN}")),
            lambda: run_query(_query(LIST_COLUMNS)),
            label="submissions.recent",
        )
        return map_result(result, _parse_list)

    def fetch_detail(self, submission_id: str) -> QueryResult[SubmissionDetail]:
        def _query(columns: str):
            return self._submissions().select(columns).eq("id", submission_id).maybe_single()

        result = with_fallback(
            lambda: run_query(_query(f"{DETAIL_COLUMNS},{AUTHOR_JOIN}")),
            lambda: run_query(_query(DETAIL_COLUMNS)),
            label="submissions.detail",
        )

        def _parse(row: Any) -> Optional[SubmissionDetail]:
            if isinstance(row, dict) and "author" in row:
                row = {**row, "author": first_or_none(row.get("author"))}
            return parse_row(SubmissionDetail, row)

        return map_result(result, _parse)

    def create_submission(
        self,
        *,
        title: str,
        abstract: str,
        content_md: str,
        author_id: str,
        keywords: Optional[list[str]] = None,
        author_name: Optional[str] = None,
        author_email: Optional[str] = None,
        author_affiliation: Optional[str] = None,
        today: Optional[date] = None,
    ) -> QueryResult[Any]:
        version = initial_version(today)
        payload = {
            "title": title,
            "abstract": abstract,
            "content_md": content_md,
            "author_id": author_id,
            "author_name": author_name,
            "author_email": author_email,
            "author_affiliation": author_affiliation,
            "status": SubmissionStatus.IN_REVIEW.value,
            "keywords": keywords or [],
            "version_major": version.major,
            "version_minor": version.minor,
            "version_label": version.label,
        }
        return run_query(self._submissions().insert(payload))

    def update_content(
        self,
        submission_id: str,
        *,
        title: str,
        abstract: str,
        content_md: str,
        keywords: Optional[list[str]] = None,
        version_major: Optional[int] = None,
        version_minor: Optional[int] = None,
        version_label: Optional[str] = None,
    ) -> QueryResult[Any]:
        payload = {
            "title": title,
            "abstract": abstract,
            "content_md": content_md,
            "keywords": keywords,
            "version_major": version_major,
            "version_minor": version_minor,
            "version_label": version_label,
            "updated_at": _utc_now_iso(),
        }
        return run_query(self._submissions().update(payload).eq("id", submission_id))

    def update_decision(
        self,
        submission_id: str,
        status: str,
        decision: Optional[str],
        *,
        now: Optional[datetime] = None,
    ) -> QueryResult[Any]:
        """非法 status 在发请求前就抛 ValueError（属于调用方编程错误）"""
        update = build_decision_update(status, decision, now=now)
        result = run_query(self._submissions().update(update).eq("id", submission_id))
        if result.ok:
            logger.info("submission %s decision: status=%s decision=%s", submission_id, update["status"], decision)
        return result

    def fetch_user_submissions(self, author_id: str) -> QueryResult[list[OwnSubmissionRow]]:
        result = run_query(
            self._submissions()
            .select(OWN_COLUMNS)
            .eq("author_id", author_id)
            .order("updated_at", desc=True)
        )
        return map_result(result, lambda rows: parse_rows(OwnSubmissionRow, rows))

    def fetch_user_submissions_page(
        self,
        *,
        author_id: str,
        page: int,
        page_size: int,
        order_by: str = "updated_at",
        ascending: bool = False,
    ) -> QueryResult[list[OwnSubmissionRow]]:
        if order_by not in OWN_ORDER_COLUMNS:
            raise ValueError(f"order_by must be one of {sorted(OWN_ORDER_COLUMNS)}")
        start, end = page_range(page, page_size)
        result = run_query(
            self._submissions()
            .select(OWN_COLUMNS, count="exact")
            .eq("author_id", author_id)
            .order(order_by, desc=not ascending)
            .range(start, end)
        )
        parsed = map_result(result, lambda rows: parse_rows(OwnSubmissionRow, rows))
        return QueryResult(data=parsed.data, error=parsed.error, count=result.count or 0)

    # === 表单级工作流 ===

    def submit(
        self,
        user_id: Optional[str],
        profile: Optional[UserProfile],
        form: SubmissionForm,
        *,
        today: Optional[date] = None,
    ) -> QueryResult[Any]:
        """
        作者投稿

        中文注释:
        - 未登录 / 无投稿权限 / 必填项为空 都作为校验消息返回，而不是异常。
        - 新稿件直接进入 in_review，版本号 1.0。
        """
        if not user_id:
            return QueryResult.failure("Please sign in first")
        if not can_submit(profile):
            return QueryResult.failure("This account is not allowed to submit")

        title = form.title.strip()
        abstract = form.abstract.strip()
        content_md = form.content_md.strip()
        if not title or not abstract or not content_md:
            return QueryResult.failure("Title, abstract and content are required")

        result = self.create_submission(
            title=title,
            abstract=abstract,
            content_md=content_md,
            author_id=user_id,
            keywords=parse_keywords(form.keywords),
            author_name=(form.author_name or "").strip() or None,
            author_email=(form.author_email or "").strip() or None,
            author_affiliation=(form.author_affiliation or "").strip() or None,
            today=today,
        )
        if result.ok:
            logger.info("submission created by %s", user_id)
        return result

    def save_edit(
        self,
        current: SubmissionDetail,
        user_id: Optional[str],
        form: SubmissionForm,
        *,
        policy: Optional[EditPolicy] = None,
        today: Optional[date] = None,
    ) -> QueryResult[dict[str, Any]]:
        """
        作者编辑稿件内容：minor 版本 +1，label 用保存当天的日期重新生成。

        返回写入的 payload（便于乐观更新页面）。
        """
        if not current.id:
            return QueryResult.failure("Submission not found")
        if not user_id or user_id != current.author_id:
            return QueryResult.failure("Only the author can edit this submission")
        if not (policy or EditPolicy()).can_edit(current.status):
            return QueryResult.failure("This submission can no longer be edited")

        title = form.title.strip()
        if not title:
            return QueryResult.failure("Title is required")

        version = compute_next_version(current.version_major, current.version_minor, today=today)
        payload = {
            "title": title,
            "abstract": form.abstract.strip(),
            "content_md": form.content_md,
            "keywords": parse_keywords(form.keywords),
            "version_major": version.major,
            "version_minor": version.minor,
            "version_label": version.label,
        }
        result = self.update_content(current.id, **payload)
        if result.error is not None:
            return QueryResult(data=None, error=result.error)
        logger.info("submission %s saved as %s", current.id, version.label)
        return QueryResult(data=payload)
