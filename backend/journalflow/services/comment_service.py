from __future__ import annotations

from typing import Any

from journalflow.lib.api_client import supabase
from journalflow.models.domain import CommentRecord
from journalflow.models.results import QueryResult
from journalflow.services.query_support import (
    map_result,
    normalize_join,
    parse_rows,
    run_query,
    with_fallback,
)

COMMENT_COLUMNS = "id,created_at,body_md"


class CommentService:
    """稿件公开评论"""

    def __init__(self, client: Any = None):
        self.client = client if client is not None else supabase

    def fetch_comments(self, submission_id: str) -> QueryResult[list[CommentRecord]]:
        def _query(columns: str):
            return (
                self.client.table("comments")
                .select(columns)
                .eq("submission_id", submission_id)
                .order("created_at", desc=True)
            )

        result = with_fallback(
            lambda: run_query(_query(f"{COMMENT_COLUMNS},author:users(username)")),
            lambda: run_query(_query(COMMENT_COLUMNS)),
            label="comments.list",
        )
        return map_result(result, lambda rows: parse_rows(CommentRecord, normalize_join(rows, "author")))

    def create_comment(self, *, submission_id: str, author_id: str, body_md: str) -> QueryResult[Any]:
        body = (body_md or "").strip()
        if not body:
            return QueryResult.failure("Comment cannot be empty")
        return run_query(
            self.client.table("comments").insert(
                {"submission_id": submission_id, "author_id": author_id, "body_md": body}
            )
        )
