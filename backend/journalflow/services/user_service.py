from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from journalflow.lib.api_client import supabase
from journalflow.models.domain import UserProfile, UserRole
from journalflow.models.results import QueryError, QueryResult, UsernameCheck
from journalflow.services.query_support import map_result, parse_row, run_query

logger = logging.getLogger("journalflow.users")

PROFILE_COLUMNS = "id,username,role,can_submit,can_review,can_comment"


def _metadata(user: Any) -> Mapping[str, Any]:
    meta = getattr(user, "user_metadata", None)
    if meta is None and isinstance(user, Mapping):
        meta = user.get("user_metadata")
    return meta if isinstance(meta, Mapping) else {}


def _attr(user: Any, name: str) -> Any:
    if isinstance(user, Mapping):
        return user.get(name)
    return getattr(user, name, None)


def derive_username(user: Any) -> Optional[str]:
    """
    从登录提供方的元数据推导用户名：user_name > full_name > 邮箱前缀
    """
    meta = _metadata(user)
    for candidate in (meta.get("user_name"), meta.get("full_name")):
        text = str(candidate or "").strip()
        if text:
            return text
    email = str(_attr(user, "email") or "").strip()
    if email:
        return email.split("@")[0] or None
    return None


class UserService:
    """public.users 表：profile 读取/首登创建/权限与用户名维护"""

    def __init__(self, client: Any = None):
        self.client = client if client is not None else supabase

    def _users(self):
        return self.client.table("users")

    def fetch_profile(self, user_id: str) -> QueryResult[UserProfile]:
        result = run_query(self._users().select(PROFILE_COLUMNS).eq("id", user_id).maybe_single())
        return map_result(result, lambda row: parse_row(UserProfile, row))

    def ensure_user_profile(self, user: Any) -> QueryResult[UserProfile]:
        """
        首次登录时创建 users 记录（已存在则保留原用户名），随后读回完整 profile。

        中文注释:
        - 用户名只在未设置时才用元数据推导，避免覆盖用户在个人中心改过的名字。
        - upsert 失败不阻断 profile 读取（RLS 可能只允许读）。
        """
        user_id = str(_attr(user, "id") or "").strip()
        if not user_id:
            return QueryResult.failure("user id is required")

        existing = run_query(self._users().select("username").eq("id", user_id).maybe_single())
        existing_row = existing.data if isinstance(existing.data, Mapping) else None
        username = (existing_row or {}).get("username") or derive_username(user)

        upserted = run_query(
            self._users().upsert(
                {
                    "id": user_id,
                    "username": username or None,
                    "avatar_url": _metadata(user).get("avatar_url") or None,
                }
            )
        )
        if upserted.error is not None:
            logger.warning("profile upsert failed for %s: %s", user_id, upserted.error.message)

        return self.fetch_profile(user_id)

    def update_permissions(
        self,
        user_id: str,
        *,
        role: Optional[UserRole | str] = None,
        can_submit: Optional[bool] = None,
        can_review: Optional[bool] = None,
        can_comment: Optional[bool] = None,
    ) -> QueryResult[Any]:
        payload: dict[str, Any] = {}
        if role is not None:
            payload["role"] = UserRole(role).value
        for name, value in (
            ("can_submit", can_submit),
            ("can_review", can_review),
            ("can_comment", can_comment),
        ):
            if value is not None:
                payload[name] = bool(value)
        if not payload:
            return QueryResult.failure("Nothing to update")
        return run_query(self._users().update(payload).eq("id", user_id))

    def check_username_available(self, username: str) -> UsernameCheck:
        normalized = (username or "").strip()
        if not normalized:
            return UsernameCheck(available=False, error=QueryError(message="Please enter a username"))

        result = run_query(
            self._users().select("id", count="exact", head=True).ilike("username", normalized)
        )
        if result.error is not None:
            return UsernameCheck(available=False, error=result.error)
        return UsernameCheck(available=(result.count or 0) == 0)

    def update_username(self, user_id: str, username: str) -> QueryResult[Any]:
        check = self.check_username_available(username)
        if check.error is not None:
            return QueryResult(data=None, error=check.error)
        if not check.available:
            return QueryResult.failure("Username is already taken")
        return run_query(self._users().update({"username": username.strip()}).eq("id", user_id))
