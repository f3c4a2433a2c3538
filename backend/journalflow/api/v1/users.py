from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query

from journalflow.api.v1.common import ok, require_user_id, unwrap
from journalflow.core.navigation import require_session
from journalflow.core.session import SessionContext
from journalflow.models.domain import UserRole
from journalflow.schemas.requests import PermissionsUpdate, UsernameUpdate
from journalflow.services.review_service import ReviewService
from journalflow.services.submission_service import SubmissionService
from journalflow.services.user_service import UserService

router = APIRouter(tags=["Users"])


def _users() -> UserService:
    return UserService()


def _submissions() -> SubmissionService:
    return SubmissionService()


def _reviews() -> ReviewService:
    return ReviewService()


@router.get("/me")
async def get_me(ctx: SessionContext = Depends(require_session)):
    """
    个人中心：当前用户 profile（角色 + 投稿/审稿/评论能力）
    """
    user_id = require_user_id(ctx)
    return ok({"id": user_id, "email": getattr(ctx.user, "email", None), "profile": ctx.profile})


@router.get("/me/submissions")
async def list_my_submissions(
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    order_by: Literal["updated_at", "status", "title"] = Query("updated_at"),
    ascending: bool = Query(False),
    ctx: SessionContext = Depends(require_session),
):
    result = _submissions().fetch_user_submissions_page(
        author_id=require_user_id(ctx),
        page=page,
        page_size=page_size,
        order_by=order_by,
        ascending=ascending,
    )
    return ok(unwrap(result, status_code=502) or [], count=result.count or 0)


@router.get("/me/review-opinions")
async def list_my_review_opinions(
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    order_by: Literal["created_at", "status"] = Query("created_at"),
    ascending: bool = Query(False),
    ctx: SessionContext = Depends(require_session),
):
    result = _reviews().fetch_user_opinions_page(
        reviewer_id=require_user_id(ctx),
        page=page,
        page_size=page_size,
        order_by=order_by,
        ascending=ascending,
    )
    return ok(unwrap(result, status_code=502) or [], count=result.count or 0)


@router.put("/me/username")
async def update_my_username(payload: UsernameUpdate, ctx: SessionContext = Depends(require_session)):
    user_id = require_user_id(ctx)
    unwrap(_users().update_username(user_id, payload.username))
    return ok({"username": payload.username.strip()})


@router.get("/users/username-available")
async def username_available(username: str = Query("")):
    check = _users().check_username_available(username)
    if check.error is not None:
        return {"success": False, "available": False, "error": check.error.message}
    return {"success": True, "available": check.available}


@router.patch("/users/{user_id}/permissions")
async def update_permissions(
    user_id: str,
    payload: PermissionsUpdate,
    ctx: SessionContext = Depends(require_session),
):
    """
    管理员调整用户角色与三个能力开关（最终以后端 RLS 为准）
    """
    if not ctx.profile or ctx.profile.role != UserRole.ADMIN.value:
        raise HTTPException(status_code=403, detail="Admin permission required")
    unwrap(
        _users().update_permissions(
            user_id,
            role=payload.role,
            can_submit=payload.can_submit,
            can_review=payload.can_review,
            can_comment=payload.can_comment,
        )
    )
    return ok(None)
