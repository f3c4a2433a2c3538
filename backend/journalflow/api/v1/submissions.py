from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from journalflow.api.v1.common import (
    get_workflow_config,
    ok,
    require_editor,
    require_user_id,
    unwrap,
)
from journalflow.core.config import WorkflowConfig
from journalflow.core.navigation import get_session_context, require_session
from journalflow.core.session import SessionContext
from journalflow.lib.markdown import render_markdown
from journalflow.models.domain import SubmissionForm, SubmissionStatus
from journalflow.schemas.requests import CommentCreate, DecisionRequest
from journalflow.services.comment_service import CommentService
from journalflow.services.review_service import ReviewService
from journalflow.services.submission_service import SubmissionService
from journalflow.services.submission_workflow import EditPolicy, can_comment

router = APIRouter(prefix="/submissions", tags=["Submissions"])


def _service() -> SubmissionService:
    return SubmissionService()


def _comments() -> CommentService:
    return CommentService()


def _reviews() -> ReviewService:
    return ReviewService()


@router.get("")
async def list_submissions(
    status: SubmissionStatus = Query(SubmissionStatus.IN_REVIEW),
    with_meta: bool = Query(False),
):
    """
    按状态列出稿件（已录用 / 审稿中），with_meta=true 时附带评论/意见/名额计数
    """
    svc = _service()
    result = svc.fetch_list_with_meta(status) if with_meta else svc.fetch_by_status(status)
    return ok(unwrap(result, status_code=502) or [])


@router.get("/{submission_id}")
async def get_submission(submission_id: str):
    detail = unwrap(_service().fetch_detail(submission_id), status_code=502)
    if detail is None:
        raise HTTPException(status_code=404, detail="Submission not found")
    return ok(detail, content_html=render_markdown(detail.content_md))


@router.post("", status_code=201)
async def create_submission(
    form: SubmissionForm,
    ctx: SessionContext = Depends(require_session),
):
    """
    作者投稿（需要登录 + can_submit）
    """
    unwrap(_service().submit(ctx.user_id, ctx.profile, form))
    return ok(None, redirect="/in-review")


@router.put("/{submission_id}")
async def update_submission(
    submission_id: str,
    form: SubmissionForm,
    ctx: SessionContext = Depends(require_session),
    cfg: WorkflowConfig = Depends(get_workflow_config),
):
    """
    作者编辑内容：版本号 minor + 1，返回新的版本信息
    """
    svc = _service()
    current = unwrap(svc.fetch_detail(submission_id), status_code=502)
    if current is None:
        raise HTTPException(status_code=404, detail="Submission not found")

    policy = EditPolicy(lock_after_decision=cfg.lock_after_decision)
    saved = unwrap(svc.save_edit(current, ctx.user_id, form, policy=policy))
    return ok(saved)


@router.post("/{submission_id}/decision")
async def decide_submission(
    submission_id: str,
    payload: DecisionRequest,
    ctx: SessionContext = Depends(require_session),
):
    require_editor(ctx)
    decision = payload.decision.value if payload.decision is not None else None
    unwrap(_service().update_decision(submission_id, payload.status, decision))
    return ok({"status": payload.status, "decision": decision})


@router.get("/{submission_id}/comments")
async def list_comments(submission_id: str):
    comments = unwrap(_comments().fetch_comments(submission_id), status_code=502) or []
    return ok(
        [
            {**c.model_dump(mode="json"), "body_html": render_markdown(c.body_md)}
            for c in comments
        ]
    )


@router.post("/{submission_id}/comments", status_code=201)
async def create_comment(
    submission_id: str,
    payload: CommentCreate,
    ctx: SessionContext = Depends(require_session),
):
    user_id = require_user_id(ctx)
    if not can_comment(ctx.profile):
        raise HTTPException(status_code=403, detail="This account is not allowed to comment")
    unwrap(_comments().create_comment(submission_id=submission_id, author_id=user_id, body_md=payload.body_md))
    return ok(None)


@router.get("/{submission_id}/review-slots")
async def list_review_slots(submission_id: str, ctx: SessionContext = Depends(get_session_context)):
    slots = unwrap(_reviews().fetch_slots(submission_id), status_code=502) or []
    user_id: Optional[str] = ctx.user_id
    return ok(slots, mine=[s.id for s in slots if user_id and s.reviewer_id == user_id])
