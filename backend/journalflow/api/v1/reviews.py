from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

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
from journalflow.schemas.requests import AuthorReplyUpdate, ReplyCreate, ReviewOpinionCreate
from journalflow.services.review_service import ReviewService
from journalflow.services.submission_service import SubmissionService
from journalflow.services.submission_workflow import can_review, is_editor

router = APIRouter(tags=["Reviews"])


def _service(cfg: WorkflowConfig | None = None) -> ReviewService:
    if cfg is None:
        return ReviewService()
    return ReviewService(slot_due_days=cfg.review_slot_due_days)


def _submissions() -> SubmissionService:
    return SubmissionService()


def _load_submission(submission_id: str):
    detail = unwrap(_submissions().fetch_detail(submission_id), status_code=502)
    if detail is None:
        raise HTTPException(status_code=404, detail="Submission not found")
    return detail


@router.get("/submissions/{submission_id}/review-opinions")
async def list_review_opinions(
    submission_id: str,
    ctx: SessionContext = Depends(get_session_context),
):
    """
    审稿意见 + 回复；每条意见附带当前用户的回复身份（reply_role 为 null 表示不显示回复框）

    中文注释: reply_role 每次请求都基于当前会话重新计算。
    """
    submission = _load_submission(submission_id)
    svc = _service()
    opinions = unwrap(svc.fetch_opinions(submission_id), status_code=502) or []
    replies = unwrap(svc.fetch_replies(submission_id), status_code=502) or []

    grouped: dict[str, list[dict]] = {}
    for reply in replies:
        grouped.setdefault(reply.review_opinion_id, []).append(
            {**reply.model_dump(mode="json"), "body_html": render_markdown(reply.body_md)}
        )

    items = []
    for opinion in opinions:
        role = ctx.reply_role_for(submission.author_id, opinion.reviewer_id)
        items.append(
            {
                **opinion.model_dump(mode="json"),
                "body_html": render_markdown(opinion.body_md),
                "replies": grouped.get(opinion.id, []),
                "reply_role": role.value if role is not None else None,
            }
        )
    return ok(items)


@router.post("/submissions/{submission_id}/review-opinions", status_code=201)
async def create_review_opinion(
    submission_id: str,
    payload: ReviewOpinionCreate,
    ctx: SessionContext = Depends(require_session),
):
    user_id = require_user_id(ctx)
    if not can_review(ctx.profile):
        raise HTTPException(status_code=403, detail="This account is not allowed to review")
    unwrap(
        _service().create_opinion(
            submission_id=submission_id,
            reviewer_id=user_id,
            body_md=payload.body_md,
            decision=payload.decision,
        )
    )
    return ok(None)


@router.post("/review-opinions/{opinion_id}/replies", status_code=201)
async def create_reply(
    opinion_id: str,
    payload: ReplyCreate,
    ctx: SessionContext = Depends(require_session),
):
    """
    回复审稿意见：只有稿件作者（role=author）或该意见的审稿人（role=reviewer）可以回复
    """
    svc = _service()
    opinion = unwrap(svc.fetch_opinion(opinion_id), status_code=502)
    if not opinion:
        raise HTTPException(status_code=404, detail="Review opinion not found")
    submission_id = str(opinion.get("submission_id") or "")
    submission = _load_submission(submission_id)
    reviewer_id = opinion.get("reviewer_id")

    if ctx.reply_role_for(submission.author_id, reviewer_id) is None:
        raise HTTPException(status_code=403, detail="You are not allowed to reply to this review opinion")

    unwrap(
        svc.create_reply(
            user_id=ctx.user_id,
            submission_id=submission_id,
            submission_author_id=submission.author_id,
            opinion_id=opinion_id,
            opinion_reviewer_id=reviewer_id,
            body_md=payload.body_md,
        )
    )
    return ok(None)


@router.put("/review-opinions/{opinion_id}/author-reply")
async def update_author_reply(
    opinion_id: str,
    payload: AuthorReplyUpdate,
    ctx: SessionContext = Depends(require_session),
):
    svc = _service()
    opinion = unwrap(svc.fetch_opinion(opinion_id), status_code=502)
    if not opinion:
        raise HTTPException(status_code=404, detail="Review opinion not found")
    submission = _load_submission(str(opinion.get("submission_id") or ""))
    if not ctx.user_id or ctx.user_id != submission.author_id:
        raise HTTPException(status_code=403, detail="Only the author can reply here")
    unwrap(svc.update_author_reply(opinion_id, payload.author_reply_md))
    return ok(None)


@router.post("/review-opinions/{opinion_id}/close")
async def close_review_opinion(
    opinion_id: str,
    ctx: SessionContext = Depends(require_session),
):
    """关闭审稿意见（终态）：该意见的审稿人或编辑可操作"""
    svc = _service()
    opinion = unwrap(svc.fetch_opinion(opinion_id), status_code=502)
    if not opinion:
        raise HTTPException(status_code=404, detail="Review opinion not found")
    if ctx.user_id != opinion.get("reviewer_id") and not is_editor(ctx.profile):
        raise HTTPException(status_code=403, detail="Not allowed to close this review opinion")
    unwrap(svc.close_opinion(opinion_id))
    return ok(None)


@router.post("/review-slots/{slot_id}/claim")
async def claim_review_slot(
    slot_id: str,
    ctx: SessionContext = Depends(require_session),
    cfg: WorkflowConfig = Depends(get_workflow_config),
):
    user_id = require_user_id(ctx)
    if not can_review(ctx.profile):
        raise HTTPException(status_code=403, detail="This account is not allowed to review")
    unwrap(_service(cfg).claim_slot(slot_id, user_id))
    return ok(None)


@router.post("/review-slots/{slot_id}/expire")
async def expire_review_slot(slot_id: str, ctx: SessionContext = Depends(require_session)):
    require_editor(ctx)
    unwrap(_service().mark_slot_expired(slot_id))
    return ok(None)


@router.post("/review-slots/{slot_id}/complete")
async def complete_review_slot(slot_id: str, ctx: SessionContext = Depends(require_session)):
    require_editor(ctx)
    unwrap(_service().mark_slot_completed(slot_id))
    return ok(None)
