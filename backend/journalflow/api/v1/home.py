from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, Query

from journalflow.api.v1.common import ok, require_editor, unwrap
from journalflow.core.navigation import require_session
from journalflow.core.session import SessionContext
from journalflow.schemas.requests import AnnouncementCreate, AnnouncementUpdate
from journalflow.services.home_service import AnnouncementService, HomeService

router = APIRouter(tags=["Home"])


def _home() -> HomeService:
    return HomeService()


def _announcements() -> AnnouncementService:
    return AnnouncementService()


@router.get("/home/stats")
async def get_stats():
    """
    首页统计（stats_indexes 不可用时自动降级为实时计数）
    """
    return ok(unwrap(_home().fetch_stats(), status_code=502) or [])


@router.get("/home/activities")
async def get_recent_activities(limit: int = Query(6, ge=1, le=50)):
    return ok(unwrap(_home().fetch_recent_activities(limit), status_code=502) or [])


@router.get("/announcements")
async def list_announcements(limit: int = Query(5, ge=1, le=50)):
    return ok(unwrap(_announcements().fetch_announcements(limit), status_code=502) or [])


@router.get("/announcements/page")
async def list_announcements_page(
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    order_by: Literal["created_at", "updated_at", "title"] = Query("created_at"),
    ascending: bool = Query(False),
):
    result = _announcements().fetch_announcements_page(
        page=page, page_size=page_size, order_by=order_by, ascending=ascending
    )
    return ok(unwrap(result, status_code=502) or [], count=result.count or 0, page=page, page_size=page_size)


@router.post("/announcements", status_code=201)
async def create_announcement(payload: AnnouncementCreate, ctx: SessionContext = Depends(require_session)):
    require_editor(ctx)
    unwrap(_announcements().create_announcement(title=payload.title, body_md=payload.body_md))
    return ok(None)


@router.patch("/announcements/{announcement_id}")
async def update_announcement(
    announcement_id: str,
    payload: AnnouncementUpdate,
    ctx: SessionContext = Depends(require_session),
):
    require_editor(ctx)
    unwrap(
        _announcements().update_announcement(
            announcement_id, title=payload.title, body_md=payload.body_md
        )
    )
    return ok(None)


@router.delete("/announcements/{announcement_id}")
async def delete_announcement(announcement_id: str, ctx: SessionContext = Depends(require_session)):
    require_editor(ctx)
    unwrap(_announcements().delete_announcement(announcement_id))
    return ok(None)
