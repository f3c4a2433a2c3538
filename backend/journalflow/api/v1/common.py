from __future__ import annotations

from typing import Any, Optional

from fastapi import HTTPException, Request

from journalflow.core.config import WorkflowConfig
from journalflow.core.session import SessionContext
from journalflow.models.results import QueryResult
from journalflow.services.submission_workflow import is_editor


def ok(data: Any, **extra: Any) -> dict:
    return {"success": True, "data": data, **extra}


def unwrap(result: QueryResult[Any], *, status_code: int = 400) -> Any:
    """QueryError -> HTTPException；读接口传 502（后端失败），写接口默认 400（校验/权限消息）"""
    if result.error is not None:
        raise HTTPException(status_code=status_code, detail=result.error.message)
    return result.data


def require_user_id(ctx: SessionContext) -> str:
    user_id = ctx.user_id
    if not user_id:
        raise HTTPException(status_code=401, detail="Please sign in first")
    return user_id


def require_editor(ctx: SessionContext) -> None:
    if not is_editor(ctx.profile):
        raise HTTPException(status_code=403, detail="Editor permission required")


def get_workflow_config(request: Request) -> WorkflowConfig:
    cfg: Optional[WorkflowConfig] = getattr(request.app.state, "workflow_config", None)
    return cfg if cfg is not None else WorkflowConfig.from_env()
