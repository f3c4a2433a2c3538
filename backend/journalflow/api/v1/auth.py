from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query

from journalflow.api.v1.common import ok
from journalflow.core.navigation import (
    NavigationGuard,
    get_navigation_guard,
    get_session_context,
    get_session_registry,
)
from journalflow.core.session import SessionContext, SessionRegistry
from journalflow.schemas.requests import SessionTokens

router = APIRouter(tags=["Auth"])

logger = logging.getLogger("journalflow.auth")


def _session_payload(ctx: SessionContext) -> dict:
    return {
        "authenticated": ctx.is_authenticated,
        "user_id": ctx.user_id,
        "profile": ctx.profile,
    }


@router.get("/auth/session")
async def get_session(ctx: SessionContext = Depends(get_session_context)):
    return ok(_session_payload(ctx))


@router.post("/auth/session")
async def sign_in(payload: SessionTokens, registry: SessionRegistry = Depends(get_session_registry)):
    """
    浏览器完成 OAuth 登录后提交 token；首次登录会自动创建 users 记录

    中文注释: 之后的请求用返回的 access_token 作为 Bearer，服务端按它找到该调用方的会话。
    """
    try:
        ctx = registry.sign_in(payload.access_token, payload.refresh_token)
    except Exception as e:
        logger.warning("sign in failed: %s", e)
        raise HTTPException(status_code=401, detail="Sign-in failed or session expired")
    data = _session_payload(ctx)
    data["access_token"] = getattr(ctx.session, "access_token", None)
    return ok(data)


@router.post("/auth/sign-out")
async def sign_out(
    ctx: SessionContext = Depends(get_session_context),
    registry: SessionRegistry = Depends(get_session_registry),
):
    # 只影响当前调用方
    registry.sign_out(ctx)
    return ok(_session_payload(ctx))


@router.get("/navigation/resolve")
async def resolve_navigation(
    path: str = Query(..., min_length=1),
    ctx: SessionContext = Depends(get_session_context),
    guard: NavigationGuard = Depends(get_navigation_guard),
):
    """
    页面路由守卫：需要登录的页面（/submit、/me）在无会话时返回登录页重定向地址
    """
    redirect = guard.resolve(path, ctx.current_session())
    return ok({"allowed": redirect is None, "redirect": redirect})
