"""
路由守卫：需要登录的页面/接口在没有会话时重定向到登录页，并带上回跳地址

中文注释:
- 页面路由表只标记哪些路径需要登录（/submit、/me），其余公开。
- 每次导航都向调用方自己的 auth 客户端实时取会话，不使用缓存的 session。
- 回跳参数保留 "/" 不编码：/login?redirect=/submit
"""

from __future__ import annotations

from typing import Any, Iterable, Optional
from urllib.parse import quote

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from journalflow.core.session import SessionContext, SessionRegistry

DEFAULT_PROTECTED_PATHS = ("/submit", "/me")

# 中文注释: 缺少 Authorization 时不直接 403，交给 require_session 走登录重定向
bearer = HTTPBearer(auto_error=False)


class LoginRequired(Exception):
    """由 app 级 exception handler 转换为 303 重定向"""

    def __init__(self, location: str):
        super().__init__(location)
        self.location = location


def build_login_redirect(full_path: str, login_path: str = "/login") -> str:
    target = full_path or "/"
    return f"{login_path}?redirect={quote(target, safe='/')}"


class NavigationGuard:
    def __init__(
        self,
        protected_paths: Iterable[str] = DEFAULT_PROTECTED_PATHS,
        *,
        login_path: str = "/login",
    ):
        self.protected_paths = tuple(p.rstrip("/") or "/" for p in protected_paths)
        self.login_path = login_path

    def requires_auth(self, path: str) -> bool:
        clean = (path or "/").split("?", 1)[0].rstrip("/") or "/"
        # 只匹配登记的路由本身，子路径不继承登录要求
        return clean in self.protected_paths

    def resolve(self, full_path: str, session: Any) -> Optional[str]:
        """放行返回 None，否则返回登录页重定向地址"""
        if not self.requires_auth(full_path):
            return None
        if session is not None:
            return None
        return build_login_redirect(full_path, self.login_path)


def get_session_registry(request: Request) -> SessionRegistry:
    return request.app.state.session_registry


def get_session_context(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer),
    registry: SessionRegistry = Depends(get_session_registry),
) -> SessionContext:
    """
    当前调用方的会话上下文（按 bearer token 区分，无 token 即匿名）
    """
    return registry.resolve(credentials.credentials if credentials else None)


def get_navigation_guard(request: Request) -> NavigationGuard:
    guard = getattr(request.app.state, "navigation_guard", None)
    return guard if guard is not None else NavigationGuard()


def _full_path(request: Request) -> str:
    query = request.url.query
    return f"{request.url.path}?{query}" if query else request.url.path


async def require_session(
    request: Request,
    ctx: SessionContext = Depends(get_session_context),
    guard: NavigationGuard = Depends(get_navigation_guard),
) -> SessionContext:
    """
    接口级守卫（等价于页面路由上的 requiresAuth 标记）
    """
    if ctx.current_session() is None:
        raise LoginRequired(build_login_redirect(_full_path(request), guard.login_path))
    return ctx
