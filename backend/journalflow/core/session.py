"""
会话上下文：当前登录会话 + 派生的用户 profile

中文注释:
1. 显式构造、可注入，不使用模块级可变全局状态。HTTP 服务里每个调用方一个上下文，由 SessionRegistry 按 access token 管理。
2. 生命周期: initialize() 读取会话、补齐 profile、注册一次 auth 监听；close() 取消监听并清空状态。
3. 同一时刻只有一个 session 和一个 profile；只有 auth 监听回调与 sign_out() 会修改它们。
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from typing import Any, Callable, Optional

from journalflow.lib.api_client import create_session_client
from journalflow.models.domain import ReplyRole, UserProfile
from journalflow.services.submission_workflow import resolve_reply_role
from journalflow.services.user_service import UserService

logger = logging.getLogger("journalflow.session")


class SessionContext:
    def __init__(self, client: Any = None, *, user_service: Optional[UserService] = None):
        self.client = client if client is not None else create_session_client()
        self.users = user_service or UserService(self.client)
        self._session: Any = None
        self._profile: Optional[UserProfile] = None
        self._initialized = False
        self._subscription: Any = None

    # === 只读访问 ===

    @property
    def session(self) -> Any:
        return self._session

    @property
    def user(self) -> Any:
        return getattr(self._session, "user", None) if self._session else None

    @property
    def user_id(self) -> Optional[str]:
        user = self.user
        uid = getattr(user, "id", None) if user is not None else None
        return str(uid) if uid else None

    @property
    def profile(self) -> Optional[UserProfile]:
        return self._profile

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    @property
    def has_listener(self) -> bool:
        return self._subscription is not None

    def reply_role_for(
        self, submission_author_id: Optional[str], opinion_reviewer_id: Optional[str]
    ) -> Optional[ReplyRole]:
        """基于当前会话即时计算，不缓存"""
        return resolve_reply_role(self.user_id, submission_author_id, opinion_reviewer_id)

    # === 生命周期 ===

    def initialize(self) -> None:
        if not self._initialized:
            self._session = self._load_session()
            self._initialized = True

        self._refresh_profile()

        if self._subscription is None:
            self._subscription = self.client.auth.on_auth_state_change(self._on_auth_state_change)
            logger.info("auth state listener registered")

    def close(self) -> None:
        if self._subscription is not None:
            try:
                self._subscription.unsubscribe()
            except Exception as e:
                logger.warning("failed to unsubscribe auth listener: %s", e)
            self._subscription = None
        self._session = None
        self._profile = None
        self._initialized = False

    def current_session(self) -> Any:
        """
        直接向 auth 客户端取当前会话（路由守卫使用，不依赖缓存值）
        """
        return self._load_session()

    # === 登录 / 登出 ===

    def sign_in_with_tokens(self, access_token: str, refresh_token: str) -> Any:
        """
        浏览器完成 OAuth 后把 token 交给这里；会话变化通过 auth 监听回调同步 profile。
        """
        response = self.client.auth.set_session(access_token, refresh_token)
        new_session = getattr(response, "session", None)
        if self._subscription is None:
            # 未注册监听时手动同步一次
            self._on_auth_state_change("SIGNED_IN", new_session)
        return new_session

    def sign_out(self) -> None:
        self.client.auth.sign_out()
        self._session = None
        self._profile = None
        logger.info("signed out")

    # === 内部 ===

    def _load_session(self) -> Any:
        try:
            return self.client.auth.get_session()
        except Exception as e:
            # 中文注释: 本地存储里的 token 损坏/刷新失败时按未登录处理
            logger.warning("get_session failed, treating as signed out: %s", e)
            return None

    def _refresh_profile(self) -> None:
        user = self.user
        if user is None:
            self._profile = None
            return
        result = self.users.ensure_user_profile(user)
        if result.error is not None:
            logger.warning("failed to load profile for %s: %s", self.user_id, result.error.message)
        self._profile = result.data

    def _on_auth_state_change(self, event: Any, new_session: Any) -> None:
        self._session = new_session
        logger.info("auth state changed: %s", getattr(event, "value", event))
        if new_session is not None and getattr(new_session, "user", None) is not None:
            self._refresh_profile()
        else:
            self._profile = None


class SessionRegistry:
    """
    按调用方区分的会话上下文（access token -> SessionContext）

    中文注释:
    - 每个上下文有自己的 auth client 与监听，调用方之间互不影响。
    - 没有 token 或 token 无效的请求使用匿名上下文，匿名上下文永远不会被登录。
    - 登出只关闭并移除当前调用方的上下文；超过 max_sessions 时淘汰最久未使用的上下文。
    """

    def __init__(
        self,
        context_factory: Optional[Callable[[], SessionContext]] = None,
        *,
        max_sessions: int = 512,
    ):
        self.context_factory = context_factory or SessionContext
        self.max_sessions = max_sessions
        self._contexts: "OrderedDict[str, SessionContext]" = OrderedDict()
        self._anonymous: Optional[SessionContext] = None
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._contexts)

    @property
    def anonymous(self) -> SessionContext:
        with self._lock:
            if self._anonymous is None:
                self._anonymous = self._new_context()
            return self._anonymous

    def resolve(self, access_token: Optional[str]) -> SessionContext:
        """
        取调用方的上下文；未登记的 token 会尝试向 auth 校验后接管（例如服务重启之后）
        """
        if not access_token:
            return self.anonymous
        with self._lock:
            ctx = self._contexts.get(access_token)
            if ctx is not None:
                self._contexts.move_to_end(access_token)
                return ctx
        try:
            return self.sign_in(access_token, "")
        except Exception as e:
            logger.info("bearer token rejected, treating caller as anonymous: %s", e)
            return self.anonymous

    def sign_in(self, access_token: str, refresh_token: str) -> SessionContext:
        ctx = self._new_context()
        try:
            ctx.sign_in_with_tokens(access_token, refresh_token)
        except Exception:
            ctx.close()
            raise
        if not ctx.is_authenticated:
            ctx.close()
            raise ValueError("auth did not return a session")
        self.register(ctx)
        return ctx

    def register(self, ctx: SessionContext) -> str:
        """登记一个已登录的上下文，返回调用方后续请求应携带的 access token"""
        token = getattr(ctx.session, "access_token", None)
        if not token:
            raise ValueError("session has no access token")
        evicted: list[SessionContext] = []
        with self._lock:
            self._contexts[token] = ctx
            self._contexts.move_to_end(token)
            while len(self._contexts) > self.max_sessions:
                _, old = self._contexts.popitem(last=False)
                evicted.append(old)
        for old in evicted:
            old.close()
        return token

    def sign_out(self, ctx: SessionContext) -> None:
        if ctx is self._anonymous:
            return
        with self._lock:
            for token in [t for t, c in self._contexts.items() if c is ctx]:
                del self._contexts[token]
        try:
            ctx.sign_out()
        finally:
            ctx.close()

    def close(self) -> None:
        with self._lock:
            contexts = list(self._contexts.values())
            self._contexts.clear()
        if self._anonymous is not None:
            contexts.append(self._anonymous)
            self._anonymous = None
        for ctx in contexts:
            ctx.close()

    def _new_context(self) -> SessionContext:
        ctx = self.context_factory()
        ctx.initialize()
        return ctx
