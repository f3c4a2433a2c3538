from types import SimpleNamespace
from typing import AsyncGenerator, Callable, Optional
from unittest.mock import MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from main import app
from journalflow.core.config import WorkflowConfig
from journalflow.core.navigation import NavigationGuard
from journalflow.core.session import SessionContext, SessionRegistry
from journalflow.models.domain import UserProfile
from journalflow.models.results import QueryResult

# === 全局测试配置 ===
# 中文注释:
# 1. 显式使用 pytest_asyncio.fixture 解决 STRICT 模式下的生成器问题。
# 2. 不连接真实 Supabase：会话由 FakeAuth 模拟，数据访问由各测试 monkeypatch 路由里的 _service() 工厂。
# 3. ASGITransport 不会触发 lifespan，因此 app.state 由 install_context 手动装配。


def make_auth_session(user_id: str, email: Optional[str] = None, *, access_token: Optional[str] = None) -> SimpleNamespace:
    user = SimpleNamespace(id=user_id, email=email or f"{user_id}@example.com", user_metadata={})
    return SimpleNamespace(user=user, access_token=access_token or f"token-{user_id}", refresh_token="refresh")


class FakeAuth:
    """
    模拟 supabase.auth 的会话接口与状态监听

    users_by_token 为空时任何 token 都登录为 token_user_id；否则只接受表里登记的 token。
    """

    def __init__(self, session=None, *, token_user_id: str = "u-token", users_by_token: Optional[dict] = None):
        self.session = session
        self.token_user_id = token_user_id
        self.users_by_token = users_by_token
        self.listeners: list = []
        self.unsubscribed = 0
        self.sign_outs = 0
        self.get_session_error: Optional[Exception] = None

    def get_session(self):
        if self.get_session_error is not None:
            raise self.get_session_error
        return self.session

    def set_session(self, access_token: str, refresh_token: str):
        if self.users_by_token is None:
            self.session = make_auth_session(self.token_user_id)
        elif access_token in self.users_by_token:
            self.session = make_auth_session(self.users_by_token[access_token], access_token=access_token)
        else:
            raise RuntimeError("invalid JWT")
        for callback in list(self.listeners):
            callback("SIGNED_IN", self.session)
        return SimpleNamespace(session=self.session, user=self.session.user)

    def sign_out(self):
        self.sign_outs += 1
        self.session = None
        for callback in list(self.listeners):
            callback("SIGNED_OUT", None)

    def on_auth_state_change(self, callback):
        self.listeners.append(callback)

        def _unsubscribe():
            self.unsubscribed += 1
            self.listeners.remove(callback)

        return SimpleNamespace(unsubscribe=_unsubscribe)


def make_profile(user_id: str, **overrides) -> UserProfile:
    data = {
        "id": user_id,
        "username": user_id,
        "role": "author",
        "can_submit": False,
        "can_review": False,
        "can_comment": False,
    }
    data.update(overrides)
    return UserProfile(**data)


def build_context_factory(users_by_token: Optional[dict] = None, **profile_fields) -> Callable[[], SessionContext]:
    """
    SessionRegistry 用的上下文工厂：每个上下文一套独立的 FakeAuth
    """

    def _factory() -> SessionContext:
        users = MagicMock()
        users.ensure_user_profile.side_effect = lambda user: QueryResult(data=make_profile(user.id, **profile_fields))
        return SessionContext(SimpleNamespace(auth=FakeAuth(users_by_token=users_by_token)), user_service=users)

    return _factory


@pytest.fixture
def context_factory():
    return build_context_factory


@pytest.fixture
def make_context():
    """
    构造一个已初始化的 SessionContext（user_id=None 表示未登录）
    """

    def _make(user_id: Optional[str] = None, profile: Optional[UserProfile] = None, **profile_fields):
        if user_id and profile is None:
            profile = make_profile(user_id, **profile_fields)
        auth = FakeAuth(make_auth_session(user_id) if user_id else None)
        users = MagicMock()
        users.ensure_user_profile.return_value = QueryResult(data=profile)
        ctx = SessionContext(SimpleNamespace(auth=auth), user_service=users)
        ctx.initialize()
        return ctx

    return _make


@pytest.fixture
def session_registry() -> SessionRegistry:
    # 未登记的 token 一律被拒绝，调用方按匿名处理
    return SessionRegistry(build_context_factory(users_by_token={}))


@pytest_asyncio.fixture
async def client() -> AsyncGenerator:
    """
    提供一个模拟的异步测试客户端（不跟随重定向，便于断言登录跳转）
    """
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as ac:
        yield ac


@pytest.fixture
def install_context(client, session_registry):
    """
    把 ctx 登记为 client 这个调用方的会话：已登录的 ctx 通过 Bearer token 找到，未登录则不带 token
    """
    previous = dict(app.state._state)
    app.state.workflow_config = WorkflowConfig(lock_after_decision=False, review_slot_due_days=14, login_path="/login")
    app.state.navigation_guard = NavigationGuard()
    app.state.session_registry = session_registry

    def _install(ctx: SessionContext, *, workflow: Optional[WorkflowConfig] = None) -> SessionContext:
        client.headers.pop("Authorization", None)
        if ctx.is_authenticated:
            token = session_registry.register(ctx)
            client.headers["Authorization"] = f"Bearer {token}"
        if workflow is not None:
            app.state.workflow_config = workflow
        return ctx

    yield _install
    app.state._state.clear()
    app.state._state.update(previous)
