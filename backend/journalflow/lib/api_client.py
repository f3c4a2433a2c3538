from typing import Any, Callable, Optional

from supabase import Client, create_client

from journalflow.core.config import app_config

url: str = app_config.supabase_url
key: str = app_config.supabase_anon_key


class _LazySupabaseClient:
    """
    延迟初始化 Supabase Client，避免在 import 时因为缺少环境变量导致整个模块导入失败。

    中文注释:
    - 单元测试会直接注入 MagicMock client，因此这里必须保证“可导入”。
    - 真实运行时，如果缺少 URL/KEY，在第一次访问 client 时抛出清晰错误即可。
    """

    def __init__(self, factory: Callable[[], Client], *, name: str):
        self._factory = factory
        self._name = name
        self._client: Optional[Client] = None

    def _get(self) -> Client:
        if self._client is None:
            self._client = self._factory()
        return self._client

    def __getattr__(self, item: str) -> Any:
        return getattr(self._get(), item)


def _require_supabase_url() -> str:
    if not url:
        raise RuntimeError("SUPABASE_URL is required")
    return url


def _require_anon_key() -> str:
    if not key:
        raise RuntimeError("SUPABASE_ANON_KEY or SUPABASE_KEY is required")
    return key


def _create_supabase() -> Client:
    return create_client(_require_supabase_url(), _require_anon_key())


def create_session_client() -> Client:
    """
    为一个调用方创建独立 client（同样延迟初始化）：auth 会话、自动刷新与状态监听都只属于该调用方
    """
    return _LazySupabaseClient(_create_supabase, name="session")  # type: ignore[return-value]


# === 统一 Supabase 客户端（延迟初始化） ===
# 中文注释: 共享 client 只做数据读写，不承载任何用户会话（会话见 SessionRegistry）。
supabase: Client = _LazySupabaseClient(_create_supabase, name="supabase")  # type: ignore[assignment]
