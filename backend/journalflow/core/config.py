import os
from dataclasses import dataclass
from typing import Optional


def _env_bool(key: str, default: bool) -> bool:
    raw = os.environ.get(key)
    if raw is None:
        return default
    lowered = raw.strip().lower()
    return lowered in {"1", "true", "yes", "y", "on"}


def _env_int(key: str, default: int, *, min_value: int = 0) -> int:
    raw = (os.environ.get(key) or "").strip()
    try:
        value = int(raw) if raw else default
    except ValueError:
        value = default
    return max(min_value, value)


@dataclass(frozen=True)
class AppConfig:
    """
    客户端运行环境配置

    中文注释:
    - 只使用 anon key：数据访问与权限全部交给 Supabase 的 RLS 规则。
    - 历史原因 SUPABASE_KEY 与 SUPABASE_ANON_KEY 并存，优先读后者。
    """

    env: str  # 'development', 'staging', 'production'
    supabase_url: str
    supabase_anon_key: str
    frontend_origins: tuple[str, ...]

    @staticmethod
    def from_env() -> "AppConfig":
        env = (os.environ.get("APP_ENV") or "development").strip().lower()
        supabase_url = (os.environ.get("SUPABASE_URL") or "").strip()
        supabase_anon_key = (
            os.environ.get("SUPABASE_ANON_KEY") or os.environ.get("SUPABASE_KEY") or ""
        ).strip()

        return AppConfig(
            env=env,
            supabase_url=supabase_url,
            supabase_anon_key=supabase_anon_key,
            frontend_origins=tuple(parse_frontend_origins()),
        )


def parse_frontend_origins() -> list[str]:
    """
    解析允许跨域的前端 Origins。

    中文注释:
    - 本地默认: http://localhost:5173（Vite dev server）
    - 生产/预发: 通过 FRONTEND_ORIGIN 或 FRONTEND_ORIGINS 注入（逗号分隔）
    """
    origins: list[str] = []

    single = (os.environ.get("FRONTEND_ORIGIN") or "").strip()
    if single:
        origins.append(single.rstrip("/"))

    many = (os.environ.get("FRONTEND_ORIGINS") or "").strip()
    if many:
        for part in many.split(","):
            o = (part or "").strip().rstrip("/")
            if o:
                origins.append(o)

    if not origins:
        origins = ["http://localhost:5173"]

    # 去重保持顺序
    return list(dict.fromkeys(origins))


@dataclass(frozen=True)
class WorkflowConfig:
    """
    投稿/审稿工作流的可调参数

    中文注释:
    - lock_after_decision: 已录用/已拒稿的稿件是否禁止作者继续编辑（默认允许，与线上行为一致）。
    - review_slot_due_days: 认领审稿名额后的截止天数。
    - max_sessions: 服务端同时保留的登录调用方会话数上限。
    """

    lock_after_decision: bool
    review_slot_due_days: int
    login_path: str
    max_sessions: int = 512

    @staticmethod
    def from_env() -> "WorkflowConfig":
        login_path = (os.environ.get("LOGIN_PATH") or "/login").strip() or "/login"
        if not login_path.startswith("/"):
            login_path = f"/{login_path}"

        return WorkflowConfig(
            lock_after_decision=_env_bool("SUBMISSION_LOCK_AFTER_DECISION", False),
            review_slot_due_days=_env_int("REVIEW_SLOT_DUE_DAYS", 14, min_value=1),
            login_path=login_path,
            max_sessions=_env_int("SESSION_CACHE_SIZE", 512, min_value=1),
        )


@dataclass(frozen=True)
class SentryConfig:
    """
    Sentry 错误上报配置（未配置 DSN 时整体关闭）
    """

    enabled: bool
    dsn: Optional[str]
    environment: str
    traces_sample_rate: float

    @staticmethod
    def from_env() -> "SentryConfig":
        dsn = (os.environ.get("SENTRY_DSN") or "").strip() or None
        environment = (
            os.environ.get("SENTRY_ENVIRONMENT") or os.environ.get("APP_ENV") or "development"
        ).strip()

        raw_rate = (os.environ.get("SENTRY_TRACES_SAMPLE_RATE") or "0").strip()
        try:
            traces_sample_rate = float(raw_rate)
        except ValueError:
            traces_sample_rate = 0.0
        traces_sample_rate = min(max(traces_sample_rate, 0.0), 1.0)

        return SentryConfig(
            enabled=_env_bool("SENTRY_ENABLED", dsn is not None),
            dsn=dsn,
            environment=environment,
            traces_sample_rate=traces_sample_rate,
        )


# Global Config Instance
app_config = AppConfig.from_env()
