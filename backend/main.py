import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# 在应用启动前加载环境变量
load_dotenv()

logger = logging.getLogger("journalflow.main")

_SENTRY_ENABLED = False
try:
    from journalflow.core.sentry_init import init_sentry

    _SENTRY_ENABLED = init_sentry()
    if _SENTRY_ENABLED:
        logger.info("[sentry] enabled")
except Exception as e:
    # 中文注释: Sentry 任何异常不得阻塞启动
    logger.warning("[sentry] init failed (ignored): %s", e)

from journalflow.api.v1 import auth, home, reviews, submissions, users
from journalflow.core.config import WorkflowConfig, parse_frontend_origins
from journalflow.core.middleware import ExceptionHandlerMiddleware, login_required_handler
from journalflow.core.navigation import LoginRequired, NavigationGuard
from journalflow.core.session import SessionRegistry


@asynccontextmanager
async def lifespan(app: FastAPI):
    workflow = WorkflowConfig.from_env()
    app.state.workflow_config = workflow
    app.state.navigation_guard = NavigationGuard(login_path=workflow.login_path)

    # 中文注释: 会话按调用方（Bearer token）区分，上下文在首次请求时才创建
    registry = SessionRegistry(max_sessions=workflow.max_sessions)
    app.state.session_registry = registry
    yield
    registry.close()


app = FastAPI(
    title="JournalFlow API",
    description="Open peer-review journal backend",
    version="1.0.0",
    lifespan=lifespan,
)

# === 中间件配置 ===
# 1. 跨域资源共享 (CORS) - 允许前端访问
app.add_middleware(
    CORSMiddleware,
    allow_origins=parse_frontend_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 2. 统一异常处理
app.add_middleware(ExceptionHandlerMiddleware)
app.add_exception_handler(LoginRequired, login_required_handler)

# === 路由注册 ===
app.include_router(home.router, prefix="/api/v1")
app.include_router(submissions.router, prefix="/api/v1")
app.include_router(reviews.router, prefix="/api/v1")
app.include_router(users.router, prefix="/api/v1")
app.include_router(auth.router, prefix="/api/v1")


@app.get("/")
async def root():
    return {"message": "JournalFlow API is running", "docs": "/docs"}
