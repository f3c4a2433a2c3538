import logging
import time

from fastapi import Request
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.middleware.base import BaseHTTPMiddleware

from journalflow.core.navigation import LoginRequired

# === 日志配置 ===
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("journalflow")


class ExceptionHandlerMiddleware(BaseHTTPMiddleware):
    """
    请求日志 + 兜底异常处理：未处理异常统一返回 500，不把堆栈暴露给前端
    """

    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.exception("unhandled error on %s %s", request.method, request.url.path)
            return JSONResponse(
                status_code=500,
                content={"detail": "Internal error, please try again later", "type": "server_error"},
            )

        logger.info(
            "%s %s -> %s (%.1fms)",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - started) * 1000,
        )
        return response


async def login_required_handler(request: Request, exc: LoginRequired) -> RedirectResponse:
    # 中文注释: 303 让浏览器用 GET 打开登录页（POST 提交被拦截时同样适用）
    logger.info("login required for %s, redirecting to %s", request.url.path, exc.location)
    return RedirectResponse(url=exc.location, status_code=303)
