import asyncio
import logging
import os
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# 在应用启动前加载环境变量
load_dotenv()

logger = logging.getLogger("journaldesk")

_SENTRY_ENABLED = False
try:
    from journaldesk.core.sentry_init import init_sentry

    _SENTRY_ENABLED = init_sentry()
    if _SENTRY_ENABLED:
        logger.info("Sentry enabled")
except Exception as e:
    # 中文注释: 零崩溃原则，Sentry 任何异常不得阻塞启动
    logger.warning("Sentry init failed (ignored): %s", e)

from journaldesk.api.v1 import (
    auth,
    editorial,
    internal,
    notifications,
    production,
    profiles,
    publication,
    reviews,
    revisions,
    submissions,
)
from journaldesk.core.config import OutboxConfig
from journaldesk.core.middleware import ExceptionHandlerMiddleware
from journaldesk.core.outbox_worker import OutboxWorker
from journaldesk.core.rate_limit import RateLimitMiddleware


@asynccontextmanager
async def lifespan(app: FastAPI):
    # 中文注释:
    # - 通知 outbox 默认由 Cron (/internal/cron/process-outbox) 与请求后的 BackgroundTasks 驱动；
    # - 单实例部署可开启 OUTBOX_WORKER_ENABLED=1，在进程内常驻轮询。
    worker = None
    task = None
    cfg = OutboxConfig.from_env()
    if cfg.worker_enabled:
        worker = OutboxWorker(config=cfg)
        task = asyncio.create_task(worker.start())
    try:
        yield
    finally:
        if worker is not None and task is not None:
            worker.stop()
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass


app = FastAPI(
    title="JournalDesk API",
    description="Scholarly journal submission, review and publication backend",
    version="1.0.0",
    lifespan=lifespan,
)


def _parse_frontend_origins() -> list[str]:
    """
    解析允许跨域的前端 Origins。

    中文注释:
    - 本地默认: http://localhost:5173
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


# === 中间件配置 ===
# 1. 跨域资源共享 (CORS)
app.add_middleware(
    CORSMiddleware,
    allow_origins=_parse_frontend_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 2. 内存限流（测试环境自动关闭）
app.add_middleware(RateLimitMiddleware)

# 3. 统一异常处理与访问日志
app.add_middleware(ExceptionHandlerMiddleware)

# === 路由注册 ===
app.include_router(auth.router, prefix="/api/v1")
app.include_router(profiles.router, prefix="/api/v1")
app.include_router(submissions.router, prefix="/api/v1")
app.include_router(revisions.router, prefix="/api/v1")
app.include_router(editorial.router, prefix="/api/v1")
app.include_router(reviews.router, prefix="/api/v1")
app.include_router(production.router, prefix="/api/v1")
app.include_router(publication.router, prefix="/api/v1")
app.include_router(notifications.router, prefix="/api/v1")
app.include_router(internal.router, prefix="/api/v1")


@app.get("/")
async def root():
    return {"message": "JournalDesk API is running", "docs": "/docs"}
