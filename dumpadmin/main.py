import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from dumpadmin.config import get_settings
from dotenv import load_dotenv

load_dotenv()

# 配置日志级别（确保能看到 INFO 级别的任务与审计日志）
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)

from dumpadmin.api.routes import router as admin_router
from dumpadmin.core.container import build_services


@asynccontextmanager
async def lifespan(app: FastAPI):
    # 启动时构建服务并拉起后台 worker；关闭时停止队列并释放 HTTP 连接
    services = build_services(get_settings())
    app.state.services = services
    await services.start()
    try:
        yield
    finally:
        await services.stop()


def create_app() -> FastAPI:
    """
    创建 FastAPI 应用，并挂载管理路由。
    """
    app = FastAPI(
        title="Dump Admin Backend",
        version="0.1.0",
        lifespan=lifespan,
    )

    # 预加载配置，启动时如果 .env 有问题可以尽早暴露
    get_settings()

    app.include_router(admin_router, prefix="/api")

    @app.get("/health", summary="健康检查")
    async def health_check():
        return {"status": "ok"}

    return app


app = create_app()
