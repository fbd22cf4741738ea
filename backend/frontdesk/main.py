"""
FrontDesk 主应用入口
酒店前台：预订、入住退房、分桶欠款与收银流水
"""
import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from frontdesk import __version__
from frontdesk.config import settings
from frontdesk.database import init_db
from frontdesk.errors import FrontDeskError
from frontdesk.routers import auth, products, reservations, rooms, transactions

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理"""
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # 初始化数据库
    init_db()

    # 注册事件处理器
    from frontdesk.services.event_handlers import event_handlers, register_event_handlers
    register_event_handlers()
    logger.info(f"{settings.APP_NAME} started")

    yield

    event_handlers.channel.shutdown(wait=False)


# 创建应用
app = FastAPI(
    title="FrontDesk - 酒店前台系统",
    description="预订生命周期、分桶欠款与收银流水",
    version=__version__,
    lifespan=lifespan
)

# CORS 配置
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # 生产环境应限制具体域名
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(FrontDeskError)
async def frontdesk_error_handler(request: Request, exc: FrontDeskError):
    """业务异常统一渲染为 {"detail": ..., **extra}"""
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# 注册路由
app.include_router(auth.router)
app.include_router(rooms.router)
app.include_router(reservations.router)
app.include_router(transactions.router)
app.include_router(products.router)


@app.get("/")
def root():
    return {
        "name": settings.APP_NAME,
        "version": __version__,
    }


@app.get("/health")
def health_check():
    return {"status": "healthy"}
