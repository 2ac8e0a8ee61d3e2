# main.py
from contextlib import asynccontextmanager
from pathlib import Path

import structlog
from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

load_dotenv()

from app.api.endpoints import auth, health, upload  # noqa: E402
from app.api.endpoints.admin import tasks as admin_tasks  # noqa: E402
from app.api.endpoints.admin import users as admin_users  # noqa: E402
from app.api.endpoints.user import me, tasks as user_tasks  # noqa: E402
from app.api.middleware import LoggingMiddleware  # noqa: E402
from app.core.config import settings  # noqa: E402
from app.core.errors import TaskAppError, ValidationError  # noqa: E402
from app.core.logging_config import setup_logging  # noqa: E402
from app.db.mongo import close_mongo_connection, connect_to_mongo  # noqa: E402

setup_logging()
logger = structlog.get_logger(__name__)


# [수명 주기 관리] DB 연결 및 해제
@asynccontextmanager
async def lifespan(app: FastAPI):
    await connect_to_mongo()
    logger.info("app_started", environment=settings.ENVIRONMENT)
    yield
    await close_mongo_connection()


async def handle_app_error(request: Request, exc: TaskAppError) -> JSONResponse:
    """도메인 예외 -> HTTP 응답 변환은 여기 한 곳에서만"""
    body = {"detail": exc.message, "code": exc.code}
    if isinstance(exc, ValidationError) and len(exc.errors) > 1:
        body["errors"] = exc.errors

    if exc.status_code >= 500:
        logger.error("request_failed", code=exc.code, detail=exc.message)
    else:
        logger.info("request_rejected", code=exc.code, detail=exc.message)
    return JSONResponse(status_code=exc.status_code, content=body)


def create_app(use_lifespan: bool = True) -> FastAPI:
    app = FastAPI(title="Task Board Backend", lifespan=lifespan if use_lifespan else None)

    # --- 미들웨어 설정 ---
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(TaskAppError, handle_app_error)

    app.include_router(health.router)
    app.include_router(auth.router)
    app.include_router(upload.router)

    # 고정 경로(/my-tasks, /me ...)가 /{task_id}, /{user_id}보다 먼저 매칭되도록 member 라우터를 먼저 등록
    app.include_router(user_tasks.router)
    app.include_router(me.router)
    app.include_router(admin_tasks.router)
    app.include_router(admin_users.router)

    # 업로드된 파일 공개 경로
    upload_dir = Path(settings.UPLOAD_DIR)
    upload_dir.mkdir(parents=True, exist_ok=True)
    app.mount(settings.UPLOAD_URL_PREFIX, StaticFiles(directory=str(upload_dir)), name="uploads")

    return app


app = create_app()
