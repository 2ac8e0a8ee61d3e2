# backend/app/db/mongo.py
import functools

import structlog
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import PyMongoError

from app.core.config import settings
from app.core.errors import StorageError

logger = structlog.get_logger(__name__)

client: AsyncIOMotorClient | None = None
db = None


async def connect_to_mongo():
    global client, db
    # tz_aware=True: DB에서 읽은 datetime을 aware(UTC)로 받기 위함
    client = AsyncIOMotorClient(settings.MONGO_URI, tz_aware=True)
    db = client[settings.MONGO_DB_NAME]
    logger.info("mongo_connected", db_name=settings.MONGO_DB_NAME)


async def close_mongo_connection():
    global client, db
    if client:
        client.close()
        logger.info("mongo_connection_closed")
    client = None
    db = None


def get_db():
    if db is None:
        raise RuntimeError("MongoDB not initialized. Did you call connect_to_mongo()?")
    return db


def storage_guard(func):
    """
    CRUD 함수에서 발생한 pymongo 예외를 StorageError로 변환합니다.
    도메인 예외(TaskAppError)는 그대로 통과합니다.
    """
    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        try:
            return await func(*args, **kwargs)
        except PyMongoError as e:
            logger.error("storage_failure", operation=func.__qualname__, error=str(e))
            raise StorageError("Storage temporarily unavailable") from e

    return wrapper
