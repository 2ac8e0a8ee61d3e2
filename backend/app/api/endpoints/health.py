# backend/app/api/endpoints/health.py

import structlog
from fastapi import APIRouter
from pymongo.errors import PyMongoError

from app.db.mongo import get_db

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check():
    """
    [운영] 헬스 체크
    - 서버 생존 여부 + Mongo 연결 여부를 빠르게 확인하기 위한 엔드포인트
    """
    mongo_ok = False
    try:
        # MongoDB ping: 연결/권한/네트워크 문제를 가장 단순하게 확인
        await get_db().command("ping")
        mongo_ok = True
    except (PyMongoError, RuntimeError) as e:
        logger.warning("health_mongo_unavailable", error=str(e))

    return {
        "status": "ok" if mongo_ok else "degraded",
        "mongo": mongo_ok,
    }
