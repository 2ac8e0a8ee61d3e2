# backend/app/crud/users.py

from datetime import datetime, timezone
from typing import Optional, Dict, Any, List, Union

import structlog
from bson import ObjectId
from bson.errors import InvalidId

from app.core.errors import ConflictError, NotFoundError
from app.core.security import hash_password
from app.db.mongo import get_db, storage_guard
from app.models.user import UserInDB
from app.schemas.user import UserCreate, UserUpdate

logger = structlog.get_logger(__name__)


def get_users_collection():
    """
    Motor DB 핸들에서 users 컬렉션을 가져옵니다.
    connect_to_mongo() 이후에 db가 세팅되어 있어야 합니다.
    """
    return get_db()["users"]


def _safe_object_id(user_id: Union[str, ObjectId]) -> Optional[ObjectId]:
    """
    str/ObjectId 입력을 안전하게 ObjectId로 변환합니다.
    """
    if isinstance(user_id, ObjectId):
        return user_id

    if isinstance(user_id, str):
        user_id = user_id.strip()

    try:
        return ObjectId(user_id)
    except (InvalidId, TypeError):
        return None


def _id_filter(user_id: Union[str, ObjectId]) -> Dict[str, Any]:
    """
    users 컬렉션의 _id 타입이 ObjectId / string 혼재된 상황을 모두 커버하는 필터.
    - ObjectId로 변환 가능하면: ObjectId / string 둘 다 매칭
    - 변환 불가하면: string 매칭
    """
    if isinstance(user_id, str):
        user_id = user_id.strip()

    oid = _safe_object_id(user_id)

    if isinstance(user_id, str) and oid is not None:
        return {"$or": [{"_id": oid}, {"_id": user_id}]}

    if oid is not None:
        return {"_id": oid}

    return {"_id": user_id}


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ---------- READ ----------

@storage_guard
async def get_user_by_id(user_id: Union[str, ObjectId]) -> Optional[UserInDB]:
    user = await get_users_collection().find_one(_id_filter(user_id))
    return UserInDB(**user) if user else None


async def require_user(user_id: Union[str, ObjectId]) -> UserInDB:
    user = await get_user_by_id(user_id)
    if user is None:
        raise NotFoundError("User")
    return user


@storage_guard
async def get_user_by_username(username: str) -> Optional[UserInDB]:
    user = await get_users_collection().find_one({"username": (username or "").strip()})
    return UserInDB(**user) if user else None


@storage_guard
async def get_users() -> List[UserInDB]:
    cursor = get_users_collection().find({}).sort("created_at", -1)
    return [UserInDB(**doc) async for doc in cursor]


# ---------- CREATE ----------

async def _ensure_unique(username: Optional[str], email: Optional[str], exclude_id: Optional[str] = None) -> None:
    conditions = []
    if username:
        conditions.append({"username": username})
    if email:
        conditions.append({"email": email})
    if not conditions:
        return

    existing = await get_users_collection().find_one({"$or": conditions})
    if existing and str(existing["_id"]) != str(exclude_id):
        raise ConflictError("User with this email or username already exists")


@storage_guard
async def create_user(data: UserCreate) -> UserInDB:
    await _ensure_unique(data.username, str(data.email))

    now = _now()
    user_data = {
        "username": data.username,
        "email": str(data.email),
        "password_hash": hash_password(data.password),
        "mobile_no": data.mobile_no,
        "role": data.role.value,
        "status": "active",
        "assigned_tasks": [],
        "created_at": now,
        "updated_at": now,
    }

    result = await get_users_collection().insert_one(user_data)
    user_data["_id"] = result.inserted_id
    logger.info("user_created", user_id=str(result.inserted_id), role=user_data["role"])
    return UserInDB(**user_data)


# ---------- UPDATE ----------

@storage_guard
async def update_user(user_id: str, data: UserUpdate) -> UserInDB:
    changes = data.model_dump(exclude_unset=True)

    # 빈 password는 "변경 안 함"
    password = changes.pop("password", None)
    if password:
        changes["password_hash"] = hash_password(password)

    # 값이 None인 키는 무시 (strip 결과 빈 문자열 포함)
    changes = {k: v for k, v in changes.items() if v is not None}
    for key in ("role", "status"):
        if key in changes:
            changes[key] = getattr(changes[key], "value", changes[key])
    if "email" in changes:
        changes["email"] = str(changes["email"])

    await _ensure_unique(changes.get("username"), changes.get("email"), exclude_id=user_id)

    if not changes:
        return await require_user(user_id)

    changes["updated_at"] = _now()
    result = await get_users_collection().update_one(_id_filter(user_id), {"$set": changes})
    if result.matched_count == 0:
        raise NotFoundError("User")

    logger.info("user_updated", user_id=user_id, keys=sorted(k for k in changes if k != "password_hash"))
    return await require_user(user_id)


@storage_guard
async def add_assigned_task(user_id: str, task_id: str) -> None:
    """accept 시 user 역참조에 task id 추가"""
    result = await get_users_collection().update_one(
        _id_filter(user_id),
        {"$addToSet": {"assigned_tasks": str(task_id)}, "$set": {"updated_at": _now()}},
    )
    if result.matched_count == 0:
        raise NotFoundError("User")


@storage_guard
async def remove_assigned_task(user_id: str, task_id: str) -> None:
    await get_users_collection().update_one(
        _id_filter(user_id),
        {"$pull": {"assigned_tasks": str(task_id)}, "$set": {"updated_at": _now()}},
    )


@storage_guard
async def release_task_everywhere(task_id: str) -> int:
    """
    재할당/삭제 시 모든 사용자의 역참조에서 task id를 제거합니다.
    """
    result = await get_users_collection().update_many(
        {"assigned_tasks": str(task_id)},
        {"$pull": {"assigned_tasks": str(task_id)}},
    )
    return result.modified_count


# ---------- DELETE ----------

@storage_guard
async def delete_user(user_id: str) -> None:
    result = await get_users_collection().delete_one(_id_filter(user_id))
    if result.deleted_count == 0:
        raise NotFoundError("User")
    logger.info("user_deleted", user_id=user_id)


@storage_guard
async def get_usernames(user_ids: List[str]) -> Dict[str, str]:
    """user id 목록 -> {id: username}. 없는 사용자는 빠집니다."""
    oids = [oid for oid in (_safe_object_id(u) for u in user_ids) if oid is not None]
    if not oids:
        return {}
    cursor = get_users_collection().find({"_id": {"$in": oids}}, {"username": 1})
    return {str(doc["_id"]): doc["username"] async for doc in cursor}
