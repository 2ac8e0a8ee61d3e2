# 파일 위치: backend/app/models/user.py
from datetime import datetime, timezone
from enum import Enum
from typing import List

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


class UserRole(str, Enum):
    ADMIN = "admin"
    USER = "user"
    SALESMAN = "salesman"
    PURCHASEMAN = "purchaseman"


class UserStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserInDB(BaseModel):
    """
    MongoDB에 저장되는 완전한 형태의 User 모델입니다.
    password_hash는 CRUD 계층 밖으로 나가지 않습니다. (응답은 UserRead 사용)
    """
    id: str = Field(..., alias="_id")

    username: str
    email: EmailStr
    password_hash: str = ""
    mobile_no: str = ""

    role: UserRole = UserRole.USER
    status: UserStatus = UserStatus.ACTIVE

    # accept한 task id 목록 (tasks.assigned_to의 역참조 캐시)
    assigned_tasks: List[str] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    model_config = ConfigDict(
        populate_by_name=True,
        from_attributes=True,
        use_enum_values=True,
    )

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, v):
        return str(v) if v is not None else v

    @field_validator("assigned_tasks", mode="before")
    @classmethod
    def _stringify_task_ids(cls, v):
        if v is None:
            return []
        return [str(x) for x in v]
