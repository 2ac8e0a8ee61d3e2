# backend/app/schemas/user.py

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field, ConfigDict, field_validator

from app.models.user import UserRole, UserStatus


# -------------------------
# 공백 방지 공통 유틸
# -------------------------
def _strip_and_reject_blank(v: str, field_name: str) -> str:
    """
    문자열 양쪽 공백 제거 후,
    빈 문자열이면 ValidationError 유발을 위해 ValueError 발생.
    """
    if v is None:
        return v
    if not isinstance(v, str):
        return v
    stripped = v.strip()
    if stripped == "":
        raise ValueError(f"{field_name} must not be blank")
    return stripped


def _strip_to_none(v):
    """
    Optional[str] 입력에서:
    - None은 그대로
    - "   " -> None
    - 그 외는 strip된 문자열
    """
    if v is None:
        return None
    if not isinstance(v, str):
        return v
    s = v.strip()
    return s or None


# ---------- 요청 스키마 ----------

class UserCreate(BaseModel):
    """
    [요청] POST /api/users (관리자)
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    username: str
    email: EmailStr
    password: str
    mobile_no: str
    role: UserRole = UserRole.USER

    @field_validator("username", "password", "mobile_no")
    @classmethod
    def validate_not_blank(cls, v: str, info) -> str:
        return _strip_and_reject_blank(v, info.field_name)


class UserUpdate(BaseModel):
    """
    [요청] PATCH /api/users/{user_id} (관리자)
    - password가 비어 있으면 변경하지 않음
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    username: Optional[str] = None
    email: Optional[EmailStr] = None
    password: Optional[str] = None
    mobile_no: Optional[str] = None
    role: Optional[UserRole] = None
    status: Optional[UserStatus] = None

    @field_validator("username", "password", "mobile_no", mode="before")
    @classmethod
    def validate_optional_text(cls, v):
        return _strip_to_none(v)


class LoginRequest(BaseModel):
    """
    [요청] POST /api/login
    login_type이 'admin'이면 환경 변수의 관리자 계정으로 검증합니다.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = ""
    password: str = ""
    login_type: str = "user"


# ---------- 응답 스키마 ----------

class UserRead(BaseModel):
    id: str
    username: str
    email: EmailStr
    mobile_no: str = ""
    role: str
    status: str
    assigned_tasks: List[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    model_config = {
        "from_attributes": True
    }


class SessionUser(BaseModel):
    id: str
    username: str
    role: str


class LoginResponse(BaseModel):
    success: bool = True
    user: SessionUser


class AuthCheck(BaseModel):
    """
    [응답] GET /api/auth/check
    home은 role에 따른 기본 화면 경로 (admin -> /admin, 그 외 -> /users)
    """
    authenticated: bool
    role: Optional[str] = None
    home: Optional[str] = None


class SuccessMessage(BaseModel):
    success: bool = True
    message: str = "Operation successful"
