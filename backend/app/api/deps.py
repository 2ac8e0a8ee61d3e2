from typing import Optional

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from pydantic import BaseModel

from app.core.errors import AuthenticationError, PermissionDeniedError
from app.core.security import TOKEN_COOKIE_NAME, decode_access_token
from app.models.user import UserRole

# 브라우저는 쿠키로, API 클라이언트/스웨거는 Bearer 헤더로 보낼 수 있음
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/login", auto_error=False)

ADMIN_ID = "admin"


class CurrentUser(BaseModel):
    id: str
    username: str = ""
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value


def _extract_token(request: Request, bearer: Optional[str]) -> Optional[str]:
    return request.cookies.get(TOKEN_COOKIE_NAME) or bearer


async def get_optional_user(
    request: Request,
    bearer: Optional[str] = Depends(oauth2_scheme),
) -> Optional[CurrentUser]:
    token = _extract_token(request, bearer)
    if not token:
        return None
    try:
        payload = decode_access_token(token)
    except AuthenticationError:
        return None
    return CurrentUser(id=payload["sub"], username=payload.get("username", ""), role=payload["role"])


async def get_current_user(
    user: Optional[CurrentUser] = Depends(get_optional_user),
) -> CurrentUser:
    """
    쿠키('token') 또는 Authorization 헤더의 JWT를 검증하고 호출자를 반환합니다.
    """
    if user is None:
        raise AuthenticationError("Not authenticated")
    return user


async def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not user.is_admin:
        raise PermissionDeniedError("Admin access required")
    return user


async def require_member(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    """관리자가 아닌 (DB에 존재하는) 사용자 전용 라우트"""
    if user.is_admin:
        raise PermissionDeniedError("This action is only available to users")
    return user
