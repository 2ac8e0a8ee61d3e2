# backend/app/api/endpoints/auth.py
import secrets
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Response

from app.api.deps import ADMIN_ID, CurrentUser, get_optional_user
from app.core.config import settings
from app.core.errors import AuthenticationError, ValidationError
from app.core.security import TOKEN_COOKIE_NAME, create_access_token, verify_password
from app.crud import users as users_crud
from app.models.user import UserRole, UserStatus
from app.schemas.user import AuthCheck, LoginRequest, LoginResponse, SessionUser, SuccessMessage

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api", tags=["Auth"])


def _matches(given: str, expected: str) -> bool:
    return secrets.compare_digest(given.encode("utf-8"), expected.encode("utf-8"))


async def _authenticate_admin(username: str, password: str) -> SessionUser:
    # 관리자 계정은 환경 변수로만 관리. 비밀번호가 비어 있으면 관리자 로그인 자체를 막음
    if not settings.ADMIN_PASSWORD:
        raise AuthenticationError("Invalid credentials")
    if not (_matches(username, settings.ADMIN_USERNAME) and _matches(password, settings.ADMIN_PASSWORD)):
        raise AuthenticationError("Invalid credentials")
    return SessionUser(id=ADMIN_ID, username=settings.ADMIN_USERNAME, role=UserRole.ADMIN.value)


async def _authenticate_user(username: str, password: str) -> SessionUser:
    user = await users_crud.get_user_by_username(username)
    if user is None or not verify_password(password, user.password_hash):
        raise AuthenticationError("Invalid credentials")
    if user.status != UserStatus.ACTIVE:
        raise AuthenticationError("Account is inactive")
    return SessionUser(id=user.id, username=user.username, role=user.role)


@router.post("/login", response_model=LoginResponse)
async def login(payload: LoginRequest, response: Response):
    """
    [요청] POST /api/login
    [응답] LoginResponse + 'token' 쿠키 (HTTP-only)
    """
    if not payload.username or not payload.password:
        raise ValidationError("Username and password are required")

    if payload.login_type == UserRole.ADMIN.value:
        session = await _authenticate_admin(payload.username, payload.password)
    else:
        session = await _authenticate_user(payload.username, payload.password)

    token = create_access_token(session.id, session.username, session.role)
    response.set_cookie(
        key=TOKEN_COOKIE_NAME,
        value=token,
        httponly=True,
        samesite="lax",
        secure=settings.is_production,
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        path="/",
    )

    logger.info("login_succeeded", user_id=session.id, role=session.role)
    return LoginResponse(user=session)


@router.post("/logout", response_model=SuccessMessage)
async def logout(response: Response):
    response.delete_cookie(TOKEN_COOKIE_NAME, path="/")
    return SuccessMessage(message="Logged out")


@router.get("/auth/check", response_model=AuthCheck)
async def auth_check(user: Optional[CurrentUser] = Depends(get_optional_user)):
    """
    [응답] 로그인 여부와 role별 기본 화면 경로
    """
    if user is None:
        return AuthCheck(authenticated=False)
    home = "/admin" if user.is_admin else "/users"
    return AuthCheck(authenticated=True, role=user.role, home=home)
