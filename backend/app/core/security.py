from datetime import datetime, timedelta, timezone
from typing import Any, Dict

import bcrypt
from jose import jwt, JWTError

from app.core.config import settings
from app.core.errors import AuthenticationError

TOKEN_COOKIE_NAME = "token"


def create_access_token(user_id: str, username: str, role: str) -> str:
    """
    Access Token 생성
    쿠키에 담겨서 전달되며, role 기반 라우팅에 필요한 정보까지 포함합니다.
    """
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode = {
        "exp": expire,
        "sub": str(user_id),
        "username": username,
        "role": role,
        "type": "access",
    }
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def decode_access_token(token: str) -> Dict[str, Any]:
    """
    서명/만료를 검증한 뒤 payload를 반환합니다.
    access 타입이 아니거나 sub/role이 없으면 AuthenticationError.
    """
    try:
        payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as e:
        raise AuthenticationError("Could not validate credentials") from e

    if payload.get("type") != "access" or not payload.get("sub") or not payload.get("role"):
        raise AuthenticationError("Could not validate credentials")
    return payload


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        # 저장된 해시 형식이 깨진 경우
        return False
