import pytest
from jose import jwt

from app.core.config import settings
from app.core.errors import AuthenticationError
from app.core.security import create_access_token, decode_access_token, hash_password, verify_password


def test_token_carries_identity_and_role():
    payload = decode_access_token(create_access_token("u1", "alice", "salesman"))
    assert payload["sub"] == "u1"
    assert payload["username"] == "alice"
    assert payload["role"] == "salesman"


def test_token_signed_with_other_key_is_rejected():
    token = jwt.encode({"sub": "u1", "role": "admin", "type": "access"}, "other-key", algorithm="HS256")
    with pytest.raises(AuthenticationError):
        decode_access_token(token)


def test_token_without_role_is_rejected():
    token = jwt.encode({"sub": "u1", "type": "access"}, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
    with pytest.raises(AuthenticationError):
        decode_access_token(token)


def test_password_hashing():
    hashed = hash_password("s3cret")
    assert hashed != "s3cret"
    assert verify_password("s3cret", hashed)
    assert not verify_password("wrong", hashed)
    assert not verify_password("s3cret", "not-a-bcrypt-hash")
    assert not verify_password("s3cret", "")
