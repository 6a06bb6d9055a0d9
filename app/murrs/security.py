from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from typing import Any

from flask import current_app
from jose import JWTError, jwt
from werkzeug.security import check_password_hash, generate_password_hash

from app.murrs.errors import Unauthorized


def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    if not password or not password_hash:
        return False
    return check_password_hash(password_hash, password)


def _encode(claims: dict[str, Any]) -> str:
    return jwt.encode(
        claims,
        current_app.config["JWT_SECRET_KEY"],
        algorithm=current_app.config.get("JWT_ALGORITHM", "HS256"),
    )


def create_access_token(user_id: int, *, expires_delta: timedelta | None = None) -> str:
    """Short-lived bearer token carried in the Authorization header."""
    if expires_delta is None:
        expires_delta = timedelta(minutes=int(current_app.config.get("ACCESS_TOKEN_EXPIRE_MINUTES", 30)))
    now = datetime.utcnow()
    return _encode({"sub": str(user_id), "type": "access", "iat": now, "exp": now + expires_delta})


def create_refresh_token(user_id: int) -> tuple[str, str, datetime]:
    """Returns (token, jti, expires_at). The jti is persisted so the token can be revoked."""
    now = datetime.utcnow()
    expires_at = now + timedelta(days=int(current_app.config.get("REFRESH_TOKEN_EXPIRE_DAYS", 7)))
    jti = uuid.uuid4().hex
    token = _encode({"sub": str(user_id), "type": "refresh", "jti": jti, "iat": now, "exp": expires_at})
    return token, jti, expires_at


def decode_token(token: str, *, expected_type: str) -> dict[str, Any]:
    try:
        payload = jwt.decode(
            token,
            current_app.config["JWT_SECRET_KEY"],
            algorithms=[current_app.config.get("JWT_ALGORITHM", "HS256")],
        )
    except JWTError:
        raise Unauthorized("Could not validate credentials")
    if payload.get("type") != expected_type:
        raise Unauthorized("Invalid token type")
    sub = payload.get("sub")
    if not sub or not str(sub).isdigit():
        raise Unauthorized("Could not validate credentials")
    return payload
