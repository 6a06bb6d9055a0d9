from __future__ import annotations

import uuid
from collections import defaultdict
from datetime import datetime, timedelta

from flask import Blueprint, current_app, g, jsonify, request
from sqlalchemy.orm import Session

from app.murrs.audit import record_event
from app.murrs.db import db_session
from app.murrs.errors import ApiError, Forbidden, TooManyRequests, Unauthorized
from app.murrs.models import RefreshToken, User
from app.murrs.modules.users.schemas import LoginForm, RefreshRequest, RegisterRequest
from app.murrs.modules.users.service import register_user, user_to_dict
from app.murrs.rbac import current_user
from app.murrs.security import create_access_token, create_refresh_token, decode_token, verify_password

bp = Blueprint("auth", __name__)
_login_attempts: dict[str, list[datetime]] = defaultdict(list)
_LOGIN_RATE_LIMIT = 5
_LOGIN_RATE_WINDOW = 300  # seconds


def _check_rate_limit(ip: str) -> bool:
    now = datetime.utcnow()
    cutoff = now - timedelta(seconds=_LOGIN_RATE_WINDOW)
    _login_attempts[ip] = [t for t in _login_attempts[ip] if t > cutoff]
    return len(_login_attempts[ip]) >= _LOGIN_RATE_LIMIT


def _record_attempt(ip: str) -> None:
    _login_attempts[ip].append(datetime.utcnow())


def reset_rate_limits() -> None:
    _login_attempts.clear()


def _bearer_token() -> str | None:
    header = request.headers.get("Authorization") or ""
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def load_current_user() -> None:
    """
    Loads g.current_user from the `Authorization: Bearer <access token>` header.
    Also assigns a simple per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    g.current_user = None
    if request.path.startswith(("/static/", "/health", "/healthz")):
        return

    token = _bearer_token()
    if not token:
        return

    try:
        payload = decode_token(token, expected_type="access")
    except Unauthorized:
        return

    try:
        s = db_session()
        user = s.get(User, int(payload["sub"]))
    except Exception as e:
        current_app.logger.error("load_current_user DB error (treating as anonymous): %s", e)
        return
    if user and user.is_active:
        g.current_user = user


def _issue_tokens(s: Session, user: User) -> dict[str, str]:
    refresh_token, jti, expires_at = create_refresh_token(user.id)
    s.add(RefreshToken(jti=jti, user_id=user.id, issued_at=datetime.utcnow(), expires_at=expires_at))
    return {
        "access_token": create_access_token(user.id),
        "refresh_token": refresh_token,
        "token_type": "bearer",
    }


def _stored_refresh_token(s: Session, token: str) -> RefreshToken | None:
    payload = decode_token(token, expected_type="refresh")
    jti = payload.get("jti")
    if not jti:
        return None
    row = s.query(RefreshToken).filter(RefreshToken.jti == jti).one_or_none()
    if row is None or row.user_id != int(payload["sub"]):
        return None
    return row


@bp.post("/login")
def login():
    form = LoginForm.model_validate(request.form.to_dict())
    ip = request.remote_addr or "unknown"

    if _check_rate_limit(ip):
        raise TooManyRequests("Too many login attempts. Please wait 5 minutes.")

    _record_attempt(ip)

    try:
        s = db_session()
        user = s.query(User).filter(User.email == form.username).one_or_none()
        if not user or not verify_password(form.password, user.password_hash):
            record_event(
                s,
                actor=None,
                action="auth.login_failed",
                entity_type="User",
                entity_id=form.username,
                reason="Invalid credentials",
                metadata={"email": form.username},
            )
            s.commit()
            raise Unauthorized("Incorrect email or password")
        if not user.is_active:
            record_event(
                s,
                actor=user,
                action="auth.login_failed",
                entity_type="User",
                entity_id=str(user.id),
                reason="Account inactive",
            )
            s.commit()
            raise Forbidden("Account pending activation")

        _login_attempts[ip].clear()
        tokens = _issue_tokens(s, user)
        record_event(s, actor=user, action="auth.login", entity_type="User", entity_id=str(user.id))
        s.commit()
        return jsonify(tokens)
    except ApiError:
        raise
    except Exception:
        current_app.logger.exception(
            "Login crashed (email=%s request_id=%s)", form.username, getattr(g, "request_id", None)
        )
        raise


@bp.post("/register")
def register():
    payload = RegisterRequest.model_validate(request.get_json(silent=True) or {})
    s = db_session()
    user = register_user(s, payload, actor=current_user())
    s.commit()
    current_app.logger.info("Registered user %s (role=%s active=%s)", user.id, user.role, user.is_active)
    return jsonify(user_to_dict(user)), 201


@bp.post("/refresh")
def refresh():
    payload = RefreshRequest.model_validate(request.get_json(silent=True) or {})
    s = db_session()
    row = _stored_refresh_token(s, payload.refresh_token)
    now = datetime.utcnow()
    if row is None or row.revoked_at is not None or row.expires_at <= now:
        raise Unauthorized("Invalid refresh token")
    user = s.get(User, row.user_id)
    if not user or not user.is_active:
        raise Unauthorized("Invalid refresh token")

    row.revoked_at = now
    tokens = _issue_tokens(s, user)
    record_event(s, actor=user, action="auth.refresh", entity_type="User", entity_id=str(user.id))
    s.commit()
    return jsonify(tokens)


@bp.post("/logout")
def logout():
    data = request.get_json(silent=True) or {}
    token = data.get("refresh_token") if isinstance(data, dict) else None
    if token:
        s = db_session()
        try:
            row = _stored_refresh_token(s, str(token))
        except Unauthorized:
            row = None
        if row is not None and row.revoked_at is None:
            row.revoked_at = datetime.utcnow()
            user = s.get(User, row.user_id)
            record_event(s, actor=user, action="auth.logout", entity_type="User", entity_id=str(row.user_id))
            s.commit()
    return "", 204
