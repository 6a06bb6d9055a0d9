from __future__ import annotations

from datetime import datetime
from typing import Any

from flask import current_app
from sqlalchemy.orm import Session

from app.murrs.audit import record_event
from app.murrs.constants import STAFF_ROLES, STUDENT_ROLES
from app.murrs.errors import BadRequest, Conflict, Forbidden, NotFound
from app.murrs.models import User
from app.murrs.modules.notifications.service import notify
from app.murrs.modules.users.schemas import RegisterRequest, UserListQuery, UserUpdateRequest
from app.murrs.rbac import is_librarian
from app.murrs.security import hash_password, verify_password

# Departments are required for these roles; `staff` joins them even though it never reviews.
_DEPARTMENT_ROLES = STAFF_ROLES


def user_to_dict(u: User) -> dict[str, Any]:
    return {
        "id": u.id,
        "email": u.email,
        "school_id": u.school_id,
        "school": u.school,
        "full_name": u.full_name,
        "department": u.department,
        "is_active": u.is_active,
        "is_admin": u.is_admin,
        "role": u.role,
        "created_at": u.created_at.isoformat() if u.created_at else None,
    }


def get_user_or_404(s: Session, user_id: int) -> User:
    u = s.get(User, user_id)
    if not u:
        raise NotFound("User not found")
    return u


def check_password_policy(password: str | None) -> str:
    min_len = int(current_app.config.get("PASSWORD_MIN_LENGTH", 6))
    if not password or len(password) < min_len:
        raise BadRequest(f"Password must be at least {min_len} characters")
    return password


def _check_email_domain(email: str) -> None:
    domain = (current_app.config.get("ALLOWED_EMAIL_DOMAIN") or "").strip().lower()
    if domain and not email.endswith(f"@{domain}"):
        raise BadRequest(f"Email must be an @{domain} address")


def _check_profile_fields(role: str, *, school: str | None, school_id: str | None, department: str | None) -> None:
    if role != "librarian" and not school:
        raise BadRequest("School is required")
    if role in STUDENT_ROLES and not school_id:
        raise BadRequest("Student ID is required")
    if role in _DEPARTMENT_ROLES and not department:
        raise BadRequest("Department is required")


def register_user(s: Session, payload: RegisterRequest, *, actor: User | None) -> User:
    """
    Creates an account.

    Self-registration (no librarian actor) must use the institutional email domain and
    produces an inactive account; a librarian creates active accounts and may create librarians.
    """
    by_librarian = is_librarian(actor)
    if payload.role == "librarian" and not by_librarian:
        raise Forbidden("Only a librarian can create librarian accounts")
    if not by_librarian:
        _check_email_domain(payload.email)
    check_password_policy(payload.password)
    _check_profile_fields(
        payload.role,
        school=payload.school,
        school_id=payload.school_id,
        department=payload.department,
    )

    if s.query(User).filter(User.email == payload.email).one_or_none():
        raise Conflict("Email already registered")

    u = User(
        email=payload.email,
        password_hash=hash_password(payload.password),
        full_name=payload.full_name,
        school_id=payload.school_id,
        school=payload.school,
        department=payload.department,
        role=payload.role,
        is_admin=payload.role == "librarian",
        is_active=by_librarian,
        created_at=datetime.utcnow(),
    )
    s.add(u)
    s.flush()
    record_event(
        s,
        actor=actor or u,
        action="user.register",
        entity_type="User",
        entity_id=str(u.id),
        metadata={"email": u.email, "role": u.role, "is_active": u.is_active},
    )
    return u


def update_user(s: Session, target: User, payload: UserUpdateRequest, *, actor: User) -> User:
    is_self = target.id == actor.id
    if not is_self and not is_librarian(actor):
        raise Forbidden("Not enough permissions")

    changed: list[str] = []
    for field in ("full_name", "school_id", "school", "department"):
        if field in payload.model_fields_set:
            value = getattr(payload, field)
            if field == "full_name" and not value:
                raise BadRequest("Full name cannot be empty")
            if getattr(target, field) != value:
                setattr(target, field, value)
                changed.append(field)

    if payload.password is not None:
        if is_self:
            if not payload.current_password:
                raise BadRequest("Current password is required")
            if not verify_password(payload.current_password, target.password_hash):
                raise BadRequest("Current password is incorrect")
            if payload.password == payload.current_password:
                raise BadRequest("New password must be different from the current password")
        check_password_policy(payload.password)
        target.password_hash = hash_password(payload.password)
        changed.append("password")

    if changed:
        target.updated_at = datetime.utcnow()
        record_event(
            s,
            actor=actor,
            action="user.update",
            entity_type="User",
            entity_id=str(target.id),
            metadata={"fields": changed},
        )
    return target


def list_users(s: Session, query: UserListQuery) -> list[User]:
    qry = s.query(User)
    if query.email:
        qry = qry.filter(User.email.ilike(f"%{query.email.lower()}%"))
    if query.is_active is not None:
        qry = qry.filter(User.is_active.is_(query.is_active))
    if query.is_admin is not None:
        qry = qry.filter(User.is_admin.is_(query.is_admin))
    if query.role:
        qry = qry.filter(User.role == query.role)
    return qry.order_by(User.id.asc()).offset(query.skip).limit(query.limit).all()


def delete_user(s: Session, target: User, *, actor: User) -> None:
    if target.id == actor.id:
        raise BadRequest("You cannot delete your own account")
    record_event(
        s,
        actor=actor,
        action="user.delete",
        entity_type="User",
        entity_id=str(target.id),
        metadata={"email": target.email, "role": target.role},
    )
    s.delete(target)


def set_role(s: Session, target: User, role: str, *, actor: User) -> User:
    if target.id == actor.id:
        raise BadRequest("You cannot change your own role")
    before = target.role
    target.role = role
    target.is_admin = role == "librarian"
    target.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=actor,
        action="user.role",
        entity_type="User",
        entity_id=str(target.id),
        metadata={"from": before, "to": role},
    )
    return target


def set_active(s: Session, target: User, is_active: bool, *, actor: User) -> User:
    was_active = target.is_active
    target.is_active = is_active
    target.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=actor,
        action="user.activate" if is_active else "user.deactivate",
        entity_type="User",
        entity_id=str(target.id),
    )
    if is_active and not was_active:
        notify(
            s,
            target,
            type="account_activated",
            message="Your MURRS account has been activated. You can now sign in.",
        )
    return target


def list_supervisors(s: Session) -> list[User]:
    return (
        s.query(User)
        .filter(User.role == "lecturer", User.is_active.is_(True))
        .order_by(User.full_name.asc(), User.id.asc())
        .all()
    )
