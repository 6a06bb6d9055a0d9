from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import g

from app.murrs.constants import REVIEWER_ROLES, ROLES
from app.murrs.errors import Forbidden, Unauthorized
from app.murrs.models import User

_ALL = frozenset(ROLES)

# Permission key -> roles granted it.
PERMISSION_ROLES: dict[str, frozenset[str]] = {
    "papers.submit": _ALL,
    "papers.download": _ALL,
    "papers.review": REVIEWER_ROLES,
    "users.view_supervisors": _ALL,
    "users.manage": frozenset({"librarian"}),
}


def is_reviewer(user: User | None) -> bool:
    return bool(user and user.role in REVIEWER_ROLES)


def is_librarian(user: User | None) -> bool:
    return bool(user and user.role == "librarian")


def user_has_permission(user: User | None, permission_key: str) -> bool:
    if not user or not user.is_active:
        return False
    return user.role in PERMISSION_ROLES.get(permission_key, frozenset())


def current_user() -> User | None:
    return getattr(g, "current_user", None)


def require_user() -> User:
    u = current_user()
    if not u or not u.is_active:
        raise Unauthorized()
    return u


def require_auth(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        require_user()
        return fn(*args, **kwargs)

    return wrapped


def require_permission(permission_key: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            # Unauthenticated -> 401, authenticated but unauthorized -> 403
            user = require_user()
            if not user_has_permission(user, permission_key):
                g.missing_permission = permission_key
                raise Forbidden("Not enough permissions")
            return fn(*args, **kwargs)

        return wrapped

    return decorator
