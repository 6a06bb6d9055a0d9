"""
Role-gated tabs. A tab is only opened for roles allowed to see it.
"""
from __future__ import annotations

from typing import Literal

from app.murrs.client.api import ApiClient, ApiClientError
from app.murrs.client.auth_store import SessionUser
from app.murrs.constants import REVIEWER_ROLES, ROLE_LABELS

TABS = ("catalog", "search", "dashboard", "upload", "approval", "librarian", "profile")
PUBLIC_TABS = frozenset({"catalog", "search"})
MEMBER_TABS = frozenset({"dashboard", "upload", "profile"})

TabDecision = Literal["open", "login", "deny"]


def is_signed_in(user: SessionUser | None) -> bool:
    """Signed in with a real account; guests only browse public tabs."""
    return user is not None and not user.is_guest


def is_reviewer(user: SessionUser | None) -> bool:
    return user is not None and user.role in REVIEWER_ROLES


def visible_tabs(user: SessionUser | None) -> list[str]:
    out = []
    for tab in TABS:
        if tab in PUBLIC_TABS:
            out.append(tab)
        elif not is_signed_in(user):
            continue
        elif tab in MEMBER_TABS:
            out.append(tab)
        elif tab == "approval" and is_reviewer(user):
            out.append(tab)
        elif tab == "librarian" and user.role == "librarian":
            out.append(tab)
    return out


def resolve_tab(user: SessionUser | None, tab: str) -> TabDecision:
    if tab in PUBLIC_TABS:
        return "open"
    if not is_signed_in(user):
        return "login"
    return "open" if tab in visible_tabs(user) else "deny"


def role_label(role: str | None) -> str:
    if not role:
        return ""
    return ROLE_LABELS.get(role, role)


def pending_review_count(client: ApiClient, access_token: str | None) -> int:
    """Badge count for the approval tab; 0 when there is no token or the request fails."""
    if not access_token:
        return 0
    try:
        return len(client.get_pending_papers(access_token))
    except ApiClientError:
        return 0


def unread_notification_count(client: ApiClient, access_token: str | None) -> int:
    """Badge count for the notification bell; 0 when there is no token or the request fails."""
    if not access_token:
        return 0
    try:
        return client.get_unread_count(access_token)
    except ApiClientError:
        return 0
