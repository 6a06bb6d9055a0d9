"""
In-app notifications, with an email copy sent once the creating transaction commits.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from flask import current_app, has_app_context
from sqlalchemy import event
from sqlalchemy.orm import Session

from app.murrs.mailer import mail_enabled, send_email
from app.murrs.modules.notifications.models import Notification

if TYPE_CHECKING:
    from app.murrs.models import User
    from app.murrs.modules.papers.models import Paper

logger = logging.getLogger(__name__)

NOTIFICATION_TYPES = ("submission_received", "review_requested", "review_decision", "account_activated")

_OUTBOX_KEY = "murrs_mail_outbox"

_SUBJECTS = {
    "submission_received": "Submission received",
    "review_requested": "Paper awaiting your review",
    "review_decision": "Review decision on your paper",
    "account_activated": "Your account is active",
}


def notify(
    s: Session,
    user: "User",
    *,
    type: str,
    message: str,
    paper: "Paper | None" = None,
) -> Notification:
    if type not in NOTIFICATION_TYPES:
        raise ValueError(f"Unknown notification type: {type!r}")
    n = Notification(
        user_id=user.id,
        paper_id=paper.id if paper is not None else None,
        type=type,
        message=message,
        is_read=False,
        created_at=datetime.utcnow(),
    )
    s.add(n)

    if has_app_context() and mail_enabled(current_app.config):
        s.info.setdefault(_OUTBOX_KEY, []).append(
            {
                "config": dict(current_app.config),
                "to": user.email,
                "subject": f"[MURRS] {_SUBJECTS[type]}",
                "body": message,
            }
        )
    return n


def notify_many(s: Session, users: list["User"], *, type: str, message: str, paper: "Paper | None" = None) -> int:
    seen: set[int] = set()
    for u in users:
        if u.id in seen:
            continue
        seen.add(u.id)
        notify(s, u, type=type, message=message, paper=paper)
    return len(seen)


@event.listens_for(Session, "after_commit")
def _flush_mail_outbox(session: Session) -> None:
    outbox: list[dict[str, Any]] = session.info.pop(_OUTBOX_KEY, [])
    for item in outbox:
        send_email(item["config"], to=item["to"], subject=item["subject"], body=item["body"])
    if outbox:
        logger.info("Sent %d notification email(s)", len(outbox))


@event.listens_for(Session, "after_rollback")
def _drop_mail_outbox(session: Session) -> None:
    session.info.pop(_OUTBOX_KEY, None)


def list_for_user(s: Session, user: "User", *, limit: int = 100) -> list[Notification]:
    return (
        s.query(Notification)
        .filter(Notification.user_id == user.id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(limit)
        .all()
    )


def unread_count(s: Session, user: "User") -> int:
    return (
        s.query(Notification)
        .filter(Notification.user_id == user.id, Notification.is_read.is_(False))
        .count()
    )


def mark_read(s: Session, notification: Notification) -> Notification:
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = datetime.utcnow()
    return notification


def notification_to_dict(n: Notification) -> dict[str, Any]:
    return {
        "id": n.id,
        "user_id": n.user_id,
        "paper_id": n.paper_id,
        "type": n.type,
        "message": n.message,
        "is_read": n.is_read,
        "created_at": n.created_at.isoformat() if n.created_at else None,
    }
