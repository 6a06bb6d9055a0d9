from __future__ import annotations

from flask import Blueprint, jsonify

from app.murrs.audit import record_event
from app.murrs.db import db_session
from app.murrs.errors import NotFound
from app.murrs.modules.notifications.models import Notification
from app.murrs.modules.notifications.service import list_for_user, mark_read, notification_to_dict, unread_count
from app.murrs.rbac import require_auth, require_user

bp = Blueprint("notifications", __name__)


@bp.get("/notifications")
@require_auth
def list_notifications():
    s = db_session()
    u = require_user()
    return jsonify([notification_to_dict(n) for n in list_for_user(s, u)])


@bp.get("/notifications/unread-count")
@require_auth
def notifications_unread_count():
    return jsonify({"unread": unread_count(db_session(), require_user())})


@bp.patch("/notifications/<int:notification_id>/read")
@require_auth
def read_notification(notification_id: int):
    s = db_session()
    u = require_user()
    n = s.get(Notification, notification_id)
    # Other users' notifications are reported as missing.
    if not n or n.user_id != u.id:
        raise NotFound("Notification not found")
    was_read = n.is_read
    mark_read(s, n)
    if not was_read:
        record_event(s, actor=u, action="notification.read", entity_type="Notification", entity_id=str(n.id))
    s.commit()
    return jsonify(notification_to_dict(n))
