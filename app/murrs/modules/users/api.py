from __future__ import annotations

from typing import Any

from flask import Blueprint, current_app, jsonify, request

from app.murrs.db import db_session
from app.murrs.errors import ValidationFailed
from app.murrs.modules.users import service
from app.murrs.modules.users.schemas import ActivateRequest, RoleUpdateRequest, UserListQuery, UserUpdateRequest
from app.murrs.rbac import require_auth, require_permission, require_user

bp = Blueprint("users", __name__)


def _json_body() -> dict[str, Any]:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationFailed("Request body must be a JSON object")
    return data


@bp.get("/me")
@require_auth
def me():
    return jsonify(service.user_to_dict(require_user()))


@bp.get("/users")
@require_permission("users.manage")
def list_users():
    query = UserListQuery.model_validate(request.args.to_dict())
    s = db_session()
    return jsonify([service.user_to_dict(u) for u in service.list_users(s, query)])


@bp.patch("/users/<int:user_id>")
@require_auth
def update_user(user_id: int):
    s = db_session()
    actor = require_user()
    payload = UserUpdateRequest.model_validate(_json_body())
    target = service.get_user_or_404(s, user_id)
    service.update_user(s, target, payload, actor=actor)
    s.commit()
    return jsonify(service.user_to_dict(target))


@bp.delete("/users/<int:user_id>")
@require_permission("users.manage")
def delete_user(user_id: int):
    s = db_session()
    actor = require_user()
    target = service.get_user_or_404(s, user_id)
    service.delete_user(s, target, actor=actor)
    s.commit()
    current_app.logger.info("User %s deleted by %s", user_id, actor.id)
    return "", 204


@bp.patch("/users/<int:user_id>/role")
@require_permission("users.manage")
def update_role(user_id: int):
    s = db_session()
    actor = require_user()
    payload = RoleUpdateRequest.model_validate(_json_body())
    target = service.get_user_or_404(s, user_id)
    service.set_role(s, target, payload.role, actor=actor)
    s.commit()
    return jsonify(service.user_to_dict(target))


@bp.patch("/users/<int:user_id>/activate")
@require_permission("users.manage")
def activate_user(user_id: int):
    s = db_session()
    actor = require_user()
    payload = ActivateRequest.model_validate(_json_body())
    target = service.get_user_or_404(s, user_id)
    service.set_active(s, target, payload.is_active, actor=actor)
    s.commit()
    return jsonify(service.user_to_dict(target))


@bp.get("/supervisors")
@require_permission("users.view_supervisors")
def list_supervisors():
    s = db_session()
    return jsonify([service.user_to_dict(u) for u in service.list_supervisors(s)])
