from __future__ import annotations

import json
from typing import Any

from flask import Blueprint, current_app, jsonify, request, send_file

from app.murrs.constants import DEPARTMENTS_BY_SCHOOL, DISCIPLINES_BY_SCHOOL, SCHOOLS
from app.murrs.db import db_session
from app.murrs.errors import BadRequest, Forbidden, NotFound, ValidationFailed
from app.murrs.modules.papers import service, workflow
from app.murrs.modules.papers.schemas import PaperCreateRequest, PaperListQuery, ReviewRequest
from app.murrs.rbac import current_user, require_auth, require_permission, require_user
from app.murrs.storage import StorageError, storage_from_config

bp = Blueprint("papers", __name__)


def _json_body() -> dict[str, Any]:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationFailed("Request body must be a JSON object")
    return data


def _form_json_list(name: str) -> list[Any] | None:
    raw = (request.form.get(name) or "").strip()
    if not raw:
        return None
    try:
        value = json.loads(raw)
    except ValueError:
        raise ValidationFailed(f"{name}: must be a JSON array")
    if not isinstance(value, list):
        raise ValidationFailed(f"{name}: must be a JSON array")
    return value


def _payload_from_form() -> PaperCreateRequest:
    data: dict[str, Any] = {
        k: request.form.get(k)
        for k in ("title", "abstract", "discipline", "university", "year", "document_type", "license", "supervisor_id")
    }
    data["tags"] = _form_json_list("tags")
    data["authors"] = _form_json_list("authors")
    return PaperCreateRequest.model_validate(data)


def _read_upload(required: bool):
    f = request.files.get("file")
    if not f or not f.filename:
        if required:
            raise BadRequest("A file is required")
        return None, None, None
    return f.filename, f.read(), f.mimetype


def _papers_response(papers):
    return jsonify([service.paper_to_dict(p) for p in papers])


@bp.get("/papers")
def list_papers():
    query = PaperListQuery.model_validate(request.args.to_dict())
    s = db_session()
    return _papers_response(service.list_papers(s, query, current_user()))


@bp.get("/papers/stats")
def paper_stats():
    return jsonify(service.paper_stats(db_session()))


@bp.get("/papers/pending")
@require_permission("papers.review")
def pending_papers():
    s = db_session()
    return _papers_response(service.pending_for_reviewer(s, require_user()))


@bp.get("/papers/reviewed")
@require_permission("papers.review")
def reviewed_papers():
    s = db_session()
    return _papers_response(service.reviewed_by(s, require_user()))


@bp.get("/papers/mine")
@require_auth
def my_papers():
    s = db_session()
    return _papers_response(service.my_papers(s, require_user()))


@bp.get("/papers/<int:paper_id>")
def get_paper(paper_id: int):
    s = db_session()
    p = service.get_visible_paper(s, paper_id, current_user())
    return jsonify(service.paper_to_dict(p))


@bp.post("/papers")
@require_permission("papers.submit")
def create_paper():
    s = db_session()
    u = require_user()
    payload = PaperCreateRequest.model_validate(_json_body())
    p = service.create_paper(s, payload, u)
    s.commit()
    return jsonify(service.paper_to_dict(p)), 201


@bp.post("/papers/upload")
@require_permission("papers.submit")
def upload_paper():
    s = db_session()
    u = require_user()
    filename, data, mimetype = _read_upload(required=True)
    payload = _payload_from_form()
    storage = storage_from_config(current_app.config)
    p = service.upload_paper(s, storage, payload, u, filename=filename, data=data, content_type=mimetype)
    s.commit()
    current_app.logger.info("Paper %s uploaded by user %s (status=%s)", p.id, u.id, p.status)
    return jsonify(service.paper_to_dict(p)), 201


@bp.post("/papers/<int:paper_id>/submit")
@require_permission("papers.submit")
def submit_paper(paper_id: int):
    s = db_session()
    u = require_user()
    p = service.get_visible_paper(s, paper_id, u)
    filename, data, mimetype = _read_upload(required=False)
    storage = storage_from_config(current_app.config)
    service.submit_paper(s, storage, p, u, filename=filename, data=data, content_type=mimetype)
    s.commit()
    return jsonify(service.paper_to_dict(p))


@bp.post("/papers/<int:paper_id>/resubmit")
@require_permission("papers.submit")
def resubmit_paper(paper_id: int):
    s = db_session()
    u = require_user()
    p = service.get_visible_paper(s, paper_id, u)
    filename, data, mimetype = _read_upload(required=False)
    storage = storage_from_config(current_app.config)
    service.resubmit_paper(s, storage, p, u, filename=filename, data=data, content_type=mimetype)
    s.commit()
    return jsonify(service.paper_to_dict(p))


@bp.post("/papers/<int:paper_id>/review")
@require_permission("papers.review")
def review_paper(paper_id: int):
    s = db_session()
    u = require_user()
    payload = ReviewRequest.model_validate(_json_body())
    p = service.get_paper_or_404(s, paper_id)
    service.review_paper(s, p, u, decision=payload.decision, comments=payload.comments)
    s.commit()
    current_app.logger.info("Paper %s reviewed by user %s: %s -> %s", p.id, u.id, payload.decision, p.status)
    return jsonify(service.paper_to_dict(p))


@bp.get("/papers/<int:paper_id>/reviews")
@require_auth
def paper_reviews(paper_id: int):
    s = db_session()
    u = require_user()
    p = service.get_visible_paper(s, paper_id, u)
    if not service.can_see_reviews(u, p):
        raise Forbidden("Not enough permissions")
    return jsonify([service.review_to_dict(r) for r in p.reviews])


@bp.post("/papers/<int:paper_id>/view")
def track_view(paper_id: int):
    s = db_session()
    p = service.get_visible_paper(s, paper_id, current_user())
    service.track_view(s, p)
    s.commit()
    return jsonify(service.paper_to_dict(p))


@bp.post("/papers/<int:paper_id>/download")
@require_permission("papers.download")
def track_download(paper_id: int):
    s = db_session()
    u = require_user()
    p = service.get_visible_paper(s, paper_id, u)
    service.track_download(s, p, u)
    s.commit()
    return jsonify(service.paper_to_dict(p))


@bp.get("/papers/<int:paper_id>/file")
@require_permission("papers.download")
def download_file(paper_id: int):
    s = db_session()
    u = require_user()
    p = service.get_visible_paper(s, paper_id, u)
    if not p.storage_key:
        raise NotFound("Paper has no file")

    storage = storage_from_config(current_app.config)
    try:
        fobj = storage.open(p.storage_key)
    except StorageError:
        current_app.logger.error("Stored file missing for paper %s (key=%s)", p.id, p.storage_key)
        raise NotFound("Paper file not found")

    if p.status == workflow.APPROVED:
        service.track_download(s, p, u)
        s.commit()

    return send_file(
        fobj,
        mimetype=p.mime_type or "application/octet-stream",
        as_attachment=True,
        download_name=p.file_name or f"paper-{p.id}",
        max_age=0,
    )


@bp.get("/schools")
def list_schools():
    return jsonify(
        [
            {
                "name": school,
                "departments": list(DEPARTMENTS_BY_SCHOOL.get(school, ())),
                "disciplines": list(DISCIPLINES_BY_SCHOOL.get(school, ())),
            }
            for school in SCHOOLS
        ]
    )
