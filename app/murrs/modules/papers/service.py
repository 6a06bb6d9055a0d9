from __future__ import annotations

import hashlib
import logging
import mimetypes
import os
from datetime import date, datetime
from typing import Any

from sqlalchemy import event, func, or_
from sqlalchemy.orm import Session
from werkzeug.utils import secure_filename

from app.murrs.audit import record_event
from app.murrs.constants import ALLOWED_UPLOAD_EXTENSIONS, DEFAULT_UNIVERSITY, STUDENT_ROLES
from app.murrs.errors import BadRequest, Conflict, Forbidden, NotFound
from app.murrs.models import User
from app.murrs.modules.notifications.service import notify, notify_many
from app.murrs.modules.papers import workflow
from app.murrs.modules.papers.models import Paper, PaperAuthor, PaperReview, PaperTag
from app.murrs.modules.papers.schemas import PaperCreateRequest, PaperListQuery
from app.murrs.rbac import is_librarian, is_reviewer
from app.murrs.storage import Storage, StorageError

logger = logging.getLogger(__name__)

# Roles that can see every submitted (non-draft) paper.
_OVERSIGHT_ROLES = frozenset({"librarian", "hod", "project_coordinator"})

# (storage, replaced key, written key) tuples waiting on the session's commit or rollback.
_FILE_CLEANUP_KEY = "murrs_file_cleanup"


# ---------------------------------------------------------------------------
# Files
# ---------------------------------------------------------------------------


def sanitize_upload_filename(filename: str) -> str:
    fn = secure_filename(filename or "")
    return fn or "paper.pdf"


def file_digest_and_size(file_bytes: bytes) -> tuple[str, int]:
    h = hashlib.sha256()
    h.update(file_bytes)
    return (h.hexdigest(), len(file_bytes))


def check_extension(filename: str) -> str:
    ext = os.path.splitext(filename or "")[1].lower()
    if ext not in ALLOWED_UPLOAD_EXTENSIONS:
        allowed = ", ".join(sorted(ALLOWED_UPLOAD_EXTENSIONS))
        raise BadRequest(f"Unsupported file type. Allowed: {allowed}")
    return ext


def paper_storage_key(paper_id: int, filename: str) -> str:
    return f"papers/{paper_id}/{filename}"


def _delete_stored(storage: Storage, key: str) -> None:
    try:
        storage.delete(key)
    except (StorageError, OSError):
        logger.exception("Could not delete stored file %s", key)


@event.listens_for(Session, "after_commit")
def _delete_replaced_files(session: Session) -> None:
    for storage, old_key, _new_key in session.info.pop(_FILE_CLEANUP_KEY, []):
        if old_key:
            _delete_stored(storage, old_key)


@event.listens_for(Session, "after_rollback")
def _delete_orphaned_files(session: Session) -> None:
    for storage, _old_key, new_key in session.info.pop(_FILE_CLEANUP_KEY, []):
        _delete_stored(storage, new_key)


def attach_file(
    s: Session,
    storage: Storage,
    paper: Paper,
    *,
    filename: str,
    data: bytes,
    content_type: str | None = None,
) -> None:
    """
    Stores the uploaded bytes for `paper` (which must already have an id) and records the file metadata.

    A replaced file is only deleted once the session commits. If it rolls back instead, the newly
    written object is removed and the paper keeps pointing at its old file.
    """
    check_extension(filename)
    if not data:
        raise BadRequest("Uploaded file is empty.")
    safe_name = sanitize_upload_filename(filename)
    sha256, size = file_digest_and_size(data)
    mime = content_type
    if not mime or mime == "application/octet-stream":
        mime = mimetypes.guess_type(safe_name)[0] or "application/octet-stream"

    key = paper_storage_key(paper.id, safe_name)
    old_key = paper.storage_key
    storage.put_bytes(key, data, content_type=mime)
    if old_key != key:
        s.info.setdefault(_FILE_CLEANUP_KEY, []).append((storage, old_key, key))

    paper.file_name = safe_name
    paper.file_size = size
    paper.mime_type = mime
    paper.storage_key = key
    paper.sha256 = sha256


# ---------------------------------------------------------------------------
# Visibility
# ---------------------------------------------------------------------------


def can_view(user: User | None, paper: Paper) -> bool:
    if paper.status == workflow.APPROVED:
        return True
    if not user or not user.is_active:
        return False
    if paper.submitter_id == user.id:
        return True
    if paper.status == workflow.DRAFT:
        return is_librarian(user)
    if paper.supervisor_id == user.id:
        return True
    return user.role in _OVERSIGHT_ROLES


def get_paper_or_404(s: Session, paper_id: int) -> Paper:
    p = s.get(Paper, paper_id)
    if not p:
        raise NotFound("Paper not found")
    return p


def get_visible_paper(s: Session, paper_id: int, user: User | None) -> Paper:
    p = get_paper_or_404(s, paper_id)
    # Hidden papers are reported as missing rather than forbidden.
    if not can_view(user, p):
        raise NotFound("Paper not found")
    return p


def require_submitter(paper: Paper, user: User) -> None:
    if paper.submitter_id != user.id:
        raise Forbidden("Only the submitter can do this")


# ---------------------------------------------------------------------------
# Create / submit
# ---------------------------------------------------------------------------


def resolve_supervisor(s: Session, supervisor_id: int | None) -> User | None:
    if supervisor_id is None:
        return None
    sup = s.get(User, supervisor_id)
    if not sup or not sup.is_active or sup.role != "lecturer":
        raise BadRequest("Supervisor must be an active lecturer")
    return sup


def _apply_payload(paper: Paper, payload: PaperCreateRequest) -> None:
    paper.title = payload.title
    paper.abstract = payload.abstract
    paper.discipline = payload.discipline
    paper.university = payload.university or DEFAULT_UNIVERSITY
    paper.year = payload.year or date.today().year
    paper.document_type = payload.document_type
    paper.license = payload.license

    paper.authors = [
        PaperAuthor(name=a.name, email=a.email, affiliation=a.affiliation, author_order=i)
        for i, a in enumerate(payload.authors or [])
    ]
    paper.tag_rows = [PaperTag(tag=t) for t in (payload.tags or [])]


def create_paper(s: Session, payload: PaperCreateRequest, user: User) -> Paper:
    """Creates a draft. Supervisor (if given) is validated now so submit cannot fail on it later."""
    sup = resolve_supervisor(s, payload.supervisor_id)
    paper = Paper(status=workflow.DRAFT, submitter_id=user.id, supervisor_id=sup.id if sup else None)
    _apply_payload(paper, payload)
    if payload.file_name:
        paper.file_name = sanitize_upload_filename(payload.file_name)
    s.add(paper)
    s.flush()
    record_event(
        s,
        actor=user,
        action="paper.create",
        entity_type="Paper",
        entity_id=str(paper.id),
        metadata={"title": paper.title},
    )
    return paper


def _route_to_first_stage(s: Session, paper: Paper, user: User) -> str:
    sup = resolve_supervisor(s, paper.supervisor_id)
    if user.role in STUDENT_ROLES and sup is None:
        raise BadRequest("Students must choose a supervisor")
    paper.status = workflow.first_stage(has_supervisor=sup is not None)
    now = datetime.utcnow()
    paper.submitted_at = now
    paper.updated_at = now
    return paper.status


def stage_reviewers(s: Session, paper: Paper) -> list[User]:
    """Active users who decide the paper's current stage in the normal flow."""
    if not workflow.is_pending(paper.status):
        return []
    if paper.status == workflow.PENDING_LECTURER:
        sup = s.get(User, paper.supervisor_id) if paper.supervisor_id else None
        return [sup] if sup and sup.is_active and sup.id != paper.submitter_id else []
    roles = workflow.STAGE_ROLES[paper.status]
    return (
        s.query(User)
        .filter(User.role.in_(sorted(roles)), User.is_active.is_(True), User.id.is_distinct_from(paper.submitter_id))
        .order_by(User.id.asc())
        .all()
    )


def _notify_submission(s: Session, paper: Paper, user: User) -> None:
    label = workflow.STAGE_LABELS[paper.status]
    notify(
        s,
        user,
        type="submission_received",
        message=f'Your paper "{paper.title}" was submitted and is awaiting {label}.',
        paper=paper,
    )
    notify_many(
        s,
        stage_reviewers(s, paper),
        type="review_requested",
        message=f'"{paper.title}" is awaiting your review ({label}).',
        paper=paper,
    )


def upload_paper(
    s: Session,
    storage: Storage,
    payload: PaperCreateRequest,
    user: User,
    *,
    filename: str,
    data: bytes,
    content_type: str | None = None,
) -> Paper:
    check_extension(filename)
    sup = resolve_supervisor(s, payload.supervisor_id)
    if user.role in STUDENT_ROLES and sup is None:
        raise BadRequest("Students must choose a supervisor")

    paper = Paper(status=workflow.DRAFT, submitter_id=user.id, supervisor_id=sup.id if sup else None)
    _apply_payload(paper, payload)
    s.add(paper)
    s.flush()

    attach_file(s, storage, paper, filename=filename, data=data, content_type=content_type)
    _route_to_first_stage(s, paper, user)
    _notify_submission(s, paper, user)
    record_event(
        s,
        actor=user,
        action="paper.upload",
        entity_type="Paper",
        entity_id=str(paper.id),
        metadata={"file_name": paper.file_name, "sha256": paper.sha256, "status": paper.status},
    )
    return paper


def submit_paper(
    s: Session,
    storage: Storage,
    paper: Paper,
    user: User,
    *,
    filename: str | None = None,
    data: bytes | None = None,
    content_type: str | None = None,
) -> Paper:
    """Sends a draft to its first review stage. A file sent along is stored once routing succeeds."""
    require_submitter(paper, user)
    if not workflow.can_submit(paper.status):
        raise Conflict(f"Only drafts can be submitted (status: {paper.status})")
    if not filename and not paper.storage_key:
        raise BadRequest("Upload a file before submitting")
    if filename:
        check_extension(filename)
    _route_to_first_stage(s, paper, user)
    if filename:
        attach_file(s, storage, paper, filename=filename, data=data or b"", content_type=content_type)
    _notify_submission(s, paper, user)
    record_event(
        s,
        actor=user,
        action="paper.submit",
        entity_type="Paper",
        entity_id=str(paper.id),
        metadata={"status": paper.status, "file_name": paper.file_name},
    )
    return paper


def resubmit_paper(
    s: Session,
    storage: Storage,
    paper: Paper,
    user: User,
    *,
    filename: str | None = None,
    data: bytes | None = None,
    content_type: str | None = None,
) -> Paper:
    require_submitter(paper, user)
    if not workflow.can_resubmit(paper.status):
        raise Conflict(f"Only papers returned for revision can be resubmitted (status: {paper.status})")
    if filename:
        check_extension(filename)
    # Routing can still refuse (supervisor deactivated meanwhile); nothing is stored before it passes.
    _route_to_first_stage(s, paper, user)
    if filename:
        attach_file(s, storage, paper, filename=filename, data=data or b"", content_type=content_type)
    _notify_submission(s, paper, user)
    record_event(
        s,
        actor=user,
        action="paper.resubmit",
        entity_type="Paper",
        entity_id=str(paper.id),
        metadata={"status": paper.status, "file_replaced": bool(filename)},
    )
    return paper


# ---------------------------------------------------------------------------
# Review
# ---------------------------------------------------------------------------


def review_paper(s: Session, paper: Paper, user: User, *, decision: str, comments: str | None) -> PaperReview:
    stage = paper.status
    if paper.submitter_id == user.id:
        raise Forbidden("You cannot review your own paper")
    try:
        new_status = workflow.next_status(
            stage,
            decision,
            user.role,
            is_supervisor=paper.supervisor_id is not None and paper.supervisor_id == user.id,
        )
    except workflow.InvalidTransition as e:
        raise Conflict(str(e))
    except workflow.NotEntitled as e:
        raise Forbidden(str(e))

    review = PaperReview(
        paper_id=paper.id,
        reviewer_id=user.id,
        reviewer_role=user.role,
        stage=stage,
        decision=decision,
        resulting_status=new_status,
        comments=comments,
        created_at=datetime.utcnow(),
    )
    paper.reviews.append(review)
    paper.status = new_status
    paper.review_comments = comments
    paper.updated_at = datetime.utcnow()

    submitter = s.get(User, paper.submitter_id) if paper.submitter_id else None
    if submitter is not None:
        notify(
            s,
            submitter,
            type="review_decision",
            message=_decision_message(paper, decision, new_status, user),
            paper=paper,
        )
    if workflow.is_pending(new_status):
        notify_many(
            s,
            stage_reviewers(s, paper),
            type="review_requested",
            message=f'"{paper.title}" is awaiting your review ({workflow.STAGE_LABELS[new_status]}).',
            paper=paper,
        )

    record_event(
        s,
        actor=user,
        action="paper.review",
        entity_type="Paper",
        entity_id=str(paper.id),
        reason=comments,
        metadata={"stage": stage, "decision": decision, "status": new_status},
    )
    return review


def _decision_message(paper: Paper, decision: str, new_status: str, reviewer: User) -> str:
    who = reviewer.display_name
    if decision == "revision":
        return f'{who} requested revisions to "{paper.title}".'
    if decision == "reject":
        return f'"{paper.title}" was rejected by {who}.'
    if new_status == workflow.APPROVED:
        return f'"{paper.title}" was approved and is now in the library catalog.'
    return f'{who} approved "{paper.title}"; it moves to {workflow.STAGE_LABELS[new_status]}.'


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def _search_filter(q: str):
    like = f"%{q}%"
    return or_(
        Paper.title.ilike(like),
        Paper.abstract.ilike(like),
        Paper.discipline.ilike(like),
        Paper.authors.any(PaperAuthor.name.ilike(like)),
        Paper.tag_rows.any(PaperTag.tag.ilike(like)),
    )


def relevance_score(paper: Paper, q: str) -> int:
    needle = q.lower()
    score = 0
    if needle in (paper.title or "").lower():
        score += 3
    if any(needle in t.lower() for t in paper.tags):
        score += 2
    if any(needle in (a.name or "").lower() for a in paper.authors):
        score += 2
    if needle in (paper.abstract or "").lower():
        score += 1
    if needle in (paper.discipline or "").lower():
        score += 1
    return score


_ORDERINGS = {
    "newest": lambda: (Paper.created_at.desc(), Paper.id.desc()),
    "oldest": lambda: (Paper.created_at.asc(), Paper.id.asc()),
    "trending": lambda: (Paper.views.desc(), Paper.id.desc()),
    "highest-rated": lambda: (Paper.rating.is_(None), Paper.rating.desc(), Paper.id.desc()),
    "downloads": lambda: (Paper.downloads.desc(), Paper.id.desc()),
    "citations": lambda: (Paper.citations.desc(), Paper.id.desc()),
    "title": lambda: (func.lower(Paper.title).asc(), Paper.id.asc()),
}


def list_papers(s: Session, query: PaperListQuery, user: User | None) -> list[Paper]:
    qry = s.query(Paper)

    if query.catalog or query.status is None or query.status == workflow.APPROVED:
        qry = qry.filter(Paper.status == workflow.APPROVED)
    else:
        if not is_reviewer(user):
            raise Forbidden("Not enough permissions")
        if query.status == workflow.DRAFT and not is_librarian(user):
            raise Forbidden("Not enough permissions")
        qry = qry.filter(Paper.status == query.status)
        if user.role == "lecturer":
            qry = qry.filter(Paper.supervisor_id == user.id)

    if query.discipline:
        qry = qry.filter(func.lower(Paper.discipline) == query.discipline.lower())
    if query.university:
        qry = qry.filter(func.lower(Paper.university) == query.university.lower())
    if query.year is not None:
        qry = qry.filter(Paper.year == query.year)
    if query.q:
        qry = qry.filter(_search_filter(query.q))

    sort = query.sort or ("relevance" if query.q else "newest")
    if sort == "relevance":
        rows = qry.order_by(Paper.created_at.desc(), Paper.id.desc()).all()
        if query.q:
            # Stable sort keeps newest-first among equal scores.
            rows.sort(key=lambda p: relevance_score(p, query.q or ""), reverse=True)
        return rows[query.skip : query.skip + query.limit]

    return qry.order_by(*_ORDERINGS[sort]()).offset(query.skip).limit(query.limit).all()


def pending_for_reviewer(s: Session, user: User) -> list[Paper]:
    stages = workflow.stages_for_role(user.role)
    if not stages:
        return []
    qry = s.query(Paper).filter(Paper.status.in_(stages), Paper.submitter_id.is_distinct_from(user.id))
    if user.role == "lecturer":
        qry = qry.filter(Paper.supervisor_id == user.id)
    return qry.order_by(Paper.submitted_at.asc(), Paper.id.asc()).all()


def reviewed_by(s: Session, user: User) -> list[Paper]:
    last_decided = (
        s.query(PaperReview.paper_id, func.max(PaperReview.id).label("last_review_id"))
        .filter(PaperReview.reviewer_id == user.id)
        .group_by(PaperReview.paper_id)
        .subquery()
    )
    return (
        s.query(Paper)
        .join(last_decided, last_decided.c.paper_id == Paper.id)
        .order_by(last_decided.c.last_review_id.desc())
        .all()
    )


def my_papers(s: Session, user: User) -> list[Paper]:
    return (
        s.query(Paper)
        .filter(Paper.submitter_id == user.id)
        .order_by(Paper.created_at.desc(), Paper.id.desc())
        .all()
    )


def can_see_reviews(user: User, paper: Paper) -> bool:
    if paper.submitter_id == user.id or paper.supervisor_id == user.id:
        return True
    return is_reviewer(user) and can_view(user, paper)


# ---------------------------------------------------------------------------
# Counters / stats
# ---------------------------------------------------------------------------


def track_view(s: Session, paper: Paper) -> Paper:
    paper.views = (paper.views or 0) + 1
    return paper


def track_download(s: Session, paper: Paper, user: User | None) -> Paper:
    paper.downloads = (paper.downloads or 0) + 1
    record_event(
        s,
        actor=user,
        action="paper.download",
        entity_type="Paper",
        entity_id=str(paper.id),
        metadata={"downloads": paper.downloads},
    )
    return paper


def paper_stats(s: Session) -> dict[str, int]:
    total, views, downloads = (
        s.query(
            func.count(Paper.id),
            func.coalesce(func.sum(Paper.views), 0),
            func.coalesce(func.sum(Paper.downloads), 0),
        )
        .filter(Paper.status == workflow.APPROVED)
        .one()
    )
    pending = s.query(func.count(Paper.id)).filter(Paper.status.in_(sorted(workflow.PENDING_STATUSES))).scalar()
    return {
        "total_papers": int(total or 0),
        "total_views": int(views or 0),
        "total_downloads": int(downloads or 0),
        "pending_reviews": int(pending or 0),
    }


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------


def _iso(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt else None


def author_to_dict(a: PaperAuthor) -> dict[str, Any]:
    return {
        "id": a.id,
        "name": a.name,
        "email": a.email,
        "affiliation": a.affiliation,
        "author_order": a.author_order,
    }


def paper_to_dict(p: Paper) -> dict[str, Any]:
    return {
        "id": p.id,
        "title": p.title,
        "abstract": p.abstract,
        "status": p.status,
        "discipline": p.discipline,
        "university": p.university,
        "year": p.year,
        "document_type": p.document_type,
        "license": p.license,
        "file_name": p.file_name,
        "file_size": p.file_size,
        "mime_type": p.mime_type,
        "views": p.views or 0,
        "downloads": p.downloads or 0,
        "citations": p.citations or 0,
        "rating": p.rating,
        "review_comments": p.review_comments,
        "submitter_id": p.submitter_id,
        "supervisor_id": p.supervisor_id,
        "created_at": _iso(p.created_at),
        "submitted_at": _iso(p.submitted_at),
        "authors": [author_to_dict(a) for a in p.authors],
        "tags": p.tags,
    }


def review_to_dict(r: PaperReview) -> dict[str, Any]:
    return {
        "id": r.id,
        "paper_id": r.paper_id,
        "reviewer_id": r.reviewer_id,
        "reviewer_role": r.reviewer_role,
        "stage": r.stage,
        "decision": r.decision,
        "resulting_status": r.resulting_status,
        "comments": r.comments,
        "created_at": _iso(r.created_at),
    }
