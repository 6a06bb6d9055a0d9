"""
Typed REST client for the MURRS API.

Every method maps to one endpoint. Errors are raised as `ApiClientError` carrying the HTTP status
and the server's `detail` message when there is one. Network failures (server unreachable, timeouts)
are raised the same way with status 0.
"""
from __future__ import annotations

import json
import os
import re
from typing import Any, Literal

import requests
from pydantic import BaseModel, ConfigDict, Field

DEFAULT_API_URL = "http://127.0.0.1:8000"

ApiUserRole = Literal["student", "member", "lecturer", "staff", "project_coordinator", "hod", "librarian"]
ReviewDecision = Literal["approve", "revision", "reject"]

_FILENAME_RE = re.compile(r'filename="?([^";]+)"?', re.IGNORECASE)


class ApiClientError(RuntimeError):
    def __init__(self, status: int, message: str):
        super().__init__(message)
        self.status = status
        self.message = message


class _ApiModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class TokenResponse(_ApiModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class ApiUser(_ApiModel):
    id: int
    email: str
    school_id: str | None = None
    school: str | None = None
    full_name: str | None = None
    department: str | None = None
    is_active: bool = True
    is_admin: bool = False
    role: ApiUserRole = "student"
    created_at: str | None = None


class ApiAuthor(_ApiModel):
    id: int
    name: str
    email: str | None = None
    affiliation: str | None = None
    author_order: int = 0


class ApiPaper(_ApiModel):
    id: int
    title: str
    abstract: str | None = None
    status: str
    discipline: str | None = None
    university: str | None = None
    year: int
    document_type: str | None = None
    license: str | None = None
    file_name: str | None = None
    file_size: int | None = None
    mime_type: str | None = None
    views: int = 0
    downloads: int = 0
    citations: int = 0
    rating: float | None = None
    review_comments: str | None = None
    supervisor_id: int | None = None
    created_at: str | None = None
    authors: list[ApiAuthor] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)


class ApiReview(_ApiModel):
    id: int
    paper_id: int
    reviewer_id: int | None = None
    reviewer_role: str
    stage: str
    decision: str
    resulting_status: str
    comments: str | None = None
    created_at: str | None = None


class ApiPaperStats(_ApiModel):
    total_papers: int = 0
    total_views: int = 0
    total_downloads: int = 0
    pending_reviews: int = 0


class ApiNotification(_ApiModel):
    id: int
    user_id: int
    paper_id: int | None = None
    type: str
    message: str
    is_read: bool = False
    created_at: str | None = None


class ApiSchool(_ApiModel):
    name: str
    departments: list[str] = Field(default_factory=list)
    disciplines: list[str] = Field(default_factory=list)


def api_base_url(base_url: str | None = None) -> str:
    base = base_url or os.environ.get("MURRS_API_URL") or DEFAULT_API_URL
    return f"{base.rstrip('/')}/api"


def error_message(resp: requests.Response) -> str:
    text = resp.text or ""
    message = text or resp.reason or f"HTTP {resp.status_code}"
    if text:
        try:
            parsed = json.loads(text)
        except ValueError:
            return message
        if isinstance(parsed, dict) and parsed.get("detail"):
            detail = parsed["detail"]
            message = detail if isinstance(detail, str) else json.dumps(detail)
    return message


def _params(**kwargs: Any) -> dict[str, str]:
    """Query parameters, skipping unset values. Booleans are sent as `true`/`false`."""
    out: dict[str, str] = {}
    for k, v in kwargs.items():
        if v is None or v == "":
            continue
        out[k] = ("true" if v else "false") if isinstance(v, bool) else str(v)
    return out


def _bearer(access_token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {access_token}"}


class ApiClient:
    def __init__(self, base_url: str | None = None, session: requests.Session | None = None, timeout: float = 30):
        self.base_url = api_base_url(base_url)
        self.session = session or requests.Session()
        self.timeout = timeout

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        kwargs.setdefault("timeout", self.timeout)
        try:
            resp = self.session.request(method, self.base_url + path, **kwargs)
        except requests.RequestException as e:
            raise ApiClientError(0, f"Could not reach the server: {e}") from e
        if not resp.ok:
            raise ApiClientError(resp.status_code, error_message(resp))
        return resp

    def _json(self, method: str, path: str, **kwargs: Any) -> Any:
        resp = self._request(method, path, **kwargs)
        try:
            return resp.json()
        except ValueError as e:
            raise ApiClientError(resp.status_code, "Server returned an invalid JSON response") from e

    # ------------------------------------------------------------------
    # auth
    # ------------------------------------------------------------------

    def login(self, email: str, password: str) -> TokenResponse:
        data = self._json("POST", "/auth/login", data={"username": email, "password": password})
        return TokenResponse.model_validate(data)

    def register(
        self,
        email: str,
        password: str,
        full_name: str,
        role: ApiUserRole = "student",
        school_id: str | None = None,
        school: str | None = None,
        department: str | None = None,
        access_token: str | None = None,
    ) -> ApiUser:
        body = {
            "email": email,
            "password": password,
            "role": role,
            "full_name": full_name,
            "school_id": school_id,
            "school": school,
            "department": department,
        }
        headers = _bearer(access_token) if access_token else None
        return ApiUser.model_validate(self._json("POST", "/auth/register", json=body, headers=headers))

    def refresh(self, refresh_token: str) -> TokenResponse:
        data = self._json("POST", "/auth/refresh", json={"refresh_token": refresh_token})
        return TokenResponse.model_validate(data)

    def logout(self, refresh_token: str) -> None:
        """Revokes the refresh token. Never raises; logout always succeeds locally."""
        try:
            self.session.post(
                self.base_url + "/auth/logout",
                json={"refresh_token": refresh_token},
                timeout=self.timeout,
            )
        except requests.RequestException:
            pass

    def me(self, access_token: str) -> ApiUser:
        return ApiUser.model_validate(self._json("GET", "/me", headers=_bearer(access_token)))

    # ------------------------------------------------------------------
    # users
    # ------------------------------------------------------------------

    def update_user(self, user_id: int, payload: dict[str, Any], access_token: str) -> ApiUser:
        body = {k: v for k, v in payload.items() if v is not None}
        data = self._json("PATCH", f"/users/{user_id}", json=body, headers=_bearer(access_token))
        return ApiUser.model_validate(data)

    def list_users(
        self,
        access_token: str,
        *,
        skip: int | None = None,
        limit: int | None = None,
        email: str | None = None,
        is_active: bool | None = None,
        is_admin: bool | None = None,
        role: ApiUserRole | None = None,
    ) -> list[ApiUser]:
        params = _params(skip=skip, limit=limit, email=email, is_active=is_active, is_admin=is_admin, role=role)
        data = self._json("GET", "/users", params=params, headers=_bearer(access_token))
        return [ApiUser.model_validate(u) for u in data]

    def delete_user(self, user_id: int, access_token: str) -> None:
        self._request("DELETE", f"/users/{user_id}", headers=_bearer(access_token))

    def update_user_role(self, user_id: int, role: ApiUserRole, access_token: str) -> ApiUser:
        data = self._json("PATCH", f"/users/{user_id}/role", json={"role": role}, headers=_bearer(access_token))
        return ApiUser.model_validate(data)

    def activate_user(self, user_id: int, access_token: str) -> ApiUser:
        data = self._json("PATCH", f"/users/{user_id}/activate", headers=_bearer(access_token))
        return ApiUser.model_validate(data)

    def list_supervisors(self, access_token: str) -> list[ApiUser]:
        data = self._json("GET", "/supervisors", headers=_bearer(access_token))
        return [ApiUser.model_validate(u) for u in data]

    # ------------------------------------------------------------------
    # papers
    # ------------------------------------------------------------------

    def list_papers(
        self,
        *,
        q: str | None = None,
        discipline: str | None = None,
        university: str | None = None,
        year: int | None = None,
        status: str | None = None,
        sort: str | None = None,
        skip: int | None = None,
        limit: int | None = None,
        catalog: bool | None = None,
        access_token: str | None = None,
    ) -> list[ApiPaper]:
        params = _params(
            q=q,
            discipline=discipline,
            university=university,
            year=year,
            status=status,
            sort=sort,
            skip=skip,
            limit=limit,
            catalog=catalog,
        )
        headers = _bearer(access_token) if access_token else None
        data = self._json("GET", "/papers", params=params, headers=headers)
        return [ApiPaper.model_validate(p) for p in data]

    def get_paper(self, paper_id: int, access_token: str | None = None) -> ApiPaper:
        headers = _bearer(access_token) if access_token else None
        return ApiPaper.model_validate(self._json("GET", f"/papers/{paper_id}", headers=headers))

    def create_paper(self, payload: dict[str, Any], access_token: str) -> ApiPaper:
        body = {k: v for k, v in payload.items() if v is not None}
        return ApiPaper.model_validate(self._json("POST", "/papers", json=body, headers=_bearer(access_token)))

    def upload_paper(
        self,
        payload: dict[str, Any],
        file: tuple[str, bytes] | tuple[str, bytes, str],
        access_token: str,
    ) -> ApiPaper:
        """`file` is `(filename, content)` or `(filename, content, content_type)`."""
        form: dict[str, str] = {"title": payload["title"]}
        for key in ("abstract", "discipline", "university", "document_type", "license"):
            if payload.get(key):
                form[key] = str(payload[key])
        for key in ("year", "supervisor_id"):
            if isinstance(payload.get(key), int):
                form[key] = str(payload[key])
        form["tags"] = json.dumps(payload.get("tags") or [])
        form["authors"] = json.dumps(payload.get("authors") or [])
        data = self._json("POST", "/papers/upload", data=form, files={"file": file}, headers=_bearer(access_token))
        return ApiPaper.model_validate(data)

    def submit_paper(
        self,
        paper_id: int,
        access_token: str,
        file: tuple[str, bytes] | tuple[str, bytes, str] | None = None,
    ) -> ApiPaper:
        files = {"file": file} if file else None
        data = self._json("POST", f"/papers/{paper_id}/submit", files=files, headers=_bearer(access_token))
        return ApiPaper.model_validate(data)

    def resubmit_paper(
        self,
        paper_id: int,
        access_token: str,
        file: tuple[str, bytes] | tuple[str, bytes, str] | None = None,
    ) -> ApiPaper:
        files = {"file": file} if file else None
        data = self._json("POST", f"/papers/{paper_id}/resubmit", files=files, headers=_bearer(access_token))
        return ApiPaper.model_validate(data)

    def get_pending_papers(self, access_token: str) -> list[ApiPaper]:
        data = self._json("GET", "/papers/pending", headers=_bearer(access_token))
        return [ApiPaper.model_validate(p) for p in data]

    def get_reviewed_papers(self, access_token: str) -> list[ApiPaper]:
        data = self._json("GET", "/papers/reviewed", headers=_bearer(access_token))
        return [ApiPaper.model_validate(p) for p in data]

    def get_my_papers(self, access_token: str) -> list[ApiPaper]:
        data = self._json("GET", "/papers/mine", headers=_bearer(access_token))
        return [ApiPaper.model_validate(p) for p in data]

    def review_paper(self, paper_id: int, decision: ReviewDecision, comments: str, access_token: str) -> ApiPaper:
        data = self._json(
            "POST",
            f"/papers/{paper_id}/review",
            json={"decision": decision, "comments": comments},
            headers=_bearer(access_token),
        )
        return ApiPaper.model_validate(data)

    def get_paper_reviews(self, paper_id: int, access_token: str) -> list[ApiReview]:
        data = self._json("GET", f"/papers/{paper_id}/reviews", headers=_bearer(access_token))
        return [ApiReview.model_validate(r) for r in data]

    def track_paper_view(self, paper_id: int, access_token: str | None = None) -> ApiPaper:
        headers = _bearer(access_token) if access_token else None
        return ApiPaper.model_validate(self._json("POST", f"/papers/{paper_id}/view", headers=headers))

    def track_paper_download(self, paper_id: int, access_token: str) -> ApiPaper:
        data = self._json("POST", f"/papers/{paper_id}/download", headers=_bearer(access_token))
        return ApiPaper.model_validate(data)

    def download_paper_file(self, paper_id: int, access_token: str) -> tuple[bytes, str]:
        resp = self._request("GET", f"/papers/{paper_id}/file", headers=_bearer(access_token))
        match = _FILENAME_RE.search(resp.headers.get("Content-Disposition") or "")
        filename = match.group(1) if match else f"paper-{paper_id}"
        return resp.content, filename

    def get_paper_stats(self) -> ApiPaperStats:
        return ApiPaperStats.model_validate(self._json("GET", "/papers/stats"))

    def list_schools(self) -> list[ApiSchool]:
        return [ApiSchool.model_validate(s) for s in self._json("GET", "/schools")]

    # ------------------------------------------------------------------
    # notifications
    # ------------------------------------------------------------------

    def get_notifications(self, access_token: str) -> list[ApiNotification]:
        data = self._json("GET", "/notifications", headers=_bearer(access_token))
        return [ApiNotification.model_validate(n) for n in data]

    def get_unread_count(self, access_token: str) -> int:
        data = self._json("GET", "/notifications/unread-count", headers=_bearer(access_token))
        return int(data.get("unread", 0))

    def mark_notification_read(self, notification_id: int, access_token: str) -> ApiNotification:
        data = self._json("PATCH", f"/notifications/{notification_id}/read", headers=_bearer(access_token))
        return ApiNotification.model_validate(data)
