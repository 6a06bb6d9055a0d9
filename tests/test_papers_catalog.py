from datetime import datetime

import pytest
from werkzeug.security import generate_password_hash

from app.murrs import create_app
from app.murrs.auth import reset_rate_limits
from app.murrs.db import session_scope
from app.murrs.models import AuditEvent, Base, User
from app.murrs.modules.papers.models import Paper, PaperAuthor, PaperTag
from app.murrs.storage import LocalStorage

ROLES = {
    "student": "student",
    "student2": "student",
    "lecturer": "lecturer",
    "lecturer2": "lecturer",
    "hod": "hod",
    "librarian": "librarian",
}

ML = "Machine Learning for Crop Yield"
LAW = "Public Procurement Law"
GOV = "Governance in Ghana"
PENDING = "Unpublished Machine Study"
DRAFT = "Half-written Draft"


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("STORAGE_ROOT", str(tmp_path / "storage"))
    monkeypatch.delenv("SMTP_HOST", raising=False)
    reset_rate_limits()

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    pw = generate_password_hash("pw123456")
    with session_scope(app) as s:
        users = {}
        for key, role in ROLES.items():
            u = User(email=f"{key}@example.com", password_hash=pw, full_name=key.title(), role=role, is_active=True)
            s.add(u)
            users[key] = u
        s.flush()

        ml = Paper(
            title=ML,
            abstract="Predicting harvests with gradient boosting.",
            discipline="Computer Science and Information Systems",
            university="School of Technology and Social Sciences (SOTSS)",
            year=2024,
            status="approved",
            views=3000,
            downloads=10,
            citations=5,
            rating=4.5,
            submitter_id=users["student"].id,
            created_at=datetime(2024, 1, 1),
        )
        ml.authors = [PaperAuthor(name="Kwame Mensah", author_order=0)]
        ml.tag_rows = [PaperTag(tag="agriculture")]
        law = Paper(
            title=LAW,
            abstract="Applying machine learning to tender records.",
            discipline="Law",
            university="Faculty of Law",
            year=2023,
            status="approved",
            views=100,
            downloads=50,
            citations=1,
            rating=None,
            created_at=datetime(2024, 2, 1),
        )
        gov = Paper(
            title=GOV,
            abstract="Local government reform.",
            discipline="Public Service and Governance",
            university="School of Public Service and Governance",
            year=2023,
            status="approved",
            views=2600,
            downloads=2,
            citations=9,
            rating=3.0,
            created_at=datetime(2024, 3, 1),
        )
        gov.authors = [PaperAuthor(name="Ama Machine", author_order=0)]
        pending = Paper(
            title=PENDING,
            year=2025,
            status="pending_lecturer",
            submitter_id=users["student"].id,
            supervisor_id=users["lecturer"].id,
            created_at=datetime(2025, 1, 1),
            submitted_at=datetime(2025, 1, 1),
        )
        draft = Paper(title=DRAFT, year=2025, status="draft", submitter_id=users["student"].id, created_at=datetime(2025, 2, 1))
        s.add_all([ml, law, gov, pending, draft])
        s.flush()

        key = f"papers/{ml.id}/crop-yield.pdf"
        LocalStorage(root=tmp_path / "storage").put_bytes(key, b"%PDF-1.4 crop yield")
        ml.storage_key = key
        ml.file_name = "crop-yield.pdf"
        ml.mime_type = "application/pdf"
        gov.storage_key = f"papers/{gov.id}/gone.pdf"
        gov.file_name = "gone.pdf"

    return app.test_client()


def _token(client, key):
    r = client.post("/api/auth/login", data={"username": f"{key}@example.com", "password": "pw123456"})
    assert r.status_code == 200, r.json
    return {"Authorization": f"Bearer {r.json['access_token']}"}


def _pid(client, title):
    with session_scope(client.application) as s:
        return s.query(Paper).filter(Paper.title == title).one().id


def _titles(resp):
    assert resp.status_code == 200, resp.json
    return [p["title"] for p in resp.json]


def test_catalog_lists_only_approved_newest_first(client):
    assert _titles(client.get("/api/papers")) == [GOV, LAW, ML]
    assert _titles(client.get("/api/papers?status=approved")) == [GOV, LAW, ML]
    # Even reviewers only see approved papers when browsing the catalog.
    librarian = _token(client, "librarian")
    assert _titles(client.get("/api/papers", headers=librarian)) == [GOV, LAW, ML]
    assert _titles(client.get("/api/papers?catalog=true&status=pending_lecturer", headers=librarian)) == [GOV, LAW, ML]


def test_status_filter_requires_reviewer(client):
    assert client.get("/api/papers?status=pending_lecturer").status_code == 403
    assert client.get("/api/papers?status=pending_lecturer", headers=_token(client, "student")).status_code == 403

    assert _titles(client.get("/api/papers?status=pending_lecturer", headers=_token(client, "lecturer"))) == [PENDING]
    assert _titles(client.get("/api/papers?status=pending_lecturer", headers=_token(client, "lecturer2"))) == []
    assert _titles(client.get("/api/papers?status=pending_lecturer", headers=_token(client, "hod"))) == [PENDING]

    assert client.get("/api/papers?status=draft", headers=_token(client, "hod")).status_code == 403
    assert _titles(client.get("/api/papers?status=draft", headers=_token(client, "librarian"))) == [DRAFT]


def test_search_orders_by_relevance(client):
    # title match > author match > abstract match; unpublished papers never leak.
    assert _titles(client.get("/api/papers?q=machine")) == [ML, GOV, LAW]
    assert _titles(client.get("/api/papers?q=AGRICULTURE")) == [ML]
    assert _titles(client.get("/api/papers?q=machine&sort=title")) == [GOV, ML, LAW]
    assert _titles(client.get("/api/papers?q=nothing-matches")) == []


@pytest.mark.parametrize(
    "sort,expected",
    [
        ("newest", [GOV, LAW, ML]),
        ("oldest", [ML, LAW, GOV]),
        ("trending", [ML, GOV, LAW]),
        ("highest-rated", [ML, GOV, LAW]),
        ("downloads", [LAW, ML, GOV]),
        ("citations", [GOV, ML, LAW]),
        ("title", [GOV, ML, LAW]),
    ],
)
def test_sort_orders(client, sort, expected):
    assert _titles(client.get(f"/api/papers?sort={sort}")) == expected


def test_filters_and_paging(client):
    assert _titles(client.get("/api/papers?discipline=law")) == [LAW]
    assert _titles(client.get("/api/papers", query_string={"university": "faculty of law"})) == [LAW]
    assert _titles(client.get("/api/papers?year=2023")) == [GOV, LAW]
    assert _titles(client.get("/api/papers?skip=1&limit=1")) == [LAW]
    assert _titles(client.get("/api/papers?q=machine&skip=2")) == [LAW]


def test_bad_query_params_are_422(client):
    assert client.get("/api/papers?sort=random").status_code == 422
    assert client.get("/api/papers?status=published").status_code == 422
    assert client.get("/api/papers?limit=0").status_code == 422
    assert client.get("/api/papers?limit=200").status_code == 200
    r = client.get("/api/papers?limit=201")
    assert r.status_code == 422
    assert "limit" in r.json["detail"]
    assert client.get("/api/papers?year=soon").status_code == 422


def test_unpublished_papers_are_hidden(client):
    pending = _pid(client, PENDING)
    draft = _pid(client, DRAFT)

    assert client.get(f"/api/papers/{pending}").status_code == 404
    assert client.get(f"/api/papers/{pending}", headers=_token(client, "student2")).status_code == 404
    assert client.get(f"/api/papers/{pending}", headers=_token(client, "lecturer2")).status_code == 404
    assert client.get(f"/api/papers/{pending}", headers=_token(client, "student")).status_code == 200
    assert client.get(f"/api/papers/{pending}", headers=_token(client, "lecturer")).status_code == 200
    assert client.get(f"/api/papers/{pending}", headers=_token(client, "hod")).status_code == 200

    assert client.get(f"/api/papers/{draft}", headers=_token(client, "hod")).status_code == 404
    assert client.get(f"/api/papers/{draft}", headers=_token(client, "librarian")).status_code == 200
    assert client.get("/api/papers/99999").status_code == 404


def test_paper_detail_shape(client):
    r = client.get(f"/api/papers/{_pid(client, ML)}")
    assert r.status_code == 200
    body = r.json
    assert body["tags"] == ["agriculture"]
    assert body["authors"][0]["name"] == "Kwame Mensah"
    assert body["rating"] == 4.5
    assert body["file_name"] == "crop-yield.pdf"
    assert "storage_key" not in body


def test_stats(client):
    r = client.get("/api/papers/stats")
    assert r.status_code == 200
    assert r.json == {"total_papers": 3, "total_views": 5700, "total_downloads": 62, "pending_reviews": 1}


def test_view_counter_is_public_but_respects_visibility(client):
    ml = _pid(client, ML)
    r = client.post(f"/api/papers/{ml}/view")
    assert r.status_code == 200
    assert r.json["views"] == 3001
    assert client.post(f"/api/papers/{_pid(client, PENDING)}/view").status_code == 404


def test_download_counter_requires_login(client):
    ml = _pid(client, ML)
    assert client.post(f"/api/papers/{ml}/download").status_code == 401

    r = client.post(f"/api/papers/{ml}/download", headers=_token(client, "student2"))
    assert r.status_code == 200
    assert r.json["downloads"] == 11
    with session_scope(client.application) as s:
        assert s.query(AuditEvent).filter(AuditEvent.action == "paper.download").count() == 1


def test_file_download(client):
    ml = _pid(client, ML)
    student2 = _token(client, "student2")
    assert client.get(f"/api/papers/{ml}/file").status_code == 401

    r = client.get(f"/api/papers/{ml}/file", headers=student2)
    assert r.status_code == 200
    assert r.data == b"%PDF-1.4 crop yield"
    assert r.headers["Content-Type"] == "application/pdf"
    assert "attachment" in r.headers["Content-Disposition"]
    assert "crop-yield.pdf" in r.headers["Content-Disposition"]
    r.close()

    with session_scope(client.application) as s:
        assert s.get(Paper, ml).downloads == 11

    assert client.get(f"/api/papers/{_pid(client, LAW)}/file", headers=student2).status_code == 404
    # Row points at an object that is not in storage.
    assert client.get(f"/api/papers/{_pid(client, GOV)}/file", headers=student2).status_code == 404


def test_schools_catalog(client):
    r = client.get("/api/schools")
    assert r.status_code == 200
    law = next(x for x in r.json if x["name"] == "Faculty of Law")
    assert law["disciplines"] == ["Law"]
    assert "Public Law" in law["departments"]
