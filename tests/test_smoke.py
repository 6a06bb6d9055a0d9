import pytest
from werkzeug.security import generate_password_hash

from app.murrs import create_app
from app.murrs.auth import reset_rate_limits
from app.murrs.db import session_scope
from app.murrs.models import Base, User


@pytest.fixture()
def client(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    for k in ("S3_ENDPOINT", "S3_REGION", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY", "SMTP_HOST", "CORS_ORIGINS"):
        monkeypatch.delenv(k, raising=False)
    reset_rate_limits()

    app = create_app()

    engine = app.extensions["sqlalchemy_engine"]
    Base.metadata.create_all(bind=engine)

    with session_scope(app) as s:
        s.add(
            User(
                email="librarian@example.com",
                password_hash=generate_password_hash("pw123456"),
                full_name="Head Librarian",
                role="librarian",
                is_admin=True,
                is_active=True,
            )
        )

    return app.test_client()


def test_health_ok(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json == {"ok": True, "database": "ok"}

    r = client.get("/healthz")
    assert r.status_code == 200
    assert r.data == b"ok"


def test_request_id_is_returned_and_echoed(client):
    r = client.get("/health")
    assert len(r.headers["X-Request-ID"]) == 32

    r = client.get("/health", headers={"X-Request-ID": "abc123"})
    assert r.headers["X-Request-ID"] == "abc123"


def test_unknown_api_route_is_json_404(client):
    r = client.get("/api/does-not-exist")
    assert r.status_code == 404
    assert "detail" in r.json


def test_method_not_allowed_is_json(client):
    r = client.delete("/api/papers/stats")
    assert r.status_code == 405
    assert "detail" in r.json


def test_login_and_me(client):
    r = client.get("/api/me")
    assert r.status_code == 401
    assert r.json["detail"] == "Not authenticated"
    assert r.headers["WWW-Authenticate"] == "Bearer"

    r = client.post("/api/auth/login", data={"username": "librarian@example.com", "password": "pw123456"})
    assert r.status_code == 200
    assert r.json["token_type"] == "bearer"

    r = client.get("/api/me", headers={"Authorization": f"Bearer {r.json['access_token']}"})
    assert r.status_code == 200
    assert r.json["email"] == "librarian@example.com"
    assert r.json["role"] == "librarian"
    assert r.json["is_admin"] is True


def test_garbage_bearer_token_is_anonymous(client):
    r = client.get("/api/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 401
    # Public endpoints still work with a bad token.
    r = client.get("/api/papers", headers={"Authorization": "Bearer not-a-jwt"})
    assert r.status_code == 200
    assert r.json == []


def test_schools_lists_departments_and_disciplines(client):
    r = client.get("/api/schools")
    assert r.status_code == 200
    names = [s["name"] for s in r.json]
    assert "Faculty of Law" in names
    law = next(s for s in r.json if s["name"] == "Faculty of Law")
    assert law["disciplines"] == ["Law"]
    assert "Public Law" in law["departments"]


def test_cors_headers_only_for_configured_origins(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'cors.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("CORS_ORIGINS", "http://localhost:5173")
    app = create_app()
    c = app.test_client()

    r = c.get("/health", headers={"Origin": "http://localhost:5173"})
    assert r.headers["Access-Control-Allow-Origin"] == "http://localhost:5173"

    r = c.get("/health", headers={"Origin": "http://evil.example"})
    assert "Access-Control-Allow-Origin" not in r.headers


def test_production_guardrails(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("ENV", "production")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'prod.db'}")
    monkeypatch.setenv("SECRET_KEY", "a-strong-secret")
    with pytest.raises(RuntimeError, match="Postgres"):
        create_app()

    monkeypatch.setenv("DATABASE_URL", "postgresql://u:p@localhost/murrs")
    monkeypatch.setenv("SECRET_KEY", "change-me")
    with pytest.raises(RuntimeError, match="SECRET_KEY"):
        create_app()
