import pytest
import requests
from werkzeug.security import generate_password_hash

from app.murrs import create_app
from app.murrs.auth import reset_rate_limits
from app.murrs.client.api import ApiClient, ApiClientError, _params, api_base_url, error_message
from app.murrs.db import session_scope
from app.murrs.models import Base, User

from flask_transport import BASE_URL, session_for, unreachable_session


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_ROOT", str(tmp_path / "storage"))
    monkeypatch.delenv("SMTP_HOST", raising=False)
    monkeypatch.delenv("ALLOWED_EMAIL_DOMAIN", raising=False)
    reset_rate_limits()

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])

    pw = generate_password_hash("pw123456")
    with session_scope(app) as s:
        s.add(User(email="librarian@example.com", password_hash=pw, full_name="Head Librarian", role="librarian", is_admin=True, is_active=True))
        s.add(User(email="lecturer@example.com", password_hash=pw, full_name="Dr Lecturer", department="Public Law", role="lecturer", is_active=True))
        s.add(User(email="student@st.gimpa.edu.gh", password_hash=pw, full_name="Ama Student", school="Faculty of Law", school_id="S100", role="student", is_active=True))
    return app


@pytest.fixture()
def api(app):
    return ApiClient(base_url=BASE_URL, session=session_for(app))


def _login(api, email):
    return api.login(email, "pw123456").access_token


def test_login_and_me(api):
    tokens = api.login("Student@st.gimpa.edu.gh", "pw123456")
    assert tokens.token_type == "bearer"
    me = api.me(tokens.access_token)
    assert me.email == "student@st.gimpa.edu.gh"
    assert me.role == "student"
    assert me.school == "Faculty of Law"


def test_errors_carry_status_and_detail(api):
    with pytest.raises(ApiClientError) as exc:
        api.login("student@st.gimpa.edu.gh", "wrong")
    assert exc.value.status == 401
    assert exc.value.message == "Incorrect email or password"

    with pytest.raises(ApiClientError) as exc:
        api.get_paper(12345)
    assert exc.value.status == 404
    assert exc.value.message == "Paper not found"


def test_refresh_and_logout(api):
    tokens = api.login("student@st.gimpa.edu.gh", "pw123456")
    rotated = api.refresh(tokens.refresh_token)
    assert rotated.refresh_token != tokens.refresh_token
    assert api.me(rotated.access_token).email == "student@st.gimpa.edu.gh"

    with pytest.raises(ApiClientError) as exc:
        api.refresh(tokens.refresh_token)
    assert exc.value.status == 401

    api.logout(rotated.refresh_token)
    with pytest.raises(ApiClientError):
        api.refresh(rotated.refresh_token)
    # Logging out again is harmless.
    api.logout(rotated.refresh_token)


def test_registration_and_user_admin(api):
    created = api.register(
        "kofi@st.gimpa.edu.gh",
        "secret123",
        "Kofi Mensah",
        "student",
        school_id="S200",
        school="Business School",
    )
    assert created.is_active is False
    with pytest.raises(ApiClientError) as exc:
        api.login("kofi@st.gimpa.edu.gh", "secret123")
    assert exc.value.status == 403

    librarian = _login(api, "librarian@example.com")
    inactive = api.list_users(librarian, is_active=False)
    assert [u.email for u in inactive] == ["kofi@st.gimpa.edu.gh"]

    assert api.activate_user(created.id, librarian).is_active is True
    assert api.me(_login(api, "kofi@st.gimpa.edu.gh")).full_name == "Kofi Mensah"

    promoted = api.update_user_role(created.id, "staff", librarian)
    assert promoted.role == "staff"

    staff = api.register("clerk@example.com", "secret123", "Records Clerk", "staff", school="Faculty of Law", department="Registry", access_token=librarian)
    assert staff.is_active is True

    api.delete_user(staff.id, librarian)
    assert "clerk@example.com" not in [u.email for u in api.list_users(librarian)]

    with pytest.raises(ApiClientError) as exc:
        api.list_users(_login(api, "student@st.gimpa.edu.gh"))
    assert exc.value.status == 403


def test_profile_update_and_supervisors(api):
    token = _login(api, "student@st.gimpa.edu.gh")
    me = api.me(token)
    updated = api.update_user(me.id, {"full_name": "Ama K. Student", "department": None}, token)
    assert updated.full_name == "Ama K. Student"

    supervisors = api.list_supervisors(token)
    assert [u.email for u in supervisors] == ["lecturer@example.com"]


def test_paper_lifecycle_through_client(api, tmp_path):
    student = _login(api, "student@st.gimpa.edu.gh")
    lecturer = _login(api, "lecturer@example.com")
    librarian = _login(api, "librarian@example.com")
    supervisor_id = api.list_supervisors(student)[0].id

    paper = api.upload_paper(
        {
            "title": "Mobile Money and Savings",
            "abstract": "Household savings behaviour.",
            "discipline": "Law",
            "year": 2025,
            "supervisor_id": supervisor_id,
            "tags": ["fintech"],
            "authors": [{"name": "Ama Student"}],
        },
        ("savings.pdf", b"%PDF-1.4 savings", "application/pdf"),
        student,
    )
    assert paper.status == "pending_lecturer"
    assert paper.tags == ["fintech"]
    assert [p.id for p in api.get_my_papers(student)] == [paper.id]
    assert [p.id for p in api.get_pending_papers(lecturer)] == [paper.id]

    revised = api.review_paper(paper.id, "revision", "Expand the method section", lecturer)
    assert revised.status == "revision"
    assert revised.review_comments == "Expand the method section"

    resubmitted = api.resubmit_paper(paper.id, student, ("savings-v2.pdf", b"%PDF-1.4 savings v2"))
    assert resubmitted.status == "pending_lecturer"
    assert resubmitted.file_name == "savings-v2.pdf"

    assert [p.id for p in api.get_reviewed_papers(lecturer)] == [paper.id]
    assert api.review_paper(paper.id, "approve", "Good", librarian).status == "approved"

    reviews = api.get_paper_reviews(paper.id, student)
    assert [(r.decision, r.reviewer_role) for r in reviews] == [("revision", "lecturer"), ("approve", "librarian")]

    catalog = api.list_papers(q="savings")
    assert [p.id for p in catalog] == [paper.id]
    assert api.list_papers(status="pending_lecturer", access_token=lecturer) == []

    assert api.track_paper_view(paper.id).views == 1
    assert api.track_paper_download(paper.id, student).downloads == 1

    content, filename = api.download_paper_file(paper.id, student)
    assert content == b"%PDF-1.4 savings v2"
    assert filename == "savings-v2.pdf"

    stats = api.get_paper_stats()
    assert stats.total_papers == 1
    assert stats.total_downloads == 2
    assert stats.pending_reviews == 0

    notes = api.get_notifications(student)
    assert notes[0].type == "review_decision"
    assert api.mark_notification_read(notes[0].id, student).is_read is True


def test_draft_create_and_submit_through_client(api):
    student = _login(api, "student@st.gimpa.edu.gh")
    lecturer = _login(api, "lecturer@example.com")
    supervisor_id = api.list_supervisors(student)[0].id
    draft = api.create_paper({"title": "Draft Only", "abstract": None, "supervisor_id": supervisor_id}, student)
    assert draft.status == "draft"
    with pytest.raises(ApiClientError) as exc:
        api.submit_paper(draft.id, student)
    assert exc.value.status == 400

    submitted = api.submit_paper(draft.id, student, ("draft.pdf", b"%PDF-1.4 draft", "application/pdf"))
    assert submitted.status == "pending_lecturer"
    assert submitted.file_name == "draft.pdf"
    assert [p.id for p in api.get_pending_papers(lecturer)] == [draft.id]
    assert api.get_unread_count(lecturer) == 1
    assert api.get_unread_count(student) == 1


def test_unreachable_server_raises_client_error():
    offline = ApiClient(base_url=BASE_URL, session=unreachable_session())
    with pytest.raises(ApiClientError) as exc:
        offline.login("student@st.gimpa.edu.gh", "pw123456")
    assert exc.value.status == 0
    assert "Could not reach the server" in exc.value.message
    # Logout never raises.
    offline.logout("refresh")


def test_list_schools(api):
    names = [s.name for s in api.list_schools()]
    assert "Faculty of Law" in names


def test_params_and_base_url(monkeypatch):
    assert _params(q="x", year=2024, catalog=True, skip=None, email="") == {"q": "x", "year": "2024", "catalog": "true"}
    assert _params(is_active=False) == {"is_active": "false"}

    monkeypatch.setenv("MURRS_API_URL", "https://repo.example.edu/")
    assert api_base_url() == "https://repo.example.edu/api"
    assert api_base_url("http://localhost:9000") == "http://localhost:9000/api"


def _response(status, body, reason="Bad Request"):
    resp = requests.Response()
    resp.status_code = status
    resp.reason = reason
    resp._content = body
    resp.encoding = "utf-8"
    return resp


def test_error_message_fallbacks():
    assert error_message(_response(400, b'{"detail": "Nope"}')) == "Nope"
    assert error_message(_response(422, b'{"detail": ["a", "b"]}')) == '["a", "b"]'
    assert error_message(_response(502, b"<html>gateway</html>")) == "<html>gateway</html>"
    assert error_message(_response(503, b"", reason="Service Unavailable")) == "Service Unavailable"
