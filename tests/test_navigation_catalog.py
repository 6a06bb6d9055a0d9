import pytest

from app.murrs.client import catalog, navigation
from app.murrs.client.api import ApiClient, ApiClientError, ApiPaper
from app.murrs.client.auth_store import SessionUser

from flask_transport import BASE_URL, unreachable_session


def _user(role):
    return SessionUser(id=1, email=f"{role}@example.com", name=role.title(), role=role)


def _paper(i, views=0):
    return ApiPaper(id=i, title=f"Paper {i}", status="approved", year=2024, views=views)


def test_public_tabs_for_anonymous_and_guests():
    assert navigation.visible_tabs(None) == ["catalog", "search"]
    assert navigation.visible_tabs(_user("guest")) == ["catalog", "search"]


@pytest.mark.parametrize(
    "role,expected",
    [
        ("student", ["catalog", "search", "dashboard", "upload", "profile"]),
        ("staff", ["catalog", "search", "dashboard", "upload", "profile"]),
        ("lecturer", ["catalog", "search", "dashboard", "upload", "approval", "profile"]),
        ("hod", ["catalog", "search", "dashboard", "upload", "approval", "profile"]),
        ("librarian", ["catalog", "search", "dashboard", "upload", "approval", "librarian", "profile"]),
    ],
)
def test_visible_tabs_by_role(role, expected):
    assert navigation.visible_tabs(_user(role)) == expected


def test_resolve_tab():
    assert navigation.resolve_tab(None, "catalog") == "open"
    assert navigation.resolve_tab(None, "upload") == "login"
    assert navigation.resolve_tab(_user("guest"), "dashboard") == "login"
    assert navigation.resolve_tab(_user("student"), "approval") == "deny"
    assert navigation.resolve_tab(_user("lecturer"), "approval") == "open"
    assert navigation.resolve_tab(_user("hod"), "librarian") == "deny"
    assert navigation.resolve_tab(_user("librarian"), "librarian") == "open"


def test_role_label():
    assert navigation.role_label("project_coordinator") == "Project Coordinator"
    assert navigation.role_label("member") == "Student"
    assert navigation.role_label("visitor") == "visitor"
    assert navigation.role_label(None) == ""


class _StubClient:
    def __init__(self, result):
        self.result = result
        self.calls = 0

    def get_pending_papers(self, access_token):
        self.calls += 1
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


def test_pending_review_count():
    assert navigation.pending_review_count(_StubClient([_paper(1), _paper(2)]), "token") == 2
    assert navigation.pending_review_count(_StubClient(ApiClientError(403, "Not enough permissions")), "token") == 0

    stub = _StubClient([_paper(1)])
    assert navigation.pending_review_count(stub, None) == 0
    assert stub.calls == 0


def test_badge_counts_are_zero_when_server_is_unreachable():
    offline = ApiClient(base_url=BASE_URL, session=unreachable_session())
    assert navigation.pending_review_count(offline, "token") == 0
    assert navigation.unread_notification_count(offline, "token") == 0
    assert navigation.unread_notification_count(offline, None) == 0


def test_sort_for_category():
    assert catalog.sort_for_category("all") == "relevance"
    assert catalog.sort_for_category("most-downloaded") == "downloads"
    assert catalog.sort_for_category("highest-rated") == "highest-rated"
    assert catalog.sort_for_category("unknown") == "relevance"


def test_category_counts():
    papers = [_paper(1, views=3000), _paper(2, views=2500), _paper(3, views=2501)]
    assert catalog.category_counts(papers) == {"all": 3, "trending": 2, "highest": 3, "downloads": 3}

    many = [_paper(i) for i in range(10)]
    assert catalog.category_counts(many) == {"all": 10, "trending": 0, "highest": 4, "downloads": 5}


def test_paginate_and_page_count():
    items = list(range(14))
    assert catalog.paginate(items, 0) == [0, 1, 2, 3, 4, 5]
    assert catalog.paginate(items, 2) == [12, 13]
    assert catalog.paginate(items, 3) == []
    assert catalog.paginate(items, -1) == []
    assert catalog.page_count(14) == 3
    assert catalog.page_count(12) == 2
    assert catalog.page_count(0) == 0


def test_toggle_filter_is_single_select():
    filters = catalog.toggle_filter({}, "year", "2024")
    assert filters == {"year": ["2024"]}
    filters = catalog.toggle_filter(filters, "year", "2023")
    assert filters == {"year": ["2023"]}
    assert catalog.toggle_filter(filters, "year", "2023") == {"year": []}


def test_visible_disciplines():
    assert catalog.visible_disciplines("Faculty of Law") == ["Law"]
    assert "Law" in catalog.visible_disciplines(None)
    assert len(catalog.visible_disciplines(None)) > len(catalog.visible_disciplines("Business School"))


def test_prune_filters_drops_discipline_outside_school():
    filters = {"university": ["Faculty of Law"], "discipline": ["Economics and Hospitality Studies"]}
    assert catalog.prune_filters(filters) == {"university": ["Faculty of Law"]}

    kept = {"university": ["Faculty of Law"], "discipline": ["Law"]}
    assert catalog.prune_filters(kept) == kept
    assert catalog.prune_filters({"discipline": ["Law"]}) == {"discipline": ["Law"]}
