"""
Client-side session: tokens plus the signed-in user, kept in a `TokenStore`.

`AuthStore` mirrors what a browser session does with the API: restore on start-up,
refresh once on an auth failure, and drop everything when that fails too.
"""
from __future__ import annotations

import json
import logging
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from app.murrs.client.api import ApiClient, ApiClientError, ApiUser

logger = logging.getLogger(__name__)

GUEST_ROLE = "guest"


@dataclass
class SessionUser:
    id: int
    email: str
    name: str
    role: str
    university: str | None = None
    department: str | None = None

    @property
    def is_guest(self) -> bool:
        return self.role == GUEST_ROLE

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SessionUser":
        return cls(
            id=int(data["id"]),
            email=str(data["email"]),
            name=str(data.get("name") or ""),
            role=str(data.get("role") or "member"),
            university=data.get("university"),
            department=data.get("department"),
        )


def role_from_api_user(user: ApiUser) -> str:
    if user.role:
        return user.role
    return "librarian" if user.is_admin else "member"


def build_session_user(api_user: ApiUser, previous: SessionUser | None = None) -> SessionUser:
    return SessionUser(
        id=api_user.id,
        email=api_user.email,
        name=api_user.full_name or api_user.email.split("@")[0],
        role=role_from_api_user(api_user),
        university=previous.university if previous else None,
        department=api_user.department or (previous.department if previous else None),
    )


class TokenStore:
    """Holds the access token, refresh token and serialized user."""

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}

    def get(self, key: str) -> Any:
        return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value
        self._save()

    def remove(self, *keys: str) -> None:
        for key in keys:
            self._data.pop(key, None)
        self._save()

    def _save(self) -> None:
        pass


class JsonFileTokenStore(TokenStore):
    """TokenStore persisted to a JSON file, so a CLI session survives restarts."""

    def __init__(self, path: str | Path):
        super().__init__()
        self.path = Path(path)
        if self.path.exists():
            try:
                loaded = json.loads(self.path.read_text(encoding="utf-8"))
            except (OSError, ValueError) as e:
                logger.warning("Ignoring unreadable session file %s: %s", self.path, e)
                loaded = {}
            if isinstance(loaded, dict):
                self._data = loaded

    def _save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(self._data, indent=2, sort_keys=True), encoding="utf-8")


ACCESS_TOKEN = "access_token"
REFRESH_TOKEN = "refresh_token"
USER = "user"


class AuthStore:
    def __init__(self, client: ApiClient, tokens: TokenStore | None = None):
        self.client = client
        self.tokens = tokens if tokens is not None else TokenStore()
        self.user: SessionUser | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    @property
    def access_token(self) -> str | None:
        return self.tokens.get(ACCESS_TOKEN)

    def _set_tokens(self, access_token: str, refresh_token: str) -> None:
        self.tokens.set(ACCESS_TOKEN, access_token)
        self.tokens.set(REFRESH_TOKEN, refresh_token)

    def _set_user(self, user: SessionUser | None) -> None:
        self.user = user
        if user is None:
            self.tokens.remove(USER)
        else:
            self.tokens.set(USER, user.to_dict())

    def _clear(self) -> None:
        self.user = None
        self.tokens.remove(USER, ACCESS_TOKEN, REFRESH_TOKEN)

    def restore(self) -> SessionUser | None:
        stored_user = self.tokens.get(USER)
        stored_access = self.tokens.get(ACCESS_TOKEN)
        stored_refresh = self.tokens.get(REFRESH_TOKEN)
        if not stored_access or not stored_user:
            return None

        try:
            previous = SessionUser.from_dict(stored_user)
            self._set_user(build_session_user(self.client.me(stored_access), previous))
            return self.user
        except (ApiClientError, KeyError, TypeError, ValueError) as e:
            logger.info("Stored session rejected (%s); trying refresh", e)

        if not stored_refresh:
            self.user = None
            self.tokens.remove(USER, ACCESS_TOKEN)
            return None
        try:
            refreshed = self.client.refresh(stored_refresh)
            self._set_tokens(refreshed.access_token, refreshed.refresh_token)
            self._set_user(build_session_user(self.client.me(refreshed.access_token)))
            return self.user
        except ApiClientError as e:
            logger.info("Session refresh failed (%s); signing out", e)
            self._clear()
            return None

    def login(self, email: str, password: str, role: str | None = None) -> bool:
        if not email or not password:
            return False

        if role == GUEST_ROLE:
            self.tokens.remove(ACCESS_TOKEN, REFRESH_TOKEN)
            self._set_user(SessionUser(id=int(time.time() * 1000), email=email, name="Guest", role=GUEST_ROLE))
            return True

        try:
            tokens = self.client.login(email, password)
            self._set_tokens(tokens.access_token, tokens.refresh_token)
            self._set_user(build_session_user(self.client.me(tokens.access_token)))
            return True
        except ApiClientError as e:
            logger.info("Login failed for %s: %s", email, e.message)
            return False

    def logout(self) -> None:
        refresh_token = self.tokens.get(REFRESH_TOKEN)
        if refresh_token:
            self.client.logout(refresh_token)
        self._clear()

    def create_account(
        self,
        email: str,
        password: str,
        name: str,
        role: str = "student",
        *,
        school_id: str | None = None,
        school: str | None = None,
        department: str | None = None,
    ) -> bool:
        """
        Registers an account. A librarian session registers on the librarian's behalf (active account,
        session unchanged); otherwise the new account is signed in when the server activated it.
        """
        if not email or not password or not name:
            return False
        acting_librarian = self.user is not None and self.user.role == "librarian"
        if role == "librarian" and not acting_librarian:
            return False

        try:
            created = self.client.register(
                email,
                password,
                name,
                role,  # type: ignore[arg-type]
                school_id=school_id,
                school=school,
                department=department,
                access_token=self.access_token if acting_librarian else None,
            )
        except ApiClientError as e:
            logger.info("Registration failed for %s: %s", email, e.message)
            return False

        if created.is_active and not acting_librarian:
            self.login(email, password, role)
        return True

    def _with_refresh(self, call):
        access_token = self.access_token
        if not access_token:
            raise ApiClientError(401, "Not authenticated")
        try:
            return call(access_token)
        except ApiClientError as e:
            refresh_token = self.tokens.get(REFRESH_TOKEN)
            # Only an expired access token is worth a refresh.
            if e.status != 401 or not refresh_token:
                raise
            tokens = self.client.refresh(refresh_token)
            self._set_tokens(tokens.access_token, tokens.refresh_token)
            return call(tokens.access_token)

    def change_password(self, old_password: str, new_password: str) -> bool:
        if not self.user or self.user.is_guest or not old_password or not new_password:
            return False
        if old_password == new_password:
            return False
        user_id = self.user.id
        try:
            self._with_refresh(
                lambda token: self.client.update_user(
                    user_id,
                    {"password": new_password, "current_password": old_password},
                    token,
                )
            )
            return True
        except ApiClientError as e:
            logger.info("Password change failed: %s", e.message)
            return False

    def update_profile(self, name: str, department: str | None = None) -> bool:
        if not self.user or self.user.is_guest or not name:
            return False
        current = self.user
        try:
            api_user = self._with_refresh(
                lambda token: self.client.update_user(current.id, {"full_name": name, "department": department}, token)
            )
        except ApiClientError as e:
            logger.info("Profile update failed: %s", e.message)
            return False
        updated = build_session_user(api_user, current)
        updated.department = department or current.department
        self._set_user(updated)
        return True
