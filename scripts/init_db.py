import os
import sys
from pathlib import Path

from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.murrs.models import Base, User  # noqa: E402
from app.murrs.db import make_engine  # noqa: E402
from scripts._db_utils import script_session  # noqa: E402


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed the librarian (admin) account in an idempotent way.
    Does NOT overwrite an existing account's password.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "librarian@murrs.local").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"
    admin_name = (os.environ.get("ADMIN_NAME") or "Library Administrator").strip()

    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///murrs.db").strip()

    # Use a direct engine/session so this can run in release without importing app.wsgi (avoids recursion).
    with script_session(db_url) as s:
        user = s.query(User).filter(User.email == admin_email).one_or_none()
        if not user:
            user = User(
                email=admin_email,
                password_hash=generate_password_hash(admin_password),
                full_name=admin_name,
                department="Library Services",
                role="librarian",
                is_admin=True,
                is_active=True,
            )
            s.add(user)
        else:
            user.role = "librarian"
            user.is_admin = True
            user.is_active = True

    print("Initialized database (seed_only).")
    print(f"Librarian email: {admin_email}")
    print("Librarian password: (from ADMIN_PASSWORD)")


def create_schema(*, database_url: str | None = None) -> None:
    """Local development shortcut: create tables without alembic."""
    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///murrs.db").strip()
    engine = make_engine(db_url)
    try:
        Base.metadata.create_all(engine)
    finally:
        engine.dispose()


def main() -> None:
    if "--create-schema" in sys.argv[1:]:
        create_schema(database_url=None)
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
