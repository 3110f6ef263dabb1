import os
import sys
from pathlib import Path

from werkzeug.security import generate_password_hash

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.workshop.audit import record_event  # noqa: E402
from app.workshop.models import User  # noqa: E402
from scripts._db_utils import script_session  # noqa: E402


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed the first administrator in an idempotent way.
    Does NOT overwrite an existing user's password or permission.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@example.com").strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"

    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///workshop.db").strip()

    with script_session(db_url) as s:
        user = s.query(User).filter(User.email == admin_email).one_or_none()
        if user is None:
            user = User(
                email=admin_email,
                first_name="Admin",
                last_name="User",
                password_hash=generate_password_hash(admin_password),
                permission="admin",
            )
            s.add(user)
            s.flush()
            record_event(s, actor=None, action="user.seed_admin", entity_type="User", entity_id=str(user.id))
            print(f"Created admin user {admin_email}.")
        else:
            print(f"Admin user {admin_email} already exists; left unchanged.")

    print("Initialized database (seed_only).")
    print("Admin password: (from ADMIN_PASSWORD)")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
