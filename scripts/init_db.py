import sys
from pathlib import Path
import os

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.blog.constants import DEFAULT_CATEGORIES
from app.blog.models import ROLE_ADMIN, AdminSettings, User
from app.blog.modules.categories.service import seed_default_categories
from scripts._db_utils import script_database_url, script_session


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed admin settings, default categories and (optionally) the first admin in an idempotent way.
    The admin is identified by ADMIN_CLERK_ID; an existing user only has their role raised to ADMIN.
    """
    admin_clerk_id = (os.environ.get("ADMIN_CLERK_ID") or "").strip()
    admin_email = (os.environ.get("ADMIN_EMAIL") or "").strip().lower()

    db_url = script_database_url(database_url)

    # Use direct engine/session so this can run in release without importing app.wsgi (avoids recursion).
    with script_session(db_url) as s:
        settings = s.query(AdminSettings).order_by(AdminSettings.id.asc()).first()
        if not settings:
            s.add(
                AdminSettings(
                    email_notifications=True,
                    auto_notify_new_post=True,
                    auto_notify_new_subscriber=True,
                    notification_from_email=(os.environ.get("EMAIL_FROM") or "noreply@techblog.com").strip(),
                    notification_from_name=(os.environ.get("EMAIL_FROM_NAME") or "TechBlog").strip(),
                )
            )

        created = seed_default_categories(s, DEFAULT_CATEGORIES)

        if admin_clerk_id:
            user = s.query(User).filter(User.clerk_id == admin_clerk_id).one_or_none()
            if not user:
                user = User(clerk_id=admin_clerk_id, email=admin_email, role=ROLE_ADMIN, is_active=True)
                s.add(user)
            else:
                user.role = ROLE_ADMIN
                user.is_active = True
                if admin_email and not user.email:
                    user.email = admin_email

    print("Initialized database (seed_only).")
    print(f"Default categories added: {created}")
    if admin_clerk_id:
        print(f"Admin user: {admin_clerk_id} {admin_email}".rstrip())
    else:
        print("ADMIN_CLERK_ID not set; no admin user seeded.")


def main() -> None:
    seed_only(database_url=None)


if __name__ == "__main__":
    main()
