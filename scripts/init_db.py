import sys
from pathlib import Path
import os

from werkzeug.security import generate_password_hash
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from contextlib import contextmanager

# Ensure repo root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.palette.models import Base, User


@contextmanager
def _session_scope(database_url: str):
    engine = create_engine(database_url, future=True)
    sm = sessionmaker(bind=engine, class_=Session, autoflush=False, autocommit=False, expire_on_commit=False, future=True)
    s: Session = sm()
    try:
        yield s
        s.commit()
    except Exception:
        s.rollback()
        raise
    finally:
        s.close()
        engine.dispose()


def seed_only(*, database_url: str | None = None) -> None:
    """
    Seed the admin user in an idempotent way.
    Does NOT overwrite an existing admin user's password; only ensures the
    account is active, verified and flagged as admin.
    """
    admin_email = (os.environ.get("ADMIN_EMAIL") or "admin@iitgn.ac.in").strip().lower()
    admin_personal_email = (os.environ.get("ADMIN_PERSONAL_EMAIL") or admin_email).strip().lower()
    admin_password = os.environ.get("ADMIN_PASSWORD") or "change-me"
    admin_name = (os.environ.get("ADMIN_NAME") or "Palette Admin").strip()
    admin_roll = (os.environ.get("ADMIN_ROLL_NUMBER") or "ADMIN").strip()

    db_url = (database_url or os.environ.get("DATABASE_URL") or "sqlite:///palette.db").strip()

    # Direct engine/session so release can run without importing app.wsgi.
    with _session_scope(db_url) as s:
        u = s.query(User).filter(User.iitg_email == admin_email).one_or_none()
        if not u:
            u = User(
                iitg_email=admin_email,
                personal_email=admin_personal_email,
                password_hash=generate_password_hash(admin_password),
                name=admin_name,
                roll_number=admin_roll,
                is_admin=True,
                is_verified=True,
                is_active=True,
            )
            s.add(u)
            print(f"Created admin user {admin_email}", flush=True)
        else:
            u.is_admin = True
            u.is_verified = True
            u.is_active = True
            print(f"Admin user {admin_email} already exists; flags ensured", flush=True)


def main() -> None:
    db_url = (os.environ.get("DATABASE_URL") or "sqlite:///palette.db").strip()
    if db_url.startswith("sqlite"):
        # Local development without running migrations.
        engine = create_engine(db_url, future=True)
        Base.metadata.create_all(bind=engine)
        engine.dispose()
    seed_only(database_url=db_url)


if __name__ == "__main__":
    main()
