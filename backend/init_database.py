#!/usr/bin/env python3
"""
Initialize the Choose the Heat database: create every table, seed the
trope vocabulary and make sure an admin account exists.
"""
import sys
from pathlib import Path

# Add backend directory to path
backend_dir = Path(__file__).parent
sys.path.insert(0, str(backend_dir))

from heat.config import get_settings
from heat.database import create_db_engine, create_session_factory, init_db
from heat.models import Trope, UserRole
from heat.services.errors import HeatError
from heat.services.user_service import create_user_with_password, get_user_by_email
from heat.utils.preferences import TROPE_LABELS


def seed_tropes(db) -> int:
    """Insert any trope from the built-in vocabulary that is missing"""
    added = 0
    for key, label in TROPE_LABELS.items():
        if db.query(Trope).filter(Trope.key == key).first():
            continue
        db.add(Trope(key=key, label=label))
        added += 1
    db.commit()
    return added


def ensure_admin(db, settings):
    existing = get_user_by_email(db, settings.admin_email)
    if existing:
        print(f"✓ Admin account already exists: {existing.email}")
        return existing

    admin = create_user_with_password(
        db,
        email=settings.admin_email,
        password=settings.admin_password,
        name=settings.admin_name,
        role=UserRole.ADMIN,
    )
    print(f"✓ Created admin account: {admin.email}")
    print("  ⚠️  Change the admin password after first login")
    return admin


def init_database():
    """Initialize database with all tables."""
    settings = get_settings()
    print(f"Initializing database at: {settings.database_url}")

    engine = create_db_engine(settings.database_url)
    init_db(engine)
    print("✓ Tables created")

    db = create_session_factory(engine)()
    try:
        added = seed_tropes(db)
        print(f"✓ Seeded {added} trope(s)")
        ensure_admin(db, settings)
    except HeatError as e:
        print(f"❌ ERROR: {e.message}")
        sys.exit(1)
    finally:
        db.close()

    print("\n🎉 Database initialization complete!")


if __name__ == "__main__":
    init_database()
