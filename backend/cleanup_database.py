#!/usr/bin/env python3
"""
Maintenance utility for the Choose the Heat database.

    python cleanup_database.py audit-logs [--days N]
    python cleanup_database.py sessions
"""
import argparse
import sys
from pathlib import Path

# Add backend directory to path
backend_dir = Path(__file__).parent
sys.path.insert(0, str(backend_dir))

from heat.config import get_settings
from heat.database import create_db_engine, create_session_factory
from heat.services.audit_service import cleanup_old_audit_logs
from heat.services.session_manager import cleanup_expired_sessions


def open_session(settings):
    engine = create_db_engine(settings.database_url)
    return create_session_factory(engine)()


def main(argv=None):
    settings = get_settings()

    parser = argparse.ArgumentParser(description='Choose the Heat Database Cleanup Utility')
    parser.add_argument('action', choices=['audit-logs', 'sessions'],
                        help='What to clean up')
    parser.add_argument('--days', type=int, default=settings.audit_log_retention_days,
                        help=f'Days of audit logs to keep (default: {settings.audit_log_retention_days})')

    args = parser.parse_args(argv)

    if args.action == 'audit-logs' and args.days <= 0:
        print("❌ --days must be a positive number")
        return 1

    db = open_session(settings)
    try:
        if args.action == 'audit-logs':
            deleted = cleanup_old_audit_logs(db, args.days)
            print(f"✓ Deleted {deleted} audit log(s) older than {args.days} days")
        elif args.action == 'sessions':
            deleted = cleanup_expired_sessions(db)
            print(f"✓ Deleted {deleted} expired session(s)")
    finally:
        db.close()

    return 0


if __name__ == '__main__':
    sys.exit(main())
