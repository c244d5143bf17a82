#!/usr/bin/env python
"""Idempotent bootstrap seed: initial super administrator and default system settings.

Usage:
    python backend/scripts/seed.py                 # seed normally
    python backend/scripts/seed.py --show-matrix   # print role -> permission counts
    python backend/scripts/seed.py --dry-run       # run logic then rollback (no DB changes)
"""
from __future__ import annotations
import os, sys, argparse, textwrap
from sqlalchemy import select, text

# Allow running from repo root
sys.path.append(os.path.abspath('backend'))

from freightdesk import create_app, get_db  # type: ignore
from freightdesk.config.defaults import DEFAULT_SYSTEM_SETTINGS
from freightdesk.constants.permissions import ROLES, SUPER_ADMIN, role_permissions, role_display_name
from freightdesk.models.base import Base
from freightdesk.models.user import User
from freightdesk.models.setting import SystemSetting
from freightdesk.services.settings import upsert_setting


def ensure_settings(session):
    existing = set(session.execute(select(SystemSetting.key)).scalars().all())
    created = 0
    for key, value in DEFAULT_SYSTEM_SETTINGS.items():
        if key not in existing:
            upsert_setting(key, dict(value))
            created += 1
    return created


def ensure_initial_admin(session):
    admin_email = os.getenv('SEED_ADMIN_EMAIL', 'admin@example.com').strip().lower()
    existing_admin = session.execute(select(User).where(User.email == admin_email)).scalar_one_or_none()
    if existing_admin:
        return 0
    user = User(name='Administrator', email=admin_email, role=SUPER_ADMIN, is_active=True)
    user.set_password(os.getenv('SEED_ADMIN_PASSWORD', 'ChangeMe123!'))
    session.add(user)
    session.flush()
    print(f"[INFO] Created initial super administrator {admin_email} with temporary password.")
    return 1


def print_matrix_summary():
    name_w = max(len(role_display_name(r)) for r in ROLES)
    print(f"{'Role'.ljust(name_w)} | Count | Sample (up to 8)")
    print('-' * (name_w + 40))
    for role in ROLES:
        perms = role_permissions(role)
        print(f"{role_display_name(role).ljust(name_w)} | {str(len(perms)).rjust(5)} | {', '.join(perms[:8])}")


def parse_args():
    p = argparse.ArgumentParser(
        description="Seed the initial administrator and default settings",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""Examples:\n  seed normally: seed.py\n  dry run: seed.py --dry-run\n  show matrix: seed.py --show-matrix\n""")
    )
    p.add_argument('--show-matrix', action='store_true', help='Print role permission counts after seeding')
    p.add_argument('--dry-run', action='store_true', help='Rollback after operations (no commit)')
    return p.parse_args()


def main():
    args = parse_args()
    app = create_app()
    with app.app_context():
        session = get_db()
        try:
            session.execute(text('SELECT 1 FROM users LIMIT 1'))
        except Exception:
            # Auto-create schema for bootstrap; in real env prefer alembic upgrade
            session.rollback()
            Base.metadata.create_all(session.get_bind())
        finally:
            session.commit()

    with app.app_context():
        session = get_db()
        try:
            created_s = ensure_settings(session)
            created_u = ensure_initial_admin(session)
            if args.dry_run:
                session.rollback()
                print(f"[DRY-RUN] (rolled back) Settings would create: {created_s}, Admins would create: {created_u}")
            else:
                session.commit()
                print(f"[DONE] Settings created: {created_s}, Admins created: {created_u}")
            if args.show_matrix:
                print('\nRole Permission Summary:')
                print_matrix_summary()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

if __name__ == '__main__':
    main()
