#!/usr/bin/env python3
"""Database initialization script: create tables, seed domains, optionally an admin."""

import os
import sys
import logging

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, project_root)

# key, name, base url env var, description
SEED_DOMAINS = [
    ('jobfinder', 'Job Finder', 'JOB_FINDER_BASE_URL', 'Job search and applications'),
    ('ccms', 'CCMS', 'CCMS_BASE_URL', 'Client and case management'),
    ('solucomp', 'Solucomp', 'SOLUCOMP_BASE_URL', 'Compensation suite'),
    ('solucomp_cop', 'Solucomp COP', 'SOLUCOMP_BASE_URL', 'Solucomp cost of production module'),
    ('solucomp_compare', 'Solucomp Compare', 'SOLUCOMP_BASE_URL', 'Solucomp comparison module'),
]


def is_safe_environment():
    """Check if it's safe to drop tables (development environment)."""
    flask_env = os.getenv('FLASK_ENV', '').lower()
    environment = os.getenv('ENVIRONMENT', '').lower()
    safe_envs = ['development', 'dev', 'test', 'testing', 'local']
    return flask_env in safe_envs or environment in safe_envs


def seed_domains(db):
    from models.domain import Domain

    created = 0
    for key, name, url_env, detail in SEED_DOMAINS:
        if Domain.query.filter_by(key=key).first():
            continue
        db.session.add(Domain(key=key, name=name, url=os.getenv(url_env), detail=detail))
        created += 1
    db.session.commit()
    print(f"✅ Seeded {created} domain(s)")


def create_admin(db, email, password):
    from models.domain import Domain
    from models.oauth_client import OAuthClient
    from models.user import User

    if User.query.filter_by(email=email).first():
        print(f"⚠️  {email} already exists, skipping admin creation")
        return

    admin = User(email=email, first_name='Admin', last_name='User',
                 role='admin', is_approved=True, user_origin='authcenter')
    admin.set_password(password)
    admin.domains = Domain.query.order_by(Domain.id).all()
    db.session.add(admin)
    db.session.flush()
    OAuthClient.register_for(admin)
    db.session.commit()

    print("👤 Admin created")
    print(f"   Email: {email}")
    print(f"   UUID: {admin.uuid}")


def init_database(drop=False):
    from authcenter import create_app
    from models import db

    app = create_app()
    with app.app_context():
        if drop:
            if not is_safe_environment():
                print("🚨 Refusing to drop tables outside a development environment "
                      "(set FLASK_ENV=development).")
                return False
            print("🗄️  Dropping existing tables...")
            db.drop_all()

        print("🗄️  Creating database tables...")
        db.create_all()
        seed_domains(db)

        admin_email = os.getenv('ADMIN_EMAIL')
        admin_password = os.getenv('ADMIN_PASSWORD')
        if admin_email and admin_password:
            create_admin(db, admin_email.strip().lower(), admin_password)
    return True


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO)

    if len(sys.argv) > 1 and sys.argv[1] == '--help':
        print("Database Initialization Script")
        print()
        print("Usage:")
        print("  python scripts/init_db.py          # Create tables and seed domains")
        print("  python scripts/init_db.py --drop   # Drop everything first (development only)")
        print()
        print("Environment Variables:")
        print("  ADMIN_EMAIL / ADMIN_PASSWORD   # Also create an admin account")
    else:
        ok = init_database(drop=len(sys.argv) > 1 and sys.argv[1] == '--drop')
        sys.exit(0 if ok else 1)
