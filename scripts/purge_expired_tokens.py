#!/usr/bin/env python3
"""Delete expired refresh tokens and token blacklist entries (run from cron)."""
import os
import sys

# Add project root to path
project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, project_root)


def purge():
    from authcenter import create_app
    from authcenter.services.token_service import TokenService

    app = create_app()
    with app.app_context():
        refresh_count, blacklist_count = TokenService.purge_expired()
    print(f"🧹 Removed {refresh_count} refresh token(s) and {blacklist_count} blacklist entr(ies)")


if __name__ == '__main__':
    purge()
