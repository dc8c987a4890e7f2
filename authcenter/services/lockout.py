"""Failed-login counter and temporary account lock."""
import logging
from datetime import timedelta

from flask import current_app
from sqlalchemy import or_, update

from models import db
from models.user import User
from utils.config import LOCKOUT_POLICIES, LockoutPolicy
from utils.timestamps import utcnow

logger = logging.getLogger(__name__)


def current_policy() -> LockoutPolicy:
    return LOCKOUT_POLICIES[current_app.config.get('LOCKOUT_POLICY', 'standard')]


class LockoutTracker:
    """Per-user lockout state.

    Every mutation is a single conditional UPDATE on the user row, so two
    concurrent failures for the same account cannot lose an increment and
    a success cannot clear a lock whose window has not elapsed.
    """

    def __init__(self, policy: LockoutPolicy = None):
        self.policy = policy or current_policy()

    @staticmethod
    def is_locked(user: User) -> bool:
        return user.is_locked(utcnow())

    def record_failure(self, user: User) -> bool:
        """Count a failed attempt; returns True when this call applied the lock."""
        now = utcnow()
        db.session.execute(
            update(User)
            .where(User.id == user.id)
            .values(failed_attempts=User.failed_attempts + 1)
        )
        result = db.session.execute(
            update(User)
            .where(
                User.id == user.id,
                User.failed_attempts >= self.policy.max_attempts,
                or_(User.locked_until.is_(None), User.locked_until <= now),
            )
            .values(locked_until=now + timedelta(minutes=self.policy.lock_minutes))
        )
        db.session.commit()
        db.session.refresh(user)

        locked = result.rowcount > 0
        if locked:
            logger.warning(
                f"User {user.uuid} locked until {user.locked_until} "
                f"after {user.failed_attempts} failed attempts ({self.policy.name} policy)"
            )
        return locked

    def clear_failures(self, user: User) -> None:
        now = utcnow()
        db.session.execute(
            update(User)
            .where(
                User.id == user.id,
                or_(User.locked_until.is_(None), User.locked_until <= now),
            )
            .values(failed_attempts=0, locked_until=None)
        )
        db.session.commit()
        db.session.refresh(user)

    @staticmethod
    def unlock(user: User) -> None:
        """Administrative unlock, regardless of the lock window."""
        user.failed_attempts = 0
        user.locked_until = None
        db.session.commit()
