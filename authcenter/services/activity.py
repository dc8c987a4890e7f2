"""User activity log with duplicate suppression for login/logout bursts."""
import logging
from datetime import timedelta

from flask import has_request_context, request

from models import db
from models.user_activity import UserActivity
from utils.timestamps import utcnow

logger = logging.getLogger(__name__)

DEDUPE_WINDOW = timedelta(seconds=5)
DEDUPED_EVENTS = ('login', 'logout')


def log_activity(user, event_type, domain_id=None):
    """Record ``event_type`` for ``user``.

    A login or logout within five seconds of the same event for the same
    user is dropped; returns None in that case.
    """
    now = utcnow()
    if event_type in DEDUPED_EVENTS:
        recent = UserActivity.query.filter(
            UserActivity.user_id == user.id,
            UserActivity.event_type == event_type,
            UserActivity.event_time >= now - DEDUPE_WINDOW,
        ).first()
        if recent:
            logger.debug(f"Suppressed duplicate {event_type} activity for user {user.uuid}")
            return None

    activity = UserActivity(
        user_id=user.id,
        domain_id=domain_id,
        event_type=event_type,
        event_time=now,
        ip_address=request.remote_addr if has_request_context() else None,
        user_agent=(request.user_agent.string[:255] or None) if has_request_context() else None,
    )
    db.session.add(activity)
    db.session.commit()
    return activity
