"""Timestamp helpers.

Datetimes are stored naive in UTC, matching the ``DateTime`` columns.
"""
from datetime import datetime, timezone


def utcnow():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def from_epoch(seconds):
    return datetime.fromtimestamp(seconds, tz=timezone.utc).replace(tzinfo=None)


def isoformat(value):
    return value.isoformat() if value else None
