"""Audit trail entries written through the request's database session."""

from __future__ import annotations

import logging
from typing import Optional

from flask_login import current_user
from sqlalchemy.exc import SQLAlchemyError

from expenses.models import ActivityLog, db

logger = logging.getLogger(__name__)

MAX_ACTIVITY_LENGTH = 255


def _acting_user_id(user_id: Optional[int]) -> Optional[int]:
    if user_id is None and current_user and not current_user.is_anonymous:
        return current_user.id
    return user_id


def record_activity(activity: str, user_id: Optional[int] = None) -> ActivityLog:
    """Add an activity entry to the current transaction without committing."""
    entry = ActivityLog(
        user_id=_acting_user_id(user_id), activity=activity[:MAX_ACTIVITY_LENGTH]
    )
    db.session.add(entry)
    return entry


def log_activity(activity: str, user_id: Optional[int] = None) -> None:
    """Record and commit an activity performed by a user.

    A failed write is rolled back and logged; the request carries on.
    """
    try:
        record_activity(activity, user_id)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Failed to write activity log %r", activity)
