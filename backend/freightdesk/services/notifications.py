from __future__ import annotations
import logging
from typing import Optional
from freightdesk import get_db
from freightdesk.models.notification import Notification

logger = logging.getLogger(__name__)


def notify(user_id: int, title: str, message: str, category: str, type: str = Notification.TYPE_INFO,
           action_url: Optional[str] = None, action_label: Optional[str] = None) -> Notification:
    """Queue a notification for user_id in the current session (caller commits)."""
    n = Notification(
        user_id=user_id,
        title=title,
        message=message,
        type=type,
        category=category,
        action_url=action_url,
        action_label=action_label,
    )
    get_db().add(n)
    logger.debug('notification queued for user %s: %s', user_id, category)
    return n
