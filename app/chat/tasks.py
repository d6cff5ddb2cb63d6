"""
Celery tasks for chat app.

This module defines async tasks for:
- Persisting a user's last-seen time once their last connection closes

Related files:
    - consumers.py: Enqueues record_last_seen on disconnect
    - authentication/services.py: UserDirectory.mark_last_seen

Usage:
    from chat.tasks import record_last_seen

    record_last_seen.delay(str(user.id), timezone.now().isoformat())
"""

import logging

from celery import shared_task
from django.utils.dateparse import parse_datetime

logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    autoretry_for=(ConnectionError,),
    retry_backoff=True,
    retry_kwargs={"max_retries": 3},
)
def record_last_seen(self, user_id: str, seen_at: str) -> bool:
    """
    Store the time a user went offline.

    Out-of-order deliveries never move last_seen backwards.

    Args:
        user_id: UUID string of the user
        seen_at: ISO 8601 timestamp of the disconnect

    Returns:
        True if the stored value changed
    """
    from authentication.services import UserDirectory

    timestamp = parse_datetime(seen_at)
    if timestamp is None:
        logger.error(f"Invalid last_seen timestamp for user {user_id}: {seen_at!r}")
        return False

    updated = UserDirectory.mark_last_seen(user_id, timestamp)
    if updated:
        logger.debug(f"Recorded last_seen {seen_at} for user {user_id}")
    return updated
