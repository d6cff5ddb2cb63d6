"""
Celery configuration for the marketplace chat backend.

Celery runs work that should not hold up a WebSocket or HTTP request, such
as persisting a user's last-seen time after their final connection closes.

This configuration uses Redis as both the message broker and result backend.
Tasks are auto-discovered from all installed Django apps.

Usage:
    from chat.tasks import record_last_seen

    record_last_seen.delay(str(user.id), timezone.now().isoformat())

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

app.autodiscover_tasks()
