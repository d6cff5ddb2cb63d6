"""
Chat application configuration.

This app provides the marketplace chat system with:
- Direct buyer/seller conversations, unique per pair
- Order-related and support conversations
- Message dedup, soft deletion and read tracking
- Presence and realtime delivery over WebSockets
"""

import atexit

from django.apps import AppConfig


class ChatConfig(AppConfig):
    """Configuration for the chat application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "chat"
    verbose_name = "Chat"

    def ready(self):
        from chat.presence import reset_presence_tracker

        # Presence is built lazily on first connection and dropped at exit
        atexit.register(reset_presence_tracker)
