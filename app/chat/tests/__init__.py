"""
Tests for chat app.

This package contains test modules for:
- test_models.py: Conversation, Message model tests
- test_services.py: Conversation store, ingestion, read tracking, search
- test_presence.py: Presence trackers
- test_consumers.py: WebSocket consumer tests
- test_middleware.py: WebSocket JWT authentication
- test_views.py: REST API endpoint tests
- test_tasks.py: Celery task tests
- test_integration.py: Buyer/seller end-to-end journey

Usage:
    pytest app/chat/tests/
    pytest app/chat/tests/test_consumers.py
"""
