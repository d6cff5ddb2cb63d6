"""
Tests for authentication app.

This package contains test modules for:
- test_services.py: UserDirectory and TokenService tests
- test_views.py: Token and current-user endpoint tests

Usage:
    pytest app/authentication/tests/
"""
