"""
Test configuration and fixtures for chat tests.

This module provides:
- User fixtures for a marketplace buyer, seller and an outsider
- Conversation fixtures created through the service layer
- API client helpers for authenticated requests
- Access tokens for WebSocket handshakes

Usage:
    def test_example(direct_conversation, buyer_client):
        response = buyer_client.get(f'/api/v1/chat/conversations/{direct_conversation.id}/')
        assert response.status_code == 200
"""

import pytest
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from authentication.tests.factories import UserFactory
from chat.services import ConversationService


def token_for(user) -> str:
    return str(RefreshToken.for_user(user).access_token)


def client_for(user) -> APIClient:
    client = APIClient()
    client.credentials(HTTP_AUTHORIZATION=f"Bearer {token_for(user)}")
    return client


# =============================================================================
# User Fixtures
# =============================================================================


@pytest.fixture
def buyer(db):
    return UserFactory(name="Alice Buyer", email="alice@example.com")


@pytest.fixture
def seller(db):
    return UserFactory(name="Bob Seller", email="bob@example.com")


@pytest.fixture
def outsider(db):
    """A user who is not a participant in any test conversation."""
    return UserFactory(name="Eve Outsider", email="eve@example.com")


# =============================================================================
# Conversation Fixtures
# =============================================================================


@pytest.fixture
def direct_conversation(buyer, seller):
    """Direct conversation between buyer and seller, no messages."""
    return ConversationService.find_or_create_direct(buyer.id, seller.id)


# =============================================================================
# API Client Fixtures
# =============================================================================


@pytest.fixture
def buyer_client(buyer):
    return client_for(buyer)


@pytest.fixture
def seller_client(seller):
    return client_for(seller)


@pytest.fixture
def outsider_client(outsider):
    return client_for(outsider)


@pytest.fixture
def buyer_token(buyer):
    return token_for(buyer)


@pytest.fixture
def seller_token(seller):
    return token_for(seller)


@pytest.fixture
def outsider_token(outsider):
    return token_for(outsider)
