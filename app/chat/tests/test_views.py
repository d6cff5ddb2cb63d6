"""
Tests for chat API views.

This module tests:
- Conversation endpoints: list, create, direct, retrieve, read, block, deactivate
- Message endpoints: list, send (including dedup), retrieve, delete
- Search and presence endpoints
- Error rendering through the application exception handler

Realtime publishing is patched out here; the consumer tests cover delivery.
"""

import uuid
from unittest import mock

import pytest
from rest_framework import status
from rest_framework.test import APIClient

from authentication.types import UserSummary
from chat.presence import get_presence_tracker
from chat.services import MessageService, ReadReceiptService

BASE_URL = "/api/v1/chat"


def conversation_url(conversation, suffix=""):
    return f"{BASE_URL}/conversations/{conversation.id}/{suffix}"


def messages_url(conversation, message_id=None):
    url = conversation_url(conversation, "messages/")
    return f"{url}{message_id}/" if message_id else url


@pytest.fixture(autouse=True)
def publish():
    with mock.patch("chat.views.realtime.publish_from_sync") as publish_mock:
        yield publish_mock


# =============================================================================
# Authentication
# =============================================================================


@pytest.mark.django_db
class TestAuthenticationRequired:
    @pytest.mark.parametrize(
        "url",
        [
            f"{BASE_URL}/conversations/",
            f"{BASE_URL}/search/?q=bike",
            f"{BASE_URL}/presence/",
        ],
    )
    def test_anonymous_request_is_rejected(self, url):
        response = APIClient().get(url)

        assert response.status_code == status.HTTP_401_UNAUTHORIZED


# =============================================================================
# Conversations
# =============================================================================


@pytest.mark.django_db
class TestDirectConversation:
    def test_creates_then_returns_existing(self, buyer_client, seller_client, buyer, seller):
        created = buyer_client.post(
            f"{BASE_URL}/conversations/direct/", {"user_id": str(seller.id)}, format="json"
        )
        existing = seller_client.post(
            f"{BASE_URL}/conversations/direct/", {"user_id": str(buyer.id)}, format="json"
        )

        assert created.status_code == status.HTTP_201_CREATED
        assert existing.status_code == status.HTTP_200_OK
        assert created.data["id"] == existing.data["id"]
        assert created.data["kind"] == "direct"
        assert {p["user"]["id"] for p in created.data["participants"]} == {
            str(buyer.id),
            str(seller.id),
        }

    def test_self_conversation(self, buyer_client, buyer):
        response = buyer_client.post(
            f"{BASE_URL}/conversations/direct/", {"user_id": str(buyer.id)}, format="json"
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data["error_code"] == "SELF_CONVERSATION"

    def test_unknown_user(self, buyer_client):
        response = buyer_client.post(
            f"{BASE_URL}/conversations/direct/", {"user_id": str(uuid.uuid4())}, format="json"
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data["error_code"] == "UNKNOWN_USER"

    def test_malformed_body(self, buyer_client):
        response = buyer_client.post(
            f"{BASE_URL}/conversations/direct/", {"user_id": "seller"}, format="json"
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert "user_id" in response.data


@pytest.mark.django_db
class TestCreateConversation:
    def test_order_related(self, buyer_client, seller):
        response = buyer_client.post(
            f"{BASE_URL}/conversations/",
            {
                "kind": "order_related",
                "participant_ids": [str(seller.id)],
                "related_order": "ORD-1001",
            },
            format="json",
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data["kind"] == "order_related"
        assert response.data["related_order"] == "ORD-1001"
        assert len(response.data["participants"]) == 2

    def test_missing_order_reference(self, buyer_client, seller):
        response = buyer_client.post(
            f"{BASE_URL}/conversations/",
            {"kind": "order_related", "participant_ids": [str(seller.id)]},
            format="json",
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data["error_code"] == "MISSING_RELATED_ORDER"

    def test_direct_kind_is_not_accepted(self, buyer_client, seller):
        response = buyer_client.post(
            f"{BASE_URL}/conversations/",
            {"kind": "direct", "participant_ids": [str(seller.id)]},
            format="json",
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert "kind" in response.data


@pytest.mark.django_db
class TestListConversations:
    def test_lists_with_unread_count_and_last_message(
        self, seller_client, direct_conversation, buyer
    ):
        MessageService.append_message(direct_conversation.id, buyer.id, "Is this available?")

        response = seller_client.get(f"{BASE_URL}/conversations/")

        assert response.status_code == status.HTTP_200_OK
        assert response.data["total"] == 1
        assert response.data["has_next"] is False
        item = response.data["results"][0]
        assert item["id"] == str(direct_conversation.id)
        assert item["unread_count"] == 1
        assert item["last_message"]["content"] == "Is this available?"
        assert item["last_message"]["sender_id"] == str(buyer.id)

    def test_outsider_sees_nothing(self, outsider_client, direct_conversation):
        response = outsider_client.get(f"{BASE_URL}/conversations/")

        assert response.data["results"] == []

    def test_invalid_page(self, buyer_client):
        response = buyer_client.get(f"{BASE_URL}/conversations/?page=0")

        assert response.status_code == status.HTTP_400_BAD_REQUEST


@pytest.mark.django_db
class TestRetrieveConversation:
    def test_returns_messages_and_marks_read(
        self, seller_client, direct_conversation, buyer, seller, publish
    ):
        MessageService.append_message(direct_conversation.id, buyer.id, "one")
        MessageService.append_message(direct_conversation.id, buyer.id, "two")

        response = seller_client.get(conversation_url(direct_conversation))

        assert response.status_code == status.HTTP_200_OK
        assert response.data["conversation"]["unread_count"] == 0
        assert [m["content"] for m in response.data["messages"]["results"]] == ["one", "two"]
        assert ReadReceiptService.unread_count_for(direct_conversation.id, seller.id) == 0
        publish.assert_called_once()

    def test_nothing_to_mark_publishes_nothing(self, buyer_client, direct_conversation, publish):
        response = buyer_client.get(conversation_url(direct_conversation))

        assert response.status_code == status.HTTP_200_OK
        publish.assert_not_called()

    def test_outsider_is_forbidden(self, outsider_client, direct_conversation):
        response = outsider_client.get(conversation_url(direct_conversation))

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.data["error_code"] == "NOT_PARTICIPANT"

    def test_unknown_conversation(self, buyer_client):
        response = buyer_client.get(f"{BASE_URL}/conversations/{uuid.uuid4()}/")

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.data["error_code"] == "CONVERSATION_NOT_FOUND"


@pytest.mark.django_db
class TestConversationActions:
    def test_read(self, seller_client, direct_conversation, buyer, publish):
        MessageService.append_message(direct_conversation.id, buyer.id, "hello")

        response = seller_client.post(conversation_url(direct_conversation, "read/"))

        assert response.status_code == status.HTTP_200_OK
        assert response.data["marked_count"] == 1
        publish.assert_called_once()

    def test_block_and_blocked_send(self, buyer_client, seller_client, direct_conversation, buyer):
        response = buyer_client.post(conversation_url(direct_conversation, "block/"))
        assert response.status_code == status.HTTP_200_OK
        assert response.data["is_blocked"] is True
        assert response.data["blocked_by_id"] == str(buyer.id)

        send = seller_client.post(messages_url(direct_conversation), {"content": "hi"}, format="json")
        assert send.status_code == status.HTTP_403_FORBIDDEN
        assert send.data["error_code"] == "CONVERSATION_BLOCKED"

        unblock = seller_client.post(conversation_url(direct_conversation, "block/"))
        assert unblock.status_code == status.HTTP_403_FORBIDDEN
        assert unblock.data["error_code"] == "BLOCKED_BY_OTHER"

    def test_deactivate(self, buyer_client, direct_conversation):
        response = buyer_client.post(conversation_url(direct_conversation, "deactivate/"))

        assert response.status_code == status.HTTP_200_OK
        assert response.data["is_active"] is False
        assert buyer_client.get(f"{BASE_URL}/conversations/").data["results"] == []


# =============================================================================
# Messages
# =============================================================================


@pytest.mark.django_db
class TestSendMessage:
    def test_creates_and_publishes(self, buyer_client, direct_conversation, buyer, publish):
        response = buyer_client.post(
            messages_url(direct_conversation), {"content": "Is this available?"}, format="json"
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data["is_duplicate"] is False
        message = response.data["message"]
        assert message["content"] == "Is this available?"
        assert message["sequence"] == 1
        assert message["sender_id"] == str(buyer.id)
        assert message["read_by"] == [str(buyer.id)]
        publish.assert_called_once()

    def test_duplicate_returns_existing_without_publishing(
        self, buyer_client, direct_conversation, publish
    ):
        first = buyer_client.post(messages_url(direct_conversation), {"content": "ping"}, format="json")
        second = buyer_client.post(messages_url(direct_conversation), {"content": "ping"}, format="json")

        assert second.status_code == status.HTTP_200_OK
        assert second.data["is_duplicate"] is True
        assert second.data["message"]["id"] == first.data["message"]["id"]
        assert publish.call_count == 1

    def test_image_with_attachment(self, buyer_client, direct_conversation):
        response = buyer_client.post(
            messages_url(direct_conversation),
            {
                "message_type": "image",
                "attachments": [{"type": "image", "url": "https://cdn.example.com/bike.jpg"}],
            },
            format="json",
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data["message"]["content"] == "Sent an image"
        assert response.data["message"]["attachments"][0]["url"] == "https://cdn.example.com/bike.jpg"

    def test_empty_text(self, buyer_client, direct_conversation):
        response = buyer_client.post(messages_url(direct_conversation), {"content": "  "}, format="json")

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data["error_code"] == "EMPTY_CONTENT"

    def test_too_long(self, buyer_client, direct_conversation):
        response = buyer_client.post(
            messages_url(direct_conversation), {"content": "x" * 1001}, format="json"
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data["error_code"] == "CONTENT_TOO_LONG"

    def test_outsider_is_forbidden(self, outsider_client, direct_conversation):
        response = outsider_client.post(
            messages_url(direct_conversation), {"content": "hi"}, format="json"
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN


@pytest.mark.django_db
class TestListAndRetrieveMessages:
    def test_pagination(self, buyer_client, direct_conversation, buyer):
        for index in range(5):
            MessageService.append_message(direct_conversation.id, buyer.id, f"m{index}")

        response = buyer_client.get(f"{messages_url(direct_conversation)}?page=2&limit=2")

        assert response.status_code == status.HTTP_200_OK
        assert [m["content"] for m in response.data["results"]] == ["m1", "m2"]
        assert response.data["total"] == 5
        assert response.data["has_older"] is True

    def test_deleted_message_detail_shows_placeholder(self, buyer_client, direct_conversation, buyer):
        message = MessageService.append_message(direct_conversation.id, buyer.id, "secret").message
        MessageService.delete_message(direct_conversation.id, message.id, buyer.id)

        response = buyer_client.get(messages_url(direct_conversation, message.id))

        assert response.status_code == status.HTTP_200_OK
        assert response.data["is_deleted"] is True
        assert response.data["content"] == "[Message deleted]"


@pytest.mark.django_db
class TestDeleteMessage:
    def test_author_deletes(self, buyer_client, direct_conversation, buyer):
        message = MessageService.append_message(direct_conversation.id, buyer.id, "oops").message

        response = buyer_client.delete(messages_url(direct_conversation, message.id))

        assert response.status_code == status.HTTP_204_NO_CONTENT
        assert buyer_client.get(messages_url(direct_conversation)).data["results"] == []

    def test_other_participant_cannot_delete(self, seller_client, direct_conversation, buyer):
        message = MessageService.append_message(direct_conversation.id, buyer.id, "mine").message

        response = seller_client.delete(messages_url(direct_conversation, message.id))

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.data["error_code"] == "NOT_MESSAGE_AUTHOR"

    def test_unknown_message(self, buyer_client, direct_conversation):
        response = buyer_client.delete(messages_url(direct_conversation, uuid.uuid4()))

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.data["error_code"] == "MESSAGE_NOT_FOUND"


# =============================================================================
# Search and Presence
# =============================================================================


@pytest.mark.django_db
class TestSearch:
    def test_returns_users_conversations_and_messages(
        self, buyer_client, direct_conversation, buyer, seller
    ):
        MessageService.append_message(direct_conversation.id, buyer.id, "Bob, is the bike sold?")

        response = buyer_client.get(f"{BASE_URL}/search/?q=bob")

        assert response.status_code == status.HTTP_200_OK
        assert response.data["query"] == "bob"
        assert [u["id"] for u in response.data["users"]] == [str(seller.id)]
        assert [c["id"] for c in response.data["conversations"]] == [str(direct_conversation.id)]
        assert len(response.data["messages"]) == 1

    def test_missing_query(self, buyer_client):
        response = buyer_client.get(f"{BASE_URL}/search/")

        assert response.status_code == status.HTTP_400_BAD_REQUEST


@pytest.mark.django_db
class TestPresence:
    def test_online_count(self, buyer_client, seller):
        get_presence_tracker().mark_online(seller.id, "conn", UserSummary.from_user(seller))

        response = buyer_client.get(f"{BASE_URL}/presence/")

        assert response.data == {"online_count": 1}

    def test_user_presence(self, buyer_client, seller, outsider):
        get_presence_tracker().mark_online(seller.id, "conn")

        online = buyer_client.get(f"{BASE_URL}/presence/{seller.id}/")
        offline = buyer_client.get(f"{BASE_URL}/presence/{outsider.id}/")

        assert online.data == {"user_id": str(seller.id), "is_online": True}
        assert offline.data["is_online"] is False
