"""
Serializers for chat API.

This module provides serializers for the chat system:
- Conversation serializers (read, create)
- Participant serializers (read)
- Message serializers (read, create)

The same read serializers render realtime event payloads, so a message
looks identical whether it arrives over REST or over the WebSocket.

Serializer Hierarchy:
    ConversationSerializer: Conversation with participants, last message
        and the requesting user's unread count
    DirectConversationCreateSerializer: Find-or-create with another user
    ConversationCreateSerializer: Order-related / support conversation

    ParticipantSerializer: Participant with expanded user

    MessageSerializer: Message with soft-delete handling and readers
    MessageCreateSerializer: Send new message

Design Decisions:
    - Read and write serializers are separate for clarity
    - Soft-deleted message content is replaced with placeholder
    - Write serializers only check shape; business rules live in services
"""

from __future__ import annotations

from rest_framework import serializers

from authentication.serializers import UserSummarySerializer
from chat.constants import ATTACHMENT_CONFIG, PAGINATION_CONFIG
from chat.models import (
    AttachmentType,
    Conversation,
    ConversationKind,
    Message,
    MessageType,
    Participant,
)


# =============================================================================
# Attachment Serializers
# =============================================================================


class CoordinatesSerializer(serializers.Serializer):
    latitude = serializers.FloatField(min_value=-90, max_value=90)
    longitude = serializers.FloatField(min_value=-180, max_value=180)


class AttachmentSerializer(serializers.Serializer):
    """One inline attachment. File storage is external; only the URL is kept."""

    type = serializers.ChoiceField(choices=AttachmentType.choices)
    url = serializers.CharField(
        max_length=ATTACHMENT_CONFIG.MAX_URL_LENGTH, required=False, allow_blank=True
    )
    filename = serializers.CharField(
        max_length=ATTACHMENT_CONFIG.MAX_FILENAME_LENGTH, required=False, allow_blank=True
    )
    size = serializers.IntegerField(min_value=0, required=False)
    coordinates = CoordinatesSerializer(required=False)
    address = serializers.CharField(
        max_length=ATTACHMENT_CONFIG.MAX_ADDRESS_LENGTH, required=False, allow_blank=True
    )


# =============================================================================
# Message Serializers
# =============================================================================


class MessageSerializer(serializers.ModelSerializer):
    """
    Message with expanded sender.

    - content: "[Message deleted]" for soft-deleted messages
    - sender_id: bare reference, always present
    - sender: expanded summary (null if the account was removed)
    - read_by: ids of users holding a receipt (sender included)
    """

    conversation_id = serializers.UUIDField(read_only=True)
    sender_id = serializers.UUIDField(read_only=True, allow_null=True)
    sender = UserSummarySerializer(read_only=True, allow_null=True)
    content = serializers.SerializerMethodField(help_text="Message content (replaced if deleted)")
    reply_to_id = serializers.UUIDField(read_only=True, allow_null=True)
    read_by = serializers.SerializerMethodField(help_text="Users who have read this message")

    class Meta:
        model = Message
        fields = [
            "id",
            "conversation_id",
            "sequence",
            "sender_id",
            "sender",
            "message_type",
            "content",
            "attachments",
            "reply_to_id",
            "is_deleted",
            "edited_at",
            "read_by",
            "created_at",
        ]
        read_only_fields = fields

    def get_content(self, obj: Message) -> str:
        return obj.get_display_content()

    def get_read_by(self, obj: Message) -> list[str]:
        return [str(receipt.user_id) for receipt in obj.receipts.all()]


class MessageCreateSerializer(serializers.Serializer):
    """
    Shape check for POST /conversations/{id}/messages/.

    Content trimming, placeholders and dedup are handled by
    MessageService.append_message.
    """

    content = serializers.CharField(
        required=False,
        allow_blank=True,
        trim_whitespace=False,
        default="",
    )
    message_type = serializers.ChoiceField(choices=MessageType.choices, default=MessageType.TEXT)
    attachments = AttachmentSerializer(many=True, required=False)
    reply_to = serializers.UUIDField(required=False, allow_null=True)


# =============================================================================
# Participant Serializers
# =============================================================================


class ParticipantSerializer(serializers.ModelSerializer):
    user = UserSummarySerializer(read_only=True)

    class Meta:
        model = Participant
        fields = ["user", "joined_at", "last_seen_at", "unread_count"]
        read_only_fields = fields


# =============================================================================
# Conversation Serializers
# =============================================================================


class ConversationSerializer(serializers.ModelSerializer):
    """
    Conversation as seen by one participant.

    unread_count is the requesting user's counter; pass the user in the
    serializer context as "user" (views pass request.user).
    """

    participants = ParticipantSerializer(many=True, read_only=True)
    last_message = serializers.SerializerMethodField()
    unread_count = serializers.SerializerMethodField()
    blocked_by_id = serializers.UUIDField(read_only=True, allow_null=True)

    class Meta:
        model = Conversation
        fields = [
            "id",
            "kind",
            "participants",
            "related_order",
            "related_product",
            "last_message",
            "total_messages",
            "unread_count",
            "is_blocked",
            "blocked_by_id",
            "is_active",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_last_message(self, obj: Conversation) -> dict | None:
        last = obj.last_message
        return last.to_dict() if last else None

    def get_unread_count(self, obj: Conversation) -> int:
        user = self.context.get("user")
        if user is None and self.context.get("request") is not None:
            user = self.context["request"].user
        if user is None:
            return 0
        for participant in obj.participants.all():
            if participant.user_id == user.id:
                return participant.unread_count
        return 0


class DirectConversationCreateSerializer(serializers.Serializer):
    user_id = serializers.UUIDField(help_text="The other participant")


class ConversationCreateSerializer(serializers.Serializer):
    """Create an order-related or support conversation."""

    kind = serializers.ChoiceField(
        choices=[
            (ConversationKind.ORDER_RELATED, ConversationKind.ORDER_RELATED.label),
            (ConversationKind.SUPPORT, ConversationKind.SUPPORT.label),
        ]
    )
    participant_ids = serializers.ListField(child=serializers.UUIDField(), min_length=1)
    related_order = serializers.CharField(max_length=64, required=False, allow_blank=True, default="")
    related_product = serializers.CharField(max_length=64, required=False, allow_blank=True, default="")


# =============================================================================
# Query / Response Serializers
# =============================================================================


class PageQuerySerializer(serializers.Serializer):
    page = serializers.IntegerField(min_value=1, required=False, default=1)
    limit = serializers.IntegerField(
        min_value=1, max_value=PAGINATION_CONFIG.MAX_PAGE_SIZE, required=False
    )
    page_size = serializers.IntegerField(
        min_value=1, max_value=PAGINATION_CONFIG.MAX_PAGE_SIZE, required=False
    )


class SearchQuerySerializer(serializers.Serializer):
    q = serializers.CharField(max_length=PAGINATION_CONFIG.SEARCH_MAX_QUERY_LENGTH)


class ReadResultSerializer(serializers.Serializer):
    conversation_id = serializers.UUIDField()
    user_id = serializers.UUIDField()
    marked_count = serializers.IntegerField()
    read_at = serializers.DateTimeField()


class PresenceSerializer(serializers.Serializer):
    user_id = serializers.UUIDField()
    is_online = serializers.BooleanField()
