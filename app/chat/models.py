"""
Chat system models.

This module defines the durable state of the marketplace chat:
- Direct conversations between exactly two users (buyer and seller)
- Order-related and support conversations created explicitly

Models:
    Conversation: Container for participants and messages
    Participant: User membership with read cursor and unread counter
    Message: Individual message within a conversation
    MessageReceipt: Per-user read receipt for a message

Design Decisions:
    - At most one active direct conversation per user pair, enforced by a
      partial unique constraint on participant_key rather than by
      application-level locking
    - Derived state (last message cache, unread counters, sequence) is
      written explicitly by chat.services in the same transaction as the
      append; there are no save() hooks
    - Messages carry a per-conversation sequence number; ordering by
      sequence is the persisted order
    - Conversations are never deleted, only deactivated; messages are only
      soft deleted
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone

from chat.constants import MESSAGE_CONFIG
from core.model_mixins import SoftDeleteMixin, UUIDPrimaryKeyMixin
from core.models import BaseModel

if TYPE_CHECKING:
    from chat.types import LastMessage


class ConversationKind(models.TextChoices):
    """
    Kind of conversation.

    DIRECT: Exactly two participants, unique per pair while active
    ORDER_RELATED: Created for a specific order, references it
    SUPPORT: Customer support thread
    """

    DIRECT = "direct", "Direct"
    ORDER_RELATED = "order_related", "Order related"
    SUPPORT = "support", "Support"


class MessageType(models.TextChoices):
    """Type of message content."""

    TEXT = "text", "Text"
    IMAGE = "image", "Image"
    FILE = "file", "File"
    LOCATION = "location", "Location"
    ORDER_UPDATE = "order_update", "Order update"


class AttachmentType(models.TextChoices):
    """Type of an inline attachment."""

    IMAGE = "image", "Image"
    DOCUMENT = "document", "Document"
    LOCATION = "location", "Location"


class Conversation(UUIDPrimaryKeyMixin, BaseModel):
    """
    A conversation between two or more users.

    Fields:
        kind: direct, order_related or support
        participant_key: Sorted participant ids joined by ":" (direct only,
            blank for other kinds)
        related_order: Opaque order reference (order catalog is external)
        related_product: Opaque product reference (product catalog is external)
        last_message_content / last_message_sender / last_message_at:
            Cache of the last non-deleted message
        message_sequence: Last sequence number handed to a message
        total_messages: Number of non-deleted messages
        is_blocked / blocked_by: Block state
        is_active: False once deactivated

    Constraints:
        - UniqueConstraint(participant_key) WHERE kind=direct AND is_active:
          one active direct conversation per pair
    """

    kind = models.CharField(
        max_length=20,
        choices=ConversationKind.choices,
        default=ConversationKind.DIRECT,
        db_index=True,
        help_text="Kind of conversation",
    )

    participant_key = models.CharField(
        max_length=255,
        blank=True,
        default="",
        db_index=True,
        help_text="Sorted participant ids of a direct conversation",
    )

    related_order = models.CharField(
        max_length=64,
        blank=True,
        default="",
        help_text="Identifier of the order this conversation is about",
    )

    related_product = models.CharField(
        max_length=64,
        blank=True,
        default="",
        help_text="Identifier of the product this conversation is about",
    )

    last_message_content = models.CharField(
        max_length=MESSAGE_CONFIG.MAX_CONTENT_LENGTH,
        blank=True,
        default="",
        help_text="Content of the last non-deleted message",
    )

    last_message_sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        help_text="Sender of the last non-deleted message",
    )

    last_message_at = models.DateTimeField(
        null=True,
        blank=True,
        db_index=True,
        help_text="Timestamp of the last non-deleted message (for sorting)",
    )

    message_sequence = models.PositiveIntegerField(
        default=0,
        help_text="Sequence number of the most recently appended message",
    )

    total_messages = models.PositiveIntegerField(
        default=0,
        help_text="Number of non-deleted messages",
    )

    is_blocked = models.BooleanField(
        default=False,
        help_text="Whether a participant blocked this conversation",
    )

    blocked_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        help_text="Participant who blocked the conversation",
    )

    is_active = models.BooleanField(
        default=True,
        db_index=True,
        help_text="Inactive conversations are hidden and free the direct pair",
    )

    class Meta:
        db_table = "chat_conversation"
        ordering = ["-last_message_at", "-created_at"]
        indexes = [
            models.Index(
                fields=["-last_message_at"],
                name="chat_conv_last_msg_idx",
                condition=Q(is_active=True),
            ),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["participant_key"],
                condition=Q(kind="direct", is_active=True),
                name="unique_active_direct_conversation",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.get_kind_display()}({self.pk})"

    @staticmethod
    def build_participant_key(*user_ids: uuid.UUID | str) -> str:
        """
        Deterministic key for a participant set.

        Order-insensitive: build_participant_key(a, b) == build_participant_key(b, a).
        """
        return ":".join(sorted({str(user_id) for user_id in user_ids}))

    @property
    def is_direct(self) -> bool:
        return self.kind == ConversationKind.DIRECT

    @property
    def last_message(self) -> LastMessage | None:
        """The cached last message, or None when no message remains."""
        from chat.types import LastMessage

        if self.last_message_at is None:
            return None
        return LastMessage(
            content=self.last_message_content,
            sender_id=self.last_message_sender_id,
            timestamp=self.last_message_at,
        )

    def get_participant(self, user_id: uuid.UUID | str) -> Participant | None:
        return self.participants.filter(user_id=user_id).first()

    def has_participant(self, user_id: uuid.UUID | str) -> bool:
        return self.participants.filter(user_id=user_id).exists()

    def is_blocked_for(self, user_id: uuid.UUID | str) -> bool:
        """True if blocked by someone other than user_id."""
        return self.is_blocked and str(self.blocked_by_id) != str(user_id)


class Participant(BaseModel):
    """
    A user's membership in a conversation.

    Fields:
        conversation: Conversation this participation belongs to
        user: Participating user
        joined_at: When the user joined
        last_seen_at: Last time the user read the conversation
        unread_count: Messages from others not yet read by this user

    Constraints:
        - UniqueConstraint(conversation, user)
    """

    conversation = models.ForeignKey(
        Conversation,
        on_delete=models.CASCADE,
        related_name="participants",
        help_text="Conversation this participation belongs to",
    )

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="chat_participations",
        help_text="User participating in the conversation",
    )

    joined_at = models.DateTimeField(
        default=timezone.now,
        help_text="When the user joined this conversation",
    )

    last_seen_at = models.DateTimeField(
        default=timezone.now,
        help_text="Last time the user marked the conversation as read",
    )

    unread_count = models.PositiveIntegerField(
        default=0,
        help_text="Unread messages for this user",
    )

    class Meta:
        db_table = "chat_participant"
        ordering = ["joined_at", "id"]
        indexes = [
            models.Index(
                fields=["user", "conversation"],
                name="chat_part_user_conv_idx",
            ),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["conversation", "user"],
                name="unique_conversation_participant",
            ),
        ]

    def __str__(self) -> str:
        return f"Participant: {self.user_id} in {self.conversation_id} ({self.unread_count} unread)"


class Message(UUIDPrimaryKeyMixin, SoftDeleteMixin, BaseModel):
    """
    A message within a conversation.

    Immutable after creation: conversation, sender, sequence, content,
    message_type, attachments, created_at. Mutable: is_deleted, deleted_at,
    edited_at and the read receipts.

    Soft Delete Behavior:
        When is_deleted=True:
        - Content is preserved in database for audit
        - API returns "[Message deleted]" as content
        - Excluded from default listings, unread counters and the
          conversation's last message cache
        - Still retrievable by id

    Fields:
        conversation: Conversation this message belongs to
        sender: Author
        sequence: Position in the conversation, assigned under row lock
        content: Trimmed text (or placeholder for non-text types)
        message_type: text, image, file, location or order_update
        attachments: List of {type, url, filename, size, coordinates, address}
        reply_to: Earlier message in the same conversation being answered
        edited_at: Set if the message was edited
    """

    conversation = models.ForeignKey(
        Conversation,
        on_delete=models.CASCADE,
        related_name="messages",
        help_text="Conversation this message belongs to",
    )

    sender = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="sent_chat_messages",
        help_text="User who sent this message",
    )

    sequence = models.PositiveIntegerField(
        help_text="Position of this message within its conversation",
    )

    message_type = models.CharField(
        max_length=20,
        choices=MessageType.choices,
        default=MessageType.TEXT,
        help_text="Type of message content",
    )

    content = models.CharField(
        max_length=MESSAGE_CONFIG.MAX_CONTENT_LENGTH,
        help_text="Trimmed message text",
    )

    attachments = models.JSONField(
        default=list,
        blank=True,
        help_text="Inline attachments (URLs, file metadata, coordinates)",
    )

    reply_to = models.ForeignKey(
        "self",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="replies",
        help_text="Message this one replies to",
    )

    edited_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the message was last edited",
    )

    class Meta:
        db_table = "chat_message"
        ordering = ["sequence"]
        indexes = [
            # Dedup lookups: same sender, recent, in one conversation
            models.Index(
                fields=["conversation", "sender", "-created_at"],
                name="chat_msg_dedup_idx",
            ),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["conversation", "sequence"],
                name="unique_message_sequence",
            ),
        ]

    def __str__(self) -> str:
        content_preview = (
            self.content[:50] + "..." if len(self.content) > 50 else self.content
        )
        deleted_str = " [deleted]" if self.is_deleted else ""
        return f"#{self.sequence} {self.sender_id}: {content_preview}{deleted_str}"

    def get_display_content(self) -> str:
        if self.is_deleted:
            return MESSAGE_CONFIG.DELETED_DISPLAY_CONTENT
        return self.content


class MessageReceipt(models.Model):
    """
    Records that a user has read a message.

    The sender's receipt is created together with the message.
    """

    message = models.ForeignKey(
        Message,
        on_delete=models.CASCADE,
        related_name="receipts",
    )

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="chat_receipts",
    )

    read_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "chat_message_receipt"
        ordering = ["read_at", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["message", "user"],
                name="unique_message_receipt",
            ),
        ]

    def __str__(self) -> str:
        return f"Receipt: {self.user_id} read {self.message_id}"
