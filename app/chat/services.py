"""
Chat system service layer.

This module provides the business logic for the chat system, encapsulating
all operations on conversations, messages and read state. REST views and
the WebSocket consumer both call into it; neither touches models directly
for writes.

Services:
    ConversationService: Conversation store (find-or-create, list, block, deactivate)
    MessageService: Message ingestion with dedup, soft delete, listing
    ReadReceiptService: Read cursors and unread counters
    SearchService: Substring search over users, conversations and messages

Design Principles:
    - Services are stateless (use class methods)
    - Expected failures raise core.exceptions / chat.exceptions subclasses
    - Every mutation of a conversation's derived state (last message,
      unread counters, sequence) happens inside one transaction holding
      the conversation row lock
    - The one-direct-conversation-per-pair rule is enforced by the
      database constraint; the service retries the lookup once on conflict

Usage:
    from chat.services import ConversationService, MessageService, ReadReceiptService

    conversation = ConversationService.find_or_create_direct(buyer.id, seller.id)

    result = MessageService.append_message(
        conversation_id=conversation.id,
        sender_id=buyer.id,
        content="Is this available?",
    )
    if result.is_duplicate:
        ...  # double submit collapsed into result.message

    ReadReceiptService.mark_read(conversation.id, seller.id)
"""

from __future__ import annotations

import math
import uuid
from datetime import timedelta
from typing import TYPE_CHECKING, Any

from django.db import IntegrityError
from django.db.models import F, Prefetch, Q
from django.utils import timezone

from authentication.services import UserDirectory
from chat.constants import ATTACHMENT_CONFIG, MESSAGE_CONFIG, PAGINATION_CONFIG
from chat.exceptions import (
    BlockedError,
    ConversationNotFoundError,
    DirectConversationRaceError,
    MessageNotFoundError,
    NotMessageAuthorError,
    NotParticipantError,
)
from chat.models import (
    AttachmentType,
    Conversation,
    ConversationKind,
    Message,
    MessageReceipt,
    MessageType,
    Participant,
)
from chat.types import (
    AppendResult,
    ConversationPage,
    MessagePage,
    ReadResult,
    SearchResults,
)
from core.exceptions import ValidationError
from core.services import BaseService

if TYPE_CHECKING:
    from collections.abc import Iterable


def _clamp_page(page: Any, page_size: Any, default_size: int) -> tuple[int, int]:
    """Normalize client-supplied paging values."""
    try:
        page = int(page)
    except (TypeError, ValueError):
        page = 1
    try:
        page_size = int(page_size)
    except (TypeError, ValueError):
        page_size = default_size
    return max(page, 1), min(max(page_size, 1), PAGINATION_CONFIG.MAX_PAGE_SIZE)


def _locked_conversation(conversation_id: uuid.UUID | str) -> Conversation:
    """
    Load a conversation holding its row lock.

    Must be called inside a transaction.
    """
    parsed = BaseService.parse_uuid(conversation_id, "conversation_id")
    conversation = Conversation.objects.select_for_update().filter(id=parsed).first()
    if conversation is None:
        raise ConversationNotFoundError(parsed)
    return conversation


def _require_participant(conversation: Conversation, user_id: uuid.UUID | str) -> Participant:
    participant = conversation.get_participant(user_id)
    if participant is None:
        raise NotParticipantError(conversation.id)
    return participant


def _require_active(conversation: Conversation) -> None:
    if not conversation.is_active:
        raise ValidationError(
            "This conversation is no longer active",
            error_code="CONVERSATION_INACTIVE",
            details={"conversation_id": str(conversation.id)},
        )


class ConversationService(BaseService):
    """
    Conversation store operations.

    Methods:
        find_or_create_direct: Idempotent direct conversation for a user pair
        get_or_create_direct: Same, also reporting whether it was created
        create_contextual: Order-related or support conversation
        get: Conversation by id
        get_for_participant: Conversation by id, caller must participate
        is_participant: Membership check for other apps
        list_for_user: Paginated conversations by latest activity
        toggle_block: Block or unblock as the calling participant
        deactivate: Retire a conversation (frees the direct pair)
    """

    @classmethod
    def _find_active_direct(cls, participant_key: str) -> Conversation | None:
        return Conversation.objects.filter(
            kind=ConversationKind.DIRECT,
            participant_key=participant_key,
            is_active=True,
        ).first()

    @classmethod
    def _validate_participants(cls, user_ids: Iterable[uuid.UUID]) -> None:
        """
        Ensure every id belongs to an existing, active user.

        Raises:
            ValidationError: UNKNOWN_USER or INACTIVE_USER
        """
        user_ids = list(user_ids)
        summaries = UserDirectory.lookup_users(user_ids)
        for user_id in user_ids:
            summary = summaries.get(user_id)
            if summary is None:
                raise ValidationError(
                    "User not found",
                    error_code="UNKNOWN_USER",
                    details={"user_id": str(user_id)},
                )
            if not summary.is_active:
                raise ValidationError(
                    "User account is inactive",
                    error_code="INACTIVE_USER",
                    details={"user_id": str(user_id)},
                )

    @classmethod
    def _create_with_participants(
        cls,
        kind: str,
        user_ids: list[uuid.UUID],
        related_order: str = "",
        related_product: str = "",
    ) -> Conversation:
        now = timezone.now()
        with cls.atomic():
            conversation = Conversation.objects.create(
                kind=kind,
                participant_key=(
                    Conversation.build_participant_key(*user_ids)
                    if kind == ConversationKind.DIRECT
                    else ""
                ),
                related_order=related_order,
                related_product=related_product,
            )
            Participant.objects.bulk_create(
                [
                    Participant(
                        conversation=conversation,
                        user_id=user_id,
                        joined_at=now,
                        last_seen_at=now,
                    )
                    for user_id in user_ids
                ]
            )
        return conversation

    @classmethod
    def find_or_create_direct(
        cls,
        user_a_id: uuid.UUID | str,
        user_b_id: uuid.UUID | str,
    ) -> Conversation:
        """Return the active direct conversation for a pair, creating it if needed."""
        conversation, _ = cls.get_or_create_direct(user_a_id, user_b_id)
        return conversation

    @classmethod
    def get_or_create_direct(
        cls,
        user_a_id: uuid.UUID | str,
        user_b_id: uuid.UUID | str,
    ) -> tuple[Conversation, bool]:
        """
        Find or create the active direct conversation for a pair.

        Concurrent calls for the same pair converge on one conversation: the
        insert runs in a savepoint against the partial unique constraint on
        participant_key, and a losing insert re-reads the winner once.

        Args:
            user_a_id: One participant (usually the caller)
            user_b_id: The other participant

        Returns:
            (conversation, created); created is False when an existing
            conversation was found, including one created concurrently

        Raises:
            ValidationError: INVALID_USER_ID, SELF_CONVERSATION, UNKNOWN_USER,
                INACTIVE_USER
            DirectConversationRaceError: Conflict on insert but no winner found
        """
        user_a = cls.parse_uuid(user_a_id, "user_id")
        user_b = cls.parse_uuid(user_b_id, "user_id")
        if user_a == user_b:
            raise ValidationError(
                "Cannot start a conversation with yourself",
                error_code="SELF_CONVERSATION",
            )
        cls._validate_participants([user_a, user_b])

        participant_key = Conversation.build_participant_key(user_a, user_b)
        existing = cls._find_active_direct(participant_key)
        if existing is not None:
            cls.get_logger().debug(
                f"Found existing direct conversation {existing.id} for {participant_key}"
            )
            return existing, False

        try:
            conversation = cls._create_with_participants(
                ConversationKind.DIRECT, [user_a, user_b]
            )
        except IntegrityError:
            winner = cls._find_active_direct(participant_key)
            if winner is None:
                cls.get_logger().error(
                    f"Direct conversation insert for {participant_key} conflicted "
                    "but no active conversation exists"
                )
                raise DirectConversationRaceError(
                    "Could not create or find the direct conversation",
                    details={"participant_key": participant_key},
                ) from None
            cls.get_logger().info(
                f"Concurrent create for {participant_key} resolved to {winner.id}"
            )
            return winner, False

        cls.get_logger().info(
            f"Created direct conversation {conversation.id} between {user_a} and {user_b}"
        )
        return conversation, True

    @classmethod
    def create_contextual(
        cls,
        creator_id: uuid.UUID | str,
        participant_ids: Iterable[uuid.UUID | str],
        kind: str,
        related_order: str = "",
        related_product: str = "",
    ) -> Conversation:
        """
        Create an order-related or support conversation.

        The creator is always a participant. Unlike direct conversations,
        several of these may exist for the same set of users.

        Raises:
            ValidationError: INVALID_CONVERSATION_KIND, NOT_ENOUGH_PARTICIPANTS,
                MISSING_RELATED_ORDER, UNKNOWN_USER, INACTIVE_USER
        """
        if kind not in (ConversationKind.ORDER_RELATED, ConversationKind.SUPPORT):
            raise ValidationError(
                "Conversation kind must be order_related or support",
                error_code="INVALID_CONVERSATION_KIND",
                details={"kind": kind},
            )
        related_order = (related_order or "").strip()
        related_product = (related_product or "").strip()
        if kind == ConversationKind.ORDER_RELATED and not related_order:
            raise ValidationError(
                "Order-related conversations need an order reference",
                error_code="MISSING_RELATED_ORDER",
            )

        members: list[uuid.UUID] = []
        for raw_id in [creator_id, *participant_ids]:
            user_id = cls.parse_uuid(raw_id, "user_id")
            if user_id not in members:
                members.append(user_id)
        if len(members) < 2:
            raise ValidationError(
                "A conversation needs at least one other participant",
                error_code="NOT_ENOUGH_PARTICIPANTS",
            )
        cls._validate_participants(members)

        conversation = cls._create_with_participants(
            kind, members, related_order=related_order, related_product=related_product
        )
        cls.get_logger().info(
            f"Created {kind} conversation {conversation.id} with {len(members)} participants"
        )
        return conversation

    @classmethod
    def get(cls, conversation_id: uuid.UUID | str) -> Conversation:
        """
        Raises:
            ValidationError: INVALID_CONVERSATION_ID
            ConversationNotFoundError: No such conversation
        """
        parsed = cls.parse_uuid(conversation_id, "conversation_id")
        conversation = Conversation.objects.filter(id=parsed).first()
        if conversation is None:
            raise ConversationNotFoundError(parsed)
        return conversation

    @classmethod
    def get_for_participant(
        cls,
        conversation_id: uuid.UUID | str,
        user_id: uuid.UUID | str,
    ) -> Conversation:
        """
        Raises:
            ConversationNotFoundError: No such conversation
            NotParticipantError: user_id is not a participant
        """
        conversation = cls.get(conversation_id)
        if not conversation.has_participant(user_id):
            raise NotParticipantError(conversation.id)
        return conversation

    @classmethod
    def is_participant(cls, conversation_id: uuid.UUID | str, user_id: uuid.UUID | str) -> bool:
        """Membership check; malformed ids are simply not participants."""
        try:
            parsed_conversation = cls.parse_uuid(conversation_id, "conversation_id")
            parsed_user = cls.parse_uuid(user_id, "user_id")
        except ValidationError:
            return False
        return Participant.objects.filter(
            conversation_id=parsed_conversation,
            user_id=parsed_user,
        ).exists()

    @classmethod
    def list_for_user(
        cls,
        user_id: uuid.UUID | str,
        page: int = 1,
        page_size: int = PAGINATION_CONFIG.CONVERSATIONS_PAGE_SIZE,
    ) -> ConversationPage:
        """
        Active conversations of a user, most recent message first.

        Conversations without messages sort after those with messages,
        newest first. Participants (with users) are prefetched.
        """
        parsed = cls.parse_uuid(user_id, "user_id")
        page, page_size = _clamp_page(page, page_size, PAGINATION_CONFIG.CONVERSATIONS_PAGE_SIZE)

        conversations = (
            Conversation.objects.filter(is_active=True, participants__user_id=parsed)
            .order_by(F("last_message_at").desc(nulls_last=True), "-created_at", "id")
            .prefetch_related(
                Prefetch("participants", queryset=Participant.objects.select_related("user"))
            )
        )
        total = conversations.count()
        offset = (page - 1) * page_size
        return ConversationPage(
            items=list(conversations[offset : offset + page_size]),
            page=page,
            page_size=page_size,
            total=total,
        )

    @classmethod
    def toggle_block(cls, conversation_id: uuid.UUID | str, user_id: uuid.UUID | str) -> Conversation:
        """
        Block the conversation as user_id, or lift a block user_id placed.

        While blocked, the blocker may still send; the other participant
        cannot. The blocked participant cannot lift the block.

        Raises:
            NotParticipantError: user_id is not a participant
            BlockedError: BLOCKED_BY_OTHER when someone else placed the block
        """
        with cls.atomic():
            conversation = _locked_conversation(conversation_id)
            _require_participant(conversation, user_id)

            if conversation.is_blocked:
                if conversation.is_blocked_for(user_id):
                    raise BlockedError(
                        "Only the participant who blocked this conversation can unblock it",
                        error_code="BLOCKED_BY_OTHER",
                    )
                conversation.is_blocked = False
                conversation.blocked_by = None
            else:
                conversation.is_blocked = True
                conversation.blocked_by_id = cls.parse_uuid(user_id, "user_id")
            conversation.save(update_fields=["is_blocked", "blocked_by", "updated_at"])

        cls.get_logger().info(
            f"Conversation {conversation.id} {'blocked' if conversation.is_blocked else 'unblocked'} "
            f"by {user_id}"
        )
        return conversation

    @classmethod
    def deactivate(cls, conversation_id: uuid.UUID | str, user_id: uuid.UUID | str) -> Conversation:
        """
        Retire a conversation. Messages are kept; a new direct conversation
        may then be created for the same pair.

        Raises:
            NotParticipantError: user_id is not a participant
        """
        with cls.atomic():
            conversation = _locked_conversation(conversation_id)
            _require_participant(conversation, user_id)
            if conversation.is_active:
                conversation.is_active = False
                conversation.save(update_fields=["is_active", "updated_at"])
                cls.get_logger().info(f"Conversation {conversation.id} deactivated by {user_id}")
        return conversation


class MessageService(BaseService):
    """
    Message ingestion and lifecycle.

    Methods:
        append_message: Validate, dedup and append; update derived state
        share_location: Append a location message
        delete_message: Author-only soft delete
        get_message: One message by id, deleted ones included
        list_messages: Paginated non-deleted messages
    """

    @classmethod
    def clean_coordinates(cls, coordinates: Any) -> dict[str, float]:
        """
        Validate a {latitude, longitude} mapping.

        Raises:
            ValidationError: INVALID_COORDINATES
        """
        if not isinstance(coordinates, dict):
            raise ValidationError(
                "Coordinates must include latitude and longitude",
                error_code="INVALID_COORDINATES",
            )
        cleaned = {}
        for key, bound in (("latitude", 90), ("longitude", 180)):
            value = coordinates.get(key)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValidationError(
                    f"{key.capitalize()} must be a number",
                    error_code="INVALID_COORDINATES",
                    details={key: value},
                )
            if not math.isfinite(value) or abs(value) > bound:
                raise ValidationError(
                    f"{key.capitalize()} must be between -{bound} and {bound}",
                    error_code="INVALID_COORDINATES",
                    details={key: value},
                )
            cleaned[key] = float(value)
        return cleaned

    @classmethod
    def _clean_attachments(cls, attachments: Any) -> list[dict[str, Any]]:
        if attachments is None:
            return []
        if not isinstance(attachments, list):
            raise ValidationError("Attachments must be a list", error_code="INVALID_ATTACHMENTS")
        if len(attachments) > ATTACHMENT_CONFIG.MAX_ATTACHMENTS_PER_MESSAGE:
            raise ValidationError(
                f"A message can carry at most {ATTACHMENT_CONFIG.MAX_ATTACHMENTS_PER_MESSAGE} attachments",
                error_code="TOO_MANY_ATTACHMENTS",
            )

        cleaned = []
        for index, item in enumerate(attachments):
            if not isinstance(item, dict) or item.get("type") not in AttachmentType.values:
                raise ValidationError(
                    "Attachment type must be one of: " + ", ".join(AttachmentType.values),
                    error_code="INVALID_ATTACHMENT",
                    details={"index": index},
                )
            entry: dict[str, Any] = {"type": item["type"]}
            for key, limit in (
                ("url", ATTACHMENT_CONFIG.MAX_URL_LENGTH),
                ("filename", ATTACHMENT_CONFIG.MAX_FILENAME_LENGTH),
                ("address", ATTACHMENT_CONFIG.MAX_ADDRESS_LENGTH),
            ):
                value = item.get(key)
                if value in (None, ""):
                    continue
                if not isinstance(value, str) or len(value) > limit:
                    raise ValidationError(
                        f"Attachment {key} is invalid",
                        error_code="INVALID_ATTACHMENT",
                        details={"index": index, "field": key},
                    )
                entry[key] = value
            size = item.get("size")
            if size is not None:
                if isinstance(size, bool) or not isinstance(size, int) or size < 0:
                    raise ValidationError(
                        "Attachment size must be a non-negative integer",
                        error_code="INVALID_ATTACHMENT",
                        details={"index": index, "field": "size"},
                    )
                entry["size"] = size
            if entry["type"] == AttachmentType.LOCATION or item.get("coordinates") is not None:
                entry["coordinates"] = cls.clean_coordinates(item.get("coordinates"))
            cleaned.append(entry)
        return cleaned

    @classmethod
    def _clean_content(cls, content: Any, message_type: str) -> str:
        if content is not None and not isinstance(content, str):
            raise ValidationError("Message content must be text", error_code="INVALID_CONTENT")
        content = (content or "").strip()
        if not content:
            if message_type == MessageType.TEXT:
                raise ValidationError("Message content cannot be empty", error_code="EMPTY_CONTENT")
            content = MESSAGE_CONFIG.PLACEHOLDERS[message_type]
        if len(content) > MESSAGE_CONFIG.MAX_CONTENT_LENGTH:
            raise ValidationError(
                f"Message content cannot exceed {MESSAGE_CONFIG.MAX_CONTENT_LENGTH} characters",
                error_code="CONTENT_TOO_LONG",
                details={"max_length": MESSAGE_CONFIG.MAX_CONTENT_LENGTH, "length": len(content)},
            )
        return content

    @classmethod
    def _refresh_last_message(cls, conversation: Conversation) -> None:
        last = (
            conversation.messages.filter(is_deleted=False)
            .order_by("-sequence")
            .only("content", "sender_id", "created_at")
            .first()
        )
        conversation.last_message_content = last.content if last else ""
        conversation.last_message_sender_id = last.sender_id if last else None
        conversation.last_message_at = last.created_at if last else None

    @classmethod
    def append_message(
        cls,
        conversation_id: uuid.UUID | str,
        sender_id: uuid.UUID | str,
        content: str | None,
        message_type: str = MessageType.TEXT,
        attachments: list[dict[str, Any]] | None = None,
        reply_to_id: uuid.UUID | str | None = None,
    ) -> AppendResult:
        """
        Append a message to a conversation.

        Implementation:
            1. Validate type, content and attachments (no lock held)
            2. Lock the conversation row
            3. Check participation, active state and block
            4. Return an identical recent message if one exists (dedup)
            5. Insert with the next sequence number, add the sender receipt,
               bump other participants' unread counters, refresh the last
               message cache

        Dedup:
            A non-deleted message from the same sender with the same trimmed
            content (after placeholder substitution) created less than
            MESSAGE_CONFIG.DEDUP_WINDOW_SECONDS ago is returned with
            created=False. This is a time window, not an idempotency key:
            a legitimate repeat inside the window is collapsed too.

        Returns:
            AppendResult(message, created)

        Raises:
            ValidationError: INVALID_MESSAGE_TYPE, EMPTY_CONTENT,
                CONTENT_TOO_LONG, INVALID_ATTACHMENT(S), INVALID_REPLY_TO,
                CONVERSATION_INACTIVE
            ConversationNotFoundError: No such conversation
            NotParticipantError: Sender is not a participant
            BlockedError: Blocked by the other participant
        """
        if message_type not in MessageType.values:
            raise ValidationError(
                "Message type must be one of: " + ", ".join(MessageType.values),
                error_code="INVALID_MESSAGE_TYPE",
                details={"message_type": message_type},
            )
        sender = cls.parse_uuid(sender_id, "user_id")
        content = cls._clean_content(content, message_type)
        attachments = cls._clean_attachments(attachments)

        with cls.atomic():
            conversation = _locked_conversation(conversation_id)
            _require_participant(conversation, sender)
            _require_active(conversation)
            if conversation.is_blocked_for(sender):
                raise BlockedError()

            window_start = timezone.now() - timedelta(seconds=MESSAGE_CONFIG.DEDUP_WINDOW_SECONDS)
            recent_identical = (
                conversation.messages.filter(
                    sender_id=sender,
                    content=content,
                    is_deleted=False,
                    created_at__gt=window_start,
                )
                .order_by("-sequence")
                .first()
            )
            if recent_identical is not None:
                cls.get_logger().debug(
                    f"Duplicate send by {sender} in {conversation.id} "
                    f"collapsed into message {recent_identical.id}"
                )
                return AppendResult(message=recent_identical, created=False)

            reply_to = None
            if reply_to_id:
                reply_to = conversation.messages.filter(
                    id=cls.parse_uuid(reply_to_id, "reply_to")
                ).first()
                if reply_to is None:
                    raise ValidationError(
                        "Replied-to message is not part of this conversation",
                        error_code="INVALID_REPLY_TO",
                    )

            conversation.message_sequence += 1
            message = Message.objects.create(
                conversation=conversation,
                sender_id=sender,
                sequence=conversation.message_sequence,
                message_type=message_type,
                content=content,
                attachments=attachments,
                reply_to=reply_to,
            )
            MessageReceipt.objects.create(message=message, user_id=sender, read_at=message.created_at)
            Participant.objects.filter(conversation=conversation).exclude(user_id=sender).update(
                unread_count=F("unread_count") + 1
            )

            conversation.last_message_content = message.content
            conversation.last_message_sender_id = sender
            conversation.last_message_at = message.created_at
            conversation.total_messages += 1
            conversation.save(
                update_fields=[
                    "message_sequence",
                    "total_messages",
                    "last_message_content",
                    "last_message_sender",
                    "last_message_at",
                    "updated_at",
                ]
            )

        cls.get_logger().info(
            f"Message {message.id} (#{message.sequence}, {message_type}) "
            f"appended to {conversation.id} by {sender}"
        )
        return AppendResult(message=message, created=True)

    @classmethod
    def share_location(
        cls,
        conversation_id: uuid.UUID | str,
        sender_id: uuid.UUID | str,
        latitude: Any,
        longitude: Any,
        address: str = "",
    ) -> AppendResult:
        """Append a location message carrying one location attachment."""
        attachment: dict[str, Any] = {
            "type": AttachmentType.LOCATION.value,
            "coordinates": cls.clean_coordinates({"latitude": latitude, "longitude": longitude}),
        }
        if address:
            attachment["address"] = address
        return cls.append_message(
            conversation_id=conversation_id,
            sender_id=sender_id,
            content=MESSAGE_CONFIG.PLACEHOLDERS[MessageType.LOCATION],
            message_type=MessageType.LOCATION,
            attachments=[attachment],
        )

    @classmethod
    def delete_message(
        cls,
        conversation_id: uuid.UUID | str,
        message_id: uuid.UUID | str,
        user_id: uuid.UUID | str,
    ) -> Message:
        """
        Soft delete a message as its author.

        Participants who had not read the message get their unread counter
        decremented; the last message cache falls back to the previous
        non-deleted message. Deleting twice returns the message unchanged.

        Raises:
            ConversationNotFoundError / MessageNotFoundError
            NotParticipantError: user_id is not a participant
            NotMessageAuthorError: user_id did not send the message
        """
        user = cls.parse_uuid(user_id, "user_id")
        with cls.atomic():
            conversation = _locked_conversation(conversation_id)
            _require_participant(conversation, user)
            message = conversation.messages.filter(
                id=cls.parse_uuid(message_id, "message_id")
            ).first()
            if message is None:
                raise MessageNotFoundError(message_id)
            if message.sender_id != user:
                raise NotMessageAuthorError()
            if message.is_deleted:
                return message

            message.soft_delete()

            readers = message.receipts.values_list("user_id", flat=True)
            Participant.objects.filter(conversation=conversation, unread_count__gt=0).exclude(
                user_id__in=readers
            ).update(unread_count=F("unread_count") - 1)

            conversation.total_messages = max(conversation.total_messages - 1, 0)
            cls._refresh_last_message(conversation)
            conversation.save(
                update_fields=[
                    "total_messages",
                    "last_message_content",
                    "last_message_sender",
                    "last_message_at",
                    "updated_at",
                ]
            )

        cls.get_logger().info(f"Message {message.id} in {conversation.id} deleted by {user}")
        return message

    @classmethod
    def get_message(
        cls,
        conversation_id: uuid.UUID | str,
        message_id: uuid.UUID | str,
        user_id: uuid.UUID | str,
    ) -> Message:
        """
        Fetch one message, including soft-deleted ones.

        Raises:
            ConversationNotFoundError / MessageNotFoundError / NotParticipantError
        """
        conversation = ConversationService.get_for_participant(conversation_id, user_id)
        message = (
            conversation.messages.select_related("sender")
            .prefetch_related("receipts")
            .filter(id=cls.parse_uuid(message_id, "message_id"))
            .first()
        )
        if message is None:
            raise MessageNotFoundError(message_id)
        return message

    @classmethod
    def list_messages(
        cls,
        conversation_id: uuid.UUID | str,
        user_id: uuid.UUID | str,
        page: int = 1,
        limit: int = PAGINATION_CONFIG.MESSAGES_PAGE_SIZE,
    ) -> MessagePage:
        """
        Non-deleted messages, chronological within the page.

        Page 1 is the newest `limit` messages; page 2 the `limit` before
        those, and so on.
        """
        conversation = ConversationService.get_for_participant(conversation_id, user_id)
        page, limit = _clamp_page(page, limit, PAGINATION_CONFIG.MESSAGES_PAGE_SIZE)

        messages = (
            conversation.messages.filter(is_deleted=False)
            .select_related("sender")
            .prefetch_related("receipts")
            .order_by("sequence")
        )
        total = messages.count()
        end = total - (page - 1) * limit
        start = max(end - limit, 0)
        items = list(messages[start:end]) if end > 0 else []
        return MessagePage(items=items, page=page, limit=limit, total=total)


class ReadReceiptService(BaseService):
    """
    Read cursors and unread counters.

    Methods:
        mark_read: Receipt everything unread, reset the counter
        unread_count_for: Current unread counter
    """

    @classmethod
    def mark_read(cls, conversation_id: uuid.UUID | str, user_id: uuid.UUID | str) -> ReadResult:
        """
        Mark every unread message from other senders as read by user_id.

        Idempotent: a second call creates no receipts and leaves the counter
        at zero (last_seen_at is refreshed).

        Raises:
            ConversationNotFoundError / NotParticipantError
        """
        user = cls.parse_uuid(user_id, "user_id")
        now = timezone.now()
        with cls.atomic():
            conversation = _locked_conversation(conversation_id)
            participant = _require_participant(conversation, user)

            unread_ids = list(
                conversation.messages.filter(is_deleted=False)
                .exclude(sender_id=user)
                .exclude(receipts__user_id=user)
                .values_list("id", flat=True)
            )
            MessageReceipt.objects.bulk_create(
                [MessageReceipt(message_id=message_id, user_id=user, read_at=now) for message_id in unread_ids],
                ignore_conflicts=True,
            )
            participant.unread_count = 0
            participant.last_seen_at = now
            participant.save(update_fields=["unread_count", "last_seen_at", "updated_at"])

        if unread_ids:
            cls.get_logger().debug(
                f"{user} read {len(unread_ids)} messages in {conversation.id}"
            )
        return ReadResult(
            conversation_id=conversation.id,
            user_id=user,
            marked_count=len(unread_ids),
            read_at=now,
        )

    @classmethod
    def unread_count_for(cls, conversation_id: uuid.UUID | str, user_id: uuid.UUID | str) -> int:
        """Unread messages for user_id; 0 when they are not a participant."""
        count = (
            Participant.objects.filter(
                conversation_id=cls.parse_uuid(conversation_id, "conversation_id"),
                user_id=cls.parse_uuid(user_id, "user_id"),
            )
            .values_list("unread_count", flat=True)
            .first()
        )
        return count or 0


class SearchService(BaseService):
    """Case-insensitive substring search scoped to the caller."""

    @classmethod
    def search(
        cls,
        user_id: uuid.UUID | str,
        query: str,
        limit: int = PAGINATION_CONFIG.SEARCH_RESULTS_LIMIT,
    ) -> SearchResults:
        """
        Search users by name/email, and the caller's conversations and
        messages by message content.

        Raises:
            ValidationError: EMPTY_QUERY, QUERY_TOO_LONG
        """
        user = cls.parse_uuid(user_id, "user_id")
        query = (query or "").strip()
        if not query:
            raise ValidationError("Search query is required", error_code="EMPTY_QUERY")
        if len(query) > PAGINATION_CONFIG.SEARCH_MAX_QUERY_LENGTH:
            raise ValidationError(
                f"Search query cannot exceed {PAGINATION_CONFIG.SEARCH_MAX_QUERY_LENGTH} characters",
                error_code="QUERY_TOO_LONG",
            )
        _, limit = _clamp_page(1, limit, PAGINATION_CONFIG.SEARCH_RESULTS_LIMIT)

        visible = Conversation.objects.filter(is_active=True, participants__user_id=user)
        matching_messages = Message.objects.filter(
            conversation__in=visible,
            is_deleted=False,
            content__icontains=query,
        )
        conversations = (
            visible.filter(Q(id__in=matching_messages.values("conversation_id")))
            .order_by(F("last_message_at").desc(nulls_last=True), "-created_at")
            .prefetch_related(
                Prefetch("participants", queryset=Participant.objects.select_related("user"))
            )[:limit]
        )
        messages = (
            matching_messages.select_related("sender")
            .prefetch_related("receipts")
            .order_by("-created_at", "-sequence")[:limit]
        )
        return SearchResults(
            query=query,
            users=UserDirectory.search_users(
                query,
                exclude_user_id=user,
                limit=PAGINATION_CONFIG.SEARCH_USERS_LIMIT,
            ),
            conversations=list(conversations),
            messages=list(messages),
        )
