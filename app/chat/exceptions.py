"""
Chat-specific exceptions.

All inherit from core.exceptions so the REST exception handler and the
WebSocket consumer render them without special cases.

Exception Hierarchy:
    NotFoundError
    ├── ConversationNotFoundError
    └── MessageNotFoundError
    PermissionDeniedError
    ├── NotParticipantError - Caller is not in the conversation
    ├── BlockedError - Conversation blocked by the other participant
    └── NotMessageAuthorError - Only the author may delete a message
    BaseApplicationError
    └── DirectConversationRaceError - Unique-insert retry found no winner

Usage:
    from chat.exceptions import NotParticipantError

    if not conversation.has_participant(user_id):
        raise NotParticipantError(conversation_id=conversation.id)
"""

from __future__ import annotations

import uuid

from core.exceptions import BaseApplicationError, NotFoundError, PermissionDeniedError


class ConversationNotFoundError(NotFoundError):
    default_error_code = "CONVERSATION_NOT_FOUND"

    def __init__(self, conversation_id: uuid.UUID | str | None = None):
        super().__init__(
            "Conversation not found",
            details={"conversation_id": str(conversation_id)} if conversation_id else None,
        )


class MessageNotFoundError(NotFoundError):
    default_error_code = "MESSAGE_NOT_FOUND"

    def __init__(self, message_id: uuid.UUID | str | None = None):
        super().__init__(
            "Message not found",
            details={"message_id": str(message_id)} if message_id else None,
        )


class NotParticipantError(PermissionDeniedError):
    """Raised when a user acts on a conversation they do not belong to."""

    default_error_code = "NOT_PARTICIPANT"

    def __init__(self, conversation_id: uuid.UUID | str | None = None):
        super().__init__(
            "You are not a participant in this conversation",
            details={"conversation_id": str(conversation_id)} if conversation_id else None,
        )


class BlockedError(PermissionDeniedError):
    """
    Raised when the conversation is blocked by the other participant.

    The blocker keeps full access; only the other side is refused.
    """

    default_error_code = "CONVERSATION_BLOCKED"

    def __init__(self, message: str = "This conversation has been blocked", error_code: str | None = None):
        super().__init__(message, error_code=error_code)


class NotMessageAuthorError(PermissionDeniedError):
    default_error_code = "NOT_MESSAGE_AUTHOR"

    def __init__(self):
        super().__init__("You can only delete your own messages")


class DirectConversationRaceError(BaseApplicationError):
    """
    The unique constraint rejected an insert, yet no winner could be found.

    Signals a bug or a concurrent deactivation; rendered as an internal
    error without detail.
    """

    default_error_code = "DIRECT_CONVERSATION_RACE"
