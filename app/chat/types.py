"""
Data types returned by chat services.

These dataclasses carry results between the service layer and its two
callers (REST views and the WebSocket consumer) so that neither has to
guess what shape a return value has.

Types:
    LastMessage: Cached summary of a conversation's last message
    AppendResult: Outcome of MessageService.append_message
    ReadResult: Outcome of ReadReceiptService.mark_read
    ConversationPage: One page of a user's conversations
    MessagePage: One page of a conversation's messages
    SearchResults: Users, conversations and messages matching a query

User references follow authentication.types: sender ids are UserRef-style
bare ids, expanded users are UserSummary.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from authentication.types import UserSummary
    from chat.models import Conversation, Message


@dataclass(frozen=True)
class LastMessage:
    """
    Attributes:
        content: Message content
        sender_id: Ref to the sender (bare id)
        timestamp: created_at of the message
    """

    content: str
    sender_id: uuid.UUID | None
    timestamp: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "content": self.content,
            "sender_id": str(self.sender_id) if self.sender_id else None,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class AppendResult:
    """
    Outcome of appending a message.

    Attributes:
        message: The stored message (new, or the existing duplicate)
        created: False when the dedup window collapsed this send into an
            earlier identical message
    """

    message: Message
    created: bool = True

    @property
    def is_duplicate(self) -> bool:
        return not self.created


@dataclass
class ReadResult:
    """
    Outcome of marking a conversation read.

    Attributes:
        conversation_id: Conversation that was read
        user_id: Reader (bare id)
        marked_count: Messages that received a receipt in this call
        read_at: Timestamp written to receipts and last_seen_at
    """

    conversation_id: uuid.UUID
    user_id: uuid.UUID
    marked_count: int
    read_at: datetime


@dataclass
class ConversationPage:
    """One page of conversations, newest activity first."""

    items: list[Conversation]
    page: int
    page_size: int
    total: int

    @property
    def has_next(self) -> bool:
        return self.page * self.page_size < self.total


@dataclass
class MessagePage:
    """
    One page of messages in chronological order.

    Page 1 holds the newest messages; higher pages walk back in time.
    """

    items: list[Message]
    page: int
    limit: int
    total: int

    @property
    def has_older(self) -> bool:
        return self.page * self.limit < self.total


@dataclass
class SearchResults:
    """Matches for a substring query, scoped to what the caller may see."""

    query: str
    users: list[UserSummary] = field(default_factory=list)
    conversations: list[Conversation] = field(default_factory=list)
    messages: list[Message] = field(default_factory=list)
