"""
Value types describing users as seen by other apps.

Two explicit shapes replace "sometimes an id, sometimes an object":

Types:
    UserRef: Bare user identifier
    UserSummary: Identifier plus denormalized display fields

Usage:
    from authentication.types import UserRef, UserSummary

    ref = UserRef.of(message.sender_id)
    summary = UserSummary.from_user(request.user)
    summary.to_dict()  # {"id": "...", "name": "...", "avatar": "...", "is_active": True}
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from authentication.models import User


@dataclass(frozen=True)
class UserRef:
    """
    Reference to a user by id only.

    Attributes:
        id: The user's UUID
    """

    id: uuid.UUID

    @classmethod
    def of(cls, user_id: uuid.UUID | str) -> UserRef:
        return cls(id=user_id if isinstance(user_id, uuid.UUID) else uuid.UUID(str(user_id)))

    def __str__(self) -> str:
        return str(self.id)


@dataclass(frozen=True)
class UserSummary:
    """
    Expanded user: id plus the display fields a chat client renders.

    Attributes:
        id: The user's UUID
        name: Display name
        avatar: Avatar URL, empty string when unset
        is_active: False for deactivated accounts
    """

    id: uuid.UUID
    name: str
    avatar: str = ""
    is_active: bool = True

    @classmethod
    def from_user(cls, user: User) -> UserSummary:
        return cls(
            id=user.id,
            name=user.display_name,
            avatar=user.avatar_url,
            is_active=user.is_active,
        )

    @property
    def ref(self) -> UserRef:
        return UserRef(id=self.id)

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe representation used in realtime payloads."""
        return {
            "id": str(self.id),
            "name": self.name,
            "avatar": self.avatar,
            "is_active": self.is_active,
        }
