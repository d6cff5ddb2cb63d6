"""
Authentication services consumed by the chat core.

This module provides the two identity interfaces the chat app depends on:

- UserDirectory: id -> UserSummary lookups and user search
- TokenService: access token -> user verification (SimpleJWT)

Related files:
    - models.py: User
    - types.py: UserRef, UserSummary
    - chat/middleware.py: WebSocket handshake authentication

Security:
    - Tokens are verified with SimpleJWT (signature, expiry, token type)
    - Inactive users never authenticate
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from django.db.models import Q
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.settings import api_settings as jwt_settings
from rest_framework_simplejwt.tokens import AccessToken

from authentication.models import User
from authentication.types import UserSummary
from core.exceptions import AuthenticationError, NotFoundError
from core.services import BaseService

if TYPE_CHECKING:
    from collections.abc import Iterable
    from datetime import datetime


class UserDirectory(BaseService):
    """
    Read-side access to user identities.

    Usage:
        from authentication.services import UserDirectory

        summary = UserDirectory.lookup_user(user_id)       # UserSummary
        summaries = UserDirectory.lookup_users([a, b])     # {UUID: UserSummary}
        matches = UserDirectory.search_users("ada", exclude_user_id=me.id)
    """

    @classmethod
    def lookup_user(cls, user_id: uuid.UUID | str) -> UserSummary:
        """
        Resolve a user id into a UserSummary.

        Inactive users are returned with is_active=False; callers decide
        whether that matters.

        Raises:
            ValidationError: If user_id is not a UUID
            NotFoundError: If no such user exists
        """
        parsed = cls.parse_uuid(user_id, "user_id")
        user = User.objects.filter(id=parsed).first()
        if user is None:
            raise NotFoundError(
                "User not found",
                error_code="USER_NOT_FOUND",
                details={"user_id": str(parsed)},
            )
        return UserSummary.from_user(user)

    @classmethod
    def lookup_users(cls, user_ids: Iterable[uuid.UUID | str]) -> dict[uuid.UUID, UserSummary]:
        """Resolve many ids in one query; unknown ids are omitted."""
        parsed = [cls.parse_uuid(user_id, "user_id") for user_id in user_ids]
        return {
            user.id: UserSummary.from_user(user)
            for user in User.objects.filter(id__in=parsed)
        }

    @classmethod
    def search_users(
        cls,
        query: str,
        exclude_user_id: uuid.UUID | str | None = None,
        limit: int = 10,
    ) -> list[UserSummary]:
        """
        Case-insensitive substring search over active users' name and email.

        Args:
            query: Substring to match
            exclude_user_id: Usually the caller, who never matches themselves
            limit: Maximum number of results
        """
        users = User.objects.filter(is_active=True).filter(
            Q(name__icontains=query) | Q(email__icontains=query)
        )
        if exclude_user_id is not None:
            users = users.exclude(id=exclude_user_id)
        return [UserSummary.from_user(user) for user in users.order_by("name", "email")[:limit]]

    @classmethod
    def mark_last_seen(cls, user_id: uuid.UUID | str, seen_at: datetime) -> bool:
        """
        Persist when a user was last connected.

        Older timestamps never overwrite newer ones, so out-of-order task
        execution is harmless.

        Returns:
            True if the row was updated
        """
        parsed = cls.parse_uuid(user_id, "user_id")
        updated = (
            User.objects.filter(id=parsed)
            .filter(Q(last_seen__isnull=True) | Q(last_seen__lt=seen_at))
            .update(last_seen=seen_at)
        )
        return bool(updated)


class TokenService(BaseService):
    """
    Identity token verification.

    Usage:
        user_id = TokenService.verify_access_token(raw_token)
        user = TokenService.authenticate(raw_token)
    """

    @classmethod
    def verify_access_token(cls, token: str) -> uuid.UUID:
        """
        Validate a SimpleJWT access token and return the user id it carries.

        Raises:
            AuthenticationError: If the token is missing, malformed, expired,
                of the wrong type or lacks the user id claim
        """
        if not token:
            raise AuthenticationError("Authentication token missing", error_code="MISSING_TOKEN")

        try:
            access_token = AccessToken(token)
        except TokenError as exc:
            raise AuthenticationError(str(exc), error_code="INVALID_TOKEN") from exc

        raw_user_id = access_token.get(jwt_settings.USER_ID_CLAIM)
        if raw_user_id is None:
            raise AuthenticationError(
                "Token contains no user identification",
                error_code="INVALID_TOKEN",
            )
        try:
            return uuid.UUID(str(raw_user_id))
        except ValueError:
            raise AuthenticationError(
                "Token contains an invalid user id",
                error_code="INVALID_TOKEN",
            ) from None

    @classmethod
    def authenticate(cls, token: str) -> User:
        """
        Resolve a token into an active User.

        Raises:
            AuthenticationError: If the token is invalid or the user is
                unknown or inactive
        """
        user_id = cls.verify_access_token(token)
        user = User.objects.filter(id=user_id, is_active=True).first()
        if user is None:
            cls.get_logger().warning(f"Token for unknown or inactive user {user_id}")
            raise AuthenticationError("User not found or inactive", error_code="USER_INACTIVE")
        return user
