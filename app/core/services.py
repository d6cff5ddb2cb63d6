"""
Base service layer patterns for business logic encapsulation.

Service Layer Philosophy:
    Services encapsulate business logic separate from views, consumers and
    models. Views handle HTTP concerns, consumers handle WebSocket framing,
    models handle data, services handle logic.

Error Handling:
    Services raise core.exceptions subclasses for expected failures
    (validation, authorization, missing resources). The REST layer renders
    them through core.exceptions.api_exception_handler and the WebSocket
    consumer turns them into error events for the requesting connection.

Usage:
    from core.exceptions import NotFoundError
    from core.services import BaseService

    class ConversationService(BaseService):
        @classmethod
        def deactivate(cls, conversation_id):
            with cls.atomic():
                conversation = (
                    Conversation.objects.select_for_update()
                    .filter(id=conversation_id)
                    .first()
                )
                if conversation is None:
                    raise NotFoundError("Conversation not found")
                conversation.is_active = False
                conversation.save(update_fields=["is_active", "updated_at"])

            cls.get_logger().info(f"Deactivated conversation {conversation.id}")
            return conversation
"""

from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from typing import TYPE_CHECKING

from django.db import transaction

from core.exceptions import ValidationError

if TYPE_CHECKING:
    from collections.abc import Generator
    from typing import Any


class BaseService:
    """
    Base class for service layer classes.

    Provides common utilities for services:
    - Logging setup per service
    - Database transaction management
    - Identifier parsing shared by every entry point

    Design Notes:
        - Use @staticmethod or @classmethod (no instance state)
        - Services should be stateless
        - Raise core.exceptions for expected failures
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """
        Get logger for this service.

        Returns a logger named after the service class for
        easy filtering in logs.
        """
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def atomic(cls) -> Generator[None, None, None]:
        """
        Execute operations in a database transaction.

        Nested use creates a savepoint, so an IntegrityError raised inside
        the block can be caught by the caller without breaking an outer
        transaction.

        Example:
            with cls.atomic():
                conversation = Conversation.objects.create(...)
                Participant.objects.bulk_create([...])
        """
        with transaction.atomic():
            yield

    @staticmethod
    def parse_uuid(value: Any, field_name: str = "id") -> uuid.UUID:
        """
        Coerce a client-supplied identifier into a UUID.

        Raises:
            ValidationError: If the value is not a valid UUID
        """
        if isinstance(value, uuid.UUID):
            return value
        try:
            return uuid.UUID(str(value))
        except (TypeError, ValueError, AttributeError):
            raise ValidationError(
                f"Invalid {field_name}",
                error_code=f"INVALID_{field_name.upper()}",
                details={field_name: str(value)},
            ) from None
