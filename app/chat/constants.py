"""
Constants and configuration for chat module features.

This module centralizes configuration values for:
- Message ingestion (content limits, dedup window, placeholders)
- Attachments carried inline on messages
- Pagination of conversations, messages and search results
- Realtime gateway (close codes, group names)

Environment-dependent values (presence backend, auth timeout) live in
Django settings instead.

Import example:
    from chat.constants import MESSAGE_CONFIG, GATEWAY_CONFIG
"""

from typing import Final


# =============================================================================
# Message Configuration
# =============================================================================


class MESSAGE_CONFIG:
    """Configuration for message ingestion."""

    # Content limits (after trimming)
    MAX_CONTENT_LENGTH: Final[int] = 1000

    # Identical content from the same sender inside this window is collapsed
    DEDUP_WINDOW_SECONDS: Final[int] = 5

    # Content stored when a non-text message is sent without text
    PLACEHOLDERS: Final[dict] = {
        "image": "Sent an image",
        "file": "Sent a file",
        "location": "Shared location",
        "order_update": "Order update",
    }

    # Shown instead of content for soft-deleted messages
    DELETED_DISPLAY_CONTENT: Final[str] = "[Message deleted]"


# =============================================================================
# Attachment Configuration
# =============================================================================


class ATTACHMENT_CONFIG:
    """
    Configuration for message attachments.

    Attachments are stored inline as JSON. File storage is external, so an
    attachment only carries the URL and metadata the client uploaded to.
    """

    MAX_ATTACHMENTS_PER_MESSAGE: Final[int] = 10
    ALLOWED_TYPES: Final[tuple] = ("image", "document", "location")
    MAX_URL_LENGTH: Final[int] = 2048
    MAX_FILENAME_LENGTH: Final[int] = 255
    MAX_ADDRESS_LENGTH: Final[int] = 500


# =============================================================================
# Pagination Configuration
# =============================================================================


class PAGINATION_CONFIG:
    """Page sizes for list endpoints."""

    CONVERSATIONS_PAGE_SIZE: Final[int] = 20
    MESSAGES_PAGE_SIZE: Final[int] = 50
    MAX_PAGE_SIZE: Final[int] = 100

    SEARCH_MAX_QUERY_LENGTH: Final[int] = 100
    SEARCH_USERS_LIMIT: Final[int] = 10
    SEARCH_RESULTS_LIMIT: Final[int] = 20


# =============================================================================
# Presence Configuration
# =============================================================================


class PRESENCE_CONFIG:
    """Configuration for presence tracking."""

    # Redis keys used by RedisPresenceTracker
    KEY_ONLINE_USERS: Final[str] = "presence:online"
    KEY_PREFIX_USER_CONNECTIONS: Final[str] = "presence:user"

    # Stale Redis entries from crashed processes expire after this long
    CONNECTION_TTL_SECONDS: Final[int] = 24 * 60 * 60


# =============================================================================
# Gateway Configuration
# =============================================================================


class GATEWAY_CONFIG:
    """Configuration for the WebSocket gateway."""

    # Close codes (4000-4999 are application-defined)
    CLOSE_AUTH_FAILED: Final[int] = 4001

    # Channel layer group names
    PRESENCE_GROUP: Final[str] = "chat.presence"
    CONVERSATION_GROUP_PREFIX: Final[str] = "chat.conversation"
    USER_GROUP_PREFIX: Final[str] = "chat.user"

    # Subprotocol carrying the token as ["jwt", "<token>"]
    TOKEN_SUBPROTOCOL: Final[str] = "jwt"
