"""
Realtime fan-out over the Channels layer.

Every server-to-client event goes through a single consumer handler
(ChatConsumer.chat_event). A channel-layer event carries the client
payload plus optional delivery filters:

    {
        "type": "chat.event",
        "payload": {...},                 # sent to the WebSocket as-is
        "exclude_user": "<uuid>",         # skip connections of this user
        "skip_if_in_room": "<uuid>",      # skip connections joined to this conversation
    }

Groups:
    chat.conversation.<id>  Connections that sent join_chat for the conversation
    chat.user.<id>          All connections of one user (multi-device sync)
    chat.presence           All authenticated connections

Both the consumer and the REST views publish through this module so a
message sent over HTTP reaches live clients the same way.

Usage:
    from asgiref.sync import async_to_sync
    from chat import realtime

    async_to_sync(realtime.publish_new_message)(message_data, participant_ids)
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable
from typing import Any

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.utils import timezone

from chat.constants import GATEWAY_CONFIG

logger = logging.getLogger(__name__)

PRESENCE_GROUP = GATEWAY_CONFIG.PRESENCE_GROUP


def conversation_group(conversation_id: uuid.UUID | str) -> str:
    return f"{GATEWAY_CONFIG.CONVERSATION_GROUP_PREFIX}.{conversation_id}"


def user_group(user_id: uuid.UUID | str) -> str:
    return f"{GATEWAY_CONFIG.USER_GROUP_PREFIX}.{user_id}"


async def _send(group: str, payload: dict[str, Any], **filters: Any) -> None:
    channel_layer = get_channel_layer()
    if channel_layer is None:
        logger.warning(f"No channel layer configured, dropping {payload.get('type')} event")
        return
    event = {"type": "chat.event", "payload": payload}
    event.update({key: str(value) for key, value in filters.items() if value is not None})
    await channel_layer.group_send(group, event)


async def publish_new_message(
    message_data: dict[str, Any],
    participant_ids: Iterable[uuid.UUID | str],
) -> None:
    """
    Fan out a persisted message.

    - conversation room: new_message
    - sender's personal group: new_message with sync=True, for the
      sender's other devices not joined to the room
    - other participants' personal groups: notification, for those not
      joined to the room
    """
    conversation_id = message_data["conversation_id"]
    sender_id = message_data.get("sender_id")

    await _send(
        conversation_group(conversation_id),
        {"type": "new_message", "conversation_id": conversation_id, "message": message_data},
    )
    if sender_id:
        await _send(
            user_group(sender_id),
            {
                "type": "new_message",
                "conversation_id": conversation_id,
                "message": message_data,
                "sync": True,
            },
            skip_if_in_room=conversation_id,
        )
    for participant_id in participant_ids:
        if str(participant_id) == str(sender_id):
            continue
        await notify_user(
            participant_id,
            {
                "kind": "new_message",
                "conversation_id": conversation_id,
                "message_id": message_data["id"],
                "preview": message_data["content"],
                "sender": message_data.get("sender"),
            },
            skip_if_in_room=conversation_id,
        )


async def publish_read_receipt(
    conversation_id: uuid.UUID | str,
    user_id: uuid.UUID | str,
    read_at: str,
    marked_count: int = 0,
) -> None:
    """Tell the rest of the room that user_id has caught up."""
    await _send(
        conversation_group(conversation_id),
        {
            "type": "messages_read",
            "conversation_id": str(conversation_id),
            "user_id": str(user_id),
            "read_at": read_at,
            "marked_count": marked_count,
        },
        exclude_user=user_id,
    )


async def publish_typing(
    conversation_id: uuid.UUID | str,
    user: dict[str, Any],
    is_typing: bool,
) -> None:
    await _send(
        conversation_group(conversation_id),
        {
            "type": "user_typing" if is_typing else "user_stopped_typing",
            "conversation_id": str(conversation_id),
            "user_id": user["id"],
            "name": user.get("name", ""),
        },
        exclude_user=user["id"],
    )


async def publish_location(
    conversation_id: uuid.UUID | str,
    sender_id: uuid.UUID | str,
    location: dict[str, Any],
    message_id: uuid.UUID | str,
) -> None:
    await _send(
        conversation_group(conversation_id),
        {
            "type": "location_shared",
            "conversation_id": str(conversation_id),
            "sender_id": str(sender_id),
            "message_id": str(message_id),
            "location": location,
        },
    )


async def publish_presence(user: dict[str, Any], is_online: bool) -> None:
    """Broadcast user_online / user_offline to every other connection."""
    await _send(
        PRESENCE_GROUP,
        {
            "type": "user_online" if is_online else "user_offline",
            "user": user,
            "timestamp": timezone.now().isoformat(),
        },
        exclude_user=user["id"],
    )


async def notify_user(
    user_id: uuid.UUID | str,
    notification: dict[str, Any],
    skip_if_in_room: uuid.UUID | str | None = None,
) -> None:
    """Deliver a notification event to all connections of one user."""
    await _send(
        user_group(user_id),
        {"type": "notification", "notification": notification},
        skip_if_in_room=skip_if_in_room,
    )


def publish_from_sync(publisher, *args, **kwargs) -> None:
    """
    Run a publisher from synchronous code (REST views).

    The write has already been committed; a failed broadcast is logged and
    never turns a successful request into an error.
    """
    try:
        async_to_sync(publisher)(*args, **kwargs)
    except Exception:
        logger.exception(f"Realtime publish via {publisher.__name__} failed")
