"""
WebSocket consumers for the chat application.

This module implements the WebSocket consumer for real-time chat functionality,
handling connection management, presence, message broadcasting, and integration
with the chat service layer.

Consumers:
    ChatConsumer: One instance per WebSocket connection at ws/chat/

Authentication:
    JWTAuthMiddleware attaches the user to self.scope["user"]. Unauthenticated
    connections are accepted only long enough to receive an error event and
    are then closed with code 4001.

Channel Groups:
    chat.user.<user_id>: joined on connect (personal room, multi-device sync)
    chat.presence: joined on connect (online/offline broadcasts)
    chat.conversation.<conversation_id>: joined on join_chat

Events (from client, all JSON objects with a "type"):
    - join_chat {conversation_id}
    - leave_chat {conversation_id}
    - send_message {conversation_id, content, message_type?, attachments?, reply_to?}
    - mark_read {conversation_id}
    - typing_start / typing_stop {conversation_id}
    - share_location {conversation_id, latitude, longitude, address?}

Events (to client):
    - joined_chat, left_chat, message_sent (ack to the requester)
    - new_message, messages_read, user_typing, user_stopped_typing,
      location_shared, user_online, user_offline, online_users, notification
    - error {code, message, request}
"""

from __future__ import annotations

import logging

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncJsonWebsocketConsumer
from django.utils import timezone

from authentication.types import UserSummary
from chat import realtime
from chat.constants import GATEWAY_CONFIG
from chat.presence import get_presence_tracker
from chat.serializers import MessageSerializer
from chat.services import ConversationService, MessageService, ReadReceiptService
from chat.tasks import record_last_seen
from core.exceptions import BaseApplicationError, ValidationError

logger = logging.getLogger(__name__)


class ChatConsumer(AsyncJsonWebsocketConsumer):
    """
    WebSocket consumer for real-time chat functionality.

    Handles:
        - Connection authentication and presence
        - Joining/leaving conversation rooms
        - Sending messages and sharing locations
        - Typing indicators
        - Read receipts

    Attributes:
        user_id: String id of the authenticated user (None if rejected)
        profile: UserSummary dict broadcast with presence and typing events
        rooms: Conversation ids this connection has joined
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.user_id: str | None = None
        self.profile: dict | None = None
        self.rooms: set[str] = set()
        self.handlers = {
            "join_chat": self.handle_join_chat,
            "leave_chat": self.handle_leave_chat,
            "send_message": self.handle_send_message,
            "mark_read": self.handle_mark_read,
            "typing_start": self.handle_typing_start,
            "typing_stop": self.handle_typing_stop,
            "share_location": self.handle_share_location,
        }

    # =========================================================================
    # Connection lifecycle
    # =========================================================================

    async def connect(self):
        user = self.scope.get("user")

        if user is None or not user.is_authenticated:
            reason = self.scope.get("auth_error", "MISSING_TOKEN")
            logger.warning(f"Rejected unauthenticated WebSocket connection ({reason})")
            await self.accept()
            await self.send_error(
                "AUTHENTICATION_FAILED",
                f"Authentication failed: {reason}",
            )
            await self.close(code=GATEWAY_CONFIG.CLOSE_AUTH_FAILED)
            return

        self.user_id = str(user.id)
        summary = UserSummary.from_user(user)
        self.profile = summary.to_dict()

        await self.channel_layer.group_add(realtime.user_group(self.user_id), self.channel_name)
        await self.channel_layer.group_add(realtime.PRESENCE_GROUP, self.channel_name)
        await self.accept(subprotocol=self.scope.get("auth_subprotocol"))

        tracker = get_presence_tracker()
        await database_sync_to_async(tracker.mark_online)(self.user_id, self.channel_name, summary)
        await realtime.publish_presence(self.profile, is_online=True)

        online = await database_sync_to_async(tracker.online_users)()
        await self.send_json(
            {"type": "online_users", "users": [profile.to_dict() for profile in online]}
        )
        logger.info(f"User {self.user_id} connected ({self.channel_name})")

    async def disconnect(self, close_code):
        if self.user_id is None:
            return

        for conversation_id in list(self.rooms):
            await self.channel_layer.group_discard(
                realtime.conversation_group(conversation_id), self.channel_name
            )
        self.rooms.clear()
        await self.channel_layer.group_discard(realtime.user_group(self.user_id), self.channel_name)
        await self.channel_layer.group_discard(realtime.PRESENCE_GROUP, self.channel_name)

        tracker = get_presence_tracker()
        still_online = await database_sync_to_async(tracker.mark_offline)(
            self.user_id, self.channel_name
        )
        if not still_online:
            await realtime.publish_presence(self.profile, is_online=False)
            await database_sync_to_async(record_last_seen.delay)(
                self.user_id, timezone.now().isoformat()
            )
        logger.info(f"User {self.user_id} disconnected (code={close_code}, online={still_online})")

    # =========================================================================
    # Client events
    # =========================================================================

    async def receive(self, text_data=None, bytes_data=None, **kwargs):
        try:
            await super().receive(text_data=text_data, bytes_data=bytes_data, **kwargs)
        except ValueError:
            await self.send_error("INVALID_PAYLOAD", "Events must be JSON text frames")

    async def receive_json(self, content, **kwargs):
        if not isinstance(content, dict):
            await self.send_error("INVALID_PAYLOAD", "Events must be JSON objects")
            return

        event_type = content.get("type")
        handler = self.handlers.get(event_type)
        if handler is None:
            await self.send_error("UNKNOWN_EVENT", f"Unknown event type: {event_type}", event_type)
            return

        await database_sync_to_async(get_presence_tracker().touch)(self.user_id)
        try:
            await handler(content)
        except BaseApplicationError as exc:
            await self.send_error(exc.error_code, exc.message, event_type)
        except Exception:
            logger.exception(f"Unhandled error processing {event_type} for user {self.user_id}")
            await self.send_error("INTERNAL_ERROR", "Internal server error", event_type)

    async def handle_join_chat(self, content):
        conversation = await database_sync_to_async(ConversationService.get_for_participant)(
            content.get("conversation_id"), self.user_id
        )
        conversation_id = str(conversation.id)
        await self.channel_layer.group_add(
            realtime.conversation_group(conversation_id), self.channel_name
        )
        self.rooms.add(conversation_id)
        unread = await database_sync_to_async(ReadReceiptService.unread_count_for)(
            conversation_id, self.user_id
        )
        await self.send_json(
            {"type": "joined_chat", "conversation_id": conversation_id, "unread_count": unread}
        )

    async def handle_leave_chat(self, content):
        conversation_id = str(content.get("conversation_id"))
        if conversation_id in self.rooms:
            await self.channel_layer.group_discard(
                realtime.conversation_group(conversation_id), self.channel_name
            )
            self.rooms.discard(conversation_id)
        await self.send_json({"type": "left_chat", "conversation_id": conversation_id})

    async def handle_send_message(self, content):
        result = await self._append(
            MessageService.append_message,
            conversation_id=content.get("conversation_id"),
            sender_id=self.user_id,
            content=content.get("content"),
            message_type=content.get("message_type", "text"),
            attachments=content.get("attachments"),
            reply_to_id=content.get("reply_to"),
        )
        message_data, created, participant_ids = result
        if created:
            await realtime.publish_new_message(message_data, participant_ids)
        await self._ack(message_data, created)

    async def handle_share_location(self, content):
        message_data, created, participant_ids = await self._append(
            MessageService.share_location,
            conversation_id=content.get("conversation_id"),
            sender_id=self.user_id,
            latitude=content.get("latitude"),
            longitude=content.get("longitude"),
            address=content.get("address") or "",
        )
        if created:
            await realtime.publish_new_message(message_data, participant_ids)
            await realtime.publish_location(
                message_data["conversation_id"],
                self.user_id,
                message_data["attachments"][0],
                message_data["id"],
            )
        await self._ack(message_data, created)

    async def handle_mark_read(self, content):
        result = await database_sync_to_async(ReadReceiptService.mark_read)(
            content.get("conversation_id"), self.user_id
        )
        await realtime.publish_read_receipt(
            result.conversation_id,
            result.user_id,
            result.read_at.isoformat(),
            result.marked_count,
        )

    async def handle_typing_start(self, content):
        await realtime.publish_typing(self._require_room(content), self.profile, is_typing=True)

    async def handle_typing_stop(self, content):
        await realtime.publish_typing(self._require_room(content), self.profile, is_typing=False)

    # =========================================================================
    # Channel layer events
    # =========================================================================

    async def chat_event(self, event):
        """
        Handle chat.event messages from the channel layer (see chat.realtime).

        Applies the delivery filters, then forwards the payload unchanged.
        """
        if event.get("exclude_user") == self.user_id:
            return
        if event.get("skip_if_in_room") in self.rooms:
            return
        await self.send_json(event["payload"])

    # =========================================================================
    # Helpers
    # =========================================================================

    async def send_error(self, code: str, message: str, request: str | None = None):
        await self.send_json({"type": "error", "code": code, "message": message, "request": request})

    def _require_room(self, content) -> str:
        conversation_id = str(content.get("conversation_id"))
        if conversation_id not in self.rooms:
            raise ValidationError(
                "Join the conversation before sending typing events",
                error_code="NOT_IN_ROOM",
            )
        return conversation_id

    @database_sync_to_async
    def _append(self, operation, **kwargs) -> tuple[dict, bool, list[str]]:
        """Run an append operation and serialize its message for broadcast."""
        result = operation(**kwargs)
        message = result.message
        participant_ids = [
            str(user_id)
            for user_id in message.conversation.participants.values_list("user_id", flat=True)
        ]
        return dict(MessageSerializer(message).data), result.created, participant_ids

    async def _ack(self, message_data: dict, created: bool):
        await self.send_json(
            {
                "type": "message_sent",
                "conversation_id": message_data["conversation_id"],
                "message": message_data,
                "is_duplicate": not created,
            }
        )
