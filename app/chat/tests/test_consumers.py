"""
Tests for the chat WebSocket consumer.

Connections go through JWTAuthMiddleware and the real URL router, on the
in-memory channel layer configured in the root conftest. Database work in
the consumer runs in worker threads, so these tests use transactional
database access.
"""

import json
from unittest import mock

import pytest
from channels.db import database_sync_to_async
from channels.routing import URLRouter
from channels.testing import WebsocketCommunicator

from chat.middleware import JWTAuthMiddleware
from chat.presence import InMemoryPresenceTracker
from chat.routing import websocket_urlpatterns
from chat.services import ConversationService, MessageService, ReadReceiptService

pytestmark = [pytest.mark.asyncio, pytest.mark.django_db(transaction=True)]

application = JWTAuthMiddleware(URLRouter(websocket_urlpatterns))


async def receive_until(communicator, event_type, timeout=2):
    """Read events until one of the given type arrives; earlier ones are dropped."""
    while True:
        event = await communicator.receive_json_from(timeout=timeout)
        if event["type"] == event_type:
            return event


async def connect(token):
    communicator = WebsocketCommunicator(application, f"/ws/chat/?token={token}")
    connected, _ = await communicator.connect()
    assert connected
    await receive_until(communicator, "online_users")
    return communicator


async def join(communicator, conversation):
    await communicator.send_json_to({"type": "join_chat", "conversation_id": str(conversation.id)})
    return await receive_until(communicator, "joined_chat")


# =============================================================================
# Connection and authentication
# =============================================================================


class TestConnect:
    async def test_query_token_connects_and_lists_online_users(self, buyer, buyer_token):
        communicator = WebsocketCommunicator(application, f"/ws/chat/?token={buyer_token}")
        connected, _ = await communicator.connect()

        event = await communicator.receive_json_from()

        assert connected
        assert event["type"] == "online_users"
        assert [u["id"] for u in event["users"]] == [str(buyer.id)]
        await communicator.disconnect()

    async def test_subprotocol_token_is_echoed(self, buyer_token):
        communicator = WebsocketCommunicator(
            application, "/ws/chat/", subprotocols=["jwt", buyer_token]
        )

        connected, subprotocol = await communicator.connect()

        assert connected
        assert subprotocol == "jwt"
        await communicator.disconnect()

    async def test_authorization_header(self, buyer_token):
        communicator = WebsocketCommunicator(
            application,
            "/ws/chat/",
            headers=[(b"authorization", f"Bearer {buyer_token}".encode())],
        )

        connected, _ = await communicator.connect()

        assert connected
        assert (await communicator.receive_json_from())["type"] == "online_users"
        await communicator.disconnect()

    @pytest.mark.parametrize(
        ("path", "reason"),
        [
            ("/ws/chat/", "MISSING_TOKEN"),
            ("/ws/chat/?token=not-a-jwt", "INVALID_TOKEN"),
        ],
    )
    async def test_rejected_connection_gets_error_then_close(self, path, reason):
        communicator = WebsocketCommunicator(application, path)
        await communicator.connect()

        error = await communicator.receive_json_from()
        closed = await communicator.receive_output()

        assert error["type"] == "error"
        assert error["code"] == "AUTHENTICATION_FAILED"
        assert error["message"] == f"Authentication failed: {reason}"
        assert closed["type"] == "websocket.close"
        assert closed["code"] == 4001
        await communicator.disconnect()


# =============================================================================
# Presence
# =============================================================================


class TestPresence:
    async def test_online_and_offline_broadcasts(self, buyer, seller, buyer_token, seller_token):
        seller_ws = await connect(seller_token)
        buyer_ws = await connect(buyer_token)

        online = await receive_until(seller_ws, "user_online")
        assert online["user"]["id"] == str(buyer.id)
        assert online["user"]["name"] == "Alice Buyer"

        await buyer_ws.disconnect()

        offline = await receive_until(seller_ws, "user_offline")
        assert offline["user"]["id"] == str(buyer.id)
        await database_sync_to_async(buyer.refresh_from_db)()
        assert buyer.last_seen is not None
        await seller_ws.disconnect()

    async def test_user_stays_online_while_another_tab_is_open(
        self, buyer_token, seller_token
    ):
        seller_ws = await connect(seller_token)
        first_tab = await connect(buyer_token)
        second_tab = await connect(buyer_token)
        await receive_until(seller_ws, "user_online")
        await receive_until(seller_ws, "user_online")

        await first_tab.disconnect()

        assert await seller_ws.receive_nothing(timeout=0.2)
        await second_tab.disconnect()
        assert (await receive_until(seller_ws, "user_offline"))["type"] == "user_offline"
        await seller_ws.disconnect()

    async def test_client_events_keep_presence_alive(self, direct_conversation, buyer, buyer_token):
        buyer_ws = await connect(buyer_token)

        with mock.patch.object(InMemoryPresenceTracker, "touch", autospec=True) as touch:
            await join(buyer_ws, direct_conversation)

        touch.assert_called_once()
        assert touch.call_args.args[1] == str(buyer.id)
        await buyer_ws.disconnect()


# =============================================================================
# Rooms and messaging
# =============================================================================


class TestRooms:
    async def test_join_reports_unread_count(self, direct_conversation, buyer, seller_token):
        await database_sync_to_async(MessageService.append_message)(
            direct_conversation.id, buyer.id, "hello"
        )
        seller_ws = await connect(seller_token)

        joined = await join(seller_ws, direct_conversation)

        assert joined["conversation_id"] == str(direct_conversation.id)
        assert joined["unread_count"] == 1
        await seller_ws.disconnect()

    async def test_outsider_cannot_join(self, direct_conversation, outsider_token):
        outsider_ws = await connect(outsider_token)
        await outsider_ws.send_json_to(
            {"type": "join_chat", "conversation_id": str(direct_conversation.id)}
        )

        error = await receive_until(outsider_ws, "error")

        assert error["code"] == "NOT_PARTICIPANT"
        assert error["request"] == "join_chat"
        await outsider_ws.disconnect()

    async def test_leave_stops_room_delivery(self, direct_conversation, buyer, seller_token):
        seller_ws = await connect(seller_token)
        await join(seller_ws, direct_conversation)
        await seller_ws.send_json_to(
            {"type": "leave_chat", "conversation_id": str(direct_conversation.id)}
        )
        await receive_until(seller_ws, "left_chat")

        await seller_ws.send_json_to(
            {"type": "typing_start", "conversation_id": str(direct_conversation.id)}
        )
        error = await receive_until(seller_ws, "error")

        assert error["code"] == "NOT_IN_ROOM"
        await seller_ws.disconnect()


class TestSendMessage:
    async def test_message_reaches_room_and_sender_gets_ack(
        self, direct_conversation, buyer, buyer_token, seller_token
    ):
        buyer_ws = await connect(buyer_token)
        seller_ws = await connect(seller_token)
        await join(buyer_ws, direct_conversation)
        await join(seller_ws, direct_conversation)

        await buyer_ws.send_json_to(
            {
                "type": "send_message",
                "conversation_id": str(direct_conversation.id),
                "content": "Is this available?",
            }
        )

        ack = await receive_until(buyer_ws, "message_sent")
        received = await receive_until(seller_ws, "new_message")
        assert ack["is_duplicate"] is False
        assert ack["message"]["content"] == "Is this available?"
        assert received["message"]["id"] == ack["message"]["id"]
        assert received["message"]["sender_id"] == str(buyer.id)
        assert "sync" not in received
        await buyer_ws.disconnect()
        await seller_ws.disconnect()

    async def test_duplicate_send_is_acked_but_not_rebroadcast(
        self, direct_conversation, buyer_token, seller_token
    ):
        buyer_ws = await connect(buyer_token)
        seller_ws = await connect(seller_token)
        await join(buyer_ws, direct_conversation)
        await join(seller_ws, direct_conversation)
        event = {
            "type": "send_message",
            "conversation_id": str(direct_conversation.id),
            "content": "ping",
        }

        await buyer_ws.send_json_to(event)
        first = await receive_until(buyer_ws, "message_sent")
        await buyer_ws.send_json_to(event)
        second = await receive_until(buyer_ws, "message_sent")

        assert second["is_duplicate"] is True
        assert second["message"]["id"] == first["message"]["id"]
        await receive_until(seller_ws, "new_message")
        assert await seller_ws.receive_nothing(timeout=0.2)
        await buyer_ws.disconnect()
        await seller_ws.disconnect()

    async def test_participant_outside_room_gets_notification(
        self, direct_conversation, buyer, buyer_token, seller_token
    ):
        buyer_ws = await connect(buyer_token)
        seller_ws = await connect(seller_token)
        await join(buyer_ws, direct_conversation)

        await buyer_ws.send_json_to(
            {
                "type": "send_message",
                "conversation_id": str(direct_conversation.id),
                "content": "Still for sale?",
            }
        )

        notification = (await receive_until(seller_ws, "notification"))["notification"]
        assert notification["kind"] == "new_message"
        assert notification["conversation_id"] == str(direct_conversation.id)
        assert notification["preview"] == "Still for sale?"
        assert notification["sender"]["id"] == str(buyer.id)
        await buyer_ws.disconnect()
        await seller_ws.disconnect()

    async def test_senders_other_device_gets_sync_copy(self, direct_conversation, buyer_token):
        phone = await connect(buyer_token)
        laptop = await connect(buyer_token)
        await join(phone, direct_conversation)

        await phone.send_json_to(
            {
                "type": "send_message",
                "conversation_id": str(direct_conversation.id),
                "content": "from my phone",
            }
        )

        synced = await receive_until(laptop, "new_message")
        assert synced["sync"] is True
        assert synced["message"]["content"] == "from my phone"
        await phone.disconnect()
        await laptop.disconnect()

    async def test_validation_error_is_reported_to_sender(self, direct_conversation, buyer_token):
        buyer_ws = await connect(buyer_token)

        await buyer_ws.send_json_to(
            {"type": "send_message", "conversation_id": str(direct_conversation.id), "content": " "}
        )
        error = await receive_until(buyer_ws, "error")

        assert error["code"] == "EMPTY_CONTENT"
        assert error["request"] == "send_message"
        await buyer_ws.disconnect()

    async def test_blocked_sender_is_refused(self, direct_conversation, buyer, seller_token):
        await database_sync_to_async(ConversationService.toggle_block)(
            direct_conversation.id, buyer.id
        )
        seller_ws = await connect(seller_token)

        await seller_ws.send_json_to(
            {"type": "send_message", "conversation_id": str(direct_conversation.id), "content": "hi"}
        )
        error = await receive_until(seller_ws, "error")

        assert error["code"] == "CONVERSATION_BLOCKED"
        await seller_ws.disconnect()


class TestOtherEvents:
    async def test_typing_goes_to_others_in_room(
        self, direct_conversation, buyer, buyer_token, seller_token
    ):
        buyer_ws = await connect(buyer_token)
        seller_ws = await connect(seller_token)
        await join(buyer_ws, direct_conversation)
        await join(seller_ws, direct_conversation)

        await buyer_ws.send_json_to(
            {"type": "typing_start", "conversation_id": str(direct_conversation.id)}
        )
        typing = await receive_until(seller_ws, "user_typing")
        await buyer_ws.send_json_to(
            {"type": "typing_stop", "conversation_id": str(direct_conversation.id)}
        )
        stopped = await receive_until(seller_ws, "user_stopped_typing")

        assert typing["user_id"] == str(buyer.id)
        assert typing["name"] == "Alice Buyer"
        assert stopped["user_id"] == str(buyer.id)
        assert await buyer_ws.receive_nothing(timeout=0.2)
        await buyer_ws.disconnect()
        await seller_ws.disconnect()

    async def test_mark_read_notifies_room(
        self, direct_conversation, buyer, seller, buyer_token, seller_token
    ):
        await database_sync_to_async(MessageService.append_message)(
            direct_conversation.id, buyer.id, "hello"
        )
        buyer_ws = await connect(buyer_token)
        seller_ws = await connect(seller_token)
        await join(buyer_ws, direct_conversation)
        await join(seller_ws, direct_conversation)

        await seller_ws.send_json_to(
            {"type": "mark_read", "conversation_id": str(direct_conversation.id)}
        )
        read = await receive_until(buyer_ws, "messages_read")

        assert read["user_id"] == str(seller.id)
        assert read["marked_count"] == 1
        unread = await database_sync_to_async(ReadReceiptService.unread_count_for)(
            direct_conversation.id, seller.id
        )
        assert unread == 0
        await buyer_ws.disconnect()
        await seller_ws.disconnect()

    async def test_share_location(self, direct_conversation, buyer, buyer_token, seller_token):
        buyer_ws = await connect(buyer_token)
        seller_ws = await connect(seller_token)
        await join(buyer_ws, direct_conversation)
        await join(seller_ws, direct_conversation)

        await buyer_ws.send_json_to(
            {
                "type": "share_location",
                "conversation_id": str(direct_conversation.id),
                "latitude": 52.52,
                "longitude": 13.405,
                "address": "Alexanderplatz",
            }
        )

        message = (await receive_until(seller_ws, "new_message"))["message"]
        shared = await receive_until(seller_ws, "location_shared")
        assert message["message_type"] == "location"
        assert shared["sender_id"] == str(buyer.id)
        assert shared["message_id"] == message["id"]
        assert shared["location"]["coordinates"] == {"latitude": 52.52, "longitude": 13.405}
        assert shared["location"]["address"] == "Alexanderplatz"
        await buyer_ws.disconnect()
        await seller_ws.disconnect()

    async def test_invalid_location(self, direct_conversation, buyer_token):
        buyer_ws = await connect(buyer_token)

        await buyer_ws.send_json_to(
            {
                "type": "share_location",
                "conversation_id": str(direct_conversation.id),
                "latitude": 200,
                "longitude": 0,
            }
        )

        assert (await receive_until(buyer_ws, "error"))["code"] == "INVALID_COORDINATES"
        await buyer_ws.disconnect()


class TestMalformedInput:
    async def test_non_json_frame(self, buyer_token):
        buyer_ws = await connect(buyer_token)

        await buyer_ws.send_to(text_data="{not json")

        assert (await receive_until(buyer_ws, "error"))["code"] == "INVALID_PAYLOAD"
        await buyer_ws.disconnect()

    async def test_non_object_payload(self, buyer_token):
        buyer_ws = await connect(buyer_token)

        await buyer_ws.send_to(text_data=json.dumps(["send_message"]))

        assert (await receive_until(buyer_ws, "error"))["code"] == "INVALID_PAYLOAD"
        await buyer_ws.disconnect()

    async def test_unknown_event_type(self, buyer_token):
        buyer_ws = await connect(buyer_token)

        await buyer_ws.send_json_to({"type": "self_destruct"})
        error = await receive_until(buyer_ws, "error")

        assert error["code"] == "UNKNOWN_EVENT"
        assert error["request"] == "self_destruct"
        await buyer_ws.disconnect()

    async def test_connection_survives_errors(self, direct_conversation, buyer_token):
        buyer_ws = await connect(buyer_token)
        await buyer_ws.send_json_to({"type": "self_destruct"})
        await receive_until(buyer_ws, "error")

        joined = await join(buyer_ws, direct_conversation)

        assert joined["conversation_id"] == str(direct_conversation.id)
        await buyer_ws.disconnect()
